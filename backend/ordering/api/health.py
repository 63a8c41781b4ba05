from fastapi import APIRouter, Depends
from sqlalchemy import text

from ordering.adapters.notifier import default_notifier
from ordering.db import engine
from ordering.services.session_store import CheckoutSessionStore, get_session_store

router = APIRouter()


@router.get("/health", tags=["health"])
def health(store: CheckoutSessionStore = Depends(get_session_store)):
    db_ok = False
    sessions_ok = False
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            db_ok = True
    except Exception:
        db_ok = False
    try:
        store.get("health-probe")
        sessions_ok = True
    except Exception:
        sessions_ok = False
    notifier_ok = default_notifier.health_check()

    return {
        "status": "ok" if db_ok and sessions_ok and notifier_ok else "degraded",
        "db": db_ok,
        "session_store": sessions_ok,
        "notifier": notifier_ok,
    }
