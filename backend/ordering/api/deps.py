from typing import Optional

from fastapi import Depends, Header, HTTPException

ROLE_CUSTOMER = "customer"
ROLE_ADMIN = "admin"


def get_current_user_id(x_user_id: Optional[int] = Header(None, alias="X-User-Id")) -> int:
    # identity is resolved by the gateway in front of this service
    if x_user_id is None:
        raise HTTPException(status_code=401, detail="Missing caller identity")
    return x_user_id


def get_current_role(x_user_role: Optional[str] = Header(None, alias="X-User-Role")) -> str:
    return (x_user_role or ROLE_CUSTOMER).lower()


def require_admin(role: str = Depends(get_current_role)) -> str:
    if role != ROLE_ADMIN:
        raise HTTPException(status_code=403, detail="Admin access required")
    return role
