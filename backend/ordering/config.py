from decimal import Decimal
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./dev.db"
    APP_HOST: str = "127.0.0.1"
    APP_PORT: int = 8000
    FRONTEND_ORIGINS: List[str] = ["http://localhost:3000"]
    LOG_LEVEL: str = "INFO"

    CURRENCY: str = "USD"
    BASE_DELIVERY_FEE: Decimal = Decimal("2.00")
    CART_TTL_SECONDS: int = 24 * 60 * 60
    CHECKOUT_SESSION_TTL_SECONDS: int = 15 * 60
    CANCELLATION_WINDOW_SECONDS: int = 5 * 60

    # "memory" keeps sessions in this process; "redis" shares them across instances
    CHECKOUT_SESSION_BACKEND: str = "memory"
    REDIS_URL: str = "redis://localhost:6379/0"

    SCHEDULER_ENABLED: bool = True
    SWEEP_INTERVAL_SECONDS: int = 60

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

settings = Settings()
