from pydantic import field_validator
from pydantic_settings import BaseSettings
from typing import List, Optional

class Settings(BaseSettings):
    # Database - supports both SQLite (dev) and PostgreSQL (prod)
    DATABASE_URL: str = "sqlite:///./delivery.db"

    # CORS
    BACKEND_CORS_ORIGINS: List[str] = ["*"]

    # Auth sessions (opaque bearer tokens stored in auth_sessions)
    TOKEN_TTL_HOURS: int = 24

    # Commission rates applied at settlement
    DRIVER_COMMISSION_RATE: float = 0.20
    RESTAURANT_COMMISSION_RATE: float = 0.15
    # Share of the delivery fee shown to a driver when they accept an order
    DRIVER_SHARE_RATE: float = 0.80

    # Order defaults
    DEFAULT_ESTIMATED_TIME: str = "30-45 min"
    AVAILABLE_ORDERS_LIMIT: int = 10
    AUTO_CONFIRM_ORDERS: bool = False

    LOG_LEVEL: str = "INFO"

    # Bootstrap data
    FIRST_ADMIN_EMAIL: Optional[str] = None
    FIRST_ADMIN_PASSWORD: Optional[str] = None
    SEED_DEMO_DATA: bool = False

    @field_validator("DRIVER_COMMISSION_RATE", "RESTAURANT_COMMISSION_RATE", "DRIVER_SHARE_RATE")
    @classmethod
    def rate_in_range(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("rate must be between 0 and 1")
        return v

    class Config:
        env_file = ".env"

settings = Settings()
