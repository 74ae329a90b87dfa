"""
Runtime configuration, read from the environment (and a local .env file if present).
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv

load_dotenv()


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str] = None
    database_name: Optional[str] = None
    jwt_secret: str = "change-me"
    sendgrid_api_key: Optional[str] = None
    sendgrid_order_template_id: Optional[str] = None
    sendgrid_from_email: str = "orders@example.com"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.getenv("CORS_ORIGINS", "*")
        return cls(
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME"),
            jwt_secret=os.getenv("JWT_SECRET", "change-me"),
            sendgrid_api_key=os.getenv("SENDGRID_API_KEY"),
            sendgrid_order_template_id=os.getenv("SENDGRID_ORDER_TEMPLATEID"),
            sendgrid_from_email=os.getenv("SENDGRID_FROM_EMAIL", "orders@example.com"),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            port=int(os.getenv("PORT", 8000)),
        )
