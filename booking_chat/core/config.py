# booking_chat/core/config.py
import os
from typing import List, Literal
from dotenv import load_dotenv


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """
    Setup environment variables.
        - STORE_BACKEND where bookings live: "memory" (local dev / tests) or "http" (booking service)
        - MESSAGE_STORE_BACKEND where chat history lives: "memory" or "redis"
        - SESSION_TOKEN_SECRET the HMAC secret shared with the token issuer
        - ANNOUNCE_NEGOTIATION_EVENTS post a chat line for every proposal / agreement
    """

    # Load environment variables from the .env file
    load_dotenv()

    STORE_BACKEND: Literal["memory", "http"] = os.getenv("STORE_BACKEND", "memory")
    BOOKING_API_URL: str = os.getenv("BOOKING_API_URL", "http://localhost:5000/api")
    BOOKING_API_TOKEN: str = os.getenv("BOOKING_API_TOKEN", "")
    BOOKING_API_TIMEOUT: float = float(os.getenv("BOOKING_API_TIMEOUT", "5"))
    PAYMENT_API_URL: str = os.getenv("PAYMENT_API_URL", BOOKING_API_URL)

    MESSAGE_STORE_BACKEND: Literal["memory", "redis"] = os.getenv("MESSAGE_STORE_BACKEND", "memory")
    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_ACCESS_KEY: str = os.getenv("REDIS_ACCESS_KEY", "")
    REDIS_SSL: bool = _env_bool("REDIS_SSL", "false")

    SESSION_TOKEN_SECRET: str = os.getenv("SESSION_TOKEN_SECRET", "change-me")
    SESSION_TOKEN_ALGORITHM: str = os.getenv("SESSION_TOKEN_ALGORITHM", "HS256")
    SESSION_TOKEN_TTL_SECONDS: int = int(os.getenv("SESSION_TOKEN_TTL_SECONDS", "3600"))

    ANNOUNCE_NEGOTIATION_EVENTS: bool = _env_bool("ANNOUNCE_NEGOTIATION_EVENTS", "true")

    CORS_ORIGINS: str = os.getenv("CORS_ORIGINS", "*")

    def get_cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list."""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


settings = Settings()
