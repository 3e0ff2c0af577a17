from dataclasses import dataclass
from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path

# Resolve the project root .env file (core/../.env)
_THIS_DIR = Path(__file__).resolve().parent          # core/
_PROJECT_ROOT = _THIS_DIR.parent
_ENV_FILE = _PROJECT_ROOT / ".env"


@dataclass(frozen=True)
class GatewayConfig:
    """Gateway credentials and endpoints, injected at construction time."""
    client_id: str
    api_key: str
    checksum_key: bytes
    base_url: str
    return_url: str
    cancel_url: str


class Settings(BaseSettings):
    # Server config
    SERVER_HOST: str = "0.0.0.0"
    SERVER_PORT: int = 8000
    ENVIRONMENT: str = "development"

    # API config
    API_BASE_URL: str = "http://localhost:8000"

    # Frontend config
    FRONTEND_URL: str = "http://localhost:3000"

    # Supabase
    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""

    # Order store backend: "memory" or "supabase"
    ORDER_STORE: str = "supabase"

    # Service tokens for internal callers (booking flow, admin tooling)
    JWT_SECRET: str = "change-me-payment-engine-secret"
    JWT_ALGORITHM: str = "HS256"

    # Redis config (for rate limiting)
    REDIS_URL: str = "redis://localhost:6379"

    # PayOS
    PAYOS_CLIENT_ID: str = ""
    PAYOS_API_KEY: str = ""
    PAYOS_CHECKSUM_KEY: str = ""
    PAYOS_BASE_URL: str = "https://api-merchant.payos.vn"
    PAYOS_RETURN_URL: str = "http://localhost:3000/payment/success"
    PAYOS_CANCEL_URL: str = "http://localhost:3000/payment/cancel"

    # Reconciliation retry policy
    RECONCILE_MAX_ATTEMPTS: int = 5
    RECONCILE_BACKOFF_SECONDS: float = 0.05
    RECONCILE_BACKOFF_CAP_SECONDS: float = 1.0

    model_config = SettingsConfigDict(
        env_file=str(_ENV_FILE),
        env_file_encoding="utf-8",
        extra="ignore"
    )

    def gateway_config(self) -> GatewayConfig:
        return GatewayConfig(
            client_id=self.PAYOS_CLIENT_ID,
            api_key=self.PAYOS_API_KEY,
            checksum_key=self.PAYOS_CHECKSUM_KEY.encode("utf-8"),
            base_url=self.PAYOS_BASE_URL.rstrip("/"),
            return_url=self.PAYOS_RETURN_URL,
            cancel_url=self.PAYOS_CANCEL_URL,
        )

settings = Settings()
