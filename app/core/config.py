from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """App settings loaded from environment variables (.env)."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    APP_NAME: str = "Fault Routing & Approval Engine"
    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"

    # SECURITY (sessions are issued by the external auth service)
    SECRET_KEY: str = "CHANGE_ME"
    SESSION_MAX_AGE_SECONDS: int = 60 * 60 * 12  # 12h

    # CORS
    CORS_ALLOW_ORIGINS: str = "*"  # "*" or "https://a.com,https://b.com"
    CORS_ALLOW_CREDENTIALS: bool = False

    # DATABASE / CACHE
    DATABASE_DSN: str = "sqlite:///./fault_routing.db"
    REDIS_URL: str = "redis://127.0.0.1:6379/0"  # empty string disables redis
    VENDOR_OVERRIDE_TTL_SECONDS: int = 300

    # ROUTING
    ROUTING_POLICY_FILE: str = ""  # optional JSON file overriding the built-in policy

    # EMAIL (transport is external; we only hand off template data)
    EMAIL_ENABLED: bool = True
    EMAIL_FROM: str = "noreply@fault-routing.local"

    # SAMPLE DATA (for local testing)
    AUTO_SEED_SAMPLE: bool = False

    def cors_origins(self) -> list[str]:
        s = (self.CORS_ALLOW_ORIGINS or "").strip()
        if not s or s == "*":
            return ["*"]
        return [x.strip() for x in s.split(",") if x.strip()]


settings = Settings()
