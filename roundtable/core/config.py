import logging

from pydantic_settings import BaseSettings
from pydantic import ConfigDict
from typing import List, Optional


class Settings(BaseSettings):
    # Environment
    ENV: str = "development"
    CONFIG_STRICT: bool = False

    # Database
    DATABASE_URL: Optional[str] = "sqlite:///./roundtable.db"
    TEST_DATABASE_URL: Optional[str] = None

    # Identity provider (bearer JWTs)
    AUTH_JWT_SECRET: Optional[str] = None  # HS256 shared secret (dev / test)
    AUTH_ISSUER: Optional[str] = None  # e.g. https://securetoken.google.com/<project>
    AUTH_AUDIENCE: Optional[str] = None
    AUTH_JWKS_URL: Optional[str] = None  # RS256 keys; defaults to <issuer>/.well-known/jwks.json

    # Text generation
    GROQ_API_KEY: Optional[str] = None
    GENERATION_MODEL: str = "llama-3.1-8b-instant"
    GENERATION_TEMPERATURE: float = 0.8
    GENERATION_MAX_TOKENS: int = 1024

    # Newsletter defaults
    DEFAULT_MAX_MEMBERS: int = 100

    # HTTP
    CORS_ORIGINS: str = "http://localhost:5173"  # comma-separated

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


settings = Settings()


def validate_config(strict: Optional[bool] = None, settings_obj: Optional[Settings] = None, logger: Optional[logging.Logger] = None) -> bool:
    """Validate required configuration.

    In strict mode raise RuntimeError; otherwise emit warnings only.
    Secrets are not logged, only missing keys.
    """
    cfg = settings_obj or settings
    log = logger or logging.getLogger("roundtable")
    strict_mode = strict if strict is not None else getattr(cfg, "CONFIG_STRICT", False)

    missing = [key for key in ("DATABASE_URL", "GROQ_API_KEY") if not getattr(cfg, key, None)]

    auth_keys = ("AUTH_JWT_SECRET", "AUTH_JWKS_URL", "AUTH_ISSUER")
    if not any(getattr(cfg, key, None) for key in auth_keys):
        missing.append(" | ".join(auth_keys))

    if missing:
        message = f"Missing required configuration: {', '.join(missing)}"
        if strict_mode:
            raise RuntimeError(message)
        log.warning(message)

    return True
