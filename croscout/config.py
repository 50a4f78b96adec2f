import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    database_url: str
    jwt_secret: str
    jwt_algorithm: str = "HS256"
    jwt_expires_minutes: int = 60 * 24

    client_url: str | None = None

    google_client_id: str | None = None
    google_client_secret: str | None = None
    google_callback_url: str | None = None

    mail_host: str = "smtp.gmail.com"
    mail_port: int = 465
    mail_user: str | None = None
    mail_password: str | None = None
    mail_sender_name: str = "Croscout"

    translation_url: str = "https://translate.croscout.eu"
    translation_timeout: float = 5.0
    translation_retries: int = 2

    rabbit_url: str | None = None
    redis_url: str | None = None

    log_level: str = "INFO"
    log_json: bool = True

    @property
    def cors_origins(self) -> list[str]:
        origins = ["http://localhost:3000"]
        if self.client_url and self.client_url not in origins:
            origins.insert(0, self.client_url)
        return origins


def load_settings() -> Settings:
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        raise RuntimeError("DATABASE_URL environment variable is not set")

    jwt_secret = os.getenv("JWT_SECRET")
    if not jwt_secret:
        raise RuntimeError("JWT_SECRET environment variable is not set")

    return Settings(
        database_url=database_url,
        jwt_secret=jwt_secret,
        jwt_algorithm=os.getenv("JWT_ALGORITHM") or "HS256",
        jwt_expires_minutes=int(os.getenv("JWT_EXPIRES_MINUTES") or 60 * 24),
        client_url=os.getenv("CLIENT_URL") or None,
        google_client_id=os.getenv("GOOGLE_CLIENT_ID") or None,
        google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET") or None,
        google_callback_url=os.getenv("GOOGLE_CALLBACK_URL") or None,
        mail_host=os.getenv("MAIL_HOST") or "smtp.gmail.com",
        mail_port=int(os.getenv("MAIL_PORT") or 465),
        mail_user=os.getenv("MAIL_USER") or None,
        mail_password=os.getenv("MAIL_PASSWORD") or None,
        mail_sender_name=os.getenv("MAIL_SENDER_NAME") or "Croscout",
        translation_url=os.getenv("TRANSLATION_URL") or "https://translate.croscout.eu",
        translation_timeout=float(os.getenv("TRANSLATION_TIMEOUT") or 5.0),
        translation_retries=int(os.getenv("TRANSLATION_RETRIES") or 2),
        rabbit_url=os.getenv("RABBIT_URL") or None,
        redis_url=os.getenv("REDIS_URL") or None,
        log_level=os.getenv("LOG_LEVEL") or "INFO",
        log_json=_env_bool("LOG_JSON", True),
    )


settings = load_settings()
