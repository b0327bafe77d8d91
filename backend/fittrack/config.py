"""Application settings and validation."""

import os


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_LOGIN_EXPIRE_HOURS: int
    JWT_SESSION_EXPIRE_DAYS: int
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    LOG_LEVEL: str
    RELATIONAL_DB_URL: str
    DOCUMENT_DB_URL: str
    RATE_LIMIT_MAX_REQUESTS: int
    RATE_LIMIT_WINDOW_SECONDS: int
    DIET_RATE_LIMIT_MAX_REQUESTS: int
    RESET_CODE_TTL_MINUTES: int

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_LOGIN_EXPIRE_HOURS = int(os.getenv("JWT_LOGIN_EXPIRE_HOURS", "24"))
        self.JWT_SESSION_EXPIRE_DAYS = int(os.getenv("JWT_SESSION_EXPIRE_DAYS", "7"))
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

        # Two stores: accounts/workouts/plans are relational, the exercise log
        # and diet plans are kept as documents in their own database.
        self.RELATIONAL_DB_URL = os.getenv("RELATIONAL_DB_URL", "sqlite:///./fittrack.db")
        self.DOCUMENT_DB_URL = os.getenv("DOCUMENT_DB_URL", "sqlite:///./fittrack_documents.db")

        self.RATE_LIMIT_MAX_REQUESTS = int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100"))
        self.RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", str(15 * 60)))
        self.DIET_RATE_LIMIT_MAX_REQUESTS = int(os.getenv("DIET_RATE_LIMIT_MAX_REQUESTS", "10"))
        self.RESET_CODE_TTL_MINUTES = int(os.getenv("RESET_CODE_TTL_MINUTES", "10"))

        self.SMTP_HOST = os.getenv("SMTP_HOST", "")
        self.SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
        self.SMTP_USER = os.getenv("SMTP_USER", "")
        self.SMTP_PASSWORD = os.getenv("SMTP_PASSWORD", "")
        self.MAIL_FROM = os.getenv("MAIL_FROM", '"FitTrack Pro" <no-reply@fittrackpro.com>')

        self.DIET_AI_URL = os.getenv("DIET_AI_URL", "https://api.mistral.ai/v1/chat/completions")
        self.DIET_AI_API_KEY = os.getenv("DIET_AI_API_KEY", "")
        self.DIET_AI_MODEL = os.getenv("DIET_AI_MODEL", "mistral-small-latest")
        self.DIET_AI_TIMEOUT_SECONDS = float(os.getenv("DIET_AI_TIMEOUT_SECONDS", "180"))
        self.DIET_AI_RETRIES = int(os.getenv("DIET_AI_RETRIES", "3"))
        self.DIET_AI_RETRY_DELAY_SECONDS = float(os.getenv("DIET_AI_RETRY_DELAY_SECONDS", "3"))
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        if self.DIET_AI_RETRIES < 1:
            raise RuntimeError("DIET_AI_RETRIES must be at least 1")

    @property
    def smtp_configured(self) -> bool:
        return bool(self.SMTP_HOST and self.SMTP_USER and self.SMTP_PASSWORD)


settings = Settings()
