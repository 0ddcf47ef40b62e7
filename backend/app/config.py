"""Application settings and validation."""

import os
from pathlib import Path

BASE = Path(__file__).resolve().parent.parent


class Settings:
    ENV: str
    JWT_SECRET: str
    JWT_ALGORITHM: str
    JWT_EXPIRE_HOURS: int
    ALLOW_INSECURE_JWT: bool
    ALLOW_DEV_CORS: bool
    LOG_LEVEL: str
    DATABASE_URL: str
    LEVEL_POINTS_THRESHOLD: int
    BADGE_ACTIVITY_MILESTONE: int
    BADGE_POINTS_MILESTONE: int
    BADGE_LEVEL_MILESTONE: int
    LEDGER_MAX_ATTEMPTS: int
    LEDGER_RETRY_BASE_DELAY: float
    SUBMIT_RATE_LIMIT_PER_MIN: int
    SUBMIT_RATE_LIMIT_WINDOW_SECONDS: int

    def __init__(self):
        self.ENV = os.getenv("ENV", "dev").lower()
        self.JWT_SECRET = os.getenv("JWT_SECRET", "change_me_for_prod")
        self.JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
        self.JWT_EXPIRE_HOURS = int(os.getenv("JWT_EXPIRE_HOURS", "24"))
        self.ALLOW_INSECURE_JWT = os.getenv("ALLOW_INSECURE_JWT", "false").lower() == "true"
        self.ALLOW_DEV_CORS = os.getenv("ALLOW_DEV_CORS", "true").lower() == "true"
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.DATABASE_URL = os.getenv("DATABASE_URL", f"sqlite:///{BASE / 'app.db'}")
        # points per level; level = points // threshold + 1
        self.LEVEL_POINTS_THRESHOLD = int(os.getenv("LEVEL_POINTS_THRESHOLD", "100"))
        self.BADGE_ACTIVITY_MILESTONE = int(os.getenv("BADGE_ACTIVITY_MILESTONE", "10"))
        self.BADGE_POINTS_MILESTONE = int(os.getenv("BADGE_POINTS_MILESTONE", "100"))
        self.BADGE_LEVEL_MILESTONE = int(os.getenv("BADGE_LEVEL_MILESTONE", "5"))
        self.LEDGER_MAX_ATTEMPTS = int(os.getenv("LEDGER_MAX_ATTEMPTS", "5"))
        self.LEDGER_RETRY_BASE_DELAY = float(os.getenv("LEDGER_RETRY_BASE_DELAY", "0.01"))
        self.SUBMIT_RATE_LIMIT_PER_MIN = int(os.getenv("SUBMIT_RATE_LIMIT_PER_MIN", "120"))
        self.SUBMIT_RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("SUBMIT_RATE_LIMIT_WINDOW_SECONDS", "60"))
        self._validate()

    def _validate(self):
        if self.ENV != "dev" and not self.ALLOW_INSECURE_JWT and self.JWT_SECRET == "change_me_for_prod":
            raise RuntimeError("JWT_SECRET must be set to a non-default value in non-dev environments")
        for name in ("LEVEL_POINTS_THRESHOLD", "BADGE_ACTIVITY_MILESTONE", "BADGE_POINTS_MILESTONE",
                     "BADGE_LEVEL_MILESTONE", "LEDGER_MAX_ATTEMPTS"):
            if getattr(self, name) <= 0:
                raise RuntimeError(f"{name} must be a positive integer")
        if self.LEDGER_RETRY_BASE_DELAY < 0:
            raise RuntimeError("LEDGER_RETRY_BASE_DELAY must be >= 0")


settings = Settings()
