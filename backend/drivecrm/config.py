"""Runtime configuration for DriveCRM, read from the environment."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parent.parent
load_dotenv(ROOT_DIR / '.env')


def _as_bool(value, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_email_set(value) -> FrozenSet[str]:
    if not value:
        return frozenset()
    return frozenset(e.strip().lower() for e in value.split(",") if e.strip())


@dataclass(frozen=True)
class Settings:
    """Settings handed to the database and services at startup."""

    mongo_url: str = "mongodb://localhost:27017"
    db_name: str = "drivecrm"
    mongo_timeout_ms: int = 5000
    use_transactions: bool = False

    super_admin_emails: FrozenSet[str] = field(default_factory=frozenset)

    # Trial quota handed to every new admin
    trial_days: int = 3
    default_max_leads: int = 50
    default_max_users: int = 1

    reminder_grace_seconds: int = 30
    bulk_concurrency: int = 10

    jwt_secret: str = "change-me-in-production"
    jwt_algorithm: str = "HS256"

    rate_limit_capacity: int = 60
    rate_limit_refill_per_second: float = 1.0

    cors_origins: str = "*"
    environment: str = "development"

    @classmethod
    def from_env(cls) -> "Settings":
        env = os.environ
        return cls(
            mongo_url=env.get("MONGO_URL", cls.mongo_url),
            db_name=env.get("DB_NAME", cls.db_name),
            mongo_timeout_ms=int(env.get("MONGO_TIMEOUT_MS", cls.mongo_timeout_ms)),
            use_transactions=_as_bool(env.get("USE_TRANSACTIONS")),
            super_admin_emails=_as_email_set(env.get("SUPER_ADMIN_EMAILS")),
            trial_days=int(env.get("TRIAL_DAYS", cls.trial_days)),
            default_max_leads=int(env.get("DEFAULT_MAX_LEADS", cls.default_max_leads)),
            default_max_users=int(env.get("DEFAULT_MAX_USERS", cls.default_max_users)),
            reminder_grace_seconds=int(env.get("REMINDER_GRACE_SECONDS", cls.reminder_grace_seconds)),
            bulk_concurrency=int(env.get("BULK_CONCURRENCY", cls.bulk_concurrency)),
            jwt_secret=env.get("JWT_SECRET", cls.jwt_secret),
            jwt_algorithm=env.get("JWT_ALGORITHM", cls.jwt_algorithm),
            rate_limit_capacity=int(env.get("RATE_LIMIT_CAPACITY", cls.rate_limit_capacity)),
            rate_limit_refill_per_second=float(
                env.get("RATE_LIMIT_REFILL_PER_SECOND", cls.rate_limit_refill_per_second)
            ),
            cors_origins=env.get("CORS_ORIGINS", cls.cors_origins),
            environment=env.get("ENVIRONMENT", cls.environment),
        )
