"""
Service configuration.

Values come from the environment (a local ``.env`` file is loaded first)
and fall back to development defaults.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


# Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./eduplatform.db")
SQL_ECHO = _env_bool("SQL_ECHO", False)

# Signed session cookie shared with the identity provider
SESSION_SECRET = os.getenv("SESSION_SECRET", "CHANGE_ME_TO_A_RANDOM_SECRET")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Exams: whether a student may hold several open attempts on the same exam
ALLOW_CONCURRENT_ATTEMPTS = _env_bool("ALLOW_CONCURRENT_ATTEMPTS", True)

# Wallet
REFERRAL_BONUS_POINTS = int(os.getenv("REFERRAL_BONUS_POINTS", "50"))
DEFAULT_PURCHASE_POINTS = int(os.getenv("DEFAULT_PURCHASE_POINTS", "1000"))
REVENUE_PER_1000_POINTS = int(os.getenv("REVENUE_PER_1000_POINTS", "99"))

# Shared secret the identity provider sends on provisioning calls
PROVISIONING_TOKEN = os.getenv("PROVISIONING_TOKEN", "CHANGE_ME_TO_A_RANDOM_TOKEN")

# Referrals: only accounts created this recently count as new registrations
REFERRAL_WINDOW_MINUTES = int(os.getenv("REFERRAL_WINDOW_MINUTES", "60"))
