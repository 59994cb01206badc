import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./fieldjobs.db")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Fallback zone when neither the request nor the provider profile names one.
# Leave unset to use the host zone.
DEFAULT_TIMEZONE = os.getenv("DEFAULT_TIMEZONE")

# Scheduling rules
SCHEDULING_HORIZON_MONTHS = int(os.getenv("SCHEDULING_HORIZON_MONTHS", "6"))
DEFAULT_JOB_DURATION_MINUTES = int(os.getenv("DEFAULT_JOB_DURATION_MINUTES", "120"))
MULTI_DAY_THRESHOLD_MINUTES = int(os.getenv("MULTI_DAY_THRESHOLD_MINUTES", "480"))
MULTI_DAY_MAX_DAYS = int(os.getenv("MULTI_DAY_MAX_DAYS", "30"))

# Homeowners get this long to review a completion before it auto-approves
COMPLETION_AUTO_APPROVE_DAYS = int(os.getenv("COMPLETION_AUTO_APPROVE_DAYS", "7"))

# Default daily window used for multi-day segments when no working hours are configured
DEFAULT_WORKDAY_START = os.getenv("DEFAULT_WORKDAY_START", "08:00")
DEFAULT_WORKDAY_END = os.getenv("DEFAULT_WORKDAY_END", "17:00")

# Job store connection. SQLite only uses DB_TIMEOUT, as its busy timeout.
DB_TIMEOUT = int(os.getenv("DB_TIMEOUT", "30"))
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "10"))
DB_POOL_RECYCLE = int(os.getenv("DB_POOL_RECYCLE", "300"))
DB_SLOW_QUERY_SECONDS = float(os.getenv("DB_SLOW_QUERY_SECONDS", "1.0"))
