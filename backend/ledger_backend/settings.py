import os
import sys
from decimal import Decimal
from pathlib import Path
from dotenv import load_dotenv
import dj_database_url

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

SECRET_KEY = os.environ.get("SECRET_KEY", os.environ.get("DJANGO_SECRET_KEY", "changeme"))
DEBUG = os.getenv("DEBUG", os.getenv("DJANGO_DEBUG", "True")) == "True"
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "127.0.0.1,localhost").split(",")

# Test-mode flag used by the ledger write barrier.
# Include Django's manage.py test invocation.
TESTING = (
    "PYTEST_CURRENT_TEST" in os.environ
    or "pytest" in sys.argv[0]
    or "test" in sys.argv
)

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "ops.apps.OpsConfig",  # Operations & observability
    "accounts.apps.AccountsConfig",
    "accounting.apps.AccountingConfig",
    "rates.apps.RatesConfig",
    "reports.apps.ReportsConfig",
    "budgets.apps.BudgetsConfig",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "ops.metrics.track_request_metrics",
    "django.middleware.common.CommonMiddleware",
]

ROOT_URLCONF = "ledger_backend.urls"

WSGI_APPLICATION = "ledger_backend.wsgi.application"

# =============================================================================
# Database Configuration
# =============================================================================
DATABASES = {
    "default": dj_database_url.config(
        env="DATABASE_URL",
        default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}",
        conn_max_age=600,
    )
}

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# =============================================================================
# Ledger Configuration
# =============================================================================
# Residual allowed per currency group when a journal entry is persisted.
LEDGER_ENTRY_TOLERANCE = Decimal(os.getenv("LEDGER_ENTRY_TOLERANCE", "0.000001"))

# Residual allowed after auto-balancing raw user input.
LEDGER_AUTO_BALANCE_TOLERANCE = Decimal(os.getenv("LEDGER_AUTO_BALANCE_TOLERANCE", "0.0001"))

# Joins ancestor slugs in Account.path.
LEDGER_PATH_SEPARATOR = os.getenv("LEDGER_PATH_SEPARATOR", ":")

# Chain stored rates (at most 5 hops) when no direct rate exists.
LEDGER_RATE_INFERENCE = os.getenv("LEDGER_RATE_INFERENCE", "False") == "True"

# =============================================================================
# Celery Configuration (Async Task Processing)
# =============================================================================
REDIS_URL = os.getenv("REDIS_URL", "redis://127.0.0.1:6379/0")

CELERY_BROKER_URL = REDIS_URL
CELERY_RESULT_BACKEND = REDIS_URL

CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TRACK_STARTED = True
CELERY_TASK_TIME_LIMIT = 30 * 60  # 30 minutes
CELERY_WORKER_PREFETCH_MULTIPLIER = 1  # Prevent task hoarding
CELERY_TASK_ALWAYS_EAGER = TESTING

# Budget alert scans can be switched off without touching the schedule.
BUDGET_ALERT_SCAN_ENABLED = os.getenv("BUDGET_ALERT_SCAN_ENABLED", "True") == "True"

# =============================================================================
# Structured Logging Configuration
# =============================================================================
from ops.logging_config import get_logging_config
LOGGING = get_logging_config(DEBUG)

# =============================================================================
# Observability Configuration
# =============================================================================
# Application version (set via CI/CD)
VERSION = os.getenv("APP_VERSION", "dev")
