import os
import logging
from dotenv import load_dotenv

# Load .env from project root
try:
    load_dotenv(dotenv_path=os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".env")))
except Exception:
    try:
        load_dotenv()
    except Exception:
        pass


def _env_flag(name: str, default: str = "0") -> bool:
    return (os.getenv(name, default) or "").strip().lower() in ("1", "true", "yes")


# Database
DATABASE_URL = (os.getenv("DATABASE_URL", "") or "").strip() or "sqlite:///./portal.db"
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# Google Sign-In
GOOGLE_CLIENT_ID = (os.getenv("GOOGLE_CLIENT_ID", "") or "").strip()
GOOGLE_TOKEN_TIMEOUT_SEC = float(os.getenv("GOOGLE_TOKEN_TIMEOUT_SEC", "5"))

# Post-connect redirect when a venue has no review URL configured
DEFAULT_REDIRECT_URL = (os.getenv("DEFAULT_REDIRECT_URL", "") or "").strip() or "https://google.com"

# Telemetry
LIKE_DEDUP_WINDOW_SEC = int(os.getenv("LIKE_DEDUP_WINDOW_SEC", "60"))

# PM-WANI audit retention
COMPLIANCE_RETENTION_DAYS = int(os.getenv("COMPLIANCE_RETENTION_DAYS", "365"))

# Fire-and-forget work: "thread" (pool) or "inline" (run on submit)
BACKGROUND_MODE = (os.getenv("BACKGROUND_MODE", "thread") or "thread").strip().lower()
BACKGROUND_WORKERS = int(os.getenv("BACKGROUND_WORKERS", "4"))

APP_NAME = os.getenv("APP_NAME", "Linkbeet")
MAIL_FROM = os.getenv("MAIL_FROM", "no-reply@linkbeet.in")
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASS = os.getenv("SMTP_PASS", "")
# When set, an unconfigured SMTP server is a delivery failure instead of mock mode
EMAIL_REQUIRE_DELIVERY = _env_flag("EMAIL_REQUIRE_DELIVERY")

ADMIN_EMAILS = [e.strip().lower() for e in (os.getenv("ADMIN_EMAILS", "").split(",") if os.getenv("ADMIN_EMAILS") else []) if e.strip()]
ADMIN_API_KEY = (os.getenv("ADMIN_API_KEY", "") or "").strip()

REDIS_URL = (os.getenv("REDIS_URL", "") or "").strip()

# Logging
LOG_LEVEL = (os.getenv("LOG_LEVEL", "INFO") or "INFO").strip().upper()
logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("portal")
