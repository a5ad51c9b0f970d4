# social_publisher/config.py
import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./social_publisher.db")
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# JWTs are issued by the external auth provider; we only verify them
SECRET_KEY = os.getenv("SECRET_KEY", "change_me_now")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
AUTH_TOKEN_URL = os.getenv("AUTH_TOKEN_URL", "/auth/login")

TOKEN_ENCRYPTION_KEY = os.getenv("TOKEN_ENCRYPTION_KEY")  # base64 Fernet key, required in prod
CRON_SECRET = os.getenv("CRON_SECRET", "")

PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")
ACCOUNTS_VIEW_URL = os.getenv("ACCOUNTS_VIEW_URL", "/accounts/manage")

OAUTH_STATE_TTL_SECONDS = int(os.getenv("OAUTH_STATE_TTL_SECONDS", "600"))
OAUTH_COOKIE_NAME = "oauth_handshake"
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "true").lower() == "true"
COOKIE_SAMESITE = os.getenv("COOKIE_SAMESITE", "lax")

PLATFORM_HTTP_TIMEOUT = float(os.getenv("PLATFORM_HTTP_TIMEOUT", "15"))

SCHEDULER_BATCH_SIZE = int(os.getenv("SCHEDULER_BATCH_SIZE", "25"))
SCHEDULER_STALE_AFTER_SECONDS = int(os.getenv("SCHEDULER_STALE_AFTER_SECONDS", "900"))
SCHEDULER_TIME_BUDGET_SECONDS = float(os.getenv("SCHEDULER_TIME_BUDGET_SECONDS", "50"))
MAX_PUBLISH_ATTEMPTS = int(os.getenv("MAX_PUBLISH_ATTEMPTS", "5"))
TOKEN_REFRESH_WINDOW_SECONDS = int(os.getenv("TOKEN_REFRESH_WINDOW_SECONDS", "300"))

MEDIA_STORAGE_URL = os.getenv("MEDIA_STORAGE_URL", "http://localhost:9000/media")
MEDIA_STORAGE_TOKEN = os.getenv("MEDIA_STORAGE_TOKEN", "")
MAX_MEDIA_BYTES = int(os.getenv("MAX_MEDIA_BYTES", str(50 * 1024 * 1024)))


def platform_credentials(platform: str) -> dict:
    prefix = platform.upper()
    return {
        "client_id": os.getenv(f"{prefix}_CLIENT_ID"),
        "client_secret": os.getenv(f"{prefix}_CLIENT_SECRET"),
        "redirect_uri": os.getenv(
            f"{prefix}_REDIRECT_URI",
            f"{PUBLIC_BASE_URL}/accounts/oauth/{platform}/callback",
        ),
    }
