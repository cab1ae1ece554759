import os

# Polygon Configuration
POLYGON_API_KEY = os.getenv("POLYGON_API_KEY", "")
POLYGON_BASE_URL = os.getenv("POLYGON_BASE_URL", "https://api.polygon.io")

# Redis Configuration
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

# Database Configuration
DATABASE_URL = os.getenv("DATABASE_URL", "postgresql+asyncpg://localhost:5432/earnings_db")

# Celery Configuration
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/1")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")

# HTTP Configuration
APP_ENV = os.getenv("APP_ENV", "production")
ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("ALLOWED_ORIGINS", "http://localhost:3000,http://localhost:8081").split(",")
    if origin.strip()
]
BASE_URL = os.getenv("BASE_URL")  # Public URL used for proxied image links

# Background write configuration
BACKGROUND_MAX_CONCURRENCY = int(os.getenv("BACKGROUND_MAX_CONCURRENCY", "20"))
BACKGROUND_MAX_PENDING = int(os.getenv("BACKGROUND_MAX_PENDING", "1000"))  # Writes beyond this are dropped

# Logging Configuration
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_PATH = os.getenv("LOG_PATH")  # Optional file sink in addition to stdout

# Fast cache TTLs (seconds). None means the entry never expires.
REFERENCE_CACHE_TTL = 7 * 24 * 60 * 60  # 7 days - statements update quarterly
MARKET_CAP_CACHE_TTL = 24 * 60 * 60  # 24 hours - market cap moves daily
LOGO_CACHE_TTL = 30 * 24 * 60 * 60  # 30 days - logos rarely change
NEWS_CACHE_TTL = 60 * 60  # 1 hour
EARNINGS_HISTORICAL_CACHE_TTL = None  # Past events are immutable
NEGATIVE_CACHE_TTL = 10 * 60  # Unknown symbols

# Durable store staleness thresholds (seconds)
REFERENCE_STALE_AFTER = 7 * 24 * 60 * 60
MARKET_CAP_STALE_AFTER = 24 * 60 * 60
LOGO_STALE_AFTER = 90 * 24 * 60 * 60
WEEK_52_STALE_AFTER = 12 * 60 * 60

# Upstream timeouts (seconds)
UPSTREAM_TIMEOUT = 10.0
EARNINGS_TIMEOUT = 15.0
BRANDING_TIMEOUT = 5.0

# Earnings persistence / selection
EARNINGS_UPSERT_BATCH_SIZE = 100
EARNINGS_UPSTREAM_LIMIT = 1000
PRIMARY_EVENTS_PER_SESSION = 5

# News
NEWS_DEFAULT_LIMIT = 50
NEWS_MAX_LIMIT = 1000
