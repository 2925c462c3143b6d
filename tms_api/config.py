import os

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL env var not set")

# optional shared token; unset means open access
API_TOKEN = os.getenv("TMS_API_TOKEN")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("LOG_FILE")

POSTING_TTL_DAYS = int(os.getenv("POSTING_TTL_DAYS", "7"))
POSTING_REFRESH_HOURS = int(os.getenv("POSTING_REFRESH_HOURS", "4"))
BID_TTL_HOURS = int(os.getenv("BID_TTL_HOURS", "24"))
GPS_STALE_MINUTES = int(os.getenv("GPS_STALE_MINUTES", "30"))
TRACKING_SILENCE_HOURS = int(os.getenv("TRACKING_SILENCE_HOURS", "4"))
