import os

ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 3001))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# yt-dlp
PROXY_URL = os.getenv("PROXY_URL")
COOKIES_PATH = os.getenv("COOKIES_PATH", "/app/cookies.txt")
INFO_CACHE_TTL = float(os.getenv("INFO_CACHE_TTL", 300))

# Address of the external stream proxy, e.g. "/stream". Raw resolved URLs are sent when unset.
STREAM_PROXY_PATH = os.getenv("STREAM_PROXY_PATH")

SEARCH_RESULT_LIMIT = int(os.getenv("SEARCH_RESULT_LIMIT", 8))
SEARCH_MIN_INTERVAL = float(os.getenv("SEARCH_MIN_INTERVAL", 1.5))

TRACK_REQUEST_LIMIT = int(os.getenv("TRACK_REQUEST_LIMIT", 5))
TRACK_REQUEST_WINDOW = float(os.getenv("TRACK_REQUEST_WINDOW", 10))
