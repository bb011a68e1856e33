import os

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8000))
RELOAD = os.getenv("RELOAD", "false").lower() in ("1", "true", "yes")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)

SIGNAL_PATH = os.getenv("SIGNAL_PATH", "/ws")
CORS_ORIGINS = [origin.strip() for origin in os.getenv("CORS_ORIGINS", "*").split(",") if origin.strip()]

PRESENCE_ENABLED = os.getenv("PRESENCE_ENABLED", "false").lower() in ("1", "true", "yes")
PRESENCE_TTL = int(os.getenv("PRESENCE_TTL", 600))

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", 6379))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_SOCKET_TIMEOUT = float(os.getenv("REDIS_SOCKET_TIMEOUT", 2.0))
PRESENCE_TIMEOUT = float(os.getenv("PRESENCE_TIMEOUT", 2.0))
