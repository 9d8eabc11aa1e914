import os

from shared.database import env_flag

SERVICE_NAME = "cart-service"

REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

PORT = int(os.getenv("PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = env_flag("LOG_JSON")
