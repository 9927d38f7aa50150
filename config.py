"""
Runtime configuration read from the environment (.env supported).
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")
PORT = int(os.getenv("PORT", 8000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]

# Run order creation inside a multi-document transaction (replica set only)
MONGO_TRANSACTIONS = _flag("MONGO_TRANSACTIONS", False)
# Give stock back to products when an order is cancelled
RESTORE_STOCK_ON_CANCEL = _flag("RESTORE_STOCK_ON_CANCEL", True)
