# ballotbox/config.py
# Central place for settings and constants
import os
from dotenv import load_dotenv

load_dotenv()

# Persistence substrate: "mongo" (replica set required) or "memory"
STORAGE_BACKEND = os.getenv("BALLOTBOX_STORAGE", "memory").lower()

# MongoDB transactions need a replica set, even a single-node one
MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017/?replicaSet=rs0")
MONGO_DB = os.getenv("MONGO_DB", "ballotbox")

# Optional JSON file for the in-process store (None = memory only)
DATA_PATH = os.getenv("BALLOTBOX_DATA_PATH") or None

# Upper bound for a single cast/read transaction
TRANSACTION_TIMEOUT_MS = int(os.getenv("BALLOTBOX_TRANSACTION_TIMEOUT_MS", "5000"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if origin.strip()
]

# Pagination for registry listings
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
