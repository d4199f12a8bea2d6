import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if present
BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

# --- Core Server Config ---
SERVER_HOST = os.getenv("EKKO_SERVER_HOST", "0.0.0.0")
SERVER_PORT = int(os.getenv("EKKO_SERVER_PORT", 8080))
DEBUG = os.getenv("EKKO_DEBUG", "false").lower() == "true"

# --- Storage ---
STORAGE_BACKEND = os.getenv("EKKO_STORAGE", "memory")  # memory | github
DATA_DIR = os.getenv("EKKO_DATA_DIR", "data")
HTTP_TIMEOUT = float(os.getenv("EKKO_HTTP_TIMEOUT", 10))

# --- GitHub contents API (remote shard store) ---
GITHUB_API = os.getenv("GITHUB_API", "https://api.github.com")
GITHUB_USERNAME = os.getenv("GITHUB_USERNAME")
GITHUB_REPO = os.getenv("GITHUB_REPO")
GITHUB_BRANCH = os.getenv("GITHUB_BRANCH", "main")
GITHUB_TOKEN = os.getenv("GITHUB_TOKEN")

# --- Encryption at rest ---
DATA_ENCRYPTION_KEY = os.getenv("DATA_ENCRYPTION_KEY")  # 64 hex chars

# --- Cache & paging ---
CACHE_TTL = float(os.getenv("EKKO_CACHE_TTL", 10))  # seconds
TRENDING_SIZE = int(os.getenv("EKKO_TRENDING_SIZE", 20))
SUGGESTION_LIMIT = int(os.getenv("EKKO_SUGGESTION_LIMIT", 10))
