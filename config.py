"""Application configuration loaded from environment variables."""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

BASE_DIR = Path(__file__).resolve().parent

# --- Security ---
SECRET_KEY: str = os.getenv("SECRET_KEY", "change-me-in-production-skillsnap-dev-key")
ALGORITHM: str = "HS256"
JWT_ISSUER: str = os.getenv("JWT_ISSUER", "skillsnap-api")
JWT_AUDIENCE: str = os.getenv("JWT_AUDIENCE", "skillsnap-client")
ACCESS_TOKEN_EXPIRE_MINUTES: int = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# --- Database ---
DATABASE_URL: str = os.getenv("DATABASE_URL", f"sqlite:///{BASE_DIR / 'skillsnap.db'}")

# --- Cache ---
CACHE_TTL_SECONDS: int = int(os.getenv("CACHE_TTL_SECONDS", "1800"))
CACHE_MAX_ENTRIES: int = int(os.getenv("CACHE_MAX_ENTRIES", "1024"))

# --- Skills ---
DEFAULT_SKILL_LEVEL: str = os.getenv("DEFAULT_SKILL_LEVEL", "Beginner")

# --- Rate Limiting ---
AUTH_RATE_LIMIT: str = os.getenv("AUTH_RATE_LIMIT", "10/minute")

# --- Seeding ---
SEED_ON_STARTUP: bool = os.getenv("SEED_ON_STARTUP", "true").lower() in ("1", "true", "yes")
ADMIN_EMAIL: str = os.getenv("ADMIN_EMAIL", "admin@skillsnap.com")
ADMIN_PASSWORD: str = os.getenv("ADMIN_PASSWORD", "Admin123!")

# --- CORS ---
CORS_ORIGINS: list = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
