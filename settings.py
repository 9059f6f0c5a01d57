import os

from dotenv import load_dotenv

load_dotenv()

# Environment & Security setup
SECRET_KEY = os.getenv("SECRET_KEY", "").strip()
if not SECRET_KEY:
    raise RuntimeError("SECRET_KEY is required. Set it in the environment or .env")
if len(SECRET_KEY) < 32:
    raise RuntimeError("SECRET_KEY is too short. Use at least 32 characters.")

ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))
BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "10"))

DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "schoolportal")

SYSTEM_CONFIG_PATH = os.getenv("SYSTEM_CONFIG_PATH", "systemConfig.json")
PRODUCT_KEY_PREFIX = os.getenv("PRODUCT_KEY_PREFIX", "BC-")

# Assigned to students/staff created without a password, until they activate.
DEFAULT_ACCOUNT_PASSWORD = os.getenv("DEFAULT_ACCOUNT_PASSWORD", "123")

CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", 8000))
