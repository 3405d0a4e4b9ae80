import os
from dotenv import load_dotenv

load_dotenv()

# =====================================================
# ENV
# =====================================================
ENV = os.getenv("ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# =====================================================
# DATABASE
# =====================================================
MONGO_URI = os.getenv("MONGO_URI") or os.getenv("MONGODB_URI")

# =====================================================
# JWT
# =====================================================
JWT_SECRET = os.getenv("JWT_SECRET")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_DAYS = int(os.getenv("ACCESS_TOKEN_DAYS", 30))

# =====================================================
# COMMISSIONS
# =====================================================
SHARING_PERIOD_DAYS = int(os.getenv("SHARING_PERIOD_DAYS", 180))
MARKETER_COMMISSION_PERCENT = float(os.getenv("MARKETER_COMMISSION_PERCENT", 10))
MARKETER_ASSIGNMENT_DAYS = int(os.getenv("MARKETER_ASSIGNMENT_DAYS", 7))

# =====================================================
# WITHDRAWALS
# =====================================================
WITHDRAWAL_WINDOW_DAYS = int(os.getenv("WITHDRAWAL_WINDOW_DAYS", 5))

# =====================================================
# WORKERS
# =====================================================
WITHDRAWAL_SWEEP_INTERVAL_SECONDS = int(os.getenv("WITHDRAWAL_SWEEP_INTERVAL_SECONDS", 60 * 60 * 24))
REASSIGNMENT_SWEEP_INTERVAL_SECONDS = int(os.getenv("REASSIGNMENT_SWEEP_INTERVAL_SECONDS", 60 * 60 * 24))

# =====================================================
# CORS
# =====================================================
CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "").split(",")


def validate_production_env() -> None:
    if (ENV or "").lower() != "production":
        return

    required = {
        "JWT_SECRET": JWT_SECRET,
        "MONGODB_URI": MONGO_URI,
    }

    invalid = []
    for key, value in required.items():
        val = (value or "").strip()
        if not val or val.startswith("CHANGE_THIS"):
            invalid.append(key)

    if invalid:
        raise RuntimeError(f"Production env misconfigured. Invalid keys: {', '.join(sorted(invalid))}")
