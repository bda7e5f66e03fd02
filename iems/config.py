import os

def _env_flag(name, default):
    return os.environ.get(name, default).lower() in ("1","true","yes","on")

class BaseConfig:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Auth
    JWT_SECRET = os.environ.get("JWT_SECRET", SECRET_KEY)
    JWT_ALGORITHM = "HS256"
    JWT_EXPIRY_DAYS = int(os.environ.get("JWT_EXPIRY_DAYS", 7))
    PASSWORD_MIN_LENGTH = int(os.environ.get("PASSWORD_MIN_LENGTH", 6))
    ALLOW_SELF_REGISTRATION = _env_flag("ALLOW_SELF_REGISTRATION", "true")
    SECURE_COOKIES = _env_flag("SECURE_COOKIES", "false")
    # HTTP surface
    ALLOWED_ORIGINS = os.environ.get("ALLOWED_ORIGINS", "*")
    RATELIMIT_ENABLED = _env_flag("RATELIMIT_ENABLED", "true")
    RATE_LIMIT_DEFAULT = os.environ.get("RATE_LIMIT_DEFAULT", "100 per minute")
    RATE_LIMIT_AUTH = os.environ.get("RATE_LIMIT_AUTH", "10 per minute")
    # Attendance & monitoring governance
    ATTENDANCE_THRESHOLD = float(os.environ.get("ATTENDANCE_THRESHOLD", 75))
    ACADEMIC_RISK_THRESHOLD = float(os.environ.get("ACADEMIC_RISK_THRESHOLD", 45))
    MISSING_ASSIGNMENTS_THRESHOLD = int(os.environ.get("MISSING_ASSIGNMENTS_THRESHOLD", 2))
    FEE_HIGH_PENDING_AMOUNT = float(os.environ.get("FEE_HIGH_PENDING_AMOUNT", 30000))
    # Timetable
    TIMETABLE_DEFAULT_DEPARTMENT = os.environ.get("TIMETABLE_DEFAULT_DEPARTMENT", "Computer Science")
    TIMETABLE_DEFAULT_SEMESTER = int(os.environ.get("TIMETABLE_DEFAULT_SEMESTER", 3))
    TIMETABLE_FALLBACK_DEPARTMENT = os.environ.get("TIMETABLE_FALLBACK_DEPARTMENT", "Mathematics")
    # Listing
    DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", 50))
    MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", 500))
    DEFAULT_CURRENCY = os.environ.get("DEFAULT_CURRENCY", "INR")

class DevelopmentConfig(BaseConfig):
    # Default to instance/iems.db unless overridden
    @staticmethod
    def database_uri(instance_path: str) -> str:
        db_path = os.environ.get("DATABASE_PATH")
        if db_path:
            return f"sqlite:///{db_path}"
        return "sqlite:///" + os.path.join(instance_path, "iems.db")

class TestingConfig(BaseConfig):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("TEST_DATABASE_URI", "sqlite:///:memory:")
    RATELIMIT_ENABLED = False

class ProductionConfig(BaseConfig):
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URI", "sqlite:///iems.db")
    SECURE_COOKIES = True
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_size": int(os.environ.get("DB_POOL_SIZE", 20)),
        "pool_recycle": 1800,
        "pool_pre_ping": True,
    }
