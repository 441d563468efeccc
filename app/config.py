import os


class Config:
    """Base configuration. Shared across all environments."""

    # --- Required ---
    SECRET_KEY = os.environ.get("SECRET_KEY")

    # Handle DATABASE_URL: some PaaS providers (Railway, Heroku) use
    # "postgres://" which SQLAlchemy 1.4+ doesn't accept.
    _db_url = os.environ.get("DATABASE_URL", "")
    if _db_url.startswith("postgres://"):
        _db_url = _db_url.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = _db_url or None

    APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:5000")

    # --- Local mirror (offline / demo persistence) ---
    # Keys are "<namespace>_<tenant>_<collection>", e.g. revo_mock_comp_1_sites;
    # the session-less demo tenant uses revo_mock_sites.
    LOCAL_STORE_NAMESPACE = os.environ.get("LOCAL_STORE_NAMESPACE", "revo_mock")
    LOCAL_STORE_BACKEND = os.environ.get("LOCAL_STORE_BACKEND", "file")  # file | memory
    LOCAL_STORE_DIR = os.environ.get("LOCAL_STORE_DIR")  # defaults to instance/local_store

    # --- Capacity ---
    # Given to new companies and to local tenants that never saved a limit.
    DEFAULT_SIMULTANEOUS_LIMIT = int(os.environ.get("DEFAULT_SIMULTANEOUS_LIMIT", 3))

    # --- Lead conversion ---
    CONVERSION_DEFAULT_DAYS = int(os.environ.get("CONVERSION_DEFAULT_DAYS", 30))

    # --- SQLAlchemy ---
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # --- Session / cookies ---
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    REMEMBER_COOKIE_HTTPONLY = True
    REMEMBER_COOKIE_SAMESITE = "Lax"

    # --- WTF / CSRF ---
    WTF_CSRF_ENABLED = True

    @staticmethod
    def validate():
        """Fail fast if required env vars are missing."""
        required = [
            "SECRET_KEY",
            "DATABASE_URL",
        ]
        missing = [v for v in required if not os.environ.get(v)]
        if missing:
            raise RuntimeError(
                f"Missing required environment variables: {', '.join(missing)}"
            )


class DevConfig(Config):
    """Local development."""

    DEBUG = True
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False


class TestConfig(Config):
    """Testing: in-memory SQLite and local mirror, no CSRF."""

    TESTING = True
    DEBUG = True
    SECRET_KEY = "test-secret-key-not-for-production"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    APP_BASE_URL = "http://localhost:5000"
    LOCAL_STORE_NAMESPACE = "revo_mock"
    LOCAL_STORE_BACKEND = "memory"
    DEFAULT_SIMULTANEOUS_LIMIT = 3
    CONVERSION_DEFAULT_DAYS = 30
    WTF_CSRF_ENABLED = False  # disable CSRF for test requests
    RATELIMIT_ENABLED = False  # disable rate limiting in tests
    SESSION_COOKIE_SECURE = False
    REMEMBER_COOKIE_SECURE = False
    SERVER_NAME = "localhost"

    @staticmethod
    def validate():
        """Skip validation in test mode — everything is hardcoded."""
        pass


class ProdConfig(Config):
    """Production."""

    DEBUG = False
    SESSION_COOKIE_SECURE = True
    REMEMBER_COOKIE_SECURE = True


config_by_name = {
    "development": DevConfig,
    "production": ProdConfig,
    "testing": TestConfig,
}
