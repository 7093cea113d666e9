import os
import tempfile


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY") or "you-should-change-this"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_SECRET_KEY = os.environ.get("JWT_SECRET_KEY") or "super-secret-jwt"
    # Let flask_jwt_extended errors reach its own handlers through Flask-RESTful
    PROPAGATE_EXCEPTIONS = True

    LOCAL_STORE_PATH = os.environ.get("LOCAL_STORE_PATH") or "foliogram_local.json"
    NOTIFICATION_TIMEZONE = os.environ.get("NOTIFICATION_TIMEZONE") or "UTC"
    SSE_QUEUE_MAXSIZE = 100

    MEETING_LINK_BASE_URL = (
        os.environ.get("MEETING_LINK_BASE_URL") or "https://meet.foliogram.app"
    )
    OWNER_ID_PLACEHOLDERS = {"", "unknown", "undefined", "null", "none"}
    DEFAULT_APPOINTMENT_DURATION = 30

    RECONCILE_INTERVAL_MINUTES = int(os.environ.get("RECONCILE_INTERVAL_MINUTES", 15))
    SNAPSHOT_INTERVAL_MINUTES = int(os.environ.get("SNAPSHOT_INTERVAL_MINUTES", 5))
    PUBLIC_PAGE_SIZE = 12


class DefaultConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL") or "sqlite:///foliogram.db"


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SECRET_KEY = "test-secret-key"
    JWT_SECRET_KEY = "test-jwt-secret-key-with-enough-length"
    SERVER_NAME = "localhost"
    APPLICATION_ROOT = "/"
    PREFERRED_URL_SCHEME = "http"
    LOCAL_STORE_PATH = os.path.join(tempfile.gettempdir(), "foliogram_test_store.json")
    MEETING_LINK_BASE_URL = "https://meet.test"
