import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name, default=None):
    value = os.environ.get(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


class Config:
    """Base configuration class with common settings."""
    # Outbox worker
    OUTBOX_ENABLED = _env_bool("OUTBOX_ENABLED", True)
    OUTBOX_INTERVAL_SECONDS = _env_int("OUTBOX_INTERVAL_SECONDS", 60)
    OUTBOX_RUN_TIMEOUT_SECONDS = _env_int("OUTBOX_RUN_TIMEOUT_SECONDS", 300)  # per sweep
    OUTBOX_BATCH_SIZE = _env_int("OUTBOX_BATCH_SIZE", 10)
    OUTBOX_BASE_DELAY_SECONDS = _env_int("OUTBOX_BASE_DELAY_SECONDS", 30)
    OUTBOX_MAX_DELAY_SECONDS = _env_int("OUTBOX_MAX_DELAY_SECONDS", 3600)
    OUTBOX_MAX_ATTEMPTS = _env_int("OUTBOX_MAX_ATTEMPTS")  # None -> each entry's own max_attempts
    OUTBOX_ABANDON_ON_EXHAUSTION = _env_bool("OUTBOX_ABANDON_ON_EXHAUSTION", True)
    OUTBOX_EXECUTE_TIMEOUT_SECONDS = _env_int("OUTBOX_EXECUTE_TIMEOUT_SECONDS", 15)  # per external call
    OUTBOX_LEASE_SECONDS = _env_int("OUTBOX_LEASE_SECONDS", 300)

    # GitHub (bug reports)
    GITHUB_TOKEN = os.environ.get("GITHUB_TOKEN")
    GITHUB_REPO = os.environ.get("GITHUB_REPO")
    GITHUB_API_URL = os.environ.get("GITHUB_API_URL", "https://api.github.com")

    # Resend (transactional email)
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY")
    RESEND_API_URL = os.environ.get("RESEND_API_URL", "https://api.resend.com")
    EMAIL_FROM = os.environ.get("EMAIL_FROM", "Workshop Dojo <noreply@example.com>")

    # CORS configuration
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Admin PIN for the outbox admin endpoints
    ADMIN_PIN = os.environ.get("ADMIN_PIN", "1234")

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    LOG_FILE = os.environ.get("LOG_FILE")
    LOG_JSON = _env_bool("LOG_JSON", False)  # JSON console lines for hosted log collection


class LocalConfig(Config):
    """Configuration for local development."""
    ENV = "local"
    DEBUG = True


class SandboxConfig(Config):
    """Configuration for sandbox/staging environment."""
    ENV = "sandbox"
    DEBUG = False


class ProductionConfig(Config):
    """Configuration for production environment."""
    ENV = "production"
    DEBUG = False


class TestingConfig(Config):
    """Configuration for the test suite: in-memory database, no background worker."""
    ENV = "testing"
    DEBUG = False
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    OUTBOX_ENABLED = False
    OUTBOX_MAX_ATTEMPTS = None
    GITHUB_TOKEN = "test-token"
    GITHUB_REPO = "workshop/dojo"
    RESEND_API_KEY = None
    ADMIN_PIN = "4321"


def get_config():
    """Get the appropriate configuration class based on environment variable.

    Environment is determined by FLASK_ENV or ENVIRONMENT variable:
    - 'local' or 'development' -> LocalConfig
    - 'sandbox' or 'staging' -> SandboxConfig
    - 'production' or 'prod' -> ProductionConfig
    - 'testing' or 'test' -> TestingConfig

    Defaults to LocalConfig if not set.
    """
    env = (os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")).lower()

    if env in ["local", "development", "dev"]:
        return LocalConfig
    elif env in ["sandbox", "staging", "stage"]:
        return SandboxConfig
    elif env in ["production", "prod"]:
        return ProductionConfig
    elif env in ["testing", "test"]:
        return TestingConfig
    else:
        # Default to local for safety
        return LocalConfig
