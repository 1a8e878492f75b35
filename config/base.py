# config/base.py
import os


def _coerce_bool(value, default=False):
    """Convert environment-style truthy/falsey values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    value_str = str(value).strip().lower()
    if value_str in {"1", "true", "yes", "on"}:
        return True
    if value_str in {"0", "false", "no", "off"}:
        return False
    return default


def _parse_name_list(value):
    """
    Parse a comma-separated name list while keeping order and removing duplicates.

    Returns:
        tuple[str, ...]: Normalized identifiers.
    """
    if not value:
        return ()

    seen = set()
    names = []
    for raw_item in value.split(","):
        item = raw_item.strip().lower()
        if not item or item in seen:
            continue
        seen.add(item)
        names.append(item)
    return tuple(names)


def _coerce_int(value, default, *, minimum=None):
    try:
        number = int(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        number = default
    if minimum is not None and number < minimum:
        number = minimum
    return number


def _coerce_float(value, default, *, minimum=None):
    try:
        number = float(value) if value not in (None, "") else default
    except (TypeError, ValueError):
        number = default
    if minimum is not None and number < minimum:
        number = minimum
    return number


SUPPORTED_IMPORT_KINDS = ("players", "volunteers", "shifts")


class Config:
    # SECRET_KEY must be set via environment variable in production
    _flask_env = os.environ.get("FLASK_ENV", "development")
    _is_testing = _flask_env == "testing"
    _is_production = _flask_env == "production"

    SECRET_KEY = os.environ.get("SECRET_KEY")

    if not SECRET_KEY and _is_production:
        raise ValueError(
            "SECRET_KEY environment variable is required in production. "
            'Generate with: python -c "import secrets; print(secrets.token_hex(32))"'
        )

    if not SECRET_KEY and not _is_testing:
        import warnings

        warnings.warn(
            "SECRET_KEY not set. Using default for development only. "
            "Set SECRET_KEY environment variable before deploying.",
            UserWarning,
        )
        SECRET_KEY = "dev-secret-key-change-in-production"

    if not SECRET_KEY:
        SECRET_KEY = "test-secret-key-placeholder"

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {}

    # Importer configuration
    IMPORTER_ENABLED = _coerce_bool(os.environ.get("IMPORTER_ENABLED"), default=True)
    IMPORTER_KINDS = _parse_name_list(os.environ.get("IMPORTER_KINDS", ",".join(SUPPORTED_IMPORT_KINDS)))

    _unknown_kinds = sorted(set(IMPORTER_KINDS) - set(SUPPORTED_IMPORT_KINDS))
    if _unknown_kinds:
        raise ValueError(
            "IMPORTER_KINDS contains unsupported import kinds: "
            + ", ".join(_unknown_kinds)
            + f". Supported kinds: {', '.join(SUPPORTED_IMPORT_KINDS)}."
        )
    if IMPORTER_ENABLED and not IMPORTER_KINDS:
        raise ValueError("IMPORTER_ENABLED is true but IMPORTER_KINDS is empty. Provide at least one import kind.")

    # Rows per chunk; each chunk is committed once.
    IMPORTER_CHUNK_SIZE = _coerce_int(os.environ.get("IMPORTER_CHUNK_SIZE"), 100, minimum=1)
    # Pause between chunks to bound store load.
    IMPORTER_CHUNK_DELAY_SECONDS = _coerce_float(os.environ.get("IMPORTER_CHUNK_DELAY_SECONDS"), 0.1, minimum=0.0)
    IMPORTER_MIN_PHONE_DIGITS = _coerce_int(os.environ.get("IMPORTER_MIN_PHONE_DIGITS"), 7, minimum=4)
    IMPORTER_MERGE_PROFILE_PATH = os.environ.get("IMPORTER_MERGE_PROFILE_PATH")
    IMPORTER_DEFAULT_SHIFT_HOURS = _coerce_float(os.environ.get("IMPORTER_DEFAULT_SHIFT_HOURS"), 2.5, minimum=0.0)
    IMPORTER_DEFAULT_SHIFT_TYPE = os.environ.get("IMPORTER_DEFAULT_SHIFT_TYPE", "Concession Stand")
    IMPORTER_MAX_ROWS = _coerce_int(os.environ.get("IMPORTER_MAX_ROWS"), 10000, minimum=1)

    IMPORTER_WORKER_ENABLED = _coerce_bool(os.environ.get("IMPORTER_WORKER_ENABLED"), default=False)
    IMPORTER_AUTO_LINK_INTERVAL_SECONDS = _coerce_int(
        os.environ.get("IMPORTER_AUTO_LINK_INTERVAL_SECONDS"), 0, minimum=0
    )
    CELERY_BROKER_URL = os.environ.get("CELERY_BROKER_URL")
    CELERY_RESULT_BACKEND = os.environ.get("CELERY_RESULT_BACKEND")
    CELERY_SQLITE_PATH = os.environ.get("CELERY_SQLITE_PATH")
    CELERY_CONFIG = os.environ.get("CELERY_CONFIG")


class DevelopmentConfig(Config):
    DEBUG = True
    # Use instance folder for database to avoid conflicts
    _config_dir = os.path.dirname(os.path.abspath(__file__))
    _project_root = os.path.dirname(_config_dir)
    instance_path = os.path.join(_project_root, "instance")

    if not os.path.exists(instance_path):
        os.makedirs(instance_path, exist_ok=True)

    # SQLite URI format: sqlite:///absolute/path (forward slashes on Windows too)
    db_path = os.path.join(instance_path, "league_dev.db").replace("\\", "/")
    db_uri = f"sqlite:///{db_path}"

    SQLALCHEMY_DATABASE_URI = os.environ.get("DATABASE_URL", db_uri)
    SQLALCHEMY_ECHO = _coerce_bool(os.environ.get("SQLALCHEMY_ECHO"), default=False)
    if SQLALCHEMY_DATABASE_URI.startswith("sqlite"):
        SQLALCHEMY_ENGINE_OPTIONS = {
            "connect_args": {
                "check_same_thread": False,
                "timeout": 5,
            }
        }
    else:
        SQLALCHEMY_ENGINE_OPTIONS = {}


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = os.environ.get("SECRET_KEY", "test-secret-key-for-testing-only")
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"  # In-memory database for testing
    SQLALCHEMY_ECHO = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "connect_args": {
            "check_same_thread": False,
            "timeout": 5,
        }
    }
    IMPORTER_ENABLED = True
    IMPORTER_KINDS = SUPPORTED_IMPORT_KINDS
    IMPORTER_CHUNK_DELAY_SECONDS = 0.0
    IMPORTER_WORKER_ENABLED = False


class ProductionConfig(Config):
    DEBUG = False
    uri = os.environ.get("DATABASE_URL")
    if uri and uri.startswith("postgres://"):
        uri = uri.replace("postgres://", "postgresql://", 1)
    SQLALCHEMY_DATABASE_URI = uri
    SQLALCHEMY_ECHO = False
