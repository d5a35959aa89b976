"""Database configuration for the schedule store in different environments."""
import os


def get_database_engine_options():
    """Get database engine options for PostgreSQL connections."""
    from sqlalchemy.pool import QueuePool

    return {
        "pool_pre_ping": True,        # Detect and refresh dead connections before use
        "pool_recycle": 280,          # Recycle connections slightly before the host's idle timeout
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,           # Wait up to 30s for a connection before raising
        "pool_reset_on_return": "commit",
        "poolclass": QueuePool,
        "connect_args": {
            "sslmode": "require",
            "connect_timeout": 10,
            "application_name": "lot_scheduler",
            "options": "-c statement_timeout=30000"  # 30s max per SQL statement
        },
    }


def get_local_database_config():
    """Get database configuration for local development.

    Returns:
        tuple: (database_uri, engine_options)
    """
    database_uri = os.environ.get("LOCAL_DATABASE_URL") or "sqlite:///schedule.sqlite"
    engine_options = None  # SQLite doesn't need engine options
    return database_uri, engine_options


def get_testing_database_config():
    """In-memory SQLite shared across sessions through a single connection.

    Returns:
        tuple: (database_uri, engine_options)
    """
    from sqlalchemy.pool import StaticPool

    return "sqlite://", {
        "poolclass": StaticPool,
        "connect_args": {"check_same_thread": False},
    }


def get_sandbox_database_config():
    """Get database configuration for sandbox/staging environment.

    Returns:
        tuple: (database_uri, engine_options)

    Raises:
        ValueError: If database URL is not configured
    """
    database_url = os.environ.get("SANDBOX_DATABASE_URL")
    if not database_url:
        raise ValueError("SANDBOX_DATABASE_URL must be set for sandbox environment")

    engine_options = get_database_engine_options()
    return database_url, engine_options


def get_production_database_config():
    """Get database configuration for production environment.

    Returns:
        tuple: (database_uri, engine_options)

    Raises:
        ValueError: If database URL is not configured
    """
    database_url = os.environ.get("PRODUCTION_DATABASE_URL") or os.environ.get("DATABASE_URL")
    if not database_url:
        raise ValueError("PRODUCTION_DATABASE_URL or DATABASE_URL must be set for production environment")

    engine_options = get_database_engine_options()
    return database_url, engine_options


def get_database_config(environment=None):
    """Get database configuration based on environment.

    Args:
        environment: Environment name ('local', 'sandbox', 'production', 'testing')
                    If None, will be determined from ENVIRONMENT or FLASK_ENV env vars.

    Returns:
        tuple: (database_uri, engine_options)
    """
    if environment is None:
        environment = os.environ.get("FLASK_ENV") or os.environ.get("ENVIRONMENT", "local")
    environment = environment.lower()

    if environment in ["local", "development", "dev"]:
        return get_local_database_config()
    elif environment in ["sandbox", "staging", "stage"]:
        return get_sandbox_database_config()
    elif environment in ["production", "prod"]:
        return get_production_database_config()
    elif environment in ["testing", "test"]:
        return get_testing_database_config()
    else:
        # Default to local for safety
        return get_local_database_config()


def create_schedule_store(environment=None, default_work_days=None):
    """Build the SQL schedule store for an environment (not yet opened).

    Args:
        environment: Environment name, as for get_database_config
        default_work_days: Weekday indices used when no org settings are stored

    Returns:
        SqlScheduleStore
    """
    from app.scheduling.records import OrgSettings
    from app.scheduling.store import SqlScheduleStore

    database_uri, engine_options = get_database_config(environment)
    default_settings = OrgSettings.from_dict({"work_days": list(default_work_days or [])})
    return SqlScheduleStore(database_uri, engine_options, default_settings=default_settings)
