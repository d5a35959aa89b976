import atexit
import os

from flask import Flask, jsonify
from flask_cors import CORS

from app.logging_config import configure_logging, get_logger
from app.scheduling import scheduling_bp

logger = get_logger(__name__)


def create_app(store=None, clock=None):
    """
    Application factory.

    Args:
        store: An opened ScheduleStore. When omitted, a SQL store for the
               current environment is created, opened, and closed at exit.
        clock: Optional callable returning the ISO timestamp used for
               updated_at / change-log entries
    """
    # Import config after dotenv is loaded
    from app.config import get_config
    from app.db_config import create_schedule_store

    # Get the appropriate config class based on environment
    config_class = get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)

    log_file = app.config.get("LOG_FILE")
    if log_file and os.path.dirname(log_file):
        os.makedirs(os.path.dirname(log_file), exist_ok=True)
    configure_logging(log_level=app.config["LOG_LEVEL"], log_file=log_file)

    # Log the environment being used
    logger.info("Starting application", environment=config_class.ENV)

    # Get allowed origins from environment variable
    allowed_origins = app.config.get("CORS_ORIGINS", "*")
    if allowed_origins != "*":
        # Parse comma-separated list if provided
        allowed_origins = [origin.strip() for origin in allowed_origins.split(",")]

    CORS(app,
         resources={r"/*": {"origins": allowed_origins}},
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"])

    # The store's lifecycle belongs to whoever opened it
    if store is None:
        store = create_schedule_store(config_class.ENV, app.config.get("DEFAULT_WORK_DAYS"))
        store.open()
        atexit.register(store.close)
    app.extensions["schedule_store"] = store
    if clock is not None:
        app.extensions["schedule_clock"] = clock

    app.register_blueprint(scheduling_bp, url_prefix="/scheduling")

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "environment": config_class.ENV}), 200

    # Global error handler to ensure CORS headers are always included
    @app.errorhandler(Exception)
    def handle_exception(e):
        """Handle all exceptions and return a JSON body."""
        if hasattr(e, 'code') and isinstance(e.code, int):
            status_code = e.code
        else:
            status_code = 500

        if status_code >= 500:
            logger.error("Unhandled exception", error=str(e), exc_info=True)

        response = jsonify({
            "error": str(e),
            "message": "An error occurred processing your request"
        })
        response.status_code = status_code
        return response

    return app
