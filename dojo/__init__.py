from flask import Flask, jsonify
from flask_cors import CORS

from dojo.logging_config import configure_logging, get_logger
from dojo.models import db

logger = get_logger(__name__)


def create_app(config_class=None, outbox_store=None, executor_registry=None):
    """
    Application factory.

    Args:
        config_class: Config class to load; chosen from the environment when None
        outbox_store: Optional OutboxStore replacing the SQL store
        executor_registry: Optional ExecutorRegistry replacing the configured executors
    """
    # Import config after dotenv is loaded
    from dojo.config import get_config
    from dojo.db_config import configure_database
    from dojo.outbox import init_outbox, outbox_bp
    from dojo.outbox.scheduler import init_scheduler

    config_class = config_class or get_config()

    app = Flask(__name__)
    app.config.from_object(config_class)

    configure_logging(
        log_level=app.config.get("LOG_LEVEL", "INFO"),
        log_file=app.config.get("LOG_FILE"),
        json_console=app.config.get("LOG_JSON", False),
    )

    # Configure database separately
    configure_database(app)

    logger.info(f"Starting application in {config_class.ENV} environment")
    logger.info(f"Database URI: {app.config.get('SQLALCHEMY_DATABASE_URI', 'Not set')[:50]}...")

    allowed_origins = app.config.get("CORS_ORIGINS", "*")
    if allowed_origins != "*":
        # Parse comma-separated list if provided
        allowed_origins = [origin.strip() for origin in allowed_origins.split(",")]

    CORS(app,
         resources={r"/*": {"origins": allowed_origins}},
         supports_credentials=True,
         allow_headers=["Content-Type", "Authorization", "X-Admin-Pin"],
         methods=["GET", "POST", "OPTIONS"])

    db.init_app(app)
    with app.app_context():
        # Only creates tables that don't exist yet
        db.create_all()

    outbox = init_outbox(app, store=outbox_store, registry=executor_registry)

    @app.route("/health")
    def health():
        return jsonify({"status": "ok", "executors": outbox.registry.action_types()}), 200

    # Register blueprints
    app.register_blueprint(outbox_bp, url_prefix="/admin/outbox")

    # Global error handler so every failure is answered with JSON
    @app.errorhandler(Exception)
    def handle_exception(e):
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

    # Start the outbox worker safely
    try:
        outbox.scheduler = init_scheduler(app, outbox.processor)
    except Exception as e:
        logger.error("Failed to start outbox worker", error=str(e))

    return app
