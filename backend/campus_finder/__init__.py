from flask import Flask
from .config import get_config
from .extensions import db, migrate, cors, cors_origins
from .logging_config import configure_logging
from sqlalchemy import text
from dotenv import load_dotenv
from werkzeug.middleware.proxy_fix import ProxyFix


def create_app(config_name: str | None = None) -> Flask:
    app = Flask(__name__)

    # Ensure .env is loaded before reading env vars
    load_dotenv()
    app.config.from_object(get_config(config_name))
    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    # Honor proxy headers from Nginx for correct url_for(_external=True) scheme/host
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=1)  # type: ignore[assignment]

    # Init extensions
    cors.init_app(app, resources={r"/api/*": {"origins": cors_origins(app.config)}}, supports_credentials=True)
    db.init_app(app)
    migrate.init_app(app, db)

    # Register models so metadata (and migrations) see every table
    from . import models  # noqa: F401

    # Register blueprints (v1 API)
    from .apis.v1 import register_api
    register_api(app)

    from .cli import register_cli
    register_cli(app)

    @app.get("/health")
    def health() -> dict:
        return {"status": "ok"}

    @app.get("/db-check")
    def db_check():
        try:
            db.session.execute(text("SELECT 1"))
            return {"db": "ok"}
        except Exception as e:
            app.logger.warning("Database check failed: %s", e)
            return {"db": "error", "message": str(e)}, 500

    return app
