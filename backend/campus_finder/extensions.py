from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_cors import CORS

# Flask extension singletons, bound to the app in create_app()

db = SQLAlchemy()
migrate = Migrate()
cors = CORS()


def cors_origins(config) -> list[str]:
	raw = config.get("CORS_ALLOW_ORIGINS") or ""
	return [o.strip() for o in raw.split(",") if o.strip()]
