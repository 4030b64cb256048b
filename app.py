import os
from datetime import datetime

from flask import Flask
from flask_migrate import Migrate
from flask_wtf.csrf import CSRFProtect

from courier.logging_config import configure_logging
from courier.models import db
from courier.routes.api import api_bp

# Single CSRFProtect instance for the whole app
csrf = CSRFProtect()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def create_app(test_config=None):
    app = Flask(__name__)

    # Basic config (environment first, then the caller's overrides)
    basedir = os.path.abspath(os.path.dirname(__file__))
    app.config["SQLALCHEMY_DATABASE_URI"] = os.environ.get(
        "DATABASE_URL", "sqlite:///" + os.path.join(basedir, "courier.db")
    )
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["SECRET_KEY"] = os.environ.get("SECRET_KEY", "change-me-in-production")

    # Booking / trip write behaviour
    app.config["BOOKING_WRITE_MODE"] = os.environ.get("BOOKING_WRITE_MODE", "auto")
    app.config["BOOKING_COMPENSATE_ON_FAILURE"] = _env_bool("BOOKING_COMPENSATE_ON_FAILURE", True)
    app.config["TRIP_ASSIGNMENT_MODE"] = os.environ.get("TRIP_ASSIGNMENT_MODE", "transactional")
    app.config["COMPLETION_VARIANTS"] = os.environ.get("COMPLETION_VARIANTS", "all,managed")
    app.config["LOG_LEVEL"] = os.environ.get("LOG_LEVEL", "INFO")

    if test_config:
        app.config.update(test_config)

    configure_logging(app.config["LOG_LEVEL"])

    # Initialise CSRF protection; the JSON API is called by the booking
    # counter and driver apps, not by forms rendered here.
    csrf.init_app(app)
    csrf.exempt(api_bp)

    # Init extensions
    db.init_app(app)
    Migrate(app, db)

    # Blueprints
    app.register_blueprint(api_bp)

    # Simple health route
    @app.route("/health")
    def health():
        return f"App is working - {datetime.utcnow()}"

    return app


# This is what Flask CLI & `python app.py` will use
app = create_app()

if __name__ == "__main__":
    app.run(debug=True)
