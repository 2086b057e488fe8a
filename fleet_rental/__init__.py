"""Fleet rental management.

A Flask application over a relational database of vehicles, customers,
rental agreements and the payments, fines, maintenance and legal cases
that hang off them. Everything is exposed as JSON under ``/api`` plus a
few ``/functions`` endpoints that call out to an LLM.

To run the app locally:

    pip install -e .

    # Initialise the database
    python -m fleet_rental init-db

    # Start the development server
    python -m fleet_rental run

Settings are read from the environment (or a ``.env`` file); see
:mod:`fleet_rental.config`.
"""

import logging

from flask import Flask, jsonify

from .config import Config
from .errors import register_error_handlers
from .models import db
from .pricing import seed_pricing_models
from .views import register_blueprints

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'


def configure_logging(level: str):
    logging.basicConfig(level=getattr(logging, str(level).upper(), logging.INFO), format=LOG_FORMAT)


def create_app(config_class=Config) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_class)
    configure_logging(app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(app)
    register_error_handlers(app, db)
    register_blueprints(app)

    @app.route('/health')
    def health():
        return jsonify({'status': 'ok'})

    return app


def init_db():
    """Create the tables and the built-in pricing models."""
    db.create_all()
    seed_pricing_models()
    logger.info("Database initialised")
