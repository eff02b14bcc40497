"""
app.py — Flask entry point for the trait observation tracker.

Initializes the Flask app, creates and seeds the database, loads the
baseline trait taxonomy and the stored custom-trait overlay, and registers
all route blueprints.

Run: python app.py → localhost:5000
"""

import logging
import os

from flask import Flask
from flask_wtf.csrf import CSRFProtect

from custom_traits import TraitEditor
from database import init_db, seed_defaults, load_custom_traits, save_custom_traits
from trait_schema import load_baseline_taxonomy
from routes.main import main_bp
from routes.traits import traits_bp
from routes.plants import plants_bp

logger = logging.getLogger(__name__)


def create_app(test_config=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.secret_key = os.environ.get('SECRET_KEY', 'trait-tracker-local-app-secret-key')
    app.config['WTF_CSRF_CHECK_DEFAULT'] = True
    app.config['JSON_SORT_KEYS'] = False

    if test_config:
        app.config.update(test_config)

    logging.basicConfig(
        level=logging.DEBUG if app.debug else logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    CSRFProtect(app)

    # Initialize database and seed defaults
    with app.app_context():
        init_db()
        if app.config.get('SEED_DEFAULTS', True):
            seed_defaults()

    # Baseline is fixed for the process; the overlay is loaded once and
    # rewritten wholesale on every edit
    baseline = load_baseline_taxonomy(app.config.get('TAXONOMY_PATH'))
    app.extensions['trait_editor'] = TraitEditor(
        baseline,
        store=load_custom_traits(),
        save_callback=save_custom_traits,
    )
    logger.info("Trait schema ready: %d baseline areas", len(baseline))

    # Register blueprints
    app.register_blueprint(main_bp)
    app.register_blueprint(traits_bp)
    app.register_blueprint(plants_bp)

    return app


if __name__ == '__main__':
    app = create_app()
    # Debug mode: enabled by default for development (auto-reload on file changes)
    # Set FLASK_DEBUG=0 to disable for production
    debug = os.environ.get('FLASK_DEBUG', '1') != '0'
    app.run(host='localhost', port=5000, debug=debug)
