from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .errors import CareError
from .extensions import db, migrate, jwt
import logging
import os

# Setup basic logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s %(levelname)s: %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(config_name=None):
    """Create Flask application factory"""
    app = Flask(__name__)

    # Load configuration
    from carebook.config import config, get_config
    config_class = config.get(config_name, config['default']) if config_name else get_config()
    config_class.validate()
    app.config.from_object(config_class)

    # Ensure production mode if FLASK_ENV is production
    if os.getenv('FLASK_ENV') == 'production':
        app.config['DEBUG'] = False
        app.config['TESTING'] = False

    # Initialize extensions first (before error handlers)
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    from carebook.utils.cors import init_cors
    init_cors(app)

    _register_jwt_handlers()
    _register_error_handlers(app)
    _setup_logging(app)

    from carebook.middleware import setup_middleware
    setup_middleware(app)

    # Import models to register them with SQLAlchemy
    with app.app_context():
        from .models import Patient, Visit, Appointment, ScheduleLock, AuditLog  # noqa: F401

        from .routes import health_bp, patient_bp, visit_bp, appointment_bp
        app.register_blueprint(health_bp)  # Register health check first
        app.register_blueprint(patient_bp)
        app.register_blueprint(visit_bp)
        app.register_blueprint(appointment_bp)

    return app


def _register_jwt_handlers():
    """Token problems use the same JSON envelope as every other error"""

    @jwt.unauthorized_loader
    def missing_token(reason):
        return jsonify({
            'success': False,
            'error': 'Authentication required'
        }), 401

    @jwt.invalid_token_loader
    def invalid_token(reason):
        return jsonify({
            'success': False,
            'error': f'Invalid token: {reason}'
        }), 401

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return jsonify({
            'success': False,
            'error': 'Token has expired'
        }), 401


def _register_error_handlers(app):
    @app.errorhandler(CareError)
    def handle_care_error(error):
        if error.status_code >= 500:
            logger.error(f"Internal failure: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(500)
    def internal_error(error):
        logger.error(f"Internal Server Error: {error}", exc_info=True)
        return jsonify({
            'success': False,
            'error': 'Internal server error. Check server logs for details.'
        }), 500

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({
            'success': False,
            'error': 'Endpoint not found'
        }), 404

    @app.errorhandler(Exception)
    def handle_exception(e):
        if isinstance(e, HTTPException):
            return jsonify({
                'success': False,
                'error': e.description
            }), e.code
        logger.error(f"Unhandled exception: {e}", exc_info=True)
        db.session.rollback()
        return jsonify({
            'success': False,
            'error': 'Internal server error. Check server logs for details.'
        }), 500


def _setup_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.getLogger('carebook').setLevel(level)

    if app.debug or app.testing:
        return

    from logging.handlers import RotatingFileHandler

    log_file = app.config.get('LOG_FILE', 'logs/carebook.log')
    log_dir = os.path.dirname(log_file)
    if log_dir and not os.path.exists(log_dir):
        os.makedirs(log_dir, exist_ok=True)

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=10240000,
        backupCount=10
    )
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
    ))
    file_handler.setLevel(level)
    app.logger.addHandler(file_handler)
    logging.getLogger('carebook').addHandler(file_handler)
    app.logger.setLevel(level)
    app.logger.info('Application startup')
