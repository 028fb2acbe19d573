import os
import logging
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_cors import CORS
from sqlalchemy.orm import DeclarativeBase
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix

logger = logging.getLogger(__name__)

class Base(DeclarativeBase):
    pass

db = SQLAlchemy(model_class=Base)

API_PREFIX = '/api/drivers'

def _env_flag(name, default='false'):
    return os.environ.get(name, default).strip().lower() in ('1', 'true', 'yes', 'on')

def load_config():
    """Read runtime settings from the environment"""
    return {
        'DATABASE_URL': os.environ.get('DATABASE_URL') or 'sqlite:///fleet_hiring.db',
        'JWT_SECRET_KEY': os.environ.get('JWT_SECRET_KEY') or os.environ.get('SESSION_SECRET'),
        'USER_SERVICE_URL': os.environ.get('USER_SERVICE_URL', 'http://localhost:5001'),
        'TRIP_SERVICE_URL': os.environ.get('TRIP_SERVICE_URL', 'http://localhost:5004'),
        'VEHICLE_SERVICE_URL': os.environ.get('VEHICLE_SERVICE_URL', 'http://localhost:5002'),
        'COLLABORATOR_TIMEOUT': float(os.environ.get('COLLABORATOR_TIMEOUT', 5)),
        'JOB_REQUEST_TTL_DAYS': int(os.environ.get('JOB_REQUEST_TTL_DAYS', 30)),
        'OUTBOX_MAX_ATTEMPTS': int(os.environ.get('OUTBOX_MAX_ATTEMPTS', 10)),
        'OUTBOX_DRAIN_INTERVAL_MINUTES': int(os.environ.get('OUTBOX_DRAIN_INTERVAL_MINUTES', 1)),
        'EXPIRY_SWEEP_INTERVAL_MINUTES': int(os.environ.get('EXPIRY_SWEEP_INTERVAL_MINUTES', 15)),
        'ENABLE_BACKGROUND_TASKS': _env_flag('ENABLE_BACKGROUND_TASKS'),
        'SMTP_HOST': os.environ.get('SMTP_HOST'),
        'SMTP_PORT': os.environ.get('SMTP_PORT'),
        'SMTP_USER': os.environ.get('SMTP_USER'),
        'SMTP_PASSWORD': os.environ.get('SMTP_PASSWORD'),
        'SMTP_FROM_EMAIL': os.environ.get('SMTP_FROM_EMAIL'),
        'ALLOWED_ORIGINS': os.environ.get('ALLOWED_ORIGINS', ''),
        'LOG_LEVEL': os.environ.get('LOG_LEVEL', 'INFO'),
        'USE_JSON_LOGGING': os.environ.get('USE_JSON_LOGGING', 'false'),
        'ERROR_LOG_FILE': os.environ.get('ERROR_LOG_FILE', 'logs/error.log'),
    }

def _configure_database(app):
    database_url = app.config['DATABASE_URL']

    # Configure for PostgreSQL production database
    if database_url.startswith(("postgresql://", "postgres://")):
        if database_url.startswith("postgres://"):
            database_url = database_url.replace("postgres://", "postgresql://", 1)
        database_url = database_url.replace("postgresql://", "postgresql+psycopg2://", 1)

        from urllib.parse import urlparse
        parsed = urlparse(database_url)
        logger.info(f"Connecting to PostgreSQL: host={parsed.hostname}, db={parsed.path[1:]}, user={parsed.username}")

        app.config["SQLALCHEMY_DATABASE_URI"] = database_url
        app.config["SQLALCHEMY_ENGINE_OPTIONS"] = {
            "pool_size": 10,
            "pool_recycle": 280,
            "pool_pre_ping": True,
            "max_overflow": 15,
            "pool_timeout": 20,
            "connect_args": {
                "connect_timeout": 10,
                "application_name": "fleet_hiring",
            }
        }
    else:
        app.config["SQLALCHEMY_DATABASE_URI"] = database_url
        app.config.setdefault("SQLALCHEMY_ENGINE_OPTIONS", {"pool_pre_ping": True})

def _register_error_handlers(app):
    from services.exceptions import ServiceError

    @app.errorhandler(ServiceError)
    def handle_service_error(error):
        if error.status_code >= 500:
            logger.error(f"Service error: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'success': False, 'message': error.description or error.name}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception(f"Unhandled error: {str(error)}")
        db.session.rollback()
        return jsonify({'success': False, 'message': 'Internal Server Error'}), 500

def create_app(config_overrides=None, services=None):
    # Create the app
    app = Flask(__name__)
    app.config.update(load_config())
    if config_overrides:
        app.config.update(config_overrides)

    if not app.config.get('JWT_SECRET_KEY'):
        raise RuntimeError("JWT_SECRET_KEY (or SESSION_SECRET) environment variable is required but not set")
    app.secret_key = app.config['JWT_SECRET_KEY']

    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    # CORS Configuration (restricted origins)
    allowed_origins = [origin.strip() for origin in str(app.config['ALLOWED_ORIGINS']).split(',') if origin.strip()]
    if not allowed_origins:
        allowed_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    CORS(app, origins=allowed_origins,
         supports_credentials=False,
         allow_headers=["Content-Type", "Authorization", "x-auth-token", "X-Requested-With", "X-Correlation-ID"],
         expose_headers=["X-Correlation-ID"],
         methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"])

    from utils.logging_config import setup_logging, log_request_start, log_request_end
    setup_logging(app)
    app.before_request(log_request_start)
    app.after_request(log_request_end)

    _configure_database(app)
    db.init_app(app)

    # Blueprints import the service layer, which imports the models
    from job_request_routes import job_request_bp
    from employment_routes import employment_bp
    from rating_routes import rating_bp
    from services import init_services

    app.register_blueprint(job_request_bp, url_prefix=f'{API_PREFIX}/job-requests')
    app.register_blueprint(employment_bp, url_prefix=f'{API_PREFIX}/employments')
    app.register_blueprint(rating_bp, url_prefix=f'{API_PREFIX}/ratings')

    init_services(app, services)
    _register_error_handlers(app)

    @app.route('/health')
    def health():
        """Simple health check endpoint for deployment readiness"""
        from timezone_utils import get_local_time_naive, to_iso
        return {'status': 'ok', 'service': 'fleet-hiring', 'timestamp': to_iso(get_local_time_naive())}, 200

    with app.app_context():
        import models  # noqa: F401
        db.create_all()

    from utils.config_validator import check_production_readiness
    readiness = check_production_readiness(app.config)
    if not readiness['production_ready']:
        logger.info(f"Configuration has {len(readiness['issues'])} open issues")

    if app.config.get('ENABLE_BACKGROUND_TASKS'):
        from utils.background_tasks import init_background_tasks
        init_background_tasks(app)

    return app
