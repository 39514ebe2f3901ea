import os
import logging
from flask import Flask, g
from flask_sqlalchemy import SQLAlchemy
from flask_wtf.csrf import CSRFProtect
from flask_cors import CORS
from flask_compress import Compress
from sqlalchemy.orm import DeclarativeBase
from werkzeug.exceptions import HTTPException
from werkzeug.middleware.proxy_fix import ProxyFix
from flask_login import LoginManager, current_user

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


db = SQLAlchemy(model_class=Base)
login_manager = LoginManager()
csrf = CSRFProtect()
compress = Compress()


def _database_config(database_url):
    """SQLAlchemy URI and engine options for the configured database"""
    if database_url.startswith("postgres://"):
        database_url = database_url.replace("postgres://", "postgresql+psycopg2://", 1)
    elif database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+psycopg2://", 1)

    if database_url.startswith("postgresql+psycopg2://"):
        engine_options = {
            "pool_size": 10,
            "pool_recycle": 280,
            "pool_pre_ping": True,
            "max_overflow": 15,
            "pool_timeout": 20,
            "connect_args": {
                "connect_timeout": 10,
                "application_name": "fleet_desk",
            },
        }
    elif database_url in ("sqlite://", "sqlite:///:memory:"):
        engine_options = {}
    else:
        engine_options = {
            "pool_recycle": 300,
            "pool_pre_ping": True,
        }
    return database_url, engine_options


def _seed_defaults():
    """Settings row always; the super admin only when DEMO_SEED is on"""
    from models import User, UserRole
    from services.record_store import RecordStore
    from werkzeug.security import generate_password_hash

    store = RecordStore()
    store.get_settings()

    if os.environ.get('DEMO_SEED', 'false').lower() == 'true':
        admin_phone = os.environ.get('ADMIN_PHONE', '01700000000')
        if not User.query.filter_by(role=UserRole.SUPER_ADMIN).first():
            admin_password = os.environ.get('ADMIN_INITIAL_PASSWORD')
            if not admin_password:
                raise RuntimeError("ADMIN_INITIAL_PASSWORD environment variable is required for demo mode but not set")
            store.add_user(User(
                name='System Administrator',
                role=UserRole.SUPER_ADMIN,
                phone=admin_phone,
                email=os.environ.get('ADMIN_EMAIL', 'admin@fleetdesk.local'),
                password_hash=generate_password_hash(admin_password),
                is_active=True,
            ))
            logger.info("Demo super admin created")

    db.session.commit()


def _register_error_handlers(app):
    from utils.responses import json_error

    @app.errorhandler(404)
    def not_found(error):
        return json_error('Resource not found', 404, error='NOT_FOUND')

    @app.errorhandler(405)
    def method_not_allowed(error):
        return json_error('Method not allowed', 405, error='METHOD_NOT_ALLOWED')

    @app.errorhandler(Exception)
    def unhandled_exception(error):
        if isinstance(error, HTTPException):
            return json_error(error.description, error.code, error=error.name.upper().replace(' ', '_'))
        db.session.rollback()
        logger.error(f"Unhandled error: {error}", exc_info=True)
        return json_error('An internal error occurred', 500, error='INTERNAL_ERROR')


def create_app(config_overrides=None):
    # Create the app
    app = Flask(__name__)
    # Enforce SESSION_SECRET requirement
    app.secret_key = os.environ.get("SESSION_SECRET")
    if not app.secret_key:
        raise RuntimeError("SESSION_SECRET environment variable is required but not set")
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1)

    from utils.logging_config import setup_logging, log_request_start, log_request_end
    setup_logging(app)

    # CORS, restricted origins with a localhost fallback for development
    configured_origins = os.environ.get('ALLOWED_ORIGINS', '').split(',')
    allowed_origins = [origin.strip() for origin in configured_origins if origin.strip()]
    if not allowed_origins:
        allowed_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]

    CORS(app, origins=allowed_origins,
         supports_credentials=True,
         allow_headers=["Content-Type", "X-Requested-With", "X-Correlation-ID"],
         methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"])

    app.config['COMPRESS_MIMETYPES'] = ['application/json', 'text/plain']
    app.config['COMPRESS_LEVEL'] = 6
    app.config['COMPRESS_MIN_SIZE'] = 500

    database_url, engine_options = _database_config(
        os.environ.get("DATABASE_URL") or "sqlite:///fleet_desk.db"
    )
    app.config["SQLALCHEMY_DATABASE_URI"] = database_url
    app.config["SQLALCHEMY_ENGINE_OPTIONS"] = engine_options

    if config_overrides:
        app.config.update(config_overrides)
        if 'SQLALCHEMY_DATABASE_URI' in config_overrides and 'SQLALCHEMY_ENGINE_OPTIONS' not in config_overrides:
            app.config["SQLALCHEMY_ENGINE_OPTIONS"] = _database_config(config_overrides['SQLALCHEMY_DATABASE_URI'])[1]

    # Initialize extensions
    compress.init_app(app)
    db.init_app(app)
    login_manager.init_app(app)
    csrf.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        from models import User
        user = db.session.get(User, int(user_id))
        # deactivated accounts lose their session on the next request
        if user is None or not user.is_active:
            return None
        return user

    @login_manager.unauthorized_handler
    def unauthorized():
        from utils.responses import json_error
        return json_error('Authentication required', 401, error='UNAUTHENTICATED')

    @app.before_request
    def before_request():
        log_request_start()
        if current_user.is_authenticated:
            g.current_user_id = current_user.id
            g.current_user_role = current_user.role.value

    @app.after_request
    def after_request(response):
        return log_request_end(response)

    # Register blueprints
    from auth import auth_bp
    from admin_routes import admin_bp
    from manager_routes import manager_bp
    from submanager_routes import submanager_bp
    from ujala_routes import ujala_bp
    from driver_routes import driver_bp
    from shared_routes import shared_bp

    blueprints = (
        (auth_bp, '/auth'),
        (admin_bp, '/admin'),
        (manager_bp, '/manager'),
        (submanager_bp, '/submanager'),
        (ujala_bp, '/ujala'),
        (driver_bp, '/driver'),
        (shared_bp, '/shared'),
    )
    for blueprint, prefix in blueprints:
        # JSON API, authenticated by the session cookie; no form tokens
        csrf.exempt(blueprint)
        app.register_blueprint(blueprint, url_prefix=prefix)

    _register_error_handlers(app)

    @app.route('/health')
    def health():
        """Simple health check endpoint for deployment readiness"""
        from timezone_utils import get_local_time
        return {'status': 'ok', 'timestamp': get_local_time().isoformat()}, 200

    @app.route('/')
    def index():
        from services.record_store import RecordStore
        from utils.responses import json_success
        settings = RecordStore().get_settings()
        return json_success(app=settings.to_dict(), authenticated=current_user.is_authenticated)

    from utils.config_validator import check_production_readiness
    if not app.config.get('TESTING'):
        check_production_readiness()

    with app.app_context():
        import models  # noqa: F401
        db.create_all()
        _seed_defaults()

    return app
