from flask import Flask, current_app
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import os
import redis

from .errors import DomainError

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def create_app(config: Optional[Dict[str, Any]] = None):
    global db_engine, SessionLocal
    app = Flask(__name__)

    app.config['JWT_SECRET_KEY'] = os.getenv('JWT_SECRET_KEY', 'dev-secret')
    app.config['DATABASE_URL'] = os.getenv('DATABASE_URL', 'sqlite:///dev.db')
    app.config['REDIS_URL'] = os.getenv('REDIS_URL', 'redis://localhost:6379/0')
    app.config['REDIS_PREFIX'] = os.getenv('REDIS_PREFIX', 'repairflow')
    app.config['ORDER_LIST_CACHE_TTL'] = int(os.getenv('ORDER_LIST_CACHE_TTL', '300'))
    app.config['PERMISSION_CACHE_TTL'] = int(os.getenv('PERMISSION_CACHE_TTL', '3600'))
    timeout_ms = os.getenv('ORDER_STATEMENT_TIMEOUT_MS')
    app.config['ORDER_STATEMENT_TIMEOUT_MS'] = int(timeout_ms) if timeout_ms else None

    if config:
        # allow tests or callers to override default config values
        app.config.update(config)

    # Database
    db_url = app.config['DATABASE_URL']
    if db_url.endswith(':memory:'):
        # Ensure a single shared in-memory SQLite database across all sessions
        db_engine = create_engine(
            db_url,
            echo=False,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        db_engine = create_engine(db_url, echo=False, future=True)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)

    # Cache store; an explicit client (tests, workers) wins over REDIS_URL
    from .services.cache import CacheStore
    client = app.config.get('REDIS_CLIENT')
    if client is None:
        client = redis.Redis.from_url(app.config['REDIS_URL'], decode_responses=True)
    app.extensions['cache_store'] = CacheStore(client, prefix=app.config['REDIS_PREFIX'])

    from .routes.iam import iam_bp
    from .routes.repair_orders import orders_bp
    from .routes.status_permissions import perms_bp
    from .routes.status_transitions import transitions_bp
    app.register_blueprint(iam_bp, url_prefix='/iam')
    app.register_blueprint(orders_bp, url_prefix='/repair-orders')
    app.register_blueprint(perms_bp, url_prefix='/repair-order-status-permissions')
    app.register_blueprint(transitions_bp, url_prefix='/repair-order-status-transitions')

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    @app.teardown_appcontext
    def remove_session(exc):  # type: ignore
        if SessionLocal is not None:
            SessionLocal.remove()

    # Unified error handler producing standardized JSON shape
    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, DomainError):
            if e.code >= 500:
                app.logger.error('Domain failure: %s', e.description)
            return {'error': e.to_dict()}, e.code
        if isinstance(e, HTTPException):
            payload = {
                'error': {
                    'status': e.code,
                    'title': e.name,
                    'detail': e.description,
                }
            }
            return payload, e.code
        # Unhandled exception
        app.logger.exception('Unhandled exception')
        return {
            'error': {
                'status': 500,
                'title': 'Internal Server Error',
                'detail': 'Unexpected error'
            }
        }, 500

    return app


def get_db():
    return SessionLocal()


def get_cache():
    return current_app.extensions['cache_store']
