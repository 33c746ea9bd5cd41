from flask import Flask, current_app
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from datetime import timedelta
from typing import Optional, Dict, Any
import os

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()

STORE_KEY = 'stallsync.store'


def _default_config() -> Dict[str, Any]:
    return {
        'JWT_SECRET_KEY': os.getenv('JWT_SECRET_KEY', 'dev-secret'),
        'DATABASE_URL': os.getenv('DATABASE_URL', 'sqlite:///dev.db'),
        'COMMIT_MAX_ATTEMPTS': int(os.getenv('COMMIT_MAX_ATTEMPTS', '3')),
        'COMMIT_BACKOFF_SECONDS': float(os.getenv('COMMIT_BACKOFF_SECONDS', '0.05')),
        'JWT_ACCESS_TOKEN_EXPIRES_MINUTES': int(os.getenv('JWT_ACCESS_TOKEN_EXPIRES_MINUTES', '60')),
        'LOG_LEVEL': os.getenv('LOG_LEVEL', 'INFO'),
    }


def _build_engine(url: str):
    if url.endswith(':memory:'):
        # every session must see the same in-memory database
        return create_engine(url, future=True, connect_args={'check_same_thread': False}, poolclass=StaticPool)
    return create_engine(url, future=True)


def _error_payload(status: int, title: str, detail, reason: Optional[str] = None):
    body = {'status': status, 'title': title, 'detail': detail}
    if reason is not None:
        body['reason'] = reason
    return {'error': body}, status


def create_app(config: Optional[Dict[str, Any]] = None):
    """Application factory. ``config`` overrides the environment-derived defaults."""
    global db_engine, SessionLocal
    app = Flask(__name__)
    app.config.update(_default_config())
    if config:
        app.config.update(config)
    app.config['JWT_ACCESS_TOKEN_EXPIRES'] = timedelta(minutes=app.config['JWT_ACCESS_TOKEN_EXPIRES_MINUTES'])
    app.logger.setLevel(app.config['LOG_LEVEL'])

    db_engine = _build_engine(app.config['DATABASE_URL'])
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    from .services.store import DocumentStore
    app.extensions[STORE_KEY] = DocumentStore(
        SessionLocal,
        max_attempts=app.config['COMMIT_MAX_ATTEMPTS'],
        backoff_base=app.config['COMMIT_BACKOFF_SECONDS'],
    )

    jwt.init_app(app)

    from .routes.auth import auth_bp
    from .routes.documents import docs_bp
    from .routes.inventory import inv_bp
    from .routes.admin import admin_bp
    for bp, prefix in ((auth_bp, '/auth'), (docs_bp, '/api'), (inv_bp, '/inventory'), (admin_bp, '/admin')):
        app.register_blueprint(bp, url_prefix=prefix)

    @app.teardown_appcontext
    def remove_session(exc=None):
        if SessionLocal is not None:
            SessionLocal.remove()

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    from .services.errors import PolicyError

    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, PolicyError):
            if e.status >= 409:
                app.logger.info('%s: %s', e.title, e.detail)
            return _error_payload(e.status, e.title, e.detail, e.kind.value if e.kind is not None else None)
        if isinstance(e, HTTPException):
            return _error_payload(e.code, e.name, e.description)
        app.logger.exception('Unhandled exception')
        return _error_payload(500, 'Internal Server Error', 'Unexpected error')

    app.logger.info('stallsync ready (db=%s)', db_engine.url.render_as_string(hide_password=True))
    return app


def get_db():
    return SessionLocal()


def get_store():
    return current_app.extensions[STORE_KEY]
