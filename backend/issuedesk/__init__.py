from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any
import os

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()

# config key -> (environment variable, default)
ENV_SETTINGS = {
    'JWT_SECRET_KEY': ('JWT_SECRET_KEY', 'dev-secret'),
    'DATABASE_URL': ('DATABASE_URL', 'sqlite:///dev.db'),
    'HEAD_OFFICE_DISTRICT_ID': ('HEAD_OFFICE_DISTRICT_ID', 'head-office'),
    'LOG_LEVEL': ('LOG_LEVEL', 'INFO'),
    'PAGE_DEFAULT_LIMIT': ('PAGE_DEFAULT_LIMIT', '50'),
    'PAGE_MAX_LIMIT': ('PAGE_MAX_LIMIT', '200'),
}

REDOC_PAGE = (
    "<!DOCTYPE html><html><head><title>IssueDesk API</title>"
    "<link rel=\"stylesheet\" href=\"https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.css\" />"
    "</head><body><redoc spec-url='/openapi.json'></redoc>"
    "<script src='https://cdn.jsdelivr.net/npm/redoc@next/bundles/redoc.standalone.js'></script>"
    "</body></html>"
)


def _init_db(url: str):
    global db_engine, SessionLocal
    if url.endswith(':memory:'):
        # every session must see the same in-memory database
        db_engine = create_engine(url, echo=False, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    else:
        db_engine = create_engine(url, echo=False)
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))


def _error_body(status: int, title: str, detail: str):
    return {'error': {'status': status, 'title': title, 'detail': detail}}


def _register_error_handlers(app: Flask):
    from .domain.errors import IssueDeskError, UnknownRole

    @app.errorhandler(IssueDeskError)
    def handle_domain_error(e):  # type: ignore
        if isinstance(e, UnknownRole):
            app.logger.error('Unknown role: %s %s', e.message, e.details)
        else:
            app.logger.warning('%s: %s %s', e.code, e.message, e.details)
        return e.to_dict(), e.http_status

    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, HTTPException):
            return _error_body(e.code, e.name, e.description), e.code
        app.logger.exception('Unhandled exception')
        return _error_body(500, 'Internal Server Error', 'Unexpected error'), 500


def create_app(config: Optional[Dict[str, Any]] = None):
    app = Flask(__name__)
    for key, (env_name, default) in ENV_SETTINGS.items():
        app.config[key] = os.getenv(env_name, default)
    if config:
        app.config.update(config)

    from .config.logging import setup_logging, install_request_id
    setup_logging(app.config['LOG_LEVEL'])
    install_request_id(app)

    _init_db(app.config['DATABASE_URL'])
    jwt.init_app(app)

    from .routes.iam import iam_bp
    from .routes.issues import issues_bp
    from .routes.reports import rpt_bp
    app.register_blueprint(iam_bp, url_prefix='/iam')
    app.register_blueprint(issues_bp, url_prefix='/issues')
    app.register_blueprint(rpt_bp, url_prefix='/reports')

    @app.teardown_appcontext
    def remove_session(exc):  # type: ignore
        SessionLocal.remove()

    _register_error_handlers(app)

    from .openapi import build_openapi_spec

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    @app.route('/openapi.json')
    def openapi_spec():
        return build_openapi_spec()

    @app.route('/docs')
    def docs_index():
        return REDOC_PAGE

    return app


def get_db():
    return SessionLocal()
