from flask import Flask, g, session
from config import Config
from blogora.extensions import db, migrate, login_manager
from blogora.backends import EXTENSION_KEY, make_backend


def create_app(config_class=Config, backend=None):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get("LOG_LEVEL", "INFO"))

    is_dev = flask_app.config.get("IS_DEV", False)

    if not is_dev:
        if not flask_app.config.get("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY is not set")
        flask_app.config["AUTO_CREATE_DB"] = False

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)

    if backend is None:
        backend = make_backend(flask_app.config)
    backend.init_app(flask_app)
    flask_app.extensions[EXTENSION_KEY] = backend
    flask_app.logger.info("Using %s backend", backend.name)

    # dev only: auto create tables when migrations are not in use
    if flask_app.config.get("AUTO_CREATE_DB", False) and backend.name == "sql":
        try:
            with flask_app.app_context():
                from . import models  # noqa: F401

                from sqlalchemy import inspect
                inspector = inspect(db.engine)
                tables = inspector.get_table_names()

                if not tables:
                    flask_app.logger.warning("AUTO_CREATE_DB=1: creating tables (empty db).")
                    db.create_all()

                    inspector = inspect(db.engine)
                    flask_app.logger.warning(f"AUTO_CREATE_DB: tables now: {inspector.get_table_names()}")
        except Exception:
            flask_app.logger.exception("AUTO_CREATE_DB: error creating tables.")

    login_manager.init_app(flask_app)
    login_manager.login_view = 'routes.auth'
    login_manager.login_message_category = 'danger'

    from blogora.auth_session import AuthSession, TOKENS_KEY

    @login_manager.request_loader
    def load_account(request):
        auth = g.get("auth_session")
        return auth.account if auth is not None else None

    @flask_app.before_request
    def open_auth_session():
        g.auth_session = AuthSession.open(backend, session.get(TOKENS_KEY))

    @flask_app.after_request
    def persist_auth_tokens(response):
        auth = g.get("auth_session")
        if auth is not None:
            auth.persist(session)
        return response

    @flask_app.teardown_request
    def close_auth_session(exc):
        auth = g.pop("auth_session", None)
        if auth is not None:
            auth.close()

    from blogora.routes import bp as main_bp
    flask_app.register_blueprint(main_bp)

    return flask_app
