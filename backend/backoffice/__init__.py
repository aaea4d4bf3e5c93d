# backend/backoffice/__init__.py
from flask import Flask

from .config import Config


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Import models so metadata is complete before create_all
    from . import models  # noqa: F401
    from .gateway import BackOffice
    from .services.session_service import SessionSettings, SessionVault
    from .store import EntityStore

    store = EntityStore(app.config["DATABASE_URL"])
    store.create_all()
    vault = SessionVault(app.config["SESSION_DATABASE_URL"])

    backoffice = BackOffice(
        store, vault, SessionSettings.from_config(app.config),
        default_currency=app.config["DEFAULT_CURRENCY"],
    )
    app.extensions["backoffice"] = backoffice

    if app.config.get("SEED_DEMO_DATA"):
        from .demo_data import seed_demo_data
        seed_demo_data(backoffice)

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    app.logger.info("Back office ready (entities=%s, sessions=%s)",
                    app.config["DATABASE_URL"], app.config["SESSION_DATABASE_URL"])
    return app
