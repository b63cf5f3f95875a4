"""Database migration utilities."""

from pathlib import Path

from alembic import command
from alembic.config import Config

from sugarwatch.config import settings
from sugarwatch.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def get_alembic_config() -> Config:
    """Alembic configuration rooted at the project directory."""
    app_root = Path(__file__).parent.parent.parent
    alembic_ini = app_root / "alembic.ini"

    if not alembic_ini.exists():
        raise FileNotFoundError(f"alembic.ini not found at {alembic_ini}")

    config = Config(str(alembic_ini))
    config.set_main_option("script_location", str(app_root / "migrations"))
    return config


def run_migrations() -> None:
    """Upgrade the database to the latest revision."""
    logger.info("Running database migrations")
    try:
        command.upgrade(get_alembic_config(), "head")
    except Exception as e:
        logger.error("Database migration failed", error=str(e))
        raise
    logger.info("Database migrations completed")


def main() -> None:
    """Console entry point: `sugarwatch-migrate`."""
    setup_logging(settings.log_format, settings.log_level, settings.service_name)
    run_migrations()
