import logging

import psycopg2
from psycopg2 import sql
from psycopg2.extensions import ISOLATION_LEVEL_AUTOCOMMIT
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session

from courtbook.core.config import settings
from courtbook.models.organization import AppSetting

logger = logging.getLogger(__name__)

DEFAULT_APP_SETTINGS = {
    "booking_window_days": (str(settings.DEFAULT_BOOKING_WINDOW_DAYS), "Days ahead that can be booked"),
    "payment_timeout_minutes": (str(settings.DEFAULT_PAYMENT_TIMEOUT_MINUTES), "Minutes before an unpaid booking expires"),
    "max_consecutive_slots": (str(settings.DEFAULT_MAX_CONSECUTIVE_SLOTS), "Max slots per user per day"),
    "slot_duration_minutes": (str(settings.DEFAULT_SLOT_DURATION_MINUTES), "Default slot length for new courts"),
}


def create_database(database_url: str = None):
    """Create the PostgreSQL database if it doesn't exist. No-op for other backends."""
    url = make_url(database_url or settings.DATABASE_URL)
    if url.get_backend_name() != "postgresql":
        return

    try:
        # Connect to default 'postgres' database to check/create target DB
        con = psycopg2.connect(
            user=url.username,
            password=url.password,
            host=url.host,
            port=url.port or 5432,
            dbname="postgres"
        )
        con.set_isolation_level(ISOLATION_LEVEL_AUTOCOMMIT)
        cur = con.cursor()

        cur.execute("SELECT 1 FROM pg_catalog.pg_database WHERE datname = %s", (url.database,))
        exists = cur.fetchone()

        if not exists:
            logger.info("Database %s does not exist. Creating...", url.database)
            cur.execute(sql.SQL("CREATE DATABASE {}").format(sql.Identifier(url.database)))
            logger.info("Database %s created successfully.", url.database)
        else:
            logger.info("Database %s already exists.", url.database)

        cur.close()
        con.close()
    except psycopg2.Error as e:
        logger.error("Error creating database: %s", e)
        # Proceeding anyway, maybe it exists or connection params are for the target DB directly


def seed_app_settings(db: Session) -> int:
    """Insert missing global booking settings. Returns the number of rows added."""
    existing = {row.key for row in db.query(AppSetting.key).all()}
    added = 0
    for key, (value, description) in DEFAULT_APP_SETTINGS.items():
        if key not in existing:
            db.add(AppSetting(key=key, value=value, description=description))
            added += 1
    db.commit()
    return added


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    create_database()
