from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from courtbook.core.config import settings


def build_engine(url: str, **kwargs) -> Engine:
    """
    Create an engine for ``url``.

    PostgreSQL reservations serialise on ``SELECT ... FOR UPDATE`` of the court
    rows. SQLite ignores FOR UPDATE, so SQLite connections start every
    transaction with ``BEGIN IMMEDIATE`` instead: the write lock is taken up
    front and concurrent reservations run one after another.
    """
    if url.startswith("sqlite"):
        connect_args = kwargs.pop("connect_args", {})
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", 30)
        engine = create_engine(url, connect_args=connect_args, **kwargs)

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_begin(dbapi_connection, connection_record):
            # Let SQLAlchemy emit BEGIN itself (also makes SAVEPOINT work)
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _begin_immediate(conn):
            conn.exec_driver_sql("BEGIN IMMEDIATE")

        return engine

    # For PostgreSQL, we might need to adjust pool_size and max_overflow in production
    return create_engine(url, pool_pre_ping=True, **kwargs)


engine = build_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
