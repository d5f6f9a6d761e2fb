from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

from apps.api.app.core.config import settings

_is_sqlite = settings.DATABASE_URL.startswith("sqlite")

_connect_args = {}
if _is_sqlite:
    _connect_args = {"check_same_thread": False}

engine = create_engine(
    settings.DATABASE_URL,
    connect_args=_connect_args,
    pool_pre_ping=True,
)

if _is_sqlite:
    # pysqlite manages BEGIN itself and breaks SAVEPOINT; let SQLAlchemy emit it.
    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
