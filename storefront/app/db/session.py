from __future__ import annotations

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker


def _serialize_sqlite_writers(engine: Engine) -> None:
    """
    SQLite n'a pas de SELECT ... FOR UPDATE.

    On désactive le BEGIN implicite du driver et on ouvre chaque transaction
    avec BEGIN IMMEDIATE : le verrou d'écriture est pris dès le début, les
    checkouts concurrents attendent (busy timeout) comme avec un row lock.
    """

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(database_url: str) -> Engine:
    if database_url.startswith("sqlite"):
        engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        _serialize_sqlite_writers(engine)
        return engine

    return create_engine(database_url, pool_pre_ping=True)


class Database:
    """
    Handle explicite sur le stockage.

    Construit au démarrage du process (lifespan FastAPI, script, test),
    fermé via dispose() à l'arrêt. Aucun pool global au niveau module.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self.session_factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    @classmethod
    def from_url(cls, database_url: str) -> "Database":
        return cls(build_engine(database_url))

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def session(self) -> Session:
        return self.session_factory()

    def dispose(self) -> None:
        self.engine.dispose()
