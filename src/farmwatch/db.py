from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
import logging

from .config import settings
from .models.base import Base
from sqlalchemy import event

engine = create_engine(
    settings.database_url,
    connect_args=({"check_same_thread": False} if settings.database_url.startswith("sqlite") else {}),
)

# Ensure SQLite enforces foreign key constraints at the connection level.
# PostgreSQL enforces FKs by default; SQLite requires the PRAGMA to be set per connection.
if settings.database_url.startswith("sqlite"):
    def _enable_sqlite_foreign_keys(dbapi_con, connection_record):
        try:
            cursor = dbapi_con.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
        except Exception as exc:
            logging.getLogger(__name__).warning(
                "Could not enable SQLite foreign_keys PRAGMA on connect: %s", exc
            )

    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """Database dependency for getting a session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Initialize database tables and hook change capture into sessions."""
    # Importing the models package registers every table with Base.metadata.
    from . import models  # noqa: F401
    from .changes import install_change_capture

    Base.metadata.create_all(bind=engine)
    install_change_capture(SessionLocal)
