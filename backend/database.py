# backend/database.py
from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


def make_engine(url: str):
    # SQLite needs cross-thread access and explicit foreign key enforcement
    if "sqlite" in url:
        engine = create_engine(url, connect_args={"check_same_thread": False, "timeout": 30})

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine
    return create_engine(url, pool_pre_ping=True)


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db(request: Request):
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def init_db(engine):
    # Register every model on the metadata before creating tables
    import models.users  # noqa: F401
    import models.product  # noqa: F401
    import models.inventory_item  # noqa: F401
    import models.order  # noqa: F401
    import models.invoice  # noqa: F401
    import models.issue_report  # noqa: F401
    import models.audit_log  # noqa: F401

    Base.metadata.create_all(bind=engine)
