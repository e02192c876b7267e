from __future__ import annotations

from pathlib import Path

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def create_db_engine(database_url: str) -> Engine:
    """
    Build the one engine shared by every SQL-backed component and make sure
    the tables exist. Callers pass the returned engine around explicitly.
    """
    from . import projects, repository  # noqa: F401  (register tables)

    connect_args = {}
    if database_url.startswith("sqlite"):
        # Extraction runs on worker threads.
        connect_args["check_same_thread"] = False
        db_file = database_url.split(":///", 1)[1] if ":///" in database_url else ""
        if db_file and db_file != ":memory:":
            Path(db_file).parent.mkdir(parents=True, exist_ok=True)
    engine = create_engine(database_url, future=True, connect_args=connect_args)
    Base.metadata.create_all(engine)
    return engine
