"""
Database engine and session factory for the durable store
"""

import logging
from typing import Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = logging.getLogger(__name__)

Base = declarative_base()

_engines: Dict[str, Engine] = {}


def get_engine(database_url: str) -> Engine:
    """Return a shared engine for the URL, creating tables on first use"""
    engine = _engines.get(database_url)
    if engine is None:
        kwargs = {"future": True}
        if database_url.startswith("sqlite"):
            kwargs["connect_args"] = {"check_same_thread": False}
            if database_url in ("sqlite://", "sqlite:///:memory:"):
                # One shared connection, otherwise every checkout sees an empty database
                kwargs["poolclass"] = StaticPool
        engine = create_engine(database_url, **kwargs)

        # Register models before create_all
        from farmdata.models import kv_entry  # noqa: F401

        Base.metadata.create_all(engine)
        _engines[database_url] = engine
        logger.info(f"Durable store ready at {engine.url.render_as_string(hide_password=True)}")
    return engine


def get_session_factory(database_url: str) -> sessionmaker:
    """Session factory bound to the engine for the URL"""
    return sessionmaker(bind=get_engine(database_url), expire_on_commit=False)


def dispose_engines() -> None:
    """Dispose every cached engine (used by scripts and tests)"""
    for engine in _engines.values():
        engine.dispose()
    _engines.clear()
