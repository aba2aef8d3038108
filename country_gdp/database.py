import logging
from typing import Any, Dict

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import declarative_base, sessionmaker

from country_gdp.config import Settings, settings

logger = logging.getLogger("country_gdp.db")


def make_engine(config: Settings) -> Engine:
    url = make_url(config.DATABASE_URL)
    engine_kwargs: Dict[str, Any] = {"pool_pre_ping": True}
    if url.get_backend_name() == "sqlite":
        # Refresh runs use the engine from worker threads
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        engine_kwargs["pool_size"] = config.DB_POOL_SIZE
        engine_kwargs["max_overflow"] = config.DB_MAX_OVERFLOW
    return create_engine(url, **engine_kwargs)


engine = make_engine(settings)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def init_db(bind: Engine | None = None) -> None:
    """Create tables on startup."""
    from country_gdp import models  # noqa: F401

    target = bind if bind is not None else engine
    Base.metadata.create_all(bind=target)
    logger.info("Database initialized: %s", target.url.render_as_string(hide_password=True))


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
