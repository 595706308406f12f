import logging

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from captionburn.config import get_settings
from captionburn.models.base import Base

logger = logging.getLogger(__name__)

settings = get_settings()


def create_sync_engine(database_url: str, echo: bool = False) -> Engine:
    """Sync engine shared by the API process and Celery workers."""
    if database_url.startswith("sqlite"):
        # Workers rasterize in threads; the session may be touched off the creating thread
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
        )
    return create_engine(
        database_url,
        echo=echo,
        pool_size=5,
        max_overflow=0,
        pool_pre_ping=True,  # Check connection health before use
        pool_recycle=1800,
    )


sync_engine = create_sync_engine(settings.database_url, echo=settings.database_echo)

sync_session_maker = sessionmaker(
    sync_engine,
    class_=Session,
    expire_on_commit=False,
)


def init_db(engine: Engine | None = None) -> None:
    """Create tables that do not exist yet."""
    import captionburn.models.render_job  # noqa: F401  (registers the table)

    Base.metadata.create_all(engine or sync_engine)
    logger.info("Database tables ready")
