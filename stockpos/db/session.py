from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from stockpos.core.config import Settings


def build_engine(settings: Settings) -> Engine:
    engine_kwargs: dict[str, object] = {
        # Detect and recover from stale pooled connections.
        "pool_pre_ping": True,
        "echo": settings.db_echo,
    }

    if settings.database_url.lower().startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
    else:
        engine_kwargs.update(
            {
                "pool_size": settings.db_pool_size,
                "max_overflow": settings.db_max_overflow,
                "pool_timeout": settings.db_pool_timeout_seconds,
                "pool_recycle": settings.db_pool_recycle_seconds,
            }
        )

    return create_engine(settings.database_url, **engine_kwargs)


class Database:
    """Engine plus session factory, opened at startup and disposed at shutdown."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine: Engine | None = None
        self._session_factory: sessionmaker[Session] | None = None

    def connect(self) -> None:
        if self.engine is not None:
            return
        self.engine = build_engine(self.settings)
        self._session_factory = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=self.engine,
        )

    def dispose(self) -> None:
        if self.engine is not None:
            self.engine.dispose()
        self.engine = None
        self._session_factory = None

    def session(self) -> Session:
        if self._session_factory is None:
            raise RuntimeError("Database is not connected")
        return self._session_factory()

    def ping(self) -> bool:
        if self.engine is None:
            return False
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
