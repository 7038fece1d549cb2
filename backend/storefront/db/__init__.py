import importlib
import logging
from typing import Iterator, Optional

from fastapi import Request
from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.adapters.storage import StorageBucket, build_bucket
from storefront.config import Settings, settings as default_settings

log = logging.getLogger(__name__)

Base = declarative_base()

# model modules must be imported before create_all so the metadata is populated
MODEL_MODULES = [
    "storefront.models.user",
    "storefront.models.product",
    "storefront.models.analytics_event",
]


class BackendClient:
    """
    Owns the database engine, the session factory and the object storage bucket.

    One client is built per application (see ``storefront.main.create_app``) or
    per test; nothing in the package keeps a module-level instance.
    """

    def __init__(self, database_url: str, bucket: StorageBucket, echo: bool = False):
        kwargs = {}
        if database_url.startswith("sqlite"):
            # catalog reads run on a worker thread
            kwargs["connect_args"] = {"check_same_thread": False}
            if ":memory:" in database_url:
                kwargs["poolclass"] = StaticPool
        self.database_url = database_url
        self.engine = create_engine(database_url, future=True, echo=echo, **kwargs)
        self.SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )
        self.bucket = bucket

    @classmethod
    def from_settings(cls, cfg: Optional[Settings] = None) -> "BackendClient":
        cfg = cfg or default_settings
        return cls(cfg.DATABASE_URL, build_bucket(cfg))

    def init_db(self, reset: bool = False):
        """Create the catalog tables; drop them first when ``reset`` is set."""
        for mod in MODEL_MODULES:
            importlib.import_module(mod)
        if reset:
            log.info("Resetting database tables")
            Base.metadata.drop_all(bind=self.engine)
        Base.metadata.create_all(bind=self.engine)
        log.info("Database initialized (%s)", self.engine.url.render_as_string(hide_password=True))

    def session(self) -> Session:
        return self.SessionLocal()

    def ping(self) -> bool:
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            return True
        except Exception:
            log.exception("Database ping failed")
            return False

    def dispose(self):
        self.engine.dispose()


def get_backend(request: Request) -> BackendClient:
    return request.app.state.backend


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_db(request: Request) -> Iterator[Session]:
    db = get_backend(request).session()
    try:
        yield db
    finally:
        db.close()
