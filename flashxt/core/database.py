"""Database Configuration and Session Management"""

import os
import logging
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from flashxt.config import Settings

logger = logging.getLogger(__name__)

# Database base class for models
Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActionRecord(Base):
    """One append-only action-log row"""

    __tablename__ = "action_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    device_label = Column(String(128), nullable=False, index=True)
    action = Column(String(255), nullable=False)
    outcome = Column(String(64), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class DeviceRecord(Base):
    """Properties read from a device over ADB"""

    __tablename__ = "devices"

    id = Column(Integer, primary_key=True, autoincrement=True)
    serial = Column(String(128), nullable=False, index=True)
    model = Column(String(128))
    brand = Column(String(128))
    device = Column(String(128))
    android_version = Column(String(32))
    sdk_version = Column(String(16))
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


def resolve_database_url(url: str) -> str:
    """Expand ~ in SQLite file URLs and make sure the parent directory exists"""
    prefix = "sqlite:///"
    if not url.startswith(prefix) or url == "sqlite:///:memory:":
        return url

    path = os.path.expanduser(url[len(prefix):])
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    return prefix + path


def create_db_engine(settings: Settings) -> Engine:
    """Create the engine and make sure the tables exist"""
    engine = create_engine(
        resolve_database_url(settings.DATABASE_URL),
        echo=settings.DATABASE_ECHO,
        future=True,
    )
    Base.metadata.create_all(engine)
    logger.info("Database connection initialized")
    return engine


def create_session_factory(engine: Engine) -> sessionmaker:
    """Session factory bound to engine"""
    return sessionmaker(
        bind=engine,
        expire_on_commit=False,
        autoflush=False,
        future=True,
    )
