import logging
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from ..core.database import ActionRecord

logger = logging.getLogger(__name__)


class ActionLogger(Protocol):
    """Append-only sink for flash run events"""

    def record(self, device_label: str, action: str, outcome: str) -> None:
        ...


class LoggingActionLogger:
    """Writes action records to the Python log only"""

    def record(self, device_label: str, action: str, outcome: str) -> None:
        logger.info(f"[{device_label}] {action}: {outcome}")


class SqlActionLogger:
    """Persists action records through SQLAlchemy"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def record(self, device_label: str, action: str, outcome: str) -> None:
        with self.session_factory() as session:
            session.add(ActionRecord(device_label=device_label, action=action, outcome=outcome))
            session.commit()

    def recent(self, limit: int = 50, device_label: Optional[str] = None) -> List[Dict[str, Any]]:
        """Newest records first"""
        stmt = select(ActionRecord).order_by(ActionRecord.id.desc()).limit(limit)
        if device_label:
            stmt = stmt.where(ActionRecord.device_label == device_label)
        with self.session_factory() as session:
            rows = session.scalars(stmt).all()
        return [
            {
                "id": row.id,
                "device_label": row.device_label,
                "action": row.action,
                "outcome": row.outcome,
                "created_at": row.created_at.isoformat() if row.created_at else None,
            }
            for row in rows
        ]


__all__ = ["ActionLogger", "LoggingActionLogger", "SqlActionLogger"]
