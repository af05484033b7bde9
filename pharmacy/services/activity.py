"""
Journal d'activité (fire-and-forget).

Un échec d'écriture est loggé mais ne remonte JAMAIS à l'opération
qui l'a déclenché (la vente est déjà commitée).
"""
from __future__ import annotations

from typing import Callable, Protocol

from sqlalchemy.orm import Session

from pharmacy.app.core.logging import get_logger
from pharmacy.app.db.models.models_v1 import ActivityLog

logger = get_logger(__name__)


class ActivityRecorder(Protocol):
    def record(
        self,
        event_type: str,
        description: str,
        *,
        entity: str | None = None,
        entity_id: str | None = None,
        performed_by: str | None = None,
    ) -> None: ...


class DbActivityLog:
    """Écrit dans activity_log via sa propre session (hors transaction métier)."""

    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def record(
        self,
        event_type: str,
        description: str,
        *,
        entity: str | None = None,
        entity_id: str | None = None,
        performed_by: str | None = None,
    ) -> None:
        db = self._session_factory()
        try:
            db.add(
                ActivityLog(
                    event_type=event_type,
                    description=description,
                    entity=entity,
                    entity_id=entity_id,
                    performed_by=performed_by,
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            logger.warning(
                "activity_log_write_failed",
                event_type=event_type,
                entity=entity,
                entity_id=entity_id,
                exc_info=True,
            )
        finally:
            db.close()


def safe_record(
    recorder: ActivityRecorder | None,
    event_type: str,
    description: str,
    **fields: str | None,
) -> None:
    """Appelle recorder.record en avalant (et loggant) toute erreur."""
    if recorder is None:
        return
    try:
        recorder.record(event_type, description, **fields)
    except Exception:
        logger.warning("activity_log_failed", event_type=event_type, exc_info=True)
