"""Traces des webhooks déclenchés, vues depuis le registre de publications.

Seule la cascade de suppression est gérée ici: l'exécution des webhooks relève d'un autre module.
"""

from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import delete
from sqlalchemy.orm import Session

from .models import TriggeredWebhookORM, utcnow


class WebhookRepo:
    """Accès minimal aux webhooks déclenchés."""

    def __init__(self, session: Session) -> None:
        """Construit le repo avec une session (SQLAlchemy)."""
        self._session = session

    def create_triggered(self, pact_publication_id: int, webhook_uuid: str) -> int:
        row = TriggeredWebhookORM(
            webhook_uuid=webhook_uuid,
            pact_publication_id=pact_publication_id,
            created_at=utcnow(),
        )
        self._session.add(row)
        self._session.flush()
        return row.id

    def delete_triggered_records(self, pact_publication_ids: Iterable[int]) -> int:
        """Supprime les webhooks déclenchés par ces publications."""
        ids = list(pact_publication_ids)
        result = self._session.execute(
            delete(TriggeredWebhookORM).where(TriggeredWebhookORM.pact_publication_id.in_(ids))
        )
        return result.rowcount or 0
