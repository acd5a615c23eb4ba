"""Stockage adressé par contenu des corps de pacts.

Un contenu est identifié par (consumer, provider, sha): le même corps publié pour deux providers
différents donne deux identités distinctes. Une identité est créée au plus une fois puis réutilisée.
"""

from __future__ import annotations

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pactbroker.domain.content import content_sha, parse_content
from pactbroker.domain.errors import PactContentError
from pactbroker.domain.models import PactContent

from .mappers import to_pact_content
from .models import PactVersionORM, VerificationORM, utcnow


class PactContentRepo:
    """Find-or-create des contenus de pact."""

    def __init__(self, session: Session) -> None:
        """Construit le repo avec une session (SQLAlchemy)."""
        self._session = session

    def find_or_create(
        self, consumer_id: int, provider_id: int, sha: str | None, body: str
    ) -> PactContent:
        """Retourne le contenu existant pour (consumer, provider, sha) ou le crée.

        Le corps est toujours décodé, même si `sha` est fourni: un corps illisible n'est jamais
        stocké. Si `sha` est absent il est calculé depuis le corps. Toute erreur de création est
        signalée par PactContentError.
        """
        parse_content(body)
        if sha is None:
            sha = content_sha(body)
        row = self._find_row(consumer_id, provider_id, sha)
        if row is not None:
            return to_pact_content(row)
        row = PactVersionORM(
            consumer_id=consumer_id,
            provider_id=provider_id,
            sha=sha,
            content=body,
            created_at=utcnow(),
        )
        self._session.add(row)
        try:
            self._session.flush()
        except SQLAlchemyError as err:
            # doublon concurrent ou refus du stockage: l'opération échoue, l'appelant relance
            self._session.rollback()
            raise PactContentError(f"could not store pact content sha={sha}: {err}") from err
        return to_pact_content(row)

    def delete_all_between(self, consumer_id: int, provider_id: int) -> int:
        """Supprime tous les contenus de la paire et les vérifications qui les référencent.

        Les publications doivent avoir été supprimées au préalable.
        """
        ids = select(PactVersionORM.id).where(
            PactVersionORM.consumer_id == consumer_id,
            PactVersionORM.provider_id == provider_id,
        )
        self._session.execute(
            delete(VerificationORM).where(VerificationORM.pact_version_id.in_(ids))
        )
        result = self._session.execute(
            delete(PactVersionORM).where(
                PactVersionORM.consumer_id == consumer_id,
                PactVersionORM.provider_id == provider_id,
            )
        )
        return result.rowcount or 0

    def _find_row(self, consumer_id: int, provider_id: int, sha: str) -> PactVersionORM | None:
        return self._session.execute(
            select(PactVersionORM).where(
                PactVersionORM.consumer_id == consumer_id,
                PactVersionORM.provider_id == provider_id,
                PactVersionORM.sha == sha,
            )
        ).scalar_one_or_none()
