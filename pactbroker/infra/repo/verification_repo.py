"""Registre des résultats de vérification côté provider."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.orm import Session

from pactbroker.domain.models import Publication, VerificationResult, Version

from .mappers import to_verification
from .models import TagORM, VerificationORM, utcnow

log = structlog.get_logger(__name__)


class VerificationRepo:
    """Création et agrégats des vérifications."""

    def __init__(self, session: Session) -> None:
        """Construit le repo avec une session (SQLAlchemy)."""
        self._session = session

    def create(
        self,
        publication: Publication,
        provider_version: Version,
        success: bool,
        created_at: datetime | None = None,
    ) -> VerificationResult:
        """Enregistre une vérification du contenu de `publication` par `provider_version`."""
        row = VerificationORM(
            pact_version_id=publication.pact_version_id,
            provider_id=provider_version.pacticipant.id,
            provider_version_id=provider_version.id,
            success=success,
            created_at=created_at or utcnow(),
        )
        self._session.add(row)
        self._session.flush()
        log.info(
            "verification_recorded",
            provider=provider_version.pacticipant.name,
            provider_version=provider_version.number,
            pact_version_id=publication.pact_version_id,
            success=success,
        )
        return to_verification(row)

    def successfully_verified_pact_version_ids(
        self, provider_id: int, provider_tag: str
    ) -> set[int]:
        """Contenus vérifiés avec succès par une version provider portant `provider_tag`."""
        stmt = (
            select(VerificationORM.pact_version_id)
            .join(TagORM, TagORM.version_id == VerificationORM.provider_version_id)
            .where(
                VerificationORM.provider_id == provider_id,
                VerificationORM.success.is_(True),
                TagORM.name == provider_tag,
            )
            .distinct()
        )
        return set(self._session.execute(stmt).scalars())

    def find_first_for(self, pact_version_ids: Iterable[int]) -> dict[int, VerificationResult]:
        """Premier résultat de vérification (par date) pour chaque contenu."""
        stmt = (
            select(VerificationORM)
            .where(VerificationORM.pact_version_id.in_(list(pact_version_ids)))
            .order_by(VerificationORM.created_at, VerificationORM.id)
        )
        first: dict[int, VerificationResult] = {}
        for row in self._session.execute(stmt).scalars():
            first.setdefault(row.pact_version_id, to_verification(row))
        return first
