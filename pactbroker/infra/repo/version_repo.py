# ============================================================
# Module : pactbroker/infra/repo/version_repo.py
# Objet  : Graphe versions/tags d'un composant (lectures pures + créations).
# ============================================================
"""Accès SQL aux versions et aux tags.

Les requêtes de lecture sont pures (aucun effet de bord) et servent au moteur de résolution:
versions ordonnées, présence d'un tag, première utilisation d'un nom de tag, versions
antérieures/postérieures à un ordre donné.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

import structlog
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from pactbroker.domain.errors import NotFoundError
from pactbroker.domain.models import Pacticipant, Tag, Version

from .mappers import to_tag, to_version
from .models import TagORM, VerificationORM, VersionORM, utcnow
from .pact_repo import PactRepo

log = structlog.get_logger(__name__)


class VersionRepo:
    """Versions et tags par composant."""

    def __init__(self, session: Session) -> None:
        """Construit le repo avec une session (SQLAlchemy)."""
        self._session = session

    def create(
        self, pacticipant: Pacticipant, number: str, created_at: datetime | None = None
    ) -> Version:
        """Crée une version avec l'ordre suivant pour ce composant.

        L'ordre est attribué à la création (max + 1) et n'est jamais réutilisé; la contrainte
        unique (pacticipant_id, order) rejette une attribution concurrente.
        """
        current_max = self._session.execute(
            select(func.max(VersionORM.order)).where(VersionORM.pacticipant_id == pacticipant.id)
        ).scalar_one()
        row = VersionORM(
            number=number,
            order=(current_max or 0) + 1,
            pacticipant_id=pacticipant.id,
            created_at=created_at or utcnow(),
        )
        self._session.add(row)
        self._session.flush()
        return to_version(row)

    def find_by_id(self, version_id: int) -> Version | None:
        row = self._session.get(VersionORM, version_id)
        return to_version(row) if row else None

    def find_by_pacticipant_and_number(
        self, pacticipant: Pacticipant, number: str
    ) -> Version | None:
        """Retourne la version `number` du composant, ou None."""
        row = self._session.execute(
            select(VersionORM).where(
                VersionORM.pacticipant_id == pacticipant.id, VersionORM.number == number
            )
        ).scalar_one_or_none()
        return to_version(row) if row else None

    def find_or_create(
        self, pacticipant: Pacticipant, number: str, created_at: datetime | None = None
    ) -> Version:
        return self.find_by_pacticipant_and_number(pacticipant, number) or self.create(
            pacticipant, number, created_at
        )

    def create_tag(self, version: Version, name: str, created_at: datetime | None = None) -> Tag:
        """Pose le tag `name` sur la version (sans effet si déjà présent).

        Lève NotFoundError si la version n'existe pas.
        """
        target = self._session.get(VersionORM, version.id)
        if target is None:
            raise NotFoundError(f"version {version.id} not found")
        existing = self._session.get(TagORM, (version.id, name))
        if existing is not None:
            return to_tag(existing)
        row = TagORM(version_id=version.id, name=name, created_at=created_at or utcnow())
        self._session.add(row)
        self._session.flush()
        # la relation `tags` de la version est en lecture seule: on la rafraîchit
        self._session.expire(target, ["tags"])
        return to_tag(row)

    def find_ordered(self, pacticipant: Pacticipant) -> list[Version]:
        """Versions du composant par ordre croissant."""
        rows = self._session.execute(
            select(VersionORM)
            .where(VersionORM.pacticipant_id == pacticipant.id)
            .order_by(VersionORM.order)
        ).scalars()
        return [to_version(r) for r in rows]

    def find_before(self, pacticipant: Pacticipant, order: int) -> list[Version]:
        """Versions d'ordre strictement inférieur, la plus récente en premier."""
        rows = self._session.execute(
            select(VersionORM)
            .where(VersionORM.pacticipant_id == pacticipant.id, VersionORM.order < order)
            .order_by(VersionORM.order.desc())
        ).scalars()
        return [to_version(r) for r in rows]

    def find_after(self, pacticipant: Pacticipant, order: int) -> list[Version]:
        """Versions d'ordre strictement supérieur, la plus ancienne en premier."""
        rows = self._session.execute(
            select(VersionORM)
            .where(VersionORM.pacticipant_id == pacticipant.id, VersionORM.order > order)
            .order_by(VersionORM.order)
        ).scalars()
        return [to_version(r) for r in rows]

    def has_tag(self, version: Version, name: str) -> bool:
        return self._session.get(TagORM, (version.id, name)) is not None

    def first_tag_use(
        self, pacticipant: Pacticipant, names: Iterable[str] | None = None
    ) -> dict[str, datetime]:
        """Première date d'utilisation de chaque nom de tag, toutes versions confondues.

        Les noms jamais utilisés par le composant sont absents du résultat.
        """
        stmt = (
            select(TagORM.name, func.min(TagORM.created_at))
            .join(VersionORM, VersionORM.id == TagORM.version_id)
            .where(VersionORM.pacticipant_id == pacticipant.id)
            .group_by(TagORM.name)
        )
        if names is not None:
            stmt = stmt.where(TagORM.name.in_(list(names)))
        return {name: created_at for name, created_at in self._session.execute(stmt)}

    def delete(self, version: Version) -> None:
        """Supprime une version, ses publications, ses tags et ses vérifications."""
        PactRepo(self._session).delete_by_version_id(version.id)
        self._session.execute(
            delete(VerificationORM).where(VerificationORM.provider_version_id == version.id)
        )
        self._session.execute(delete(TagORM).where(TagORM.version_id == version.id))
        self._session.execute(delete(VersionORM).where(VersionORM.id == version.id))
        log.info("version_deleted", version_id=version.id, number=version.number)
