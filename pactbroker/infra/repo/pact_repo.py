# ============================================================
# Module : pactbroker/infra/repo/pact_repo.py
# Objet  : Registre des publications de pacts + index "latest".
# ============================================================
"""Registre des publications de pacts (création, révision, suppression) et lectures associées.

Invariants maintenus ici:
- pour une paire (version consumer, provider), les numéros de révision forment la suite 1..N;
- republier un contenu de même identité (même sha) ne crée pas de publication;
- l'index `latest_pact_publication_ids_for_consumer_versions` est mis à jour dans la même
  transaction que la publication qu'il référence, et peut être reconstruit à partir des
  publications (`rebuild_latest_pointers`).
"""

from __future__ import annotations

from datetime import datetime

import structlog
from sqlalchemy import and_, delete, func, insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pactbroker.domain.errors import ConflictError, NotFoundError
from pactbroker.domain.models import (
    HeadPact,
    Pacticipant,
    Publication,
    TagFilter,
    Version,
)
from pactbroker.infra.monitoring.metrics import (
    PACT_PUBLICATIONS_DELETED_TOTAL,
    PACT_PUBLICATIONS_TOTAL,
    REVISION_CONFLICTS_TOTAL,
)

from .mappers import to_publication
from .models import (
    LatestPactPublicationIdORM,
    PactPublicationORM,
    PacticipantORM,
    PactVersionORM,
    TagORM,
    VersionORM,
    utcnow,
)
from .pact_content_repo import PactContentRepo
from .queries import (
    PublicationQuery,
    consumer_alias,
    latest_per_consumer_select,
    latest_per_consumer_tag_select,
    latest_pointer_select,
    provider_alias,
)
from .webhook_repo import WebhookRepo

log = structlog.get_logger(__name__)


class PactRepo:
    """Registre append-and-revise des publications de pacts."""

    def __init__(self, session: Session) -> None:
        """Construit le repo avec une session (SQLAlchemy)."""
        self._session = session
        self._contents = PactContentRepo(session)
        self._webhooks = WebhookRepo(session)

    # ------------------------------------------------------------------ écritures

    def create(
        self,
        consumer_version: Version,
        provider: Pacticipant,
        sha: str | None,
        body: str,
        created_at: datetime | None = None,
    ) -> Publication:
        """Publie un pact pour (version consumer, provider) en révision 1.

        Si une publication existe déjà pour cette paire, l'opération devient une révision de la
        publication courante.
        """
        current = self._latest_row(consumer_version.id, provider.id)
        if current is not None:
            return self.revise(current.id, sha, body, created_at=created_at)

        content = self._contents.find_or_create(
            consumer_version.pacticipant.id, provider.id, sha, body
        )
        row = PactPublicationORM(
            consumer_version_id=consumer_version.id,
            provider_id=provider.id,
            consumer_id=consumer_version.pacticipant.id,
            pact_version_id=content.id,
            revision_number=1,
            created_at=created_at or utcnow(),
        )
        self._insert_revision(row)
        PACT_PUBLICATIONS_TOTAL.labels(result="created").inc()
        log.info(
            "pact_publication_created",
            consumer=consumer_version.pacticipant.name,
            consumer_version=consumer_version.number,
            provider=provider.name,
            sha=content.sha,
        )
        return to_publication(row, with_content=True)

    def revise(
        self,
        existing_publication_id: int,
        sha: str | None,
        body: str,
        created_at: datetime | None = None,
    ) -> Publication:
        """Révise une publication existante.

        Crée la révision suivante uniquement si l'identité du contenu change; sinon renvoie la
        publication existante inchangée. La ligne existante est verrouillée (FOR UPDATE) pour
        sérialiser l'attribution du numéro de révision.
        """
        existing = self._session.execute(
            select(PactPublicationORM)
            .where(PactPublicationORM.id == existing_publication_id)
            .with_for_update()
        ).scalar_one_or_none()
        if existing is None:
            raise NotFoundError(f"pact publication {existing_publication_id} not found")
        content = self._contents.find_or_create(
            existing.consumer_id, existing.provider_id, sha, body
        )
        if content.id == existing.pact_version_id:
            PACT_PUBLICATIONS_TOTAL.labels(result="unchanged").inc()
            log.debug("pact_publication_unchanged", pact_publication_id=existing.id)
            return to_publication(existing, with_content=True)

        row = PactPublicationORM(
            consumer_version_id=existing.consumer_version_id,
            provider_id=existing.provider_id,
            consumer_id=existing.consumer_id,
            pact_version_id=content.id,
            revision_number=self.next_revision_number(existing),
            created_at=created_at or utcnow(),
        )
        self._insert_revision(row)
        PACT_PUBLICATIONS_TOTAL.labels(result="revised").inc()
        log.info(
            "pact_publication_revised",
            consumer_version_id=row.consumer_version_id,
            provider_id=row.provider_id,
            revision_number=row.revision_number,
            sha=content.sha,
        )
        return to_publication(row, with_content=True)

    def next_revision_number(self, existing: PactPublicationORM) -> int:
        # Isolé pour pouvoir simuler un écrivain concurrent dans les tests
        return existing.revision_number + 1

    def _insert_revision(self, row: PactPublicationORM) -> None:
        self._session.add(row)
        try:
            self._session.flush()
        except IntegrityError as err:
            key = (row.consumer_version_id, row.provider_id, row.revision_number)
            self._session.rollback()
            REVISION_CONFLICTS_TOTAL.inc()
            log.warning(
                "revision_conflict",
                consumer_version_id=key[0],
                provider_id=key[1],
                revision_number=key[2],
            )
            raise ConflictError(*key) from err
        self._update_latest_pointer(row)

    def _update_latest_pointer(self, row: PactPublicationORM) -> None:
        self._session.merge(
            LatestPactPublicationIdORM(
                consumer_version_id=row.consumer_version_id,
                provider_id=row.provider_id,
                consumer_id=row.consumer_id,
                pact_publication_id=row.id,
                pact_version_id=row.pact_version_id,
            )
        )
        self._session.flush()

    def rebuild_latest_pointers(self) -> int:
        """Recalcule entièrement l'index "latest" depuis les publications.

        Passe de réparation après incident: les publications sont la seule source de vérité.
        Retourne le nombre de lignes d'index écrites.
        """
        newest = (
            select(
                PactPublicationORM.consumer_version_id.label("consumer_version_id"),
                PactPublicationORM.provider_id.label("provider_id"),
                func.max(PactPublicationORM.revision_number).label("revision_number"),
            )
            .group_by(PactPublicationORM.consumer_version_id, PactPublicationORM.provider_id)
            .subquery()
        )
        source = select(
            PactPublicationORM.consumer_version_id,
            PactPublicationORM.provider_id,
            PactPublicationORM.consumer_id,
            PactPublicationORM.id,
            PactPublicationORM.pact_version_id,
        ).join(
            newest,
            and_(
                newest.c.consumer_version_id == PactPublicationORM.consumer_version_id,
                newest.c.provider_id == PactPublicationORM.provider_id,
                newest.c.revision_number == PactPublicationORM.revision_number,
            ),
        )
        self._session.execute(delete(LatestPactPublicationIdORM))
        self._session.execute(
            insert(LatestPactPublicationIdORM.__table__).from_select(
                [
                    "consumer_version_id",
                    "provider_id",
                    "consumer_id",
                    "pact_publication_id",
                    "pact_version_id",
                ],
                source,
            )
        )
        count = self._session.execute(
            select(func.count()).select_from(LatestPactPublicationIdORM)
        ).scalar_one()
        log.info("latest_pointers_rebuilt", count=count)
        return count

    # ------------------------------------------------------------------ suppressions

    def delete_all_between(
        self, consumer_name: str, provider_name: str, tag: str | None = None
    ) -> int:
        """Supprime les publications d'une paire, éventuellement limitées à un tag consumer.

        Les webhooks déclenchés qui les référencent sont supprimés d'abord.
        """
        consumer = self._pacticipant_id(consumer_name)
        provider = self._pacticipant_id(provider_name)
        if consumer is None or provider is None:
            return 0
        stmt = select(PactPublicationORM.id).where(
            PactPublicationORM.consumer_id == consumer,
            PactPublicationORM.provider_id == provider,
        )
        if tag:
            stmt = stmt.where(
                PactPublicationORM.consumer_version_id.in_(
                    select(TagORM.version_id).where(TagORM.name == tag)
                )
            )
        return self._delete_ids(list(self._session.execute(stmt).scalars()))

    def delete(self, consumer_name: str, provider_name: str, consumer_version_number: str) -> int:
        """Supprime toutes les révisions publiées par une version consumer pour un provider."""
        stmt = (
            select(PactPublicationORM.id)
            .join(VersionORM, VersionORM.id == PactPublicationORM.consumer_version_id)
            .join(consumer_alias, consumer_alias.id == PactPublicationORM.consumer_id)
            .join(provider_alias, provider_alias.id == PactPublicationORM.provider_id)
            .where(
                consumer_alias.name == consumer_name,
                provider_alias.name == provider_name,
                VersionORM.number == consumer_version_number,
            )
        )
        return self._delete_ids(list(self._session.execute(stmt).scalars()))

    def delete_by_version_id(self, version_id: int) -> int:
        """Supprime toutes les publications d'une version consumer (tous providers)."""
        stmt = select(PactPublicationORM.id).where(
            PactPublicationORM.consumer_version_id == version_id
        )
        return self._delete_ids(list(self._session.execute(stmt).scalars()))

    def _delete_ids(self, ids: list[int]) -> int:
        if not ids:
            return 0
        self._webhooks.delete_triggered_records(ids)
        self._session.execute(
            delete(LatestPactPublicationIdORM).where(
                LatestPactPublicationIdORM.pact_publication_id.in_(ids)
            )
        )
        self._session.execute(delete(PactPublicationORM).where(PactPublicationORM.id.in_(ids)))
        PACT_PUBLICATIONS_DELETED_TOTAL.inc(len(ids))
        log.info("pact_publications_deleted", count=len(ids))
        return len(ids)

    def delete_all_pact_versions_between(self, consumer_name: str, provider_name: str) -> int:
        """Supprime publications puis contenus (et leurs vérifications) d'une paire."""
        self.delete_all_between(consumer_name, provider_name)
        consumer = self._pacticipant_id(consumer_name)
        provider = self._pacticipant_id(provider_name)
        if consumer is None or provider is None:
            return 0
        return self._contents.delete_all_between(consumer, provider)

    # ------------------------------------------------------------------ lectures

    def find_by_id(self, publication_id: int, with_content: bool = False) -> Publication | None:
        row = self._session.get(PactPublicationORM, publication_id)
        return to_publication(row, with_content) if row else None

    def query(
        self,
        filters: PublicationQuery,
        newest_first: bool = True,
        limit: int | None = None,
        with_content: bool = False,
    ) -> list[Publication]:
        """Publications "latest par version consumer" correspondant à `filters`.

        Tri par ordre de version consumer (puis révision), le plus récent d'abord par défaut.
        """
        stmt = latest_pointer_select(filters)
        if newest_first:
            stmt = stmt.order_by(
                VersionORM.order.desc(), PactPublicationORM.revision_number.desc()
            )
        else:
            stmt = stmt.order_by(VersionORM.order, PactPublicationORM.revision_number.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        rows = self._session.execute(stmt).scalars().all()
        return [to_publication(r, with_content) for r in rows]

    def first(self, filters: PublicationQuery, newest_first: bool = True) -> Publication | None:
        found = self.query(filters, newest_first=newest_first, limit=1, with_content=True)
        return found[0] if found else None

    def latest_per_consumer(
        self, filters: PublicationQuery, order_by_provider: bool = False
    ) -> list[Publication]:
        """Dernière publication par (consumer, provider).

        Par défaut triée par nom de consumer sans tenir compte de la casse; avec
        `order_by_provider`, triée par noms de consumer puis de provider tels quels.
        """
        stmt = latest_per_consumer_select(filters)
        if order_by_provider:
            stmt = stmt.order_by(consumer_alias.name, provider_alias.name)
        else:
            stmt = stmt.order_by(func.lower(consumer_alias.name))
        stmt = stmt.order_by(VersionORM.order.desc())
        rows = self._session.execute(stmt).scalars().all()
        return [to_publication(r) for r in rows]

    def find_head_pacts(self, provider_id: int) -> list[HeadPact]:
        """Publications de tête pour un provider.

        Une publication est de tête si elle est la plus récente de son consumer, toutes versions
        confondues, ou la plus récente parmi les versions consumer portant un tag donné.
        """
        heads: dict[int, tuple[PactPublicationORM, set[str]]] = {}
        for row in self._session.execute(
            latest_per_consumer_select(PublicationQuery(provider_id=provider_id))
        ).scalars():
            heads[row.id] = (row, set())
        for row, tag_name in self._session.execute(latest_per_consumer_tag_select(provider_id)):
            heads.setdefault(row.id, (row, set()))[1].add(tag_name)
        return [
            HeadPact(publication=to_publication(row), head_tag_names=tuple(sorted(tags)))
            for row, tags in heads.values()
        ]

    def find_by_version_and_provider(
        self, version_id: int, provider_id: int
    ) -> Publication | None:
        row = self._latest_row(version_id, provider_id)
        return to_publication(row, with_content=True) if row else None

    def find_by_consumer_version(
        self, consumer_name: str, consumer_version_number: str
    ) -> list[Publication]:
        """Dernière révision publiée par une version consumer, pour chaque provider."""
        filters = PublicationQuery(
            consumer_name=consumer_name, consumer_version_number=consumer_version_number
        )
        stmt = latest_pointer_select(filters).order_by(func.lower(provider_alias.name))
        rows = self._session.execute(stmt).scalars().all()
        return [to_publication(r, with_content=True) for r in rows]

    def find_all_revisions(
        self, consumer_name: str, consumer_version_number: str, provider_name: str
    ) -> list[Publication]:
        """Toutes les révisions (pas seulement la dernière), par ordre de version puis révision."""
        stmt = (
            select(PactPublicationORM)
            .join(VersionORM, VersionORM.id == PactPublicationORM.consumer_version_id)
            .join(consumer_alias, consumer_alias.id == PactPublicationORM.consumer_id)
            .join(provider_alias, provider_alias.id == PactPublicationORM.provider_id)
            .where(
                consumer_alias.name == consumer_name,
                provider_alias.name == provider_name,
                VersionORM.number == consumer_version_number,
            )
            .order_by(VersionORM.order, PactPublicationORM.revision_number)
        )
        rows = self._session.execute(stmt).scalars().all()
        return [to_publication(r, with_content=True) for r in rows]

    def find_pact(
        self,
        consumer_name: str,
        consumer_version_number: str | None,
        provider_name: str,
        sha: str | None = None,
    ) -> Publication | None:
        """Retrouve un pact par version consumer et/ou sha de contenu.

        Avec un sha, la publication la plus récente portant ce contenu est retournée, quelle que
        soit sa révision; sinon la dernière révision de la version (ou du consumer).
        """
        if sha is None:
            return self.first(
                PublicationQuery(
                    consumer_name=consumer_name,
                    provider_name=provider_name,
                    consumer_version_number=consumer_version_number,
                )
            )
        stmt = (
            select(PactPublicationORM)
            .join(VersionORM, VersionORM.id == PactPublicationORM.consumer_version_id)
            .join(consumer_alias, consumer_alias.id == PactPublicationORM.consumer_id)
            .join(provider_alias, provider_alias.id == PactPublicationORM.provider_id)
            .join(PactVersionORM, PactVersionORM.id == PactPublicationORM.pact_version_id)
            .where(
                consumer_alias.name == consumer_name,
                provider_alias.name == provider_name,
                PactVersionORM.sha == sha,
            )
            .order_by(VersionORM.order.desc(), PactPublicationORM.revision_number.desc())
            .limit(1)
        )
        if consumer_version_number is not None:
            stmt = stmt.where(VersionORM.number == consumer_version_number)
        row = self._session.execute(stmt).scalars().first()
        return to_publication(row, with_content=True) if row else None

    def find_all_pact_versions_between(
        self, consumer_name: str, provider_name: str, tag: str | TagFilter | None = None
    ) -> list[Publication]:
        """Dernière révision de chaque version consumer de la paire, la plus récente d'abord."""
        return self.query(
            PublicationQuery(
                consumer_name=consumer_name,
                provider_name=provider_name,
                tag=TagFilter.of(tag),
            )
        )

    def _latest_row(self, version_id: int, provider_id: int) -> PactPublicationORM | None:
        return self._session.execute(
            select(PactPublicationORM)
            .join(
                LatestPactPublicationIdORM,
                LatestPactPublicationIdORM.pact_publication_id == PactPublicationORM.id,
            )
            .where(
                LatestPactPublicationIdORM.consumer_version_id == version_id,
                LatestPactPublicationIdORM.provider_id == provider_id,
            )
        ).scalar_one_or_none()

    def _pacticipant_id(self, name: str) -> int | None:
        return self._session.execute(
            select(PacticipantORM.id).where(PacticipantORM.name == name)
        ).scalar_one_or_none()
