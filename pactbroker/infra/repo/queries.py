"""Spécification de requête unique pour les publications "latest par version consumer".

Plutôt que de chaîner des filtres au fil de l'eau, l'appelant décrit ce qu'il veut dans un
`PublicationQuery` et `latest_pointer_select` produit la requête correspondante.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import ColumnElement, Select, and_, func, select
from sqlalchemy.orm import aliased

from pactbroker.domain.models import ANY, TagFilter

from .models import (
    LatestPactPublicationIdORM,
    PactPublicationORM,
    PacticipantORM,
    TagORM,
    VersionORM,
)

consumer_alias = aliased(PacticipantORM, name="consumer")
provider_alias = aliased(PacticipantORM, name="provider")


@dataclass(frozen=True)
class PublicationQuery:
    """Filtres appliqués aux publications référencées par l'index "latest".

    Tous les champs sont optionnels et combinés en ET.
    """

    consumer_id: int | None = None
    provider_id: int | None = None
    consumer_name: str | None = None
    provider_name: str | None = None
    consumer_version_number: str | None = None
    tag: TagFilter = field(default=ANY)
    order_before: int | None = None
    order_after: int | None = None
    exclude_pact_version_id: int | None = None


def tag_criterion(tag: TagFilter, version_id: ColumnElement) -> ColumnElement | None:
    """Critère SQL du filtre de tag sur la version `version_id` (None si aucun filtre)."""
    tagged = select(TagORM.version_id).where(TagORM.version_id == version_id)
    if tag.kind == "named":
        return tagged.where(TagORM.name == tag.name).exists()
    if tag.kind == "untagged":
        return ~tagged.exists()
    return None


def criteria(filters: PublicationQuery) -> list[ColumnElement]:
    out: list[ColumnElement] = []
    if filters.consumer_id is not None:
        out.append(PactPublicationORM.consumer_id == filters.consumer_id)
    if filters.provider_id is not None:
        out.append(PactPublicationORM.provider_id == filters.provider_id)
    if filters.consumer_name is not None:
        out.append(consumer_alias.name == filters.consumer_name)
    if filters.provider_name is not None:
        out.append(provider_alias.name == filters.provider_name)
    if filters.consumer_version_number is not None:
        out.append(VersionORM.number == filters.consumer_version_number)
    if filters.order_before is not None:
        out.append(VersionORM.order < filters.order_before)
    if filters.order_after is not None:
        out.append(VersionORM.order > filters.order_after)
    if filters.exclude_pact_version_id is not None:
        out.append(PactPublicationORM.pact_version_id != filters.exclude_pact_version_id)
    tag = tag_criterion(filters.tag, VersionORM.id)
    if tag is not None:
        out.append(tag)
    return out


def _joined(stmt: Select) -> Select:
    return (
        stmt.join(
            LatestPactPublicationIdORM,
            LatestPactPublicationIdORM.pact_publication_id == PactPublicationORM.id,
        )
        .join(VersionORM, VersionORM.id == PactPublicationORM.consumer_version_id)
        .join(consumer_alias, consumer_alias.id == PactPublicationORM.consumer_id)
        .join(provider_alias, provider_alias.id == PactPublicationORM.provider_id)
    )


def latest_pointer_select(filters: PublicationQuery) -> Select:
    """Publications pointées par l'index "latest" et satisfaisant `filters`."""
    return _joined(select(PactPublicationORM)).where(*criteria(filters))


def latest_per_consumer_select(filters: PublicationQuery) -> Select:
    """Pour chaque paire (consumer, provider), la publication de la version consumer la plus récente.

    Le filtre de tag restreint les versions candidates avant de retenir la plus récente.
    """
    newest = (
        _joined(
            select(
                PactPublicationORM.consumer_id.label("consumer_id"),
                PactPublicationORM.provider_id.label("provider_id"),
                func.max(VersionORM.order).label("max_order"),
            ).select_from(PactPublicationORM)
        )
        .where(*criteria(filters))
        .group_by(PactPublicationORM.consumer_id, PactPublicationORM.provider_id)
        .subquery()
    )
    return latest_pointer_select(PublicationQuery()).join(
        newest,
        and_(
            newest.c.consumer_id == PactPublicationORM.consumer_id,
            newest.c.provider_id == PactPublicationORM.provider_id,
            newest.c.max_order == VersionORM.order,
        ),
    )


def latest_per_consumer_tag_select(provider_id: int) -> Select:
    """Publications de tête par (consumer, tag consumer) pour un provider.

    Produit des lignes (PactPublicationORM, tag_name).
    """
    newest = (
        _joined(
            select(
                PactPublicationORM.consumer_id.label("consumer_id"),
                TagORM.name.label("tag_name"),
                func.max(VersionORM.order).label("max_order"),
            ).select_from(PactPublicationORM)
        )
        .join(TagORM, TagORM.version_id == VersionORM.id)
        .where(PactPublicationORM.provider_id == provider_id)
        .group_by(PactPublicationORM.consumer_id, TagORM.name)
        .subquery()
    )
    return (
        _joined(select(PactPublicationORM))
        .join(
            newest,
            and_(
                newest.c.consumer_id == PactPublicationORM.consumer_id,
                newest.c.max_order == VersionORM.order,
            ),
        )
        .where(PactPublicationORM.provider_id == provider_id)
        .add_columns(newest.c.tag_name)
    )
