"""Conversions ORM -> objets de domaine."""

from __future__ import annotations

from pactbroker.domain.models import (
    PactContent,
    Pacticipant,
    Publication,
    Tag,
    VerificationResult,
    Version,
)

from .models import (
    PactPublicationORM,
    PactVersionORM,
    PacticipantORM,
    TagORM,
    VerificationORM,
    VersionORM,
)


def to_pacticipant(row: PacticipantORM) -> Pacticipant:
    return Pacticipant(id=row.id, name=row.name)


def to_tag(row: TagORM) -> Tag:
    return Tag(name=row.name, version_id=row.version_id, created_at=row.created_at)


def to_version(row: VersionORM) -> Version:
    return Version(
        id=row.id,
        pacticipant=to_pacticipant(row.pacticipant),
        number=row.number,
        order=row.order,
        created_at=row.created_at,
        tags=tuple(to_tag(t) for t in row.tags),
    )


def to_pact_content(row: PactVersionORM) -> PactContent:
    return PactContent(
        id=row.id,
        consumer_id=row.consumer_id,
        provider_id=row.provider_id,
        sha=row.sha,
        content=row.content,
        created_at=row.created_at,
    )


def to_publication(row: PactPublicationORM, with_content: bool = False) -> Publication:
    return Publication(
        id=row.id,
        consumer=to_pacticipant(row.consumer),
        provider=to_pacticipant(row.provider),
        consumer_version=to_version(row.consumer_version),
        revision_number=row.revision_number,
        pact_version_id=row.pact_version_id,
        pact_version_sha=row.pact_version.sha,
        created_at=row.created_at,
        content=row.pact_version.content if with_content else None,
    )


def to_verification(row: VerificationORM) -> VerificationResult:
    return VerificationResult(
        id=row.id,
        pact_version_id=row.pact_version_id,
        provider_version=to_version(row.provider_version),
        success=bool(row.success),
        created_at=row.created_at,
    )
