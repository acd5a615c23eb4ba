# ============================================================
# Tests : tests/test_pact_repo.py
# Objet  : Registre des publications (révisions, index latest, suppressions).
# ============================================================
"""
Tests pour le registre des publications de pacts.

Vérifie la numérotation des révisions, l'idempotence des republications, la cohérence de l'index
"latest", les suppressions en cascade et la reconstruction de l'index.
"""

from __future__ import annotations

import json

import pytest
from builders import PactDataBuilder
from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from pactbroker.domain.content import content_sha
from pactbroker.domain.errors import ConflictError, NotFoundError, PactContentError
from pactbroker.infra.repo.models import (
    LatestPactPublicationIdORM,
    PactPublicationORM,
    PactVersionORM,
    TriggeredWebhookORM,
)
from pactbroker.infra.repo.pact_repo import PactRepo

EXPECTED_REVISIONS = 3


def _latest_pointer(session: Session, version_id: int, provider_id: int) -> int | None:
    return session.execute(
        select(LatestPactPublicationIdORM.pact_publication_id).where(
            LatestPactPublicationIdORM.consumer_version_id == version_id,
            LatestPactPublicationIdORM.provider_id == provider_id,
        )
    ).scalar_one_or_none()


def test_create_then_republish_then_revise(builder: PactDataBuilder, session: Session) -> None:
    """Scénario: même contenu -> no-op, contenu différent -> révision 2 et index mis à jour."""
    first = builder.publish("Foo", "1", "Bar", {"h": 1})
    assert first.revision_number == 1
    assert _latest_pointer(session, first.consumer_version.id, first.provider.id) == first.id

    again = builder.publish("Foo", "1", "Bar", {"h": 1})
    assert again.id == first.id
    assert again.revision_number == 1
    assert _latest_pointer(session, first.consumer_version.id, first.provider.id) == first.id

    revised = builder.publish("Foo", "1", "Bar", {"h": 2})
    assert revised.id != first.id
    assert revised.revision_number == 2  # noqa: PLR2004
    assert _latest_pointer(session, first.consumer_version.id, first.provider.id) == revised.id


def test_revision_numbers_are_contiguous(builder: PactDataBuilder) -> None:
    for content in ({"v": 1}, {"v": 2}, {"v": 2}, {"v": 3}, {"v": 3}):
        builder.publish("Foo", "1", "Bar", content)
    revisions = builder.pacts.find_all_revisions("Foo", "1", "Bar")
    assert [p.revision_number for p in revisions] == [1, 2, 3]
    assert len(revisions) == EXPECTED_REVISIONS
    assert json.loads(revisions[-1].content) == {"v": 3}


def test_republish_with_different_key_order_is_noop(
    builder: PactDataBuilder, session: Session
) -> None:
    """Un corps différent en octets mais de même empreinte canonique ne crée rien."""
    version = builder.version("Foo", "1")
    provider = builder.pacticipant("Bar")
    first = builder.pacts.create(version, provider, None, '{"a": 1, "b": 2}')
    second = builder.pacts.create(version, provider, None, '{"b":2,"a":1}')
    assert second.id == first.id
    assert second.revision_number == 1
    count = session.execute(select(func.count()).select_from(PactPublicationORM)).scalar_one()
    assert count == 1


def test_revise_with_explicit_same_sha_is_noop(builder: PactDataBuilder) -> None:
    first = builder.publish("Foo", "1", "Bar", {"a": 1})
    same = builder.pacts.revise(first.id, first.pact_version_sha, '{"a": 1}')
    assert same.id == first.id
    assert same.revision_number == 1


def test_content_is_shared_across_versions_but_scoped_by_provider(
    builder: PactDataBuilder, session: Session
) -> None:
    """Même contenu: une identité par paire (consumer, provider), réutilisée entre versions."""
    p1 = builder.publish("Foo", "1", "Bar", {"same": True})
    p2 = builder.publish("Foo", "2", "Bar", {"same": True})
    p3 = builder.publish("Foo", "1", "Baz", {"same": True})
    assert p1.pact_version_id == p2.pact_version_id
    assert p3.pact_version_id != p1.pact_version_id
    assert p1.pact_version_sha == p3.pact_version_sha == content_sha({"same": True})
    count = session.execute(select(func.count()).select_from(PactVersionORM)).scalar_one()
    assert count == 2  # noqa: PLR2004


def test_concurrent_revision_conflict(
    builder: PactDataBuilder, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Un second écrivain qui calcule le même numéro de révision échoue en conflit."""
    first = builder.publish("Foo", "1", "Bar", {"v": 1})
    monkeypatch.setattr(PactRepo, "next_revision_number", lambda self, existing: 1)
    with pytest.raises(ConflictError) as exc:
        builder.pacts.revise(first.id, None, '{"v": 2}')
    assert exc.value.revision_number == 1


def test_revise_unknown_publication(builder: PactDataBuilder) -> None:
    with pytest.raises(NotFoundError):
        builder.pacts.revise(999, None, "{}")


def test_malformed_content_propagates(builder: PactDataBuilder) -> None:
    version = builder.version("Foo", "1")
    with pytest.raises(PactContentError):
        builder.pacts.create(version, builder.pacticipant("Bar"), None, "not json")


def test_delete_all_between_filtered_by_tag(builder: PactDataBuilder, session: Session) -> None:
    """Seules les publications des versions consumer portant le tag sont supprimées."""
    kept = builder.publish("Foo", "1", "Bar", {"v": 1}, tags=["v1"])
    removed = builder.publish("Foo", "2", "Bar", {"v": 2}, tags=["v2"])
    builder.publish("Foo", "2", "Bar", {"v": 22})
    other_pair = builder.publish("Foo", "2", "Baz", {"v": 2})

    deleted = builder.pacts.delete_all_between("Foo", "Bar", tag="v2")

    assert deleted == 2  # noqa: PLR2004
    remaining = builder.pacts.find_all_pact_versions_between("Foo", "Bar")
    assert [p.id for p in remaining] == [kept.id]
    assert builder.pacts.find_by_id(removed.id) is None
    assert builder.pacts.find_by_id(other_pair.id) is not None
    assert _latest_pointer(session, removed.consumer_version.id, removed.provider.id) is None


def test_delete_all_between_removes_triggered_webhooks_first(
    builder: PactDataBuilder, session: Session
) -> None:
    pact = builder.publish("Foo", "1", "Bar", {"v": 1})
    builder.webhooks.create_triggered(pact.id, "wh-1")

    assert builder.pacts.delete_all_between("Foo", "Bar") == 1
    count = session.execute(select(func.count()).select_from(TriggeredWebhookORM)).scalar_one()
    assert count == 0


def test_delete_all_between_unknown_pacticipants(builder: PactDataBuilder) -> None:
    builder.publish("Foo", "1", "Bar", {"v": 1})
    assert builder.pacts.delete_all_between("Foo", "Nobody") == 0
    assert builder.pacts.delete_all_between("Nobody", "Bar") == 0


def test_delete_single_version_and_by_version_id(builder: PactDataBuilder) -> None:
    p1 = builder.publish("Foo", "1", "Bar", {"v": 1})
    builder.publish("Foo", "1", "Bar", {"v": 11})
    p2 = builder.publish("Foo", "2", "Bar", {"v": 2})
    p3 = builder.publish("Foo", "2", "Baz", {"v": 2})

    assert builder.pacts.delete("Foo", "Bar", "1") == 2  # noqa: PLR2004
    assert builder.pacts.find_all_revisions("Foo", "1", "Bar") == []
    assert builder.pacts.find_by_id(p1.id) is None

    assert builder.pacts.delete_by_version_id(p2.consumer_version.id) == 2  # noqa: PLR2004
    assert builder.pacts.find_by_id(p3.id) is None


def test_delete_all_pact_versions_between(builder: PactDataBuilder, session: Session) -> None:
    pact = builder.publish("Foo", "1", "Bar", {"v": 1})
    builder.verify(pact, "p1", success=True)
    builder.publish("Foo", "1", "Baz", {"v": 1})

    assert builder.pacts.delete_all_pact_versions_between("Foo", "Bar") == 1
    provider_ids = session.execute(select(PactVersionORM.provider_id)).scalars().all()
    assert provider_ids == [builder.pacticipant("Baz").id]


def test_rebuild_latest_pointers(builder: PactDataBuilder, session: Session) -> None:
    """L'index se reconstruit uniquement depuis les publications."""
    builder.publish("Foo", "1", "Bar", {"v": 1})
    latest_foo = builder.publish("Foo", "1", "Bar", {"v": 2})
    latest_baz = builder.publish("Foo", "1", "Baz", {"v": 1})
    session.execute(delete(LatestPactPublicationIdORM))

    assert builder.pacts.rebuild_latest_pointers() == 2  # noqa: PLR2004
    version_id = latest_foo.consumer_version.id
    assert _latest_pointer(session, version_id, latest_foo.provider.id) == latest_foo.id
    assert _latest_pointer(session, version_id, latest_baz.provider.id) == latest_baz.id


def test_find_pact_by_version_and_sha(builder: PactDataBuilder) -> None:
    old = builder.publish("Foo", "1", "Bar", {"v": 1})
    builder.publish("Foo", "1", "Bar", {"v": 2})
    newer = builder.publish("Foo", "2", "Bar", {"v": 1})

    latest_rev = builder.pacts.find_pact("Foo", "1", "Bar")
    assert latest_rev is not None and latest_rev.revision_number == 2  # noqa: PLR2004

    by_sha = builder.pacts.find_pact("Foo", None, "Bar", sha=old.pact_version_sha)
    assert by_sha is not None and by_sha.id == newer.id

    by_version_and_sha = builder.pacts.find_pact("Foo", "1", "Bar", sha=old.pact_version_sha)
    assert by_version_and_sha is not None and by_version_and_sha.id == old.id

    assert builder.pacts.find_pact("Foo", "9", "Bar") is None


def test_find_by_consumer_version(builder: PactDataBuilder) -> None:
    builder.publish("Foo", "1", "bar", {"v": 1})
    builder.publish("Foo", "1", "Alpha", {"v": 1})
    builder.publish("Foo", "1", "Alpha", {"v": 2})

    found = builder.pacts.find_by_consumer_version("Foo", "1")
    assert [(p.provider_name, p.revision_number) for p in found] == [("Alpha", 2), ("bar", 1)]
    assert all(p.content is not None for p in found)


def test_find_all_pact_versions_between_with_tag(builder: PactDataBuilder) -> None:
    builder.publish("Foo", "1", "Bar", {"v": 1}, tags=["prod"])
    builder.publish("Foo", "2", "Bar", {"v": 2})
    p3 = builder.publish("Foo", "3", "Bar", {"v": 3}, tags=["prod"])

    all_versions = builder.pacts.find_all_pact_versions_between("Foo", "Bar")
    assert [p.consumer_version_number for p in all_versions] == ["3", "2", "1"]
    prod = builder.pacts.find_all_pact_versions_between("Foo", "Bar", tag="prod")
    assert [p.consumer_version_number for p in prod] == ["3", "1"]
    assert prod[0].id == p3.id


def test_malformed_content_with_explicit_sha_is_rejected(
    builder: PactDataBuilder, session: Session
) -> None:
    """Un sha fourni par l'appelant ne dispense pas de décoder le corps."""
    version = builder.version("Foo", "1")
    with pytest.raises(PactContentError):
        builder.pacts.create(version, builder.pacticipant("Bar"), "abc123", "not json")
    count = session.execute(select(func.count()).select_from(PactVersionORM)).scalar_one()
    assert count == 0
    assert builder.pacts.find_all_revisions("Foo", "1", "Bar") == []


def test_malformed_revision_with_explicit_sha_is_rejected(builder: PactDataBuilder) -> None:
    first = builder.publish("Foo", "1", "Bar", {"x": 1})
    with pytest.raises(PactContentError):
        builder.pacts.revise(first.id, "abc123", "{broken")
    revisions = builder.pacts.find_all_revisions("Foo", "1", "Bar")
    assert [p.revision_number for p in revisions] == [1]
