"""
Tests pour les filtres de tag, les erreurs de domaine, les logs structurés et les métriques.
"""

from __future__ import annotations

import json

import pytest
import structlog
from builders import PactDataBuilder
from prometheus_client import REGISTRY

from pactbroker.core.logging import setup_logging
from pactbroker.domain.errors import ConflictError, NotFoundError, PactBrokerError
from pactbroker.domain.models import ANY, UNTAGGED, TagFilter


def test_tag_filter_normalisation() -> None:
    assert TagFilter.of(None) is ANY
    assert TagFilter.of(UNTAGGED) is UNTAGGED
    assert TagFilter.of("prod") == TagFilter.named("prod")
    assert TagFilter.of("untagged") != UNTAGGED
    with pytest.raises(ValueError):
        TagFilter.named("")


def test_error_hierarchy() -> None:
    err = ConflictError(1, 2, 3)
    assert isinstance(err, PactBrokerError)
    assert (err.consumer_version_id, err.provider_id, err.revision_number) == (1, 2, 3)
    assert issubclass(NotFoundError, LookupError)


def test_setup_logging_json(capsys: pytest.CaptureFixture[str]) -> None:
    setup_logging("DEBUG", json=True)
    try:
        structlog.get_logger("test").info("pact_event", consumer="Foo")
        line = capsys.readouterr().out.strip().splitlines()[-1]
        record = json.loads(line)
        assert record["event"] == "pact_event"
        assert record["consumer"] == "Foo"
        assert record["level"] == "info"
    finally:
        structlog.reset_defaults()


def _sample(name: str, labels: dict[str, str] | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


def test_publication_metrics(builder: PactDataBuilder) -> None:
    created = _sample("pact_publications_total", {"result": "created"})
    unchanged = _sample("pact_publications_total", {"result": "unchanged"})
    revised = _sample("pact_publications_total", {"result": "revised"})
    deleted = _sample("pact_publications_deleted_total")

    builder.publish("Foo", "1", "Bar", {"v": 1})
    builder.publish("Foo", "1", "Bar", {"v": 1})
    builder.publish("Foo", "1", "Bar", {"v": 2})
    builder.pacts.delete_all_between("Foo", "Bar")

    assert _sample("pact_publications_total", {"result": "created"}) == created + 1
    assert _sample("pact_publications_total", {"result": "unchanged"}) == unchanged + 1
    assert _sample("pact_publications_total", {"result": "revised"}) == revised + 1
    assert _sample("pact_publications_deleted_total") == deleted + 2
