"""
Tests pour l'empreinte canonique et la comparaison structurelle des contenus.
"""

from __future__ import annotations

import pytest

from pactbroker.domain.content import content_sha, differs, parse_content
from pactbroker.domain.errors import PactContentError


def test_sha_ignores_key_order() -> None:
    """Deux corps ne différant que par l'ordre des clés ont la même empreinte."""
    a = '{"consumer": {"name": "Foo"}, "interactions": [1, 2]}'
    b = '{"interactions": [1, 2], "consumer": {"name": "Foo"}}'
    assert content_sha(a) == content_sha(b)


def test_sha_changes_with_content() -> None:
    assert content_sha({"a": 1}) != content_sha({"a": 2})
    assert content_sha({"a": [1, 2]}) != content_sha({"a": [2, 1]})


def test_parse_invalid_content_raises() -> None:
    with pytest.raises(PactContentError):
        parse_content("{not json")
    with pytest.raises(PactContentError):
        content_sha("")


def test_differs_equal_documents() -> None:
    doc = {"a": 1, "b": [{"c": "x"}], "d": None}
    assert differs(doc, {"d": None, "b": [{"c": "x"}], "a": 1}) is False


def test_differs_missing_key_and_changed_value() -> None:
    assert differs({"a": 1, "b": 2}, {"a": 1}) is True
    assert differs({"a": 1}, {"a": 2}) is True
    assert differs({"a": [1, 2]}, {"a": [1, 2, 3]}) is True
    assert differs({"a": {"b": 1}}, {"a": [1]}) is True


def test_differs_unexpected_keys() -> None:
    """Une clé inattendue compte comme différence sauf si explicitement autorisée."""
    expected = {"a": 1}
    actual = {"a": 1, "extra": True}
    assert differs(expected, actual, allow_unexpected_keys=False) is True
    assert differs(expected, actual, allow_unexpected_keys=True) is False


def test_differs_does_not_confuse_bool_and_int() -> None:
    assert differs({"a": True}, {"a": 1}) is True
    assert differs({"a": 1}, {"a": 1.0}) is False
