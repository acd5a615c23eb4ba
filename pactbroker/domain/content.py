"""Empreinte canonique et comparaison structurelle des contenus de pact.

- `content_sha(body)`: SHA-1 du JSON canonique (clés triées, séparateurs compacts), de sorte que
  deux corps ne différant que par l'ordre des clés partagent la même identité.
- `differs(a, b, allow_unexpected_keys)`: vrai si `b` ne satisfait pas structurellement `a`.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any

from pactbroker.domain.errors import PactContentError


def parse_content(body: str | bytes | dict | list) -> Any:
    """Décode un corps JSON; lève PactContentError si illisible."""
    if isinstance(body, (dict, list)):
        return body
    try:
        return json.loads(body)
    except (TypeError, ValueError) as err:
        raise PactContentError(f"pact content is not valid JSON: {err}") from err


def canonical_json(value: Any) -> str:
    """Sérialise une valeur en JSON canonique (stable)."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def content_sha(body: str | bytes | dict | list) -> str:
    """Calcule l'empreinte de contenu d'un pact."""
    raw = canonical_json(parse_content(body))
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()  # noqa: S324 - identité, pas sécurité


def differs(expected: Any, actual: Any, allow_unexpected_keys: bool = False) -> bool:
    """Compare deux documents JSON décodés.

    Les objets doivent contenir toutes les clés attendues avec des valeurs équivalentes; si
    `allow_unexpected_keys` est faux, une clé supplémentaire dans `actual` compte comme une
    différence. Les listes sont comparées élément par élément et doivent avoir la même longueur.
    """
    if isinstance(expected, dict):
        if not isinstance(actual, dict):
            return True
        if not allow_unexpected_keys and set(actual) - set(expected):
            return True
        for key, value in expected.items():
            if key not in actual:
                return True
            if differs(value, actual[key], allow_unexpected_keys):
                return True
        return False
    if isinstance(expected, list):
        if not isinstance(actual, list) or len(expected) != len(actual):
            return True
        return any(
            differs(e, a, allow_unexpected_keys) for e, a in zip(expected, actual, strict=True)
        )
    # bool est un int en Python: on refuse de confondre true et 1
    if isinstance(expected, bool) or isinstance(actual, bool):
        return type(expected) is not type(actual) or expected != actual
    return expected != actual
