"""Configuration de test pour pytest avec gestion des chemins.

Ce module configure pytest pour résoudre les imports `pactbroker` en ajoutant la racine du projet
au sys.path, et fournit une base SQLite en mémoire par test.
"""

import os
import sys
from collections.abc import Iterator

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

# Ensure project root is on sys.path so that
# imports like `from pactbroker...` resolve.
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)
if CURRENT_DIR not in sys.path:
    sys.path.insert(0, CURRENT_DIR)

from builders import PactDataBuilder  # noqa: E402

from pactbroker.infra.repo.db import get_engine  # noqa: E402
from pactbroker.infra.repo.models import Base  # noqa: E402
from pactbroker.services.resolution import PactResolver  # noqa: E402


@pytest.fixture
def engine() -> Iterator[Engine]:
    """Moteur SQLite en mémoire avec le schéma complet."""
    eng = get_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine: Engine) -> Iterator[Session]:
    s = Session(bind=engine)
    yield s
    s.close()


@pytest.fixture
def builder(session: Session) -> PactDataBuilder:
    return PactDataBuilder(session)


@pytest.fixture
def resolver(session: Session) -> PactResolver:
    return PactResolver(session)
