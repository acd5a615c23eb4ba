"""
Conteneur d'injection de dépendances.

Instancie le moteur SQLAlchemy depuis la configuration et fournit, pour chaque session, les dépôts
et le moteur de résolution. Aucune connexion globale: l'appelant crée un `Container` et l'utilise
explicitement.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy.orm import Session

from pactbroker.core.logging import setup_logging
from pactbroker.core.settings import Settings, get_settings
from pactbroker.infra.repo.db import get_engine, session_scope
from pactbroker.infra.repo.models import Base
from pactbroker.infra.repo.pact_repo import PactRepo
from pactbroker.services.resolution import PactResolver


class Container:
    def __init__(self, settings: Settings | None = None, configure_logging: bool = True):
        self.settings = settings or get_settings()
        if configure_logging:
            setup_logging(self.settings.LOG_LEVEL, json=self.settings.LOG_JSON)
        self.engine = get_engine(self.settings.DATABASE_URL, echo=self.settings.DATABASE_ECHO)

    def create_schema(self) -> None:
        """Crée les tables (tests, bases SQLite locales). En production: `alembic upgrade`."""
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        with session_scope(self.engine) as session:
            yield session

    def pact_repo(self, session: Session) -> PactRepo:
        return PactRepo(session)

    def resolver(self, session: Session) -> PactResolver:
        return PactResolver(session, max_wip_results=self.settings.WIP_PACTS_MAX_RESULTS)
