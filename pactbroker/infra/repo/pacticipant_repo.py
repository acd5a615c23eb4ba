"""Accès SQL aux composants (consumers et providers)."""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from pactbroker.domain.models import Pacticipant

from .mappers import to_pacticipant
from .models import PacticipantORM


class PacticipantRepo:
    """Lecture/création des composants par nom."""

    def __init__(self, session: Session) -> None:
        """Construit le repo avec une session (SQLAlchemy)."""
        self._session = session

    def find_by_name(self, name: str) -> Pacticipant | None:
        """Retourne le composant `name` ou None s'il est inconnu."""
        row = self._session.execute(
            select(PacticipantORM).where(PacticipantORM.name == name)
        ).scalar_one_or_none()
        return to_pacticipant(row) if row else None

    def create(self, name: str) -> Pacticipant:
        """Crée un composant. Lève IntegrityError si le nom existe déjà."""
        row = PacticipantORM(name=name)
        self._session.add(row)
        self._session.flush()
        return to_pacticipant(row)

    def find_or_create(self, name: str) -> Pacticipant:
        return self.find_by_name(name) or self.create(name)
