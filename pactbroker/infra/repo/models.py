"""SQLAlchemy models for the pacts persistence layer.

Tables: pacticipants, versions, tags, pact_versions (contenus adressés par sha),
pact_publications (registre des révisions), latest_pact_publication_ids_for_consumer_versions
(index dérivé "latest"), verifications, triggered_webhooks.
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    return datetime.now(UTC)


class UTCDateTime(TypeDecorator):
    """DateTime stocké en UTC naïf, relu en UTC conscient.

    SQLite ne conserve pas le fuseau: on normalise à l'écriture pour que les comparaisons
    (bornes `since`, premières utilisations de tags) restent cohérentes.
    """

    impl = DateTime
    cache_ok = True

    def process_bind_param(self, value, dialect):  # type: ignore[no-untyped-def]
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(UTC).replace(tzinfo=None)
        return value

    def process_result_value(self, value, dialect):  # type: ignore[no-untyped-def]
        if isinstance(value, str):
            value = datetime.fromisoformat(value)
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


class Base(DeclarativeBase):
    """Classe de base pour tous les modèles SQLAlchemy."""

    metadata = MetaData()


class PacticipantORM(Base):
    """Composant consumer/provider."""

    __tablename__ = "pacticipants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, unique=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)


class VersionORM(Base):
    """Version d'un composant, ordonnée par `order`."""

    __tablename__ = "versions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    number = Column(String(255), nullable=False)
    order = Column("order", Integer, nullable=False)
    pacticipant_id = Column(Integer, ForeignKey("pacticipants.id"), nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    pacticipant = relationship("PacticipantORM")
    tags = relationship("TagORM", order_by="TagORM.created_at", viewonly=True)

    __table_args__ = (
        UniqueConstraint("pacticipant_id", "number", name="uq_ver_ppt_number"),
        UniqueConstraint("pacticipant_id", "order", name="uq_ver_ppt_order"),
    )


class TagORM(Base):
    """Tag nommé posé sur une version."""

    __tablename__ = "tags"

    version_id = Column(Integer, ForeignKey("versions.id"), primary_key=True)
    name = Column(String(255), primary_key=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)


class PactVersionORM(Base):
    """Contenu de pact adressé par sha, propre à une paire consumer/provider."""

    __tablename__ = "pact_versions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    consumer_id = Column(Integer, ForeignKey("pacticipants.id"), nullable=False)
    provider_id = Column(Integer, ForeignKey("pacticipants.id"), nullable=False)
    sha = Column(String(64), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("consumer_id", "provider_id", "sha", name="uq_pact_version_sha"),
    )


class PactPublicationORM(Base):
    """Publication d'un contenu par une version consumer, à une révision donnée."""

    __tablename__ = "pact_publications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    consumer_version_id = Column(Integer, ForeignKey("versions.id"), nullable=False)
    provider_id = Column(Integer, ForeignKey("pacticipants.id"), nullable=False)
    consumer_id = Column(Integer, ForeignKey("pacticipants.id"), nullable=False)
    pact_version_id = Column(Integer, ForeignKey("pact_versions.id"), nullable=False)
    revision_number = Column(Integer, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    consumer_version = relationship("VersionORM")
    consumer = relationship("PacticipantORM", foreign_keys=[consumer_id])
    provider = relationship("PacticipantORM", foreign_keys=[provider_id])
    pact_version = relationship("PactVersionORM")

    __table_args__ = (
        UniqueConstraint(
            "consumer_version_id",
            "provider_id",
            "revision_number",
            name="uq_pact_pub_revision",
        ),
    )


class LatestPactPublicationIdORM(Base):
    """Index dérivé: dernière révision par (version consumer, provider).

    Ce n'est jamais une source de vérité: `PactRepo.rebuild_latest_pointers` le recalcule
    entièrement depuis `pact_publications`.
    """

    __tablename__ = "latest_pact_publication_ids_for_consumer_versions"

    consumer_version_id = Column(Integer, ForeignKey("versions.id"), primary_key=True)
    provider_id = Column(Integer, ForeignKey("pacticipants.id"), primary_key=True)
    consumer_id = Column(Integer, ForeignKey("pacticipants.id"), nullable=False)
    pact_publication_id = Column(
        Integer, ForeignKey("pact_publications.id"), nullable=False, unique=True
    )
    pact_version_id = Column(Integer, ForeignKey("pact_versions.id"), nullable=False)


class VerificationORM(Base):
    """Résultat de vérification d'un contenu par une version provider."""

    __tablename__ = "verifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    pact_version_id = Column(Integer, ForeignKey("pact_versions.id"), nullable=False)
    provider_id = Column(Integer, ForeignKey("pacticipants.id"), nullable=False)
    provider_version_id = Column(Integer, ForeignKey("versions.id"), nullable=False)
    success = Column(Boolean, nullable=False)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)

    provider_version = relationship("VersionORM")


class TriggeredWebhookORM(Base):
    """Trace d'un webhook déclenché par une publication (géré par le module webhooks)."""

    __tablename__ = "triggered_webhooks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    webhook_uuid = Column(String(64), nullable=False)
    pact_publication_id = Column(Integer, ForeignKey("pact_publications.id"), nullable=False)
    status = Column(String(32), nullable=False, default="not_run")
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
