"""
Objets du domaine des pacts (POPO).

Ce module définit les structures explicites manipulées par les dépôts et le moteur de résolution:
participants (consumer/provider), versions, tags, contenus de pact, publications, résultats de
vérification et pacts vérifiables.
"""

# ============================================================
# Module : pactbroker/domain/models.py
# Objet  : Modèles de domaine (dataclasses, sans dépendance ORM).
# ============================================================

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal


@dataclass(frozen=True)
class Pacticipant:
    """Composant (consumer ou provider) identifié par son nom unique."""

    id: int
    name: str


@dataclass(frozen=True)
class Tag:
    """Tag nommé posé sur une version à un instant donné."""

    name: str
    version_id: int
    created_at: datetime


@dataclass(frozen=True)
class Version:
    """
    Version d'un composant.

    Attributs
    - id: identifiant technique.
    - pacticipant: composant propriétaire.
    - number: numéro de version publié (ex: "1.0.3").
    - order: ordre chronologique strictement croissant par composant.
    - tags: tags portés par la version.
    - created_at: date de création.
    """

    id: int
    pacticipant: Pacticipant
    number: str
    order: int
    created_at: datetime
    tags: tuple[Tag, ...] = ()

    @property
    def tag_names(self) -> list[str]:
        return [t.name for t in self.tags]


@dataclass(frozen=True)
class PactContent:
    """Contenu de pact adressé par empreinte, propre à une paire (consumer, provider)."""

    id: int
    consumer_id: int
    provider_id: int
    sha: str
    content: str
    created_at: datetime


@dataclass(frozen=True)
class Publication:
    """
    Publication d'un pact par une version de consumer pour un provider.

    `content` n'est renseigné que lorsque la lecture le demande (`with_content`).
    """

    id: int
    consumer: Pacticipant
    provider: Pacticipant
    consumer_version: Version
    revision_number: int
    pact_version_id: int
    pact_version_sha: str
    created_at: datetime
    content: str | None = None

    @property
    def consumer_name(self) -> str:
        return self.consumer.name

    @property
    def provider_name(self) -> str:
        return self.provider.name

    @property
    def consumer_version_number(self) -> str:
        return self.consumer_version.number

    @property
    def consumer_version_tag_names(self) -> list[str]:
        return self.consumer_version.tag_names


@dataclass(frozen=True)
class VerificationResult:
    """Tentative de vérification d'un contenu de pact par une version de provider."""

    id: int
    pact_version_id: int
    provider_version: Version
    success: bool
    created_at: datetime


@dataclass
class VerifiablePact:
    """
    Pact résolu pour une exécution de vérification côté provider.

    Attributs
    - pact: publication résolue.
    - pending: vrai si la vérification n'est pas encore acquise.
    - pending_provider_tags: tags provider pour lesquels le pact est en attente.
    - non_pending_provider_tags: tags provider déjà satisfaits.
    - head_consumer_tag_names: tags consumer pour lesquels le pact est la tête.
    - first_verification: premier résultat de vérification (optionnel).
    - wip: vrai si le pact est un pact "work in progress".
    """

    pact: Publication
    pending: bool
    pending_provider_tags: list[str] = field(default_factory=list)
    non_pending_provider_tags: list[str] = field(default_factory=list)
    head_consumer_tag_names: list[str] = field(default_factory=list)
    first_verification: VerificationResult | None = None
    wip: bool = False


@dataclass(frozen=True)
class HeadPact:
    """Publication de tête et noms des tags consumer sous lesquels elle est la plus récente."""

    publication: Publication
    head_tag_names: tuple[str, ...] = ()


TagFilterKind = Literal["any", "untagged", "named"]


@dataclass(frozen=True)
class TagFilter:
    """Choix explicite du filtre de tag consumer.

    Trois cas distincts: aucun filtre (`ANY`), versions sans aucun tag (`UNTAGGED`) ou
    versions portant un tag nommé (`TagFilter.named("prod")`).
    """

    kind: TagFilterKind = "any"
    name: str | None = None

    @classmethod
    def named(cls, name: str) -> TagFilter:
        if not name:
            raise ValueError("tag name must not be empty")
        return cls(kind="named", name=name)

    @classmethod
    def of(cls, tag: str | TagFilter | None) -> TagFilter:
        """Normalise un argument `tag` optionnel en filtre explicite."""
        if isinstance(tag, TagFilter):
            return tag
        if tag is None:
            return ANY
        return cls.named(tag)


ANY = TagFilter("any")
UNTAGGED = TagFilter("untagged")


@dataclass(frozen=True)
class ConsumerVersionSelector:
    """Sélecteur de versions consumer transmis par une vérification provider."""

    tag: str | None = None
    latest: bool = False
