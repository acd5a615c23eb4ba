# ============================================================
# Module : pactbroker/services/resolution.py
# Objet  : Moteur de résolution des pacts (latest/previous/next, WIP).
# ============================================================
"""Moteur de résolution des pacts.

Lecture seule: à partir des publications, tags et vérifications, calcule les pacts "latest",
précédents/suivants, le précédent au contenu distinct, et les pacts "work in progress" (WIP)
pour un provider et un ensemble de tags provider.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy.orm import Session

from pactbroker.domain.content import differs, parse_content
from pactbroker.domain.models import (
    UNTAGGED,
    ConsumerVersionSelector,
    HeadPact,
    Publication,
    TagFilter,
    VerifiablePact,
)
from pactbroker.infra.monitoring.metrics import WIP_PACTS_RESOLVED_TOTAL
from pactbroker.infra.repo.pact_repo import PactRepo
from pactbroker.infra.repo.pacticipant_repo import PacticipantRepo
from pactbroker.infra.repo.queries import PublicationQuery
from pactbroker.infra.repo.verification_repo import VerificationRepo
from pactbroker.infra.repo.version_repo import VersionRepo

Differ = Callable[[Any, Any, bool], bool]


def _as_utc(value: datetime) -> datetime:
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value.astimezone(UTC)


class PactResolver:
    """Service de résolution des pacts pour une session donnée.

    Paramètres:
    - session: session SQLAlchemy (aucune connexion globale implicite).
    - differ: comparaison structurelle `differs(a, b, allow_unexpected_keys)`.
    - max_wip_results: borne du nombre de pacts WIP renvoyés (None = sans borne).
    """

    def __init__(
        self,
        session: Session,
        differ: Differ = differs,
        max_wip_results: int | None = None,
    ) -> None:
        self.pacts = PactRepo(session)
        self.pacticipants = PacticipantRepo(session)
        self.versions = VersionRepo(session)
        self.verifications = VerificationRepo(session)
        self._differ = differ
        self._max_wip_results = max_wip_results
        self._log = structlog.get_logger(__name__).bind(component="pact_resolver")

    # ------------------------------------------------------------ latest / previous / next

    def latest_for(
        self, provider_name: str, tag: str | TagFilter | None = None
    ) -> list[Publication]:
        """Dernier pact de chaque consumer pour un provider.

        Paramètres:
        - provider_name: nom du provider.
        - tag: None (aucun filtre), un nom de tag consumer, ou `UNTAGGED` pour ne retenir que
          les versions consumer sans aucun tag.

        Tri par nom de consumer sans tenir compte de la casse, puis ordre de version décroissant.
        """
        return self.pacts.latest_per_consumer(
            PublicationQuery(provider_name=provider_name, tag=TagFilter.of(tag))
        )

    def latest_pacts(self) -> list[Publication]:
        """Dernier pact de chaque paire (consumer, provider)."""
        return self.pacts.latest_per_consumer(PublicationQuery(), order_by_provider=True)

    def latest_pact(
        self, consumer_name: str, provider_name: str, tag: str | TagFilter | None = None
    ) -> Publication | None:
        return self.search_latest_pact(consumer_name, provider_name, tag)

    def search_latest_pact(
        self,
        consumer_name: str | None = None,
        provider_name: str | None = None,
        tag: str | TagFilter | None = None,
    ) -> Publication | None:
        """Pact le plus récent; consumer et provider sont optionnels."""
        return self.pacts.first(
            PublicationQuery(
                consumer_name=consumer_name,
                provider_name=provider_name,
                tag=TagFilter.of(tag),
            )
        )

    def pact_versions_for_provider(
        self, provider_name: str, tag: str | None = None
    ) -> list[Publication]:
        """Dernière révision de chaque version consumer publiée pour le provider."""
        found = self.pacts.query(
            PublicationQuery(provider_name=provider_name, tag=TagFilter.of(tag)),
            newest_first=False,
        )
        return sorted(found, key=lambda p: p.consumer_name.lower())

    def previous(
        self, publication: Publication, tag: str | TagFilter | None = None
    ) -> Publication | None:
        """Pact de la version consumer précédente (même paire), éventuellement filtré par tag."""
        return self.pacts.first(
            PublicationQuery(
                consumer_id=publication.consumer.id,
                provider_id=publication.provider.id,
                order_before=publication.consumer_version.order,
                tag=TagFilter.of(tag),
            )
        )

    def next(self, publication: Publication) -> Publication | None:
        """Pact de la version consumer suivante (même paire)."""
        return self.pacts.first(
            PublicationQuery(
                consumer_id=publication.consumer.id,
                provider_id=publication.provider.id,
                order_after=publication.consumer_version.order,
            ),
            newest_first=False,
        )

    def distinct_previous(self, publication: Publication) -> Publication | None:
        """Premier pact antérieur dont le contenu diffère structurellement.

        Les pacts de même identité de contenu sont écartés dès la requête; les autres sont
        comparés avec `differ` (clés inattendues comptées comme différences). L'ordre de version
        décroît strictement à chaque pas, le parcours se termine donc toujours.
        """
        current = self._with_content(publication)
        while True:
            candidate = self.pacts.first(
                PublicationQuery(
                    consumer_id=current.consumer.id,
                    provider_id=current.provider.id,
                    order_before=current.consumer_version.order,
                    exclude_pact_version_id=current.pact_version_id,
                )
            )
            if candidate is None or self._different(current, candidate):
                return candidate
            current = candidate

    def previous_pacts(self, publication: Publication) -> dict[TagFilter, Publication | None]:
        """Pact précédent pour chaque tag de la version consumer (ou sans tag s'il n'y en a pas)."""
        tag_names = publication.consumer_version_tag_names
        if not tag_names:
            return {UNTAGGED: self.previous(publication, UNTAGGED)}
        return {
            TagFilter.named(name): self.previous(publication, TagFilter.named(name))
            for name in tag_names
        }

    def for_verification(
        self, provider_name: str, selectors: Iterable[ConsumerVersionSelector] = ()
    ) -> list[Publication]:
        """Pacts à vérifier: derniers pacts des tags des sélecteurs `latest`.

        Sans sélecteur, renvoie le dernier pact de chaque consumer.
        """
        selectors = list(selectors)
        if not selectors:
            return self.latest_for(provider_name)
        found: dict[int, Publication] = {}
        for selector in selectors:
            if not selector.latest:
                continue
            for pact in self.latest_for(provider_name, TagFilter.of(selector.tag)):
                found.setdefault(pact.id, pact)
        return sorted(
            found.values(),
            key=lambda p: (p.consumer_name.lower(), -p.consumer_version.order),
        )

    def head_pacts(self, provider_name: str) -> list[HeadPact]:
        provider = self.pacticipants.find_by_name(provider_name)
        if provider is None:
            return []
        return self.pacts.find_head_pacts(provider.id)

    # ------------------------------------------------------------ work in progress

    def wip_pacts(
        self, provider_name: str, provider_tags: Iterable[str], since: datetime
    ) -> list[VerifiablePact]:
        """Pacts "work in progress" d'un provider pour un ensemble de tags provider.

        Démarche:
        - pour chaque tag, l'ensemble des pacts de tête satisfaits: vérifiés avec succès par une
          version provider portant ce tag, ou publiés avant `since` (antériorité);
        - les pacts satisfaits pour tous les tags sont écartés;
        - les candidats restants doivent être publiés strictement après `since`;
        - un candidat n'est WIP que pour les tags en attente déjà utilisés par le provider avant
          sa publication.

        Retour: liste de `VerifiablePact` triée par nom de consumer puis ordre de version.
        """
        tags = list(dict.fromkeys(t for t in provider_tags if t))
        if not tags:
            return []
        provider = self.pacticipants.find_by_name(provider_name)
        if provider is None:
            return []
        since = _as_utc(since)

        heads = self.pacts.find_head_pacts(provider.id)
        satisfied: dict[str, set[int]] = {}
        for tag in tags:
            verified = self.verifications.successfully_verified_pact_version_ids(provider.id, tag)
            satisfied[tag] = {
                h.publication.id
                for h in heads
                if h.publication.pact_version_id in verified or h.publication.created_at < since
            }
        verified_by_all = set.intersection(*satisfied.values())

        candidates = [
            h
            for h in heads
            if h.publication.id not in verified_by_all and h.publication.created_at > since
        ]
        candidates.sort(
            key=lambda h: (h.publication.consumer_name.lower(), h.publication.consumer_version.order)
        )
        first_use = self.versions.first_tag_use(provider, tags)
        first_verifications = self.verifications.find_first_for(
            h.publication.pact_version_id for h in candidates
        )

        wip: list[VerifiablePact] = []
        for head in candidates:
            pact = head.publication
            pending = [t for t in tags if pact.id not in satisfied[t]]
            pre_existing = [t for t in pending if t in first_use and first_use[t] < pact.created_at]
            if not pre_existing:
                continue
            wip.append(
                VerifiablePact(
                    pact=pact,
                    pending=True,
                    pending_provider_tags=pre_existing,
                    non_pending_provider_tags=[t for t in tags if t not in pending],
                    head_consumer_tag_names=list(head.head_tag_names),
                    first_verification=first_verifications.get(pact.pact_version_id),
                    wip=True,
                )
            )
            if self._max_wip_results is not None and len(wip) >= self._max_wip_results:
                self._log.warning("wip_pacts_truncated", provider=provider_name, limit=len(wip))
                break

        WIP_PACTS_RESOLVED_TOTAL.inc(len(wip))
        self._log.info(
            "wip_pacts_resolved",
            provider=provider_name,
            provider_tags=tags,
            heads=len(heads),
            candidates=len(candidates),
            wip=len(wip),
        )
        return wip

    # ------------------------------------------------------------ helpers

    def _with_content(self, publication: Publication) -> Publication:
        if publication.content is not None:
            return publication
        loaded = self.pacts.find_by_id(publication.id, with_content=True)
        return loaded or publication

    def _different(self, current: Publication, candidate: Publication) -> bool:
        return self._differ(
            parse_content(current.content or "null"),
            parse_content(candidate.content or "null"),
            False,
        )


