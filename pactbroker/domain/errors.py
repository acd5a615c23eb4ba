"""Exceptions du domaine des pacts."""

from __future__ import annotations


class PactBrokerError(Exception):
    """Erreur de base du broker."""


class ConflictError(PactBrokerError):
    """Révision concurrente: le numéro de révision a déjà été attribué.

    L'appelant doit relancer l'opération (politique de retry externe).
    """

    def __init__(self, consumer_version_id: int, provider_id: int, revision_number: int) -> None:
        super().__init__(
            f"revision {revision_number} already exists for "
            f"consumer_version_id={consumer_version_id} provider_id={provider_id}"
        )
        self.consumer_version_id = consumer_version_id
        self.provider_id = provider_id
        self.revision_number = revision_number


class PactContentError(PactBrokerError):
    """Échec de création du contenu de pact (contenu illisible ou refusé par le stockage)."""


class NotFoundError(PactBrokerError, LookupError):
    """Entité absente sur un chemin d'écriture qui l'exige.

    Les lectures ne lèvent pas: elles renvoient None ou une liste vide.
    """
