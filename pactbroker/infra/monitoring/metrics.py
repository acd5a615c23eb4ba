"""
Métriques Prometheus du registre de pacts.

Compteurs exposés par le registre de publications et le moteur de résolution.
"""

from prometheus_client import Counter

PACT_PUBLICATIONS_TOTAL = Counter(
    "pact_publications_total",
    "Pact publication writes by outcome",
    ["result"],
)
PACT_PUBLICATIONS_DELETED_TOTAL = Counter(
    "pact_publications_deleted_total",
    "Pact publications removed by bulk deletes",
)
REVISION_CONFLICTS_TOTAL = Counter(
    "revision_conflicts_total",
    "Concurrent revisions rejected on revision number uniqueness",
)
WIP_PACTS_RESOLVED_TOTAL = Counter(
    "wip_pacts_resolved_total",
    "Work-in-progress pacts returned to provider verifications",
)
