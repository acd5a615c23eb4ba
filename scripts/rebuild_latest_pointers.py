"""
Passe de réparation de l'index "latest" des publications de pacts.

Recalcule `latest_pact_publication_ids_for_consumer_versions` à partir de `pact_publications`
(seule source de vérité), par exemple après un arrêt brutal entre deux écritures.
"""

from __future__ import annotations

import argparse

from pactbroker.core.container import Container
from pactbroker.core.settings import get_settings


def main() -> None:
    """Point d'entrée: reconstruit l'index dans une transaction unique."""
    parser = argparse.ArgumentParser()
    parser.add_argument("--database-url", help="Override DATABASE_URL")
    args = parser.parse_args()

    settings = get_settings()
    if args.database_url:
        settings.DATABASE_URL = args.database_url
    container = Container(settings)
    with container.session() as session:
        count = container.pact_repo(session).rebuild_latest_pointers()
    print(f"rebuilt latest pointers count={count}")


if __name__ == "__main__":  # pragma: no cover - script entry
    main()
