"""Participant identity mapping.

Maps opaque participant addresses to stable integer ids:
- known addresses keep their existing id
- unknown addresses are inserted in one batch, in sorted order
- ids are never reallocated for an address already seen
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from station_stats.db import repo
from station_stats.db.repo import DbSession

logger = logging.getLogger(__name__)


def map_participants_to_ids(session: DbSession, addresses: Iterable[str]) -> dict[str, int]:
    """Resolve every address to its participant id, allocating ids for new ones.

    Unknown addresses are inserted with ON CONFLICT DO NOTHING and then
    re-read, so an address inserted concurrently by another writer still
    resolves to that writer's id.

    Args:
        session: Database session. Not committed here; inserted rows
            become durable when the caller commits.
        addresses: Participant addresses (duplicates allowed).

    Returns:
        Mapping of every input address to its participant id.

    Raises:
        RuntimeError: If an address is still unmapped after insertion.
    """
    wanted = set(addresses)
    mapping = repo.get_participant_ids(session, wanted)

    missing = sorted(wanted - mapping.keys())
    if missing:
        logger.debug(f"Allocating ids for {len(missing)} new participants")
        repo.insert_participants(session, missing)
        mapping.update(repo.get_participant_ids(session, missing))

    unmapped = wanted - mapping.keys()
    if unmapped:
        raise RuntimeError(f"Failed to map participant addresses: {sorted(unmapped)}")

    return mapping
