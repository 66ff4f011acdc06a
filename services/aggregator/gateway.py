"""
Dedup & Persistence Gateway

Every normalized posting passes through ``DedupGateway.admit`` exactly once:

    exists_by_identity_key -> yes: discard (duplicate, not counted as new)
                           -> no:  insert, return the stored posting

The existence check saves a write for the common case of re-ingesting known
postings. It is not atomic with the insert; the store's unique constraint on
``identity_key`` settles races between concurrent runs, and a lost race shows
up here as an insert returning None (treated as a duplicate, not an error).
"""

import logging
from typing import Optional

from .base import Posting
from .storage import PostingStore

logger = logging.getLogger(__name__)


class DedupGateway:
    """Insert-if-absent front of a PostingStore."""

    def __init__(self, store: PostingStore):
        self.store = store

    def admit(self, posting: Posting) -> Optional[Posting]:
        """
        Persist the posting if its identity key is new.

        Returns:
            The stored posting, or None if the key already exists

        Raises:
            PostingStoreError: If the store fails
        """
        if self.store.exists_by_identity_key(posting.identity_key):
            logger.debug(
                "Posting already exists, skipping",
                extra={"identity_key": posting.identity_key, "source": posting.source},
            )
            return None

        stored = self.store.insert(posting)
        if stored is None:
            logger.debug(
                "Posting inserted concurrently by another run, skipping",
                extra={"identity_key": posting.identity_key, "source": posting.source},
            )
            return None

        logger.debug(
            "Saved new posting",
            extra={
                "identity_key": posting.identity_key,
                "source": posting.source,
                "title": posting.title,
            },
        )
        return stored
