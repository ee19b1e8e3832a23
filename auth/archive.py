"""
auth/archive.py -- Archive-then-delete for account removal.

ArchivalService is the only writer of archived_identities. The archived copy
is keyed by email, so deleting a second account that reused an address
overwrites the earlier copy instead of adding another.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

import logging

from auth.errors import NotFound, storage_guard
from auth.models import ArchivedIdentity
from auth.otp import Clock
from auth.store import IdentityStore, to_iso, utcnow

logger = logging.getLogger("memberdesk.auth")


class ArchivalService:
    def __init__(self, store: IdentityStore, clock: Clock = utcnow) -> None:
        self.store = store
        self.clock = clock

    def archive_and_delete(self, identity_id: int) -> ArchivedIdentity:
        """Copy the identity into the archive, then remove the live record.

        Both writes are committed together by the store; StorageError means
        neither happened.
        """
        with storage_guard("archive_and_delete"):
            archived = self.store.archive_and_delete(identity_id, to_iso(self.clock()))
        if archived is None:
            raise NotFound()
        logger.info("Identity %d (%s) archived and deleted", identity_id, archived.email)
        return archived
