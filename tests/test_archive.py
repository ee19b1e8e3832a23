"""
tests/test_archive.py -- Unit tests for ArchivalService.

Covers:
  - archive_and_delete copies username/email/hash and removes the live row
  - Unknown id raises NotFound and writes nothing
  - Deleting a second account that reused an email overwrites the archive copy
  - Archived email can sign up again
"""

from __future__ import annotations

import pytest

from auth.errors import NotFound
from auth.store import to_iso


class TestArchiveAndDelete:
    def test_archives_then_deletes(self, archival, store, clock, register) -> None:
        identity = register("alice", "alice@x.com", "wonderland")
        hashed = store.get_by_id(identity.id).hashed_password

        archived = archival.archive_and_delete(identity.id)

        assert archived.email == "alice@x.com"
        assert archived.username == "alice"
        assert archived.hashed_password == hashed
        assert archived.deleted_at == to_iso(clock.now)
        assert store.get_by_id(identity.id) is None
        assert store.get_archived("alice@x.com") == archived

    def test_unknown_id(self, archival, store) -> None:
        with pytest.raises(NotFound):
            archival.archive_and_delete(999)
        assert store.count_archived("ghost@x.com") == 0

    def test_second_delete_of_same_email_overwrites(self, archival, store, clock, register) -> None:
        first = register("alice", "alice@x.com", "wonderland")
        archival.archive_and_delete(first.id)

        clock.advance(60)
        second = register("alice-again", "alice@x.com", "looking-glass")
        archival.archive_and_delete(second.id)

        assert store.count_archived("alice@x.com") == 1
        archived = store.get_archived("alice@x.com")
        assert archived.username == "alice-again"
        assert archived.deleted_at == to_iso(clock.now)

    def test_delete_twice(self, archival, register) -> None:
        identity = register("alice", "alice@x.com", "wonderland")
        archival.archive_and_delete(identity.id)
        with pytest.raises(NotFound):
            archival.archive_and_delete(identity.id)
