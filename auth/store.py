"""
auth/store.py -- SQLAlchemy Core persistence layer for identity entities.

Pattern: Repository + Data Mapper. IdentityStore is the repository;
_row_to_identity / _row_to_signup_otp / _row_to_archived are the mappers.
Services and routes never touch SQL directly.

Tables:
  identities           -- live accounts, UNIQUE(email), inline reset OTP
  signup_otps          -- pending registrations, keyed by email
  reset_grants         -- single-use password reset capabilities, keyed by email
  archived_identities  -- copies of deleted accounts, keyed by email

Concurrency:
  Every OTP / grant consumption is a single conditional write
  (DELETE/UPDATE ... WHERE email = :e AND code = :c). rowcount tells the
  caller whether it won; a second concurrent consumer sees 0 rows.

  Multi-record mutations (signup completion, reset-code redemption, password
  reset, archive then delete) run inside one engine.begin() transaction so a failure in the
  second statement rolls back the first.

Timestamps are ISO 8601 UTC strings with fixed microsecond precision, so
lexicographic comparison in SQL matches chronological order.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection, Engine

from auth.models import ArchivedIdentity, Identity, ResetGrant, SignupOtp

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_identities = Table(
    "identities",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("username", String(255), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("otp", String(12)),
    Column("otp_expires_at", String(32)),
    Column("created_at", String(32), nullable=False),
)

_signup_otps = Table(
    "signup_otps",
    _metadata,
    Column("email", String(255), primary_key=True),
    Column("code", String(12), nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
)

_reset_grants = Table(
    "reset_grants",
    _metadata,
    Column("email", String(255), primary_key=True),
    Column("grant_id", String(64), nullable=False),
    Column("expires_at", String(32), nullable=False),
)

_archived_identities = Table(
    "archived_identities",
    _metadata,
    Column("email", String(255), primary_key=True),
    Column("username", String(255), nullable=False),
    Column("hashed_password", Text, nullable=False),
    Column("deleted_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked during writes."""
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Render a datetime as a fixed-width UTC ISO string (sortable as text)."""
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str) -> datetime:
    return datetime.fromisoformat(value)


def _now_iso() -> str:
    return to_iso(utcnow())


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class IdentityStore:
    """Repository for identities, signup OTPs, reset grants and the archive.

    Usage:
        store = IdentityStore("sqlite:///memberdesk.db")
        store.upsert_signup_otp(SignupOtp(email="a@x.com", code="123456", expires_at=...))
        identity = store.get_by_email("a@x.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    def _insert(self, table: Table):
        """Return a dialect-specific INSERT construct that supports ON CONFLICT."""
        if self.engine.dialect.name == "postgresql":
            return postgresql.insert(table)
        return sqlite.insert(table)

    def _upsert(self, conn: Connection, table: Table, key: str, values: dict) -> None:
        stmt = self._insert(table).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[key],
            set_={k: v for k, v in values.items() if k != key},
        )
        conn.execute(stmt)

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    # ------------------------------------------------------------------
    # Identity queries
    # ------------------------------------------------------------------

    def create_identity(self, identity: Identity) -> int:
        """Insert a new identity and return its assigned ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        with self.engine.begin() as conn:
            return self._insert_identity(conn, identity)

    def _insert_identity(self, conn: Connection, identity: Identity) -> int:
        result = conn.execute(
            _identities.insert().values(
                email=identity.email,
                username=identity.username,
                hashed_password=identity.hashed_password,
                otp=identity.otp,
                otp_expires_at=identity.otp_expires_at,
                created_at=_now_iso(),
            )
        )
        return result.inserted_primary_key[0]

    def get_by_id(self, identity_id: int) -> Identity | None:
        with self.engine.connect() as conn:
            row = conn.execute(_identities.select().where(_identities.c.id == identity_id)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def get_by_email(self, email: str) -> Identity | None:
        """Look up an identity by exact email (case-sensitive)."""
        with self.engine.connect() as conn:
            row = conn.execute(_identities.select().where(_identities.c.email == email)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def get_by_username_or_email(self, value: str) -> Identity | None:
        """Match value against username OR email. Lowest id wins when both match different rows."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _identities.select()
                .where((_identities.c.username == value) | (_identities.c.email == value))
                .order_by(_identities.c.id)
                .limit(1)
            ).fetchone()
        return _row_to_identity(row) if row is not None else None

    def list_identities(self) -> list[Identity]:
        with self.engine.connect() as conn:
            rows = conn.execute(_identities.select().order_by(_identities.c.id)).fetchall()
        return [_row_to_identity(r) for r in rows]

    def count_identities(self, email: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_identities).where(_identities.c.email == email)
            ).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Reset OTP (inline on the identity row)
    # ------------------------------------------------------------------

    def set_reset_otp(self, email: str, code: str, expires_at: str) -> bool:
        """Overwrite the identity's outstanding reset code. Returns False if email is unknown."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _identities.update().where(_identities.c.email == email).values(otp=code, otp_expires_at=expires_at)
            )
        return result.rowcount > 0

    def redeem_reset_otp(self, email: str, code: str, grant: ResetGrant) -> bool:
        """Clear the reset code and record the grant that replaces it, in one transaction.

        The clear is compare-and-clear: it only applies if the stored code is
        still `code`. Returns False (and records no grant) when it does not.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _identities.update()
                .where((_identities.c.email == email) & (_identities.c.otp == code))
                .values(otp=None, otp_expires_at=None)
            )
            if result.rowcount == 0:
                return False
            self._upsert(
                conn,
                _reset_grants,
                "email",
                {"email": grant.email, "grant_id": grant.grant_id, "expires_at": grant.expires_at},
            )
        return True

    # ------------------------------------------------------------------
    # Signup OTP ledger
    # ------------------------------------------------------------------

    def upsert_signup_otp(self, record: SignupOtp) -> None:
        """Create or overwrite the pending code for record.email."""
        with self.engine.begin() as conn:
            self._upsert(
                conn,
                _signup_otps,
                "email",
                {
                    "email": record.email,
                    "code": record.code,
                    "created_at": record.created_at or _now_iso(),
                    "expires_at": record.expires_at,
                },
            )

    def get_signup_otp(self, email: str) -> SignupOtp | None:
        with self.engine.connect() as conn:
            row = conn.execute(_signup_otps.select().where(_signup_otps.c.email == email)).fetchone()
        return _row_to_signup_otp(row) if row is not None else None

    def consume_signup_otp(self, email: str, code: str) -> bool:
        """Compare-and-delete the pending code. True only for the caller that removed it."""
        with self.engine.begin() as conn:
            return self._consume_signup_otp(conn, email, code)

    def _consume_signup_otp(self, conn: Connection, email: str, code: str) -> bool:
        result = conn.execute(
            _signup_otps.delete().where((_signup_otps.c.email == email) & (_signup_otps.c.code == code))
        )
        return result.rowcount > 0

    def create_identity_from_signup(self, identity: Identity, code: str) -> int | None:
        """Consume the signup code and insert the identity in one transaction.

        Returns the new identity ID, or None if the code was no longer
        outstanding (consumed or overwritten by a concurrent request).
        Raises sqlalchemy.exc.IntegrityError on duplicate email; the
        transaction rolls back, so the signup code stays outstanding.
        """
        with self.engine.begin() as conn:
            if not self._consume_signup_otp(conn, identity.email, code):
                return None
            return self._insert_identity(conn, identity)

    # ------------------------------------------------------------------
    # Reset grants
    # ------------------------------------------------------------------

    def upsert_reset_grant(self, grant: ResetGrant) -> None:
        with self.engine.begin() as conn:
            self._upsert(
                conn,
                _reset_grants,
                "email",
                {"email": grant.email, "grant_id": grant.grant_id, "expires_at": grant.expires_at},
            )

    def get_reset_grant(self, email: str) -> ResetGrant | None:
        with self.engine.connect() as conn:
            row = conn.execute(_reset_grants.select().where(_reset_grants.c.email == email)).fetchone()
        if row is None:
            return None
        return ResetGrant(email=row.email, grant_id=row.grant_id, expires_at=row.expires_at)

    def reset_password_with_grant(self, email: str, grant_id: str, hashed_password: str, now_iso: str) -> bool:
        """Consume an unexpired grant and write the new password hash atomically.

        Returns False (and writes nothing) when no matching unexpired grant exists.
        """
        with self.engine.begin() as conn:
            exists = conn.execute(select(_identities.c.id).where(_identities.c.email == email)).first()
            if exists is None:
                return False
            consumed = conn.execute(
                _reset_grants.delete().where(
                    (_reset_grants.c.email == email)
                    & (_reset_grants.c.grant_id == grant_id)
                    & (_reset_grants.c.expires_at >= now_iso)
                )
            )
            if consumed.rowcount == 0:
                return False
            conn.execute(
                _identities.update().where(_identities.c.email == email).values(hashed_password=hashed_password)
            )
        return True

    # ------------------------------------------------------------------
    # Archive
    # ------------------------------------------------------------------

    def archive_and_delete(self, identity_id: int, deleted_at: str) -> ArchivedIdentity | None:
        """Upsert the archived copy keyed by email, then delete the live row.

        Both statements share one transaction: if the delete fails, the archive
        write is rolled back with it. Returns None if identity_id does not exist.
        """
        with self.engine.begin() as conn:
            row = conn.execute(_identities.select().where(_identities.c.id == identity_id)).fetchone()
            if row is None:
                return None
            archived = ArchivedIdentity(
                email=row.email,
                username=row.username,
                hashed_password=row.hashed_password,
                deleted_at=deleted_at,
            )
            self._upsert(
                conn,
                _archived_identities,
                "email",
                {
                    "email": archived.email,
                    "username": archived.username,
                    "hashed_password": archived.hashed_password,
                    "deleted_at": archived.deleted_at,
                },
            )
            conn.execute(_identities.delete().where(_identities.c.id == identity_id))
        return archived

    def get_archived(self, email: str) -> ArchivedIdentity | None:
        with self.engine.connect() as conn:
            row = conn.execute(
                _archived_identities.select().where(_archived_identities.c.email == email)
            ).fetchone()
        return _row_to_archived(row) if row is not None else None

    def count_archived(self, email: str) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(
                select(func.count()).select_from(_archived_identities).where(_archived_identities.c.email == email)
            ).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Expiry sweep
    # ------------------------------------------------------------------

    def purge_expired(self, now_iso: str) -> int:
        """Remove expired signup codes and grants and clear expired reset OTPs.

        Readers already treat expired records as absent; this only reclaims
        space. Returns the total number of rows touched.
        """
        with self.engine.begin() as conn:
            signup = conn.execute(_signup_otps.delete().where(_signup_otps.c.expires_at < now_iso))
            grants = conn.execute(_reset_grants.delete().where(_reset_grants.c.expires_at < now_iso))
            otps = conn.execute(
                _identities.update()
                .where(_identities.c.otp.is_not(None) & (_identities.c.otp_expires_at < now_iso))
                .values(otp=None, otp_expires_at=None)
            )
        return signup.rowcount + grants.rowcount + otps.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(row) -> Identity:
    return Identity(
        id=row.id,
        email=row.email,
        username=row.username,
        hashed_password=row.hashed_password,
        otp=row.otp,
        otp_expires_at=row.otp_expires_at,
        created_at=row.created_at,
    )


def _row_to_signup_otp(row) -> SignupOtp:
    return SignupOtp(
        email=row.email,
        code=row.code,
        created_at=row.created_at,
        expires_at=row.expires_at,
    )


def _row_to_archived(row) -> ArchivedIdentity:
    return ArchivedIdentity(
        email=row.email,
        username=row.username,
        hashed_password=row.hashed_password,
        deleted_at=row.deleted_at,
    )
