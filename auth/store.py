"""
auth/store.py -- SQLAlchemy Core persistence layer for owners and durable tokens.

Pattern: Repository + Data Mapper.
OwnerStore and TokenStore are the repositories; _row_to_owner /
_row_to_address / _row_to_token are the mappers. Service and route code never
touches SQL directly.

Both repositories share one Engine (open_engine()) so the owner cascade and
token writes can run inside a single transaction.

Token table:
  One generic "tokens" table for every durable kind, discriminated by the
  "kind" column. replace_for_owner() deletes the owner's prior tokens of that
  kind and inserts the new row inside one transaction (revoke-then-insert),
  which is the authoritative "one live token per owner and kind" guarantee.
  The in-memory access-token registry never participates here.

Cascades:
  delete_owner() removes addresses, tokens, then the owner explicitly in one
  transaction. No ON DELETE CASCADE is relied upon.

Timestamps are ISO 8601 UTC strings; comparisons happen in Python on
timezone-aware datetimes.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import Address, Owner, OwnerKind, TokenKind, TokenRecord

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_owners = Table(
    "owners",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("kind", String(20), nullable=False, server_default="user"),
    Column("display_name", String(255), nullable=False, server_default=""),
    Column("identification_number", String(20), nullable=False, server_default=""),
    Column("business_type", String(50)),
    Column("phone_number", String(30)),
    Column("is_verified", Integer, nullable=False, server_default="0"),
    Column("terms_accepted", Integer, nullable=False, server_default="0"),
    Column("last_login_session_token", Text),
    Column("created_at", String(32), nullable=False),
)

_addresses = Table(
    "addresses",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("owner_id", String(36), nullable=False, index=True),
    Column("street_address", String(255), nullable=False),
    Column("postal_code", String(10), nullable=False),
    Column("city", String(100), nullable=False),
    Column("region", String(50), nullable=False),
    Column("is_primary", Integer, nullable=False, server_default="0"),
)

_tokens = Table(
    "tokens",
    _metadata,
    Column("id", String(36), primary_key=True),
    Column("owner_id", String(36), nullable=False, index=True),
    Column("kind", String(30), nullable=False),
    Column("token", Text, nullable=False),
    Column("expires_at", String(32), nullable=False),
    Column("is_used", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def open_engine(db_url: str) -> Engine:
    """Create the shared engine and make sure the schema exists."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Owners
# ---------------------------------------------------------------------------


class OwnerStore:
    """Repository for Owner and Address entities.

    Usage:
        engine = open_engine("sqlite:///authprovider.db")
        owners = OwnerStore(engine)
        owners.create_owner(Owner(id=..., email="a@example.com", password_hash=...))
        owner = owners.get_by_email("a@example.com")
    """

    _MUTABLE_FIELDS: set = {
        "email",
        "password_hash",
        "display_name",
        "phone_number",
        "business_type",
        "is_verified",
        "last_login_session_token",
    }

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def create_owner(self, owner: Owner) -> str:
        """Insert the owner and its addresses in one transaction.

        Raises sqlalchemy.exc.IntegrityError if the email is already taken.
        Callers treat that as "email already in use" -- it means a concurrent
        registration won the race after the email_in_use() pre-check.
        """
        with self.engine.begin() as conn:
            conn.execute(
                _owners.insert().values(
                    id=owner.id,
                    email=owner.email.lower(),
                    password_hash=owner.password_hash,
                    kind=owner.kind.value,
                    display_name=owner.display_name,
                    identification_number=owner.identification_number,
                    business_type=owner.business_type,
                    phone_number=owner.phone_number,
                    is_verified=1 if owner.is_verified else 0,
                    terms_accepted=1 if owner.terms_accepted else 0,
                    created_at=_now_iso(),
                )
            )
            for address in owner.addresses:
                conn.execute(_addresses.insert().values(**_address_values(owner.id, address)))
        return owner.id

    def get_by_id(self, owner_id: str) -> Owner | None:
        with self.engine.connect() as conn:
            row = conn.execute(_owners.select().where(_owners.c.id == owner_id)).fetchone()
        return _row_to_owner(row) if row is not None else None

    def get_by_email(self, email: str) -> Owner | None:
        """Case-insensitive lookup (emails are stored lower-cased)."""
        with self.engine.connect() as conn:
            row = conn.execute(_owners.select().where(_owners.c.email == email.strip().lower())).fetchone()
        return _row_to_owner(row) if row is not None else None

    def email_in_use(self, email: str) -> bool:
        with self.engine.connect() as conn:
            count = conn.execute(
                select(func.count()).select_from(_owners).where(_owners.c.email == email.strip().lower())
            ).scalar()
        return (count or 0) > 0

    def update_owner(self, owner_id: str, **fields) -> bool:
        """Update mutable fields on an existing owner.

        Only keys in _MUTABLE_FIELDS are accepted. Unknown keys raise
        ValueError rather than being silently ignored.

        Returns True if a row was updated, False if owner_id was not found.
        """
        unknown = set(fields) - self._MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown owner fields: {unknown!r}")
        if "is_verified" in fields:
            fields["is_verified"] = 1 if fields["is_verified"] else 0
        if "email" in fields:
            fields["email"] = fields["email"].strip().lower()
        with self.engine.begin() as conn:
            result = conn.execute(_owners.update().where(_owners.c.id == owner_id).values(**fields))
        return result.rowcount > 0

    def list_addresses(self, owner_id: str) -> list[Address]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _addresses.select()
                .where(_addresses.c.owner_id == owner_id)
                .order_by(_addresses.c.is_primary.desc(), _addresses.c.id)
            ).fetchall()
        return [_row_to_address(r) for r in rows]

    def add_address(self, owner_id: str, address: Address) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(_addresses.insert().values(**_address_values(owner_id, address)))
        return result.inserted_primary_key[0]

    def delete_owner(self, owner_id: str) -> bool:
        """Delete an owner with its addresses and tokens in one transaction.

        Returns True if the owner existed.
        """
        with self.engine.begin() as conn:
            conn.execute(_addresses.delete().where(_addresses.c.owner_id == owner_id))
            conn.execute(_tokens.delete().where(_tokens.c.owner_id == owner_id))
            result = conn.execute(_owners.delete().where(_owners.c.id == owner_id))
        return result.rowcount > 0

    def ping(self) -> bool:
        """Cheap connectivity probe for the health endpoint."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True


# ---------------------------------------------------------------------------
# Durable tokens
# ---------------------------------------------------------------------------


class TokenStore:
    """Repository for every durable token kind (one table, kind column)."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def replace_for_owner(self, record: TokenRecord) -> None:
        """Revoke every prior token of record.kind for the owner, then insert record.

        Both statements run in one transaction: the new token is not committed
        unless the old ones are gone.
        """
        with self.engine.begin() as conn:
            conn.execute(
                _tokens.delete().where((_tokens.c.owner_id == record.owner_id) & (_tokens.c.kind == record.kind.value))
            )
            conn.execute(
                _tokens.insert().values(
                    id=record.id,
                    owner_id=record.owner_id,
                    kind=record.kind.value,
                    token=record.token,
                    expires_at=_to_iso(record.expires_at),
                    is_used=1 if record.is_used else 0,
                    created_at=_now_iso(),
                )
            )

    def get_by_id(self, record_id: str) -> TokenRecord | None:
        with self.engine.connect() as conn:
            row = conn.execute(_tokens.select().where(_tokens.c.id == record_id)).fetchone()
        return _row_to_token(row) if row is not None else None

    def mark_used(self, record_id: str) -> bool:
        """Set is_used=1. Idempotent: a second call leaves the row unchanged.

        Returns True if the record exists.
        """
        with self.engine.begin() as conn:
            result = conn.execute(_tokens.update().where(_tokens.c.id == record_id).values(is_used=1))
        return result.rowcount > 0

    def claim_unused(self, record_id: str) -> bool:
        """Atomically flip is_used 0 -> 1.

        Returns True only for the single caller that performed the flip; a
        concurrent or repeated claim on the same record gets False.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _tokens.update().where((_tokens.c.id == record_id) & (_tokens.c.is_used == 0)).values(is_used=1)
            )
        return result.rowcount == 1

    def delete_for_owner(self, owner_id: str, kind: TokenKind) -> int:
        """Delete every token of kind for the owner. Returns the number removed."""
        with self.engine.begin() as conn:
            result = conn.execute(
                _tokens.delete().where((_tokens.c.owner_id == owner_id) & (_tokens.c.kind == kind.value))
            )
        return result.rowcount

    def list_for_owner(self, owner_id: str, kind: TokenKind) -> list[TokenRecord]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _tokens.select()
                .where((_tokens.c.owner_id == owner_id) & (_tokens.c.kind == kind.value))
                .order_by(_tokens.c.created_at)
            ).fetchall()
        return [_row_to_token(r) for r in rows]

    def count_live(self, owner_id: str, kind: TokenKind, now: datetime) -> int:
        """Number of unused, unexpired tokens of kind for the owner."""
        return sum(1 for record in self.list_for_owner(owner_id, kind) if record.is_live(now))


# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _address_values(owner_id: str, address: Address) -> dict:
    return {
        "owner_id": owner_id,
        "street_address": address.street_address,
        "postal_code": address.postal_code,
        "city": address.city,
        "region": address.region,
        "is_primary": 1 if address.is_primary else 0,
    }


def _row_to_owner(row) -> Owner:
    return Owner(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        kind=OwnerKind(row.kind),
        display_name=row.display_name,
        identification_number=row.identification_number,
        business_type=row.business_type,
        phone_number=row.phone_number,
        is_verified=bool(row.is_verified),
        terms_accepted=bool(row.terms_accepted),
        last_login_session_token=row.last_login_session_token,
        created_at=row.created_at,
    )


def _row_to_address(row) -> Address:
    return Address(
        id=row.id,
        owner_id=row.owner_id,
        street_address=row.street_address,
        postal_code=row.postal_code,
        city=row.city,
        region=row.region,
        is_primary=bool(row.is_primary),
    )


def _row_to_token(row) -> TokenRecord:
    return TokenRecord(
        id=row.id,
        owner_id=row.owner_id,
        kind=TokenKind(row.kind),
        token=row.token,
        expires_at=_from_iso(row.expires_at),
        is_used=bool(row.is_used),
        created_at=row.created_at,
    )
