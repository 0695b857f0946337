"""Contact Resolver Database Operations.

This module handles all SQLite operations for counterparty resolution:
- Schema initialization
- SqliteContactStore / SqliteAliasStore adapters
- Sample data seeding

The alias tables carry a composite UNIQUE index on
(tenant_id, company_key, normalized_name). company_key is company_id or ''
because SQL UNIQUE treats NULLs as distinct. The index is what makes
concurrent alias learning and contact provisioning race-safe.
"""

import sqlite3
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from contact_resolver.config import DEFAULT_DB_PATH
from contact_resolver.errors import CreationConflictError, StoreUnavailableError
from contact_resolver.models import Contact, CounterpartyAlias, CounterpartyKind, Scope
from contact_resolver.normalize import normalize_name
from core.observability.logging import get_logger


logger = get_logger(__name__)

# Seconds a writer waits on a locked database before giving up
BUSY_TIMEOUT = 10.0

# Databases whose schema has been created by this process
_initialized_paths = set()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _alias_table(kind: CounterpartyKind) -> str:
    return f"{CounterpartyKind(kind).value}_alias"


def init_contact_resolver_db(db_path: Path = DEFAULT_DB_PATH) -> None:
    """Initialize contact resolver database tables.

    Creates:
    - contact: Canonical contacts shared by both counterparty kinds
    - customer_alias / vendor_alias: Learned raw-name mappings per scope

    Args:
        db_path: Path to SQLite database file
    """
    try:
        conn = sqlite3.connect(str(db_path), timeout=BUSY_TIMEOUT)
    except sqlite3.Error as e:
        raise StoreUnavailableError(f"Cannot open contact database {db_path}: {e}") from e

    try:
        cursor = conn.cursor()

        # WAL lets readers proceed while a provisioning transaction writes
        cursor.execute("PRAGMA journal_mode=WAL")

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS contact (
                id TEXT PRIMARY KEY,
                tenant_id TEXT NOT NULL,
                company_id TEXT,
                corporate_name TEXT,
                full_name TEXT NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)
        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_contact_scope
            ON contact(tenant_id, company_id, updated_at)
        """)

        for kind in CounterpartyKind:
            table = _alias_table(kind)
            cursor.execute(f"""
                CREATE TABLE IF NOT EXISTS {table} (
                    id TEXT PRIMARY KEY,
                    tenant_id TEXT NOT NULL,
                    company_key TEXT NOT NULL DEFAULT '',
                    raw_name TEXT NOT NULL,
                    normalized_name TEXT NOT NULL,
                    contact_id TEXT NOT NULL,
                    confidence REAL NOT NULL,
                    created_by_id TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(tenant_id, company_key, normalized_name)
                )
            """)
            cursor.execute(f"""
                CREATE INDEX IF NOT EXISTS idx_{table}_contact
                ON {table}(contact_id)
            """)

        conn.commit()
        _initialized_paths.add(Path(db_path).resolve())
        logger.debug(f"Contact resolver tables initialized at {db_path}")

    except sqlite3.Error as e:
        raise StoreUnavailableError(f"Cannot initialize contact database {db_path}: {e}") from e
    finally:
        conn.close()


# =============================================================================
# Connection Management
# =============================================================================

class SqliteDatabase:
    """Connection factory shared by the contact and alias stores.

    Outside a transaction every statement autocommits on a short-lived
    connection. Inside transaction() all statements issued from the same
    thread run on one BEGIN IMMEDIATE connection and commit together.
    """

    def __init__(self, db_path: Path = DEFAULT_DB_PATH, timeout: float = BUSY_TIMEOUT):
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._local = threading.local()

    def _open(self) -> sqlite3.Connection:
        try:
            conn = sqlite3.connect(str(self.db_path), timeout=self.timeout, isolation_level=None)
        except sqlite3.Error as e:
            raise StoreUnavailableError(f"Cannot open contact database {self.db_path}: {e}") from e
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Connection for a group of statements; joins an open transaction."""
        active = getattr(self._local, "conn", None)
        if active is not None:
            with _store_errors(self.db_path):
                yield active
            return

        conn = self._open()
        try:
            with _store_errors(self.db_path):
                yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """All-or-nothing unit of work. Nested calls join the outer one."""
        if getattr(self._local, "conn", None) is not None:
            yield
            return

        conn = self._open()
        try:
            with _store_errors(self.db_path):
                conn.execute("BEGIN IMMEDIATE")
        except StoreUnavailableError:
            conn.close()
            raise

        self._local.conn = conn
        try:
            yield
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        else:
            with _store_errors(self.db_path):
                conn.execute("COMMIT")
        finally:
            self._local.conn = None
            conn.close()


@contextmanager
def _store_errors(db_path: Path) -> Iterator[None]:
    """Translate SQLite failures into StoreUnavailableError.

    IntegrityError passes through so callers can detect key conflicts.
    """
    try:
        yield
    except sqlite3.IntegrityError:
        raise
    except sqlite3.DatabaseError as e:
        raise StoreUnavailableError(f"Contact database {db_path} unavailable: {e}") from e


# =============================================================================
# Contact Store
# =============================================================================

class SqliteContactStore:
    """ContactStore backed by the contact table."""

    def __init__(self, db: SqliteDatabase):
        self.db = db

    def find(self, scope: Scope, limit: Optional[int] = None) -> List[Contact]:
        if scope.company_id is None:
            where = "tenant_id = ? AND company_id IS NULL"
            params = [scope.tenant_id]
        else:
            where = "tenant_id = ? AND (company_id = ? OR company_id IS NULL)"
            params = [scope.tenant_id, scope.company_id]

        with self.db.connection() as conn:
            rows = conn.execute(f"""
                SELECT * FROM contact
                WHERE {where}
                ORDER BY updated_at DESC, rowid DESC
                LIMIT ?
            """, (*params, limit if limit is not None else -1)).fetchall()

        return [_row_to_contact(row) for row in rows]

    def find_by_id(self, contact_id: str) -> Optional[Contact]:
        with self.db.connection() as conn:
            row = conn.execute("SELECT * FROM contact WHERE id = ?", (contact_id,)).fetchone()
        return _row_to_contact(row) if row else None

    def create(self, scope: Scope, corporate_name: Optional[str], full_name: str) -> Contact:
        now = _now()
        contact_id = str(uuid.uuid4())
        with self.db.connection() as conn:
            conn.execute("""
                INSERT INTO contact
                (id, tenant_id, company_id, corporate_name, full_name, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                contact_id,
                scope.tenant_id,
                scope.company_id,
                corporate_name,
                full_name,
                now,
                now,
            ))

        return Contact(
            id=contact_id,
            tenant_id=scope.tenant_id,
            company_id=scope.company_id,
            corporate_name=corporate_name,
            full_name=full_name,
            created_at=datetime.fromisoformat(now),
            updated_at=datetime.fromisoformat(now),
        )


# =============================================================================
# Alias Store
# =============================================================================

class SqliteAliasStore:
    """AliasStore backed by the customer_alias or vendor_alias table."""

    def __init__(self, db: SqliteDatabase, kind: CounterpartyKind = CounterpartyKind.CUSTOMER):
        self.db = db
        self.kind = CounterpartyKind(kind)
        self.table = _alias_table(self.kind)

    def transaction(self):
        return self.db.transaction()

    def find_aliases(self, scope: Scope, limit: Optional[int] = None) -> List[CounterpartyAlias]:
        with self.db.connection() as conn:
            rows = conn.execute(f"""
                SELECT * FROM {self.table}
                WHERE tenant_id = ? AND company_key = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
            """, (scope.tenant_id, scope.company_key, limit if limit is not None else -1)).fetchall()

        return [self._row_to_alias(row) for row in rows]

    def find_alias_by_normalized_name(
        self,
        scope: Scope,
        normalized_name: str,
    ) -> Optional[CounterpartyAlias]:
        with self.db.connection() as conn:
            row = conn.execute(f"""
                SELECT * FROM {self.table}
                WHERE tenant_id = ? AND company_key = ? AND normalized_name = ?
            """, (scope.tenant_id, scope.company_key, normalized_name)).fetchone()

        return self._row_to_alias(row) if row else None

    def insert_alias(
        self,
        scope: Scope,
        raw_name: str,
        normalized_name: str,
        contact_id: str,
        confidence: float,
        created_by_id: Optional[str] = None,
    ) -> CounterpartyAlias:
        now = _now()
        alias_id = str(uuid.uuid4())
        try:
            with self.db.connection() as conn:
                conn.execute(f"""
                    INSERT INTO {self.table}
                    (id, tenant_id, company_key, raw_name, normalized_name,
                     contact_id, confidence, created_by_id, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    alias_id,
                    scope.tenant_id,
                    scope.company_key,
                    raw_name,
                    normalized_name,
                    contact_id,
                    confidence,
                    created_by_id,
                    now,
                    now,
                ))
        except sqlite3.IntegrityError as e:
            raise CreationConflictError(
                f"{self.kind.value} alias '{normalized_name}' already exists in scope "
                f"{scope.tenant_id}/{scope.company_key or '*'}",
                normalized_name=normalized_name,
            ) from e

        return CounterpartyAlias(
            id=alias_id,
            kind=self.kind,
            tenant_id=scope.tenant_id,
            company_id=scope.company_id,
            raw_name=raw_name,
            normalized_name=normalized_name,
            contact_id=contact_id,
            confidence=confidence,
            created_by_id=created_by_id,
            created_at=datetime.fromisoformat(now),
            updated_at=datetime.fromisoformat(now),
        )

    def upsert_alias(
        self,
        scope: Scope,
        raw_name: str,
        normalized_name: str,
        contact_id: str,
        confidence: float,
        created_by_id: Optional[str] = None,
    ) -> CounterpartyAlias:
        now = _now()
        with self.db.connection() as conn:
            # Single statement: the unique index arbitrates concurrent writers
            conn.execute(f"""
                INSERT INTO {self.table}
                (id, tenant_id, company_key, raw_name, normalized_name,
                 contact_id, confidence, created_by_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(tenant_id, company_key, normalized_name) DO UPDATE SET
                    contact_id = excluded.contact_id,
                    confidence = excluded.confidence,
                    updated_at = excluded.updated_at
                WHERE {self.table}.contact_id IS NOT excluded.contact_id
                   OR {self.table}.confidence IS NOT excluded.confidence
            """, (
                str(uuid.uuid4()),
                scope.tenant_id,
                scope.company_key,
                raw_name,
                normalized_name,
                contact_id,
                confidence,
                created_by_id,
                now,
                now,
            ))
            row = conn.execute(f"""
                SELECT * FROM {self.table}
                WHERE tenant_id = ? AND company_key = ? AND normalized_name = ?
            """, (scope.tenant_id, scope.company_key, normalized_name)).fetchone()

        if row is None:
            raise StoreUnavailableError(
                f"{self.kind.value} alias '{normalized_name}' vanished after upsert"
            )
        return self._row_to_alias(row)

    def count_aliases(self, scope: Scope) -> int:
        with self.db.connection() as conn:
            row = conn.execute(f"""
                SELECT COUNT(*) FROM {self.table}
                WHERE tenant_id = ? AND company_key = ?
            """, (scope.tenant_id, scope.company_key)).fetchone()
        return row[0]

    def _row_to_alias(self, row: sqlite3.Row) -> CounterpartyAlias:
        """Convert a database row to CounterpartyAlias."""
        return CounterpartyAlias(
            id=row["id"],
            kind=self.kind,
            tenant_id=row["tenant_id"],
            company_id=row["company_key"] or None,
            raw_name=row["raw_name"],
            normalized_name=row["normalized_name"],
            contact_id=row["contact_id"],
            confidence=row["confidence"],
            created_by_id=row["created_by_id"],
            created_at=datetime.fromisoformat(row["created_at"]) if row["created_at"] else None,
            updated_at=datetime.fromisoformat(row["updated_at"]) if row["updated_at"] else None,
        )


def _row_to_contact(row: sqlite3.Row) -> Contact:
    """Convert a database row to Contact."""
    return Contact(
        id=row["id"],
        tenant_id=row["tenant_id"],
        company_id=row["company_id"],
        corporate_name=row["corporate_name"],
        full_name=row["full_name"],
        created_at=datetime.fromisoformat(row["created_at"]) if row["created_at"] else None,
        updated_at=datetime.fromisoformat(row["updated_at"]) if row["updated_at"] else None,
    )


def open_sqlite_stores(
    db_path: Path = DEFAULT_DB_PATH,
    kind: CounterpartyKind = CounterpartyKind.CUSTOMER,
):
    """Return (contact_store, alias_store) sharing one database.

    The schema is created the first time a path is opened in this process.
    """
    if Path(db_path).resolve() not in _initialized_paths:
        init_contact_resolver_db(db_path)
    db = SqliteDatabase(db_path)
    return SqliteContactStore(db), SqliteAliasStore(db, kind)


# =============================================================================
# Sample Data Seeding
# =============================================================================

SAMPLE_TENANT_ID = "demo-tenant"
SAMPLE_COMPANY_ID = "demo-company"


def seed_sample_data(db_path: Path = DEFAULT_DB_PATH) -> dict:
    """Seed the database with sample contacts and customer aliases.

    Idempotent: names already aliased in the sample scope are skipped.

    Args:
        db_path: Path to database

    Returns:
        Dict with counts of created contacts and aliases
    """
    contacts, aliases = open_sqlite_stores(db_path, CounterpartyKind.CUSTOMER)
    scope = Scope(tenant_id=SAMPLE_TENANT_ID, company_id=SAMPLE_COMPANY_ID)

    samples = [
        "Accounting and Corporate Authority (ACCA)",
        "Nobody Business Pte Ltd",
        "Harbourfront Logistics Pte. Ltd.",
        "Tan & Lim Trading Co.",
    ]

    created = {"contacts": 0, "aliases": 0}
    for raw in samples:
        normalized = normalize_name(raw)
        if aliases.find_alias_by_normalized_name(scope, normalized):
            continue
        with aliases.transaction():
            contact = contacts.create(scope, corporate_name=raw, full_name=raw)
            aliases.insert_alias(scope, raw, normalized, contact.id, 1.0, created_by_id="seed")
        created["contacts"] += 1
        created["aliases"] += 1

    logger.info(f"Seeded {created['contacts']} contacts, {created['aliases']} aliases")
    return created
