"""
SQLite Store Tests

Validates the production adapters against a temporary database:
1. Schema initialization (idempotent)
2. Unique alias key, including tenant-wide (company_id=None) scope
3. Atomic idempotent upsert
4. Transactions spanning both stores roll back together
5. Unreachable databases surface StoreUnavailableError
"""

import asyncio
import sqlite3
import tempfile
from pathlib import Path

import pytest

from contact_resolver import (
    CounterpartyKind,
    CreationConflictError,
    CustomerResolver,
    ResolutionStrategy,
    Scope,
    StoreUnavailableError,
)
import contact_resolver.db as db_module
from contact_resolver.db import (
    SqliteAliasStore,
    SqliteContactStore,
    SqliteDatabase,
    init_contact_resolver_db,
    open_sqlite_stores,
    seed_sample_data,
    SAMPLE_COMPANY_ID,
    SAMPLE_TENANT_ID,
)
from core.observability.metrics import MetricsCollector


SCOPE = Scope(tenant_id="tenant-a", company_id="company-x")
TENANT_WIDE = Scope(tenant_id="tenant-a")


@pytest.fixture
def db_path():
    """Temporary database file (directory removed with its WAL files)."""
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp) / "contacts.db"


@pytest.fixture
def stores(db_path):
    return open_sqlite_stores(db_path, CounterpartyKind.CUSTOMER)


class TestSchema:
    """Test schema initialization."""

    def test_tables_created(self, db_path):
        init_contact_resolver_db(db_path)

        conn = sqlite3.connect(str(db_path))
        tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        journal_mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        conn.close()

        assert {"contact", "customer_alias", "vendor_alias"} <= tables
        assert journal_mode.lower() == "wal"

    def test_init_is_idempotent(self, db_path):
        init_contact_resolver_db(db_path)
        init_contact_resolver_db(db_path)

    def test_open_stores_initializes_once(self, db_path, monkeypatch):
        """Schema DDL runs on the first open of a path, not on every open."""
        calls = []
        original = db_module.init_contact_resolver_db

        def counting_init(path):
            calls.append(path)
            original(path)

        monkeypatch.setattr(db_module, "init_contact_resolver_db", counting_init)

        open_sqlite_stores(db_path, CounterpartyKind.CUSTOMER)
        contacts, aliases = open_sqlite_stores(db_path, CounterpartyKind.VENDOR)

        assert calls == [db_path]
        assert aliases.count_aliases(SCOPE) == 0
        assert contacts.find(SCOPE) == []

    def test_seed_sample_data_is_idempotent(self, db_path):
        first = seed_sample_data(db_path)
        second = seed_sample_data(db_path)

        assert first["contacts"] == 4
        assert second["contacts"] == 0

        contacts, aliases = open_sqlite_stores(db_path)
        scope = Scope(tenant_id=SAMPLE_TENANT_ID, company_id=SAMPLE_COMPANY_ID)
        assert len(contacts.find(scope)) == 4
        assert aliases.count_aliases(scope) == 4


class TestContactStore:
    """Test SqliteContactStore scoping."""

    def test_create_and_find_by_id(self, stores):
        contacts, _ = stores
        created = contacts.create(SCOPE, corporate_name="Acme Trading", full_name="Acme Trading")

        found = contacts.find_by_id(created.id)

        assert found.id == created.id
        assert found.company_id == "company-x"
        assert found.display_name == "Acme Trading"
        assert contacts.find_by_id("missing") is None

    def test_scope_visibility(self, stores):
        contacts, _ = stores
        own = contacts.create(SCOPE, "Own Co", "Own Co")
        shared = contacts.create(TENANT_WIDE, "Shared Co", "Shared Co")
        contacts.create(Scope(tenant_id="tenant-a", company_id="company-y"), "Other Co", "Other Co")
        contacts.create(Scope(tenant_id="tenant-b", company_id="company-x"), "Foreign Co", "Foreign Co")

        company_ids = {c.id for c in contacts.find(SCOPE)}
        tenant_ids = {c.id for c in contacts.find(TENANT_WIDE)}

        assert company_ids == {own.id, shared.id}
        assert tenant_ids == {shared.id}

    def test_find_limit(self, stores):
        contacts, _ = stores
        for i in range(5):
            contacts.create(SCOPE, f"Company {i}", f"Company {i}")

        assert len(contacts.find(SCOPE, limit=3)) == 3


class TestAliasStore:
    """Test SqliteAliasStore uniqueness and upsert."""

    def test_insert_conflict(self, stores):
        _, aliases = stores
        aliases.insert_alias(SCOPE, "Acme Trading", "acme trading", "c1", 1.0)

        with pytest.raises(CreationConflictError) as exc_info:
            aliases.insert_alias(SCOPE, "ACME TRADING", "acme trading", "c2", 1.0)

        assert exc_info.value.normalized_name == "acme trading"

    def test_tenant_wide_key_is_unique(self, stores):
        """NULL company_id still takes part in the unique key."""
        _, aliases = stores
        aliases.insert_alias(TENANT_WIDE, "Acme", "acme", "c1", 1.0)

        with pytest.raises(CreationConflictError):
            aliases.insert_alias(TENANT_WIDE, "Acme", "acme", "c2", 1.0)

        # Same name in a company scope is a different key
        aliases.insert_alias(SCOPE, "Acme", "acme", "c3", 1.0)
        assert aliases.find_alias_by_normalized_name(TENANT_WIDE, "acme").contact_id == "c1"
        assert aliases.find_alias_by_normalized_name(SCOPE, "acme").contact_id == "c3"

    def test_upsert_updates_single_row(self, stores):
        _, aliases = stores
        first = aliases.upsert_alias(SCOPE, "Acme Trdg", "acme trdg", "c1", 0.8, "u1")
        second = aliases.upsert_alias(SCOPE, "ACME TRDG", "acme trdg", "c2", 0.95, "u2")

        assert aliases.count_aliases(SCOPE) == 1
        assert second.id == first.id
        assert second.contact_id == "c2"
        assert second.confidence == 0.95
        # First sighting's raw text and attribution are kept
        assert second.raw_name == "Acme Trdg"
        assert second.created_by_id == "u1"

    def test_upsert_repeat_is_noop(self, stores):
        _, aliases = stores
        first = aliases.upsert_alias(SCOPE, "Acme", "acme", "c1", 0.9)
        second = aliases.upsert_alias(SCOPE, "Acme", "acme", "c1", 0.9)

        assert second.id == first.id
        assert second.updated_at == first.updated_at

    def test_kinds_use_separate_tables(self, db_path):
        init_contact_resolver_db(db_path)
        db = SqliteDatabase(db_path)
        customers = SqliteAliasStore(db, CounterpartyKind.CUSTOMER)
        vendors = SqliteAliasStore(db, CounterpartyKind.VENDOR)

        customers.insert_alias(SCOPE, "Acme", "acme", "c1", 1.0)

        assert vendors.find_alias_by_normalized_name(SCOPE, "acme") is None
        vendors.insert_alias(SCOPE, "Acme", "acme", "c1", 1.0)
        assert vendors.find_alias_by_normalized_name(SCOPE, "acme").kind == CounterpartyKind.VENDOR

    def test_find_aliases_newest_first(self, stores):
        _, aliases = stores
        for name in ["alpha", "beta", "gamma"]:
            aliases.insert_alias(SCOPE, name, name, "c1", 1.0)

        found = aliases.find_aliases(SCOPE, limit=2)

        assert [a.normalized_name for a in found] == ["gamma", "beta"]


class TestTransactions:
    """Create+learn is all-or-nothing."""

    def test_rollback_on_error(self, stores):
        contacts, aliases = stores

        with pytest.raises(RuntimeError):
            with aliases.transaction():
                contacts.create(SCOPE, "Acme", "Acme")
                aliases.insert_alias(SCOPE, "Acme", "acme", "c1", 1.0)
                raise RuntimeError("boom")

        assert contacts.find(SCOPE) == []
        assert aliases.count_aliases(SCOPE) == 0

    def test_conflict_rolls_back_contact(self, stores):
        contacts, aliases = stores
        aliases.insert_alias(SCOPE, "Acme", "acme", "winner", 1.0)

        with pytest.raises(CreationConflictError):
            with aliases.transaction():
                contacts.create(SCOPE, "Acme", "Acme")
                aliases.insert_alias(SCOPE, "Acme", "acme", "loser", 1.0)

        assert contacts.find(SCOPE) == []

    def test_commit(self, stores):
        contacts, aliases = stores

        with aliases.transaction():
            contact = contacts.create(SCOPE, "Acme", "Acme")
            aliases.insert_alias(SCOPE, "Acme", "acme", contact.id, 1.0)

        assert [c.id for c in contacts.find(SCOPE)] == [contact.id]
        assert aliases.find_alias_by_normalized_name(SCOPE, "acme").contact_id == contact.id


class TestStoreUnavailable:
    """Unreachable databases raise StoreUnavailableError."""

    @pytest.fixture
    def bad_path(self):
        with tempfile.TemporaryDirectory() as tmp:
            yield Path(tmp) / "no-such-dir" / "contacts.db"

    def test_init(self, bad_path):
        with pytest.raises(StoreUnavailableError):
            init_contact_resolver_db(bad_path)

    def test_store_reads(self, bad_path):
        contacts = SqliteContactStore(SqliteDatabase(bad_path))
        with pytest.raises(StoreUnavailableError):
            contacts.find(SCOPE)

    def test_resolver_propagates_and_counts(self, bad_path):
        db = SqliteDatabase(bad_path)
        metrics = MetricsCollector()
        resolver = CustomerResolver(SqliteContactStore(db), SqliteAliasStore(db), metrics=metrics)

        with pytest.raises(StoreUnavailableError):
            asyncio.run(resolver.resolve_customer("tenant-a", "company-x", "Acme"))

        assert metrics.get_summary()["resolutions"]["errors_by_operation"] == {"customer.resolve": 1}


class TestSqliteResolver:
    """End-to-end resolution over SQLite."""

    def test_round_trip(self, db_path):
        resolver = CustomerResolver.from_sqlite(db_path)

        created = asyncio.run(resolver.get_or_create_customer_contact("tenant-a", "company-x", "New Customer"))
        again = asyncio.run(resolver.get_or_create_customer_contact("tenant-a", "company-x", "New Customer"))

        assert created.strategy == ResolutionStrategy.CREATED
        assert again.strategy == ResolutionStrategy.ALIAS
        assert again.customer_id == created.customer_id
        assert len(resolver.contacts.find(SCOPE)) == 1
