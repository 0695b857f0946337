"""
Concurrent Provisioning Tests

Proves at-most-one contact per distinct name under concurrent first sightings:
1. Many threads provisioning the same name against one SQLite database
2. A deterministic lost race (another writer commits between our read and write)
3. Conflicts are recorded in metrics and resolved by one re-resolve
"""

import asyncio
import sqlite3
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path

import pytest

from contact_resolver import (
    CounterpartyKind,
    CustomerResolver,
    ResolutionStrategy,
    Scope,
    normalize_name,
)
from contact_resolver.db import open_sqlite_stores
from contact_resolver.memory import InMemoryAliasStore, InMemoryContactStore, InMemoryDatabase
from core.observability.metrics import MetricsCollector


TENANT = "tenant-a"
COMPANY = "company-x"
SCOPE = Scope(tenant_id=TENANT, company_id=COMPANY)


@pytest.fixture
def db_path():
    with tempfile.TemporaryDirectory() as tmp:
        yield Path(tmp) / "contacts.db"


def provision_concurrently(resolver, raw_names, workers):
    """Run get_or_create from `workers` threads released together."""
    barrier = threading.Barrier(workers)
    results = []
    errors = []
    lock = threading.Lock()

    def worker(index):
        raw = raw_names[index % len(raw_names)]
        try:
            barrier.wait()
            result = asyncio.run(resolver.get_or_create_customer_contact(TENANT, COMPANY, raw, f"user-{index}"))
            with lock:
                results.append(result)
        except Exception as e:
            with lock:
                errors.append(e)

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    return results, errors


class TestSqliteConcurrentProvisioning:
    """Concurrent first sightings against one SQLite database."""

    def test_same_name_creates_one_contact(self, db_path):
        contacts, aliases = open_sqlite_stores(db_path, CounterpartyKind.CUSTOMER)
        resolver = CustomerResolver(contacts, aliases, metrics=MetricsCollector())

        results, errors = provision_concurrently(resolver, ["Harbourfront Logistics Pte Ltd"], workers=8)

        assert errors == []
        assert len(results) == 8
        assert len({r.customer_id for r in results}) == 1
        assert sum(1 for r in results if r.strategy == ResolutionStrategy.CREATED) == 1

        conn = sqlite3.connect(str(db_path))
        contact_rows = conn.execute("SELECT COUNT(*) FROM contact").fetchone()[0]
        alias_rows = conn.execute("SELECT COUNT(*) FROM customer_alias").fetchone()[0]
        conn.close()
        assert contact_rows == 1
        assert alias_rows == 1

    def test_formatting_variants_create_one_contact(self, db_path):
        """Variants with the same normalized name race on the same key."""
        contacts, aliases = open_sqlite_stores(db_path, CounterpartyKind.CUSTOMER)
        resolver = CustomerResolver(contacts, aliases, metrics=MetricsCollector())
        variants = ["Acme Trading Pte. Ltd.", "ACME TRADING PTE LTD", "acme  trading pte ltd"]

        results, errors = provision_concurrently(resolver, variants, workers=6)

        assert errors == []
        assert len({r.customer_id for r in results}) == 1
        assert len(contacts.find(SCOPE)) == 1


class RacingAliasStore(InMemoryAliasStore):
    """Alias store where another writer commits just before our unit of work."""

    def __init__(self, db, competitor):
        super().__init__(db, CounterpartyKind.CUSTOMER)
        self.competitor = competitor
        self.raced = False

    @contextmanager
    def transaction(self):
        if not self.raced:
            self.raced = True
            self.competitor()
        with self.db.transaction():
            yield


class TestLostCreationRace:
    """The loser of a creation race adopts the winner's contact."""

    def test_loser_re_resolves_to_winner(self):
        db = InMemoryDatabase()
        contacts = InMemoryContactStore(db)
        winner = {}

        def competing_writer():
            contact = contacts.create(SCOPE, "Acme Trading", "Acme Trading")
            InMemoryAliasStore(db).insert_alias(
                SCOPE, "ACME TRADING", normalize_name("ACME TRADING"), contact.id, 1.0
            )
            winner["id"] = contact.id

        metrics = MetricsCollector()
        resolver = CustomerResolver(contacts, RacingAliasStore(db, competing_writer), metrics=metrics)

        result = asyncio.run(resolver.get_or_create_customer_contact(TENANT, COMPANY, "Acme Trading"))

        assert result.strategy == ResolutionStrategy.ALIAS
        assert result.customer_id == winner["id"]
        assert [c.id for c in contacts.find(SCOPE)] == [winner["id"]]
        assert metrics.get_summary()["resolutions"]["conflicts"] == 1
        assert metrics.get_strategy_count("customer", "CONFLICT") == 1
