"""In-memory stores.

Lock-protected implementations of ContactStore and AliasStore with the
same guarantees as the SQLite adapters (scoped lookups, unique alias
key, all-or-nothing transactions). Used by tests and local tooling.
"""

import copy
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from itertools import count
from typing import Dict, Iterator, List, Optional, Tuple

from contact_resolver.errors import CreationConflictError
from contact_resolver.models import Contact, CounterpartyAlias, CounterpartyKind, Scope


AliasKey = Tuple[str, str, str, str]  # (kind, tenant_id, company_key, normalized_name)


class InMemoryDatabase:
    """Shared state for the in-memory contact and alias stores."""

    def __init__(self):
        self.contacts: Dict[str, Contact] = {}
        self.aliases: Dict[AliasKey, CounterpartyAlias] = {}
        self.lock = threading.RLock()
        self._sequence = count(1)
        self._order: Dict[str, int] = {}

    def next_sequence(self, record_id: str) -> None:
        self._order[record_id] = next(self._sequence)

    def sequence_of(self, record_id: str) -> int:
        return self._order.get(record_id, 0)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Hold the lock and restore a snapshot if the block raises."""
        with self.lock:
            contacts = dict(self.contacts)
            aliases = dict(self.aliases)
            order = dict(self._order)
            try:
                yield
            except BaseException:
                self.contacts = contacts
                self.aliases = aliases
                self._order = order
                raise


class InMemoryContactStore:
    """ContactStore over an InMemoryDatabase."""

    def __init__(self, db: Optional[InMemoryDatabase] = None):
        self.db = db or InMemoryDatabase()

    def add(self, contact: Contact) -> Contact:
        """Insert a prepared contact (test fixtures)."""
        with self.db.lock:
            self.db.contacts[contact.id] = contact
            self.db.next_sequence(contact.id)
        return contact

    def find(self, scope: Scope, limit: Optional[int] = None) -> List[Contact]:
        with self.db.lock:
            visible = [c for c in self.db.contacts.values() if c.is_visible_in(scope)]
            visible.sort(key=lambda c: self.db.sequence_of(c.id), reverse=True)
        if limit is not None:
            visible = visible[:limit]
        return [copy.deepcopy(c) for c in visible]

    def find_by_id(self, contact_id: str) -> Optional[Contact]:
        with self.db.lock:
            contact = self.db.contacts.get(contact_id)
        return copy.deepcopy(contact) if contact else None

    def create(self, scope: Scope, corporate_name: Optional[str], full_name: str) -> Contact:
        now = datetime.now(timezone.utc)
        contact = Contact(
            id=str(uuid.uuid4()),
            tenant_id=scope.tenant_id,
            company_id=scope.company_id,
            corporate_name=corporate_name,
            full_name=full_name,
            created_at=now,
            updated_at=now,
        )
        return self.add(contact)


class InMemoryAliasStore:
    """AliasStore over an InMemoryDatabase for one counterparty kind."""

    def __init__(
        self,
        db: Optional[InMemoryDatabase] = None,
        kind: CounterpartyKind = CounterpartyKind.CUSTOMER,
    ):
        self.db = db or InMemoryDatabase()
        self.kind = CounterpartyKind(kind)

    def transaction(self):
        return self.db.transaction()

    def _key(self, scope: Scope, normalized_name: str) -> AliasKey:
        return (self.kind.value, scope.tenant_id, scope.company_key, normalized_name)

    def find_aliases(self, scope: Scope, limit: Optional[int] = None) -> List[CounterpartyAlias]:
        with self.db.lock:
            matches = [
                a for key, a in self.db.aliases.items()
                if key[:3] == (self.kind.value, scope.tenant_id, scope.company_key)
            ]
            matches.sort(key=lambda a: self.db.sequence_of(a.id), reverse=True)
        if limit is not None:
            matches = matches[:limit]
        return [copy.deepcopy(a) for a in matches]

    def find_alias_by_normalized_name(
        self,
        scope: Scope,
        normalized_name: str,
    ) -> Optional[CounterpartyAlias]:
        with self.db.lock:
            alias = self.db.aliases.get(self._key(scope, normalized_name))
        return copy.deepcopy(alias) if alias else None

    def insert_alias(
        self,
        scope: Scope,
        raw_name: str,
        normalized_name: str,
        contact_id: str,
        confidence: float,
        created_by_id: Optional[str] = None,
    ) -> CounterpartyAlias:
        key = self._key(scope, normalized_name)
        with self.db.lock:
            if key in self.db.aliases:
                raise CreationConflictError(
                    f"{self.kind.value} alias '{normalized_name}' already exists",
                    normalized_name=normalized_name,
                )
            now = datetime.now(timezone.utc)
            alias = CounterpartyAlias(
                id=str(uuid.uuid4()),
                kind=self.kind,
                tenant_id=scope.tenant_id,
                company_id=scope.company_id,
                raw_name=raw_name,
                normalized_name=normalized_name,
                contact_id=contact_id,
                confidence=confidence,
                created_by_id=created_by_id,
                created_at=now,
                updated_at=now,
            )
            self.db.aliases[key] = alias
            self.db.next_sequence(alias.id)
        return copy.deepcopy(alias)

    def upsert_alias(
        self,
        scope: Scope,
        raw_name: str,
        normalized_name: str,
        contact_id: str,
        confidence: float,
        created_by_id: Optional[str] = None,
    ) -> CounterpartyAlias:
        key = self._key(scope, normalized_name)
        with self.db.lock:
            existing = self.db.aliases.get(key)
            if existing is None:
                return self.insert_alias(
                    scope, raw_name, normalized_name, contact_id, confidence, created_by_id
                )
            if existing.contact_id != contact_id or existing.confidence != confidence:
                existing = existing.model_copy(update={
                    "contact_id": contact_id,
                    "confidence": confidence,
                    "updated_at": datetime.now(timezone.utc),
                })
                self.db.aliases[key] = existing
        return copy.deepcopy(existing)

    def count_aliases(self, scope: Scope) -> int:
        return len(self.find_aliases(scope))


def in_memory_stores(
    kind: CounterpartyKind = CounterpartyKind.CUSTOMER,
    db: Optional[InMemoryDatabase] = None,
):
    """Return (contact_store, alias_store) sharing one InMemoryDatabase."""
    db = db or InMemoryDatabase()
    return InMemoryContactStore(db), InMemoryAliasStore(db, kind)
