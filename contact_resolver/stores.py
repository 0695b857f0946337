"""Store Protocols.

The resolver depends on these repository interfaces, never on a
concrete database client. Implementations:
- contact_resolver.db: SQLite (production)
- contact_resolver.memory: in-process fakes (tests, local tooling)

Contract shared by all implementations:
- Lookups never cross a (tenant, company) scope boundary
- At most one alias per (tenant, company, normalized name), enforced
  by the store itself
- Writes inside transaction() are all-or-nothing across both stores
  of the same backend
"""

from typing import ContextManager, List, Optional, Protocol

from contact_resolver.models import Contact, CounterpartyAlias, CounterpartyKind, Scope


class ContactStore(Protocol):
    """Canonical contact persistence."""

    def find(self, scope: Scope, limit: Optional[int] = None) -> List[Contact]:
        """Contacts visible in scope, most recently updated first."""
        ...

    def find_by_id(self, contact_id: str) -> Optional[Contact]:
        ...

    def create(self, scope: Scope, corporate_name: Optional[str], full_name: str) -> Contact:
        ...


class AliasStore(Protocol):
    """Learned alias persistence for one counterparty kind."""

    kind: CounterpartyKind

    def find_aliases(self, scope: Scope, limit: Optional[int] = None) -> List[CounterpartyAlias]:
        """Aliases in exactly this scope, newest first."""
        ...

    def find_alias_by_normalized_name(
        self,
        scope: Scope,
        normalized_name: str,
    ) -> Optional[CounterpartyAlias]:
        ...

    def insert_alias(
        self,
        scope: Scope,
        raw_name: str,
        normalized_name: str,
        contact_id: str,
        confidence: float,
        created_by_id: Optional[str] = None,
    ) -> CounterpartyAlias:
        """Insert a new alias.

        Raises:
            CreationConflictError: alias key already exists in scope
        """
        ...

    def upsert_alias(
        self,
        scope: Scope,
        raw_name: str,
        normalized_name: str,
        contact_id: str,
        confidence: float,
        created_by_id: Optional[str] = None,
    ) -> CounterpartyAlias:
        """Atomically update the alias for the key, or insert it.

        raw_name and created_by_id are kept from the first insert.
        A call that changes nothing leaves the row untouched.
        """
        ...

    def transaction(self) -> ContextManager[None]:
        ...
