"""Counterparty Resolver Algorithm.

This module implements the resolution pipeline that:
1. Checks the alias table for an exact normalized match (fast path)
2. Falls back to fuzzy matching against the scope's contacts and aliases
3. Optionally provisions a new contact and learns the alias

Resolution is read-only. Provisioning is the only path that creates
contacts; it runs the create+learn pair as one transaction guarded by
the alias unique index, so concurrent first sightings of a name end
with exactly one contact.
"""

import time
from typing import Dict, List, Optional, Tuple

from contact_resolver.config import DEFAULT_MATCHING_CONFIG, MatchingConfig, get_db_path
from contact_resolver.errors import (
    CreationConflictError,
    InvalidNameError,
    StoreUnavailableError,
)
from contact_resolver.models import (
    Contact,
    CounterpartyAlias,
    CounterpartyKind,
    ResolutionResult,
    ResolutionStrategy,
    Scope,
)
from contact_resolver.normalize import normalize_name
from contact_resolver.scoring import score_names
from contact_resolver.stores import AliasStore, ContactStore
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import MetricsCollector, get_metrics


logger = get_logger(__name__)


class CounterpartyResolver:
    """Resolves extracted counterparty names to canonical contacts.

    Resolution strategy:
    1. Normalize the raw name
    2. Exact alias lookup in scope (ALIAS)
    3. Jaro-Winkler + extra-token guard over contacts and aliases (FUZZY)
    4. Nothing cleared the threshold (NONE)

    Subclasses bind a counterparty kind and expose the kind-specific API
    (CustomerResolver.resolve_customer, VendorResolver.resolve_vendor).
    """

    kind: CounterpartyKind = CounterpartyKind.CUSTOMER

    def __init__(
        self,
        contact_store: ContactStore,
        alias_store: AliasStore,
        config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
        metrics: Optional[MetricsCollector] = None,
    ):
        """Initialize the resolver.

        Args:
            contact_store: Canonical contact persistence
            alias_store: Alias persistence for this resolver's kind; its
                transaction() must also cover contact_store writes
            config: Matching configuration
            metrics: Metrics collector (default: process-wide singleton)
        """
        if CounterpartyKind(alias_store.kind) != self.kind:
            raise ValueError(
                f"{type(self).__name__} needs a {self.kind.value} alias store, "
                f"got {alias_store.kind}"
            )
        self.contacts = contact_store
        self.aliases = alias_store
        self.config = config
        self.metrics = metrics or get_metrics()

    @classmethod
    def from_sqlite(cls, db_path=None, config: Optional[MatchingConfig] = None):
        """Build a resolver over the SQLite database (CONTACT_RESOLVER_DB by default)."""
        from contact_resolver.db import open_sqlite_stores

        contacts, aliases = open_sqlite_stores(db_path or get_db_path(), cls.kind)
        return cls(contacts, aliases, config or MatchingConfig.from_env())

    # =========================================================================
    # Public operations
    # =========================================================================

    async def resolve(
        self,
        tenant_id: str,
        company_id: Optional[str],
        raw_name: str,
        created_by_id: Optional[str] = None,
    ) -> ResolutionResult:
        """Resolve a raw name to an existing contact. Never writes.

        Args:
            tenant_id: Tenant scope (required)
            company_id: Company scope, None for tenant-wide
            raw_name: Name as extracted from the document
            created_by_id: Caller attribution (unused by reads)

        Returns:
            ResolutionResult with strategy ALIAS, FUZZY or NONE

        Raises:
            InvalidNameError: raw_name is blank
            StoreUnavailableError: a store could not be read
        """
        start_time = time.time()
        scope = Scope(tenant_id=tenant_id, company_id=company_id)
        raw, normalized = self._validate(raw_name)

        with self._correlation(scope):
            result = self._guarded("resolve", self._resolve, scope, raw, normalized)
            self._record(result, start_time)
            logger.debug(
                f"Resolved {self.kind.value} '{raw}' via {result.strategy.value}",
                extra_fields={"contact_id": result.contact_id, "confidence": result.confidence},
            )
        return result

    async def get_or_create_contact(
        self,
        tenant_id: str,
        company_id: Optional[str],
        raw_name: str,
        created_by_id: Optional[str] = None,
    ) -> ResolutionResult:
        """Resolve a raw name, creating a contact when nothing matches.

        ALIAS and FUZZY results are returned unchanged (a FUZZY hit is
        learned as an alias first). Otherwise a contact named after the
        trimmed input is created together with its alias (CREATED).

        Raises:
            InvalidNameError: raw_name is blank
            StoreUnavailableError: a store failed, or a lost creation race
                could not be re-resolved
        """
        start_time = time.time()
        scope = Scope(tenant_id=tenant_id, company_id=company_id)
        raw, normalized = self._validate(raw_name)

        with self._correlation(scope):
            result = self._guarded("resolve", self._resolve, scope, raw, normalized)

            if result.strategy == ResolutionStrategy.FUZZY:
                self._learn_fuzzy_hit(scope, raw, normalized, result, created_by_id)

            if result.is_matched:
                self._record(result, start_time)
                return result

            try:
                result = self._guarded(
                    "provision", self._create_and_learn, scope, raw, normalized, created_by_id
                )
            except CreationConflictError:
                # Another writer created this name first; its alias wins
                self.metrics.record_conflict(self.kind.value)
                logger.info(f"Lost creation race for {self.kind.value} '{raw}', re-resolving")

                result = self._guarded("resolve", self._resolve, scope, raw, normalized)
                if not result.is_matched:
                    self.metrics.record_store_error(f"{self.kind.value}.provision")
                    raise StoreUnavailableError(
                        f"{self.kind.value} alias for '{normalized}' exists but does not "
                        f"resolve to a contact in scope {scope.tenant_id}/{scope.company_key or '*'}"
                    )

            self._record(result, start_time)
        return result

    async def learn_alias(
        self,
        tenant_id: str,
        company_id: Optional[str],
        raw_name: str,
        contact_id: str,
        confidence: float = 1.0,
        created_by_id: Optional[str] = None,
    ) -> CounterpartyAlias:
        """Record (or update) the mapping raw name -> contact in scope.

        Idempotent: repeating a call with the same contact and confidence
        leaves the stored row untouched.

        Args:
            confidence: Mapping confidence, clamped into [0, 1]

        Returns:
            The stored alias

        Raises:
            InvalidNameError: raw_name is blank
            ValueError: contact_id is blank or names no contact visible in scope
            StoreUnavailableError: the alias store could not be written
        """
        scope = Scope(tenant_id=tenant_id, company_id=company_id)
        raw, normalized = self._validate(raw_name)
        if not contact_id or not contact_id.strip():
            raise ValueError("contact_id is required to learn an alias")

        with self._correlation(scope):
            contact = self._guarded("learn", self.contacts.find_by_id, contact_id)
            if contact is None or not contact.is_visible_in(scope):
                raise ValueError(
                    f"{self.kind.value} contact {contact_id} does not exist in scope "
                    f"{scope.tenant_id}/{scope.company_key or '*'}"
                )

            alias = self._guarded(
                "learn",
                self.aliases.upsert_alias,
                scope,
                raw,
                normalized,
                contact_id,
                _clamp(confidence),
                created_by_id,
            )
            logger.info(
                f"Learned {self.kind.value} alias '{normalized}' -> {alias.contact_id}",
                extra_fields={"confidence": alias.confidence},
            )
        return alias

    # =========================================================================
    # Resolution
    # =========================================================================

    def _resolve(self, scope: Scope, raw: str, normalized: str) -> ResolutionResult:
        alias_hit = self._resolve_alias(scope, normalized)
        if alias_hit is not None:
            return alias_hit

        best = self._best_fuzzy_candidate(scope, normalized)
        if best is not None:
            contact, score, matched_to = best
            return ResolutionResult(
                strategy=ResolutionStrategy.FUZZY,
                kind=self.kind,
                contact_id=contact.id,
                contact_name=contact.display_name,
                confidence=score,
                matched_to=matched_to,
                normalized_name=normalized,
            )

        return ResolutionResult(
            strategy=ResolutionStrategy.NONE,
            kind=self.kind,
            contact_name=raw,
            confidence=0.0,
            normalized_name=normalized,
        )

    def _resolve_alias(self, scope: Scope, normalized: str) -> Optional[ResolutionResult]:
        alias = self.aliases.find_alias_by_normalized_name(scope, normalized)
        if alias is None:
            return None

        contact = self.contacts.find_by_id(alias.contact_id)
        if contact is None:
            logger.warning(
                f"{self.kind.value} alias '{normalized}' points to missing contact {alias.contact_id}"
            )
            return None
        if not contact.is_visible_in(scope):
            logger.warning(
                f"{self.kind.value} alias '{normalized}' points to contact {alias.contact_id} "
                f"outside scope {scope.tenant_id}/{scope.company_key or '*'}"
            )
            return None

        return ResolutionResult(
            strategy=ResolutionStrategy.ALIAS,
            kind=self.kind,
            contact_id=contact.id,
            contact_name=contact.display_name,
            confidence=max(alias.confidence, self.config.alias_confidence_floor),
            matched_to=alias.raw_name,
            normalized_name=normalized,
        )

    def _best_fuzzy_candidate(
        self,
        scope: Scope,
        normalized: str,
    ) -> Optional[Tuple[Contact, float, str]]:
        """Highest-scoring contact clearing the fuzzy threshold.

        Ties: most recently created contact, then contact id.
        """
        threshold = self.config.fuzzy_accept_threshold

        contacts: Dict[str, Contact] = {}
        # contact_id -> (score, matched_to)
        scores: Dict[str, Tuple[float, str]] = {}

        def consider(contact_id: str, stored_name: str, stored_normalized: str) -> None:
            result = score_names(normalized, stored_normalized, self.config)
            if result.rejected and result.jaro_winkler >= threshold:
                logger.debug(
                    f"Rejected '{stored_name}' for '{normalized}': "
                    f"extra tokens {result.extra_tokens or result.missing_tokens}"
                )
            if result.score < threshold:
                return
            if contact_id not in scores or result.score > scores[contact_id][0]:
                scores[contact_id] = (result.score, stored_name)

        for contact in self.contacts.find(scope, limit=self.config.contact_scan_limit):
            contacts[contact.id] = contact
            for name in _contact_names(contact):
                consider(contact.id, name, normalize_name(name))

        for alias in self.aliases.find_aliases(scope, limit=self.config.alias_scan_limit):
            consider(alias.contact_id, alias.raw_name, alias.normalized_name)

        candidates: List[Tuple[Contact, float, str]] = []
        for contact_id, (score, matched_to) in scores.items():
            contact = contacts.get(contact_id)
            if contact is None:
                contact = self.contacts.find_by_id(contact_id)
                if contact is None or not contact.is_visible_in(scope):
                    continue
            candidates.append((contact, score, matched_to))

        if not candidates:
            return None

        return max(candidates, key=lambda c: (c[1], _created_ts(c[0]), c[0].id))

    # =========================================================================
    # Provisioning
    # =========================================================================

    def _create_and_learn(
        self,
        scope: Scope,
        raw: str,
        normalized: str,
        created_by_id: Optional[str],
    ) -> ResolutionResult:
        """Create the contact and its alias as one unit of work.

        Raises:
            CreationConflictError: the alias key was taken; nothing persisted
        """
        with self.aliases.transaction():
            contact = self.contacts.create(scope, corporate_name=raw, full_name=raw)
            self.aliases.insert_alias(scope, raw, normalized, contact.id, 1.0, created_by_id)

        logger.info(
            f"Created {self.kind.value} contact for '{raw}'",
            extra_fields={"contact_id": contact.id},
        )
        return ResolutionResult(
            strategy=ResolutionStrategy.CREATED,
            kind=self.kind,
            contact_id=contact.id,
            contact_name=contact.display_name,
            confidence=1.0,
            matched_to=raw,
            normalized_name=normalized,
        )

    def _learn_fuzzy_hit(
        self,
        scope: Scope,
        raw: str,
        normalized: str,
        result: ResolutionResult,
        created_by_id: Optional[str],
    ) -> None:
        """Remember a fuzzy hit so the same name resolves via ALIAS next time."""
        try:
            self.aliases.upsert_alias(
                scope, raw, normalized, result.contact_id, result.confidence, created_by_id
            )
        except StoreUnavailableError as e:
            # The resolution stands; only the shortcut for next time is lost
            self.metrics.record_store_error(f"{self.kind.value}.learn")
            logger.warning(f"Failed to learn {self.kind.value} alias for '{raw}': {e}")

    # =========================================================================
    # Helpers
    # =========================================================================

    def _validate(self, raw_name: str) -> Tuple[str, str]:
        if not isinstance(raw_name, str) or not raw_name.strip():
            raise InvalidNameError(f"{self.kind.value} name is required", raw_name=raw_name or "")

        raw = raw_name.strip()
        normalized = normalize_name(raw)
        if not normalized:
            raise InvalidNameError(
                f"{self.kind.value} name '{raw}' has no matchable characters", raw_name=raw
            )
        return raw, normalized

    def _guarded(self, operation: str, fn, *args):
        try:
            return fn(*args)
        except StoreUnavailableError:
            self.metrics.record_store_error(f"{self.kind.value}.{operation}")
            logger.error(f"{self.kind.value} {operation} failed: store unavailable")
            raise

    def _correlation(self, scope: Scope):
        return with_correlation(
            tenant_id=scope.tenant_id,
            company_id=scope.company_id,
            counterparty_kind=self.kind.value,
        )

    def _record(self, result: ResolutionResult, start_time: float) -> None:
        duration_ms = (time.time() - start_time) * 1000
        self.metrics.record_resolution(self.kind.value, result.strategy.value, duration_ms)


class CustomerResolver(CounterpartyResolver):
    """Resolver for customer names on receivable documents."""

    kind = CounterpartyKind.CUSTOMER

    async def resolve_customer(
        self,
        tenant_id: str,
        company_id: Optional[str],
        raw_customer_name: str,
        created_by_id: Optional[str] = None,
    ) -> ResolutionResult:
        return await self.resolve(tenant_id, company_id, raw_customer_name, created_by_id)

    async def get_or_create_customer_contact(
        self,
        tenant_id: str,
        company_id: Optional[str],
        raw_customer_name: str,
        created_by_id: Optional[str] = None,
    ) -> ResolutionResult:
        return await self.get_or_create_contact(tenant_id, company_id, raw_customer_name, created_by_id)

    async def learn_customer_alias(
        self,
        tenant_id: str,
        company_id: Optional[str],
        raw_name: str,
        customer_id: str,
        confidence: float = 1.0,
        created_by_id: Optional[str] = None,
    ) -> None:
        await self.learn_alias(tenant_id, company_id, raw_name, customer_id, confidence, created_by_id)


class VendorResolver(CounterpartyResolver):
    """Resolver for vendor names on payable documents."""

    kind = CounterpartyKind.VENDOR

    async def resolve_vendor(
        self,
        tenant_id: str,
        company_id: Optional[str],
        raw_vendor_name: str,
        created_by_id: Optional[str] = None,
    ) -> ResolutionResult:
        return await self.resolve(tenant_id, company_id, raw_vendor_name, created_by_id)

    async def get_or_create_vendor_contact(
        self,
        tenant_id: str,
        company_id: Optional[str],
        raw_vendor_name: str,
        created_by_id: Optional[str] = None,
    ) -> ResolutionResult:
        return await self.get_or_create_contact(tenant_id, company_id, raw_vendor_name, created_by_id)

    async def learn_vendor_alias(
        self,
        tenant_id: str,
        company_id: Optional[str],
        raw_name: str,
        vendor_id: str,
        confidence: float = 1.0,
        created_by_id: Optional[str] = None,
    ) -> None:
        await self.learn_alias(tenant_id, company_id, raw_name, vendor_id, confidence, created_by_id)


RESOLVER_CLASSES = {
    CounterpartyKind.CUSTOMER: CustomerResolver,
    CounterpartyKind.VENDOR: VendorResolver,
}


def resolver_for(
    kind: CounterpartyKind,
    contact_store: ContactStore,
    alias_store: AliasStore,
    config: MatchingConfig = DEFAULT_MATCHING_CONFIG,
) -> CounterpartyResolver:
    """Build the resolver class for a counterparty kind."""
    return RESOLVER_CLASSES[CounterpartyKind(kind)](contact_store, alias_store, config)


def explain_resolution(result: ResolutionResult, raw_name: str = "") -> str:
    """Generate a human-readable explanation of the resolution.

    Args:
        result: The resolution to explain
        raw_name: The input name, if it should be echoed

    Returns:
        Formatted explanation string
    """
    lines = ["=" * 60, f"{result.kind.value.title()} Resolution", "=" * 60]

    if raw_name:
        lines.append(f"Raw name:   '{raw_name}'")
    lines.append(f"Normalized: '{result.normalized_name}'")
    lines.append("")

    if result.is_matched:
        lines.append(f"✓ {result.strategy.value}: {result.contact_name}")
        lines.append(f"  Contact ID: {result.contact_id}")
        lines.append(f"  Matched to: '{result.matched_to}'")
        lines.append(f"  Confidence: {result.confidence:.3f}")
    else:
        lines.append("⚠ NO MATCH")
        lines.append(f"  Would create: '{result.contact_name}'")

    lines.append("=" * 60)
    return "\n".join(lines)


def _contact_names(contact: Contact) -> List[str]:
    names = []
    for name in (contact.corporate_name, contact.full_name):
        if name and name not in names:
            names.append(name)
    return names


def _created_ts(contact: Contact) -> float:
    return contact.created_at.timestamp() if contact.created_at else 0.0


def _clamp(confidence: float) -> float:
    return max(0.0, min(1.0, float(confidence)))
