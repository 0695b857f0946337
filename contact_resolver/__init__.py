"""Contact Resolver - Customer/vendor name resolution within a tenant scope.

This package links free-text counterparty names extracted from documents
to canonical contacts based on:
- Exact alias matching on the normalized name (fast path)
- Jaro-Winkler fuzzy matching with an extra-token guard
- Contact provisioning when nothing matches

Key Features:
- Per-scope (tenant, company) alias tables for customers and vendors
- Normalization that drops formatting noise but never words
- Learned aliases make repeat names resolve instantly
- Race-safe create+learn: concurrent first sightings yield one contact

Usage:
    from contact_resolver import CustomerResolver

    resolver = CustomerResolver.from_sqlite("contacts.db")
    result = await resolver.get_or_create_customer_contact(
        tenant_id="t1",
        company_id="co1",
        raw_customer_name="Accounting and Corporate Authority (ACCA)",
        created_by_id="u1",
    )

    print(result.strategy, result.customer_id, result.confidence)
"""

from contact_resolver.models import (
    Contact,
    CounterpartyAlias,
    CounterpartyKind,
    ResolutionResult,
    ResolutionStrategy,
    Scope,
)
from contact_resolver.config import MatchingConfig, DEFAULT_MATCHING_CONFIG
from contact_resolver.errors import (
    ContactResolutionError,
    CreationConflictError,
    InvalidNameError,
    StoreUnavailableError,
)
from contact_resolver.normalize import normalize_name, tokenize_name, significant_tokens
from contact_resolver.scoring import jaro_winkler, extra_tokens, score_names, NameScore
from contact_resolver.resolver import (
    CounterpartyResolver,
    CustomerResolver,
    VendorResolver,
    resolver_for,
    explain_resolution,
)
from contact_resolver.db import (
    init_contact_resolver_db,
    open_sqlite_stores,
    seed_sample_data,
)
from contact_resolver.memory import in_memory_stores

__all__ = [
    # Models
    "Contact",
    "CounterpartyAlias",
    "CounterpartyKind",
    "ResolutionResult",
    "ResolutionStrategy",
    "Scope",
    # Configuration
    "MatchingConfig",
    "DEFAULT_MATCHING_CONFIG",
    # Errors
    "ContactResolutionError",
    "CreationConflictError",
    "InvalidNameError",
    "StoreUnavailableError",
    # Normalization / scoring
    "normalize_name",
    "tokenize_name",
    "significant_tokens",
    "jaro_winkler",
    "extra_tokens",
    "score_names",
    "NameScore",
    # Resolver
    "CounterpartyResolver",
    "CustomerResolver",
    "VendorResolver",
    "resolver_for",
    "explain_resolution",
    # Stores
    "init_contact_resolver_db",
    "open_sqlite_stores",
    "seed_sample_data",
    "in_memory_stores",
]
