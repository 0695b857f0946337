"""
Counterparty Resolution Activities

Temporal activities used by document-ingestion workflows:
- resolve_counterparty: Look up the contact for an extracted name (read-only)
- provision_counterparty: Look up or create the contact, learning the alias
- learn_counterparty_alias: Record a confirmed name -> contact mapping

Invalid names and malformed scopes fail the activity as non-retryable,
as does learning an alias for an unknown contact. Store outages raise
normally so the workflow's retry policy applies.
"""

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from pydantic import ValidationError
from temporalio import activity
from temporalio.exceptions import ApplicationError

from contact_resolver import (
    CounterpartyKind,
    CounterpartyResolver,
    InvalidNameError,
    MatchingConfig,
    ResolutionResult,
    resolver_for,
)
from contact_resolver.config import get_db_path
from contact_resolver.db import open_sqlite_stores
from core.observability.logging import (
    log_activity_complete,
    log_activity_error,
    log_activity_start,
    with_correlation,
)


# =============================================================================
# Paths
# =============================================================================

DB_PATH: Path = get_db_path()

TASK_QUEUE = "contact-resolution"


# =============================================================================
# Activity Input/Output Models
# =============================================================================

@dataclass
class ResolveCounterpartyInput:
    """Input for resolve_counterparty / provision_counterparty."""
    tenant_id: str
    raw_name: str
    kind: str = CounterpartyKind.CUSTOMER.value
    company_id: Optional[str] = None
    created_by_id: Optional[str] = None
    document_id: Optional[str] = None


@dataclass
class ResolveCounterpartyOutput:
    """Output from resolve_counterparty / provision_counterparty."""
    strategy: str
    kind: str
    contact_id: Optional[str]
    contact_name: Optional[str]
    confidence: float
    matched_to: Optional[str] = None
    normalized_name: str = ""

    @classmethod
    def from_result(cls, result: ResolutionResult) -> "ResolveCounterpartyOutput":
        return cls(
            strategy=result.strategy.value,
            kind=result.kind.value,
            contact_id=result.contact_id,
            contact_name=result.contact_name,
            confidence=result.confidence,
            matched_to=result.matched_to,
            normalized_name=result.normalized_name,
        )


@dataclass
class LearnAliasInput:
    """Input for learn_counterparty_alias."""
    tenant_id: str
    raw_name: str
    contact_id: str
    kind: str = CounterpartyKind.CUSTOMER.value
    company_id: Optional[str] = None
    confidence: float = 1.0
    created_by_id: Optional[str] = None
    document_id: Optional[str] = None


@dataclass
class LearnAliasOutput:
    """Output from learn_counterparty_alias."""
    alias_id: str
    normalized_name: str
    contact_id: str
    confidence: float


# =============================================================================
# Helpers
# =============================================================================

def _get_resolver(kind: str) -> CounterpartyResolver:
    counterparty_kind = CounterpartyKind(kind)
    contacts, aliases = open_sqlite_stores(DB_PATH, counterparty_kind)
    return resolver_for(counterparty_kind, contacts, aliases, MatchingConfig.from_env())


def _workflow_id() -> Optional[str]:
    try:
        return activity.info().workflow_id
    except RuntimeError:
        return None


def _non_retryable(activity_name: str, error: Exception) -> ApplicationError:
    log_activity_error(activity_name, str(error))
    return ApplicationError(str(error), type=type(error).__name__, non_retryable=True)


# =============================================================================
# Activities
# =============================================================================

@activity.defn
async def resolve_counterparty(input: ResolveCounterpartyInput) -> ResolveCounterpartyOutput:
    """Resolve an extracted name against known aliases and contacts. Never writes."""
    start = time.time()
    with with_correlation(document_id=input.document_id, workflow_id=_workflow_id(),
                          activity_name="resolve_counterparty"):
        log_activity_start("resolve_counterparty", kind=input.kind)
        resolver = _get_resolver(input.kind)
        try:
            result = await resolver.resolve(
                input.tenant_id, input.company_id, input.raw_name, input.created_by_id
            )
        except (InvalidNameError, ValidationError) as e:
            raise _non_retryable("resolve_counterparty", e) from e

        log_activity_complete(
            "resolve_counterparty",
            duration_ms=(time.time() - start) * 1000,
            strategy=result.strategy.value,
        )
        return ResolveCounterpartyOutput.from_result(result)


@activity.defn
async def provision_counterparty(input: ResolveCounterpartyInput) -> ResolveCounterpartyOutput:
    """Resolve an extracted name, creating the contact if nothing matches."""
    start = time.time()
    with with_correlation(document_id=input.document_id, workflow_id=_workflow_id(),
                          activity_name="provision_counterparty"):
        log_activity_start("provision_counterparty", kind=input.kind)
        resolver = _get_resolver(input.kind)
        try:
            result = await resolver.get_or_create_contact(
                input.tenant_id, input.company_id, input.raw_name, input.created_by_id
            )
        except (InvalidNameError, ValidationError) as e:
            raise _non_retryable("provision_counterparty", e) from e

        log_activity_complete(
            "provision_counterparty",
            duration_ms=(time.time() - start) * 1000,
            strategy=result.strategy.value,
            contact_id=result.contact_id,
        )
        return ResolveCounterpartyOutput.from_result(result)


@activity.defn
async def learn_counterparty_alias(input: LearnAliasInput) -> LearnAliasOutput:
    """Record a confirmed name -> contact mapping."""
    with with_correlation(document_id=input.document_id, workflow_id=_workflow_id(),
                          activity_name="learn_counterparty_alias"):
        log_activity_start("learn_counterparty_alias", kind=input.kind)
        resolver = _get_resolver(input.kind)
        try:
            alias = await resolver.learn_alias(
                input.tenant_id,
                input.company_id,
                input.raw_name,
                input.contact_id,
                input.confidence,
                input.created_by_id,
            )
        except (ValueError, ValidationError) as e:
            raise _non_retryable("learn_counterparty_alias", e) from e

        log_activity_complete("learn_counterparty_alias", contact_id=alias.contact_id)
        return LearnAliasOutput(
            alias_id=alias.id,
            normalized_name=alias.normalized_name,
            contact_id=alias.contact_id,
            confidence=alias.confidence,
        )
