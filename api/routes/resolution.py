"""Counterparty resolution endpoints.

Thin routes over the resolver for both counterparty kinds:
- POST /resolution/{kind}/resolve    Read-only lookup (never creates)
- POST /resolution/{kind}/provision  Resolve or create, learning the alias
- POST /resolution/{kind}/aliases    Learn/update an alias
- GET  /resolution/{kind}/aliases    List learned aliases in a scope
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field, ValidationError

from contact_resolver import (
    CounterpartyAlias,
    CounterpartyKind,
    CounterpartyResolver,
    InvalidNameError,
    MatchingConfig,
    ResolutionResult,
    Scope,
    StoreUnavailableError,
    resolver_for,
)
from contact_resolver.config import get_db_path
from contact_resolver.db import open_sqlite_stores
from core.observability.logging import get_logger


router = APIRouter()
logger = get_logger(__name__)

# Database used by the routes (tests point this at a temp file)
DB_PATH = get_db_path()


def get_resolver(kind: CounterpartyKind) -> CounterpartyResolver:
    """Resolver for a counterparty kind over the configured database."""
    try:
        contacts, aliases = open_sqlite_stores(DB_PATH, kind)
    except StoreUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return resolver_for(kind, contacts, aliases, MatchingConfig.from_env())


# =============================================================================
# Request/Response Models
# =============================================================================

class ResolveRequest(BaseModel):
    """Raw name to resolve within a scope."""
    tenant_id: str = Field(..., description="Tenant scope")
    company_id: Optional[str] = Field(None, description="Company scope, omit for tenant-wide")
    raw_name: str = Field(..., description="Name as extracted from the document")
    created_by_id: Optional[str] = Field(None, description="Caller attribution")


class ResolveResponse(BaseModel):
    """Resolution outcome. Unmatched lookups only carry matched=false."""
    matched: bool
    strategy: Optional[str] = None
    contact_id: Optional[str] = None
    contact_name: Optional[str] = None
    confidence: Optional[float] = None
    matched_to: Optional[str] = None
    normalized_name: Optional[str] = None


class LearnAliasRequest(BaseModel):
    """Confirmed mapping of a raw name to a contact."""
    tenant_id: str
    company_id: Optional[str] = None
    raw_name: str
    contact_id: str
    confidence: float = Field(1.0, description="Clamped into [0, 1]")
    created_by_id: Optional[str] = None


class AliasResponse(BaseModel):
    """Stored alias."""
    id: str
    kind: str
    tenant_id: str
    company_id: Optional[str]
    raw_name: str
    normalized_name: str
    contact_id: str
    confidence: float
    created_by_id: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


def _to_response(result: ResolutionResult) -> ResolveResponse:
    if not result.is_matched:
        return ResolveResponse(matched=False)
    return ResolveResponse(
        matched=True,
        strategy=result.strategy.value,
        contact_id=result.contact_id,
        contact_name=result.contact_name,
        confidence=result.confidence,
        matched_to=result.matched_to,
        normalized_name=result.normalized_name,
    )


def _alias_response(alias: CounterpartyAlias) -> AliasResponse:
    return AliasResponse(
        id=alias.id,
        kind=alias.kind.value,
        tenant_id=alias.tenant_id,
        company_id=alias.company_id,
        raw_name=alias.raw_name,
        normalized_name=alias.normalized_name,
        contact_id=alias.contact_id,
        confidence=alias.confidence,
        created_by_id=alias.created_by_id,
        created_at=alias.created_at,
        updated_at=alias.updated_at,
    )


def _http_error(e: Exception) -> HTTPException:
    """Map resolution errors to HTTP status codes."""
    if isinstance(e, StoreUnavailableError):
        logger.error(f"Store unavailable: {e}")
        return HTTPException(status_code=503, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(status_code=400, detail=f"Invalid scope: {e.error_count()} validation error(s)")
    return HTTPException(status_code=400, detail=str(e))


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/{kind}/resolve", response_model=ResolveResponse, response_model_exclude_none=True)
async def resolve(kind: CounterpartyKind, request: ResolveRequest) -> ResolveResponse:
    """Look up the canonical contact for a raw name. Never creates."""
    resolver = get_resolver(kind)
    try:
        result = await resolver.resolve(
            request.tenant_id, request.company_id, request.raw_name, request.created_by_id
        )
    except (InvalidNameError, ValidationError, StoreUnavailableError) as e:
        raise _http_error(e)
    return _to_response(result)


@router.post("/{kind}/provision", response_model=ResolveResponse)
async def provision(kind: CounterpartyKind, request: ResolveRequest) -> ResolveResponse:
    """Resolve a raw name, creating the contact if nothing matches."""
    resolver = get_resolver(kind)
    try:
        result = await resolver.get_or_create_contact(
            request.tenant_id, request.company_id, request.raw_name, request.created_by_id
        )
    except (InvalidNameError, ValidationError, StoreUnavailableError) as e:
        raise _http_error(e)
    return _to_response(result)


@router.post("/{kind}/aliases", response_model=AliasResponse)
async def learn_alias(kind: CounterpartyKind, request: LearnAliasRequest) -> AliasResponse:
    """Learn or update an alias for a raw name."""
    resolver = get_resolver(kind)
    try:
        alias = await resolver.learn_alias(
            request.tenant_id,
            request.company_id,
            request.raw_name,
            request.contact_id,
            request.confidence,
            request.created_by_id,
        )
    except (ValueError, ValidationError, StoreUnavailableError) as e:
        raise _http_error(e)
    return _alias_response(alias)


@router.get("/{kind}/aliases", response_model=List[AliasResponse])
async def list_aliases(
    kind: CounterpartyKind,
    tenant_id: str = Query(..., description="Tenant scope"),
    company_id: Optional[str] = Query(None, description="Company scope"),
    limit: int = Query(100, ge=1, le=1500),
) -> List[AliasResponse]:
    """List learned aliases in a scope, newest first."""
    resolver = get_resolver(kind)
    try:
        scope = Scope(tenant_id=tenant_id, company_id=company_id)
        aliases = resolver.aliases.find_aliases(scope, limit=limit)
    except (ValidationError, StoreUnavailableError) as e:
        raise _http_error(e)
    return [_alias_response(a) for a in aliases]
