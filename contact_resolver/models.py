"""Contact Resolver Data Models.

This module defines the Pydantic models for counterparty resolution:
- Scope: The (tenant, company) boundary a resolution runs in
- Contact: Canonical person/organization record
- CounterpartyAlias: Learned mapping from a raw name to a contact
- ResolutionResult: The outcome of resolving a raw name
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class CounterpartyKind(str, Enum):
    """Which side of a document the name came from."""
    CUSTOMER = "customer"  # Receivables: who we bill
    VENDOR = "vendor"      # Payables: who bills us


class ResolutionStrategy(str, Enum):
    """How the name was resolved."""
    ALIAS = "ALIAS"      # Exact match on a learned alias
    FUZZY = "FUZZY"      # Similarity match against contacts/aliases
    CREATED = "CREATED"  # New contact created by the provisioner
    NONE = "NONE"        # No match found


class Scope(BaseModel):
    """Tenant/company boundary for names, aliases and contacts.

    company_id=None means tenant-wide scope.
    """
    tenant_id: str = Field(..., description="Tenant identifier")
    company_id: Optional[str] = Field(default=None, description="Company within the tenant")

    model_config = {"frozen": True}

    @field_validator("tenant_id")
    @classmethod
    def _tenant_required(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("tenant_id is required")
        return v

    @field_validator("company_id")
    @classmethod
    def _company_not_blank(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("company_id must be None or non-blank")
        return v

    @property
    def company_key(self) -> str:
        """Store key for company_id (SQL UNIQUE treats NULLs as distinct)."""
        return self.company_id or ""


class Contact(BaseModel):
    """Canonical contact record.

    Attributes:
        id: Contact ID (UUID string)
        tenant_id: Owning tenant
        company_id: Owning company, None for tenant-global contacts
        corporate_name: Organization name
        full_name: Person/display name
    """
    id: str
    tenant_id: str
    company_id: Optional[str] = None
    corporate_name: Optional[str] = None
    full_name: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @property
    def display_name(self) -> str:
        return self.corporate_name or self.full_name

    def is_visible_in(self, scope: Scope) -> bool:
        """Company scope sees its own and tenant-global contacts; tenant scope only the latter."""
        if self.tenant_id != scope.tenant_id:
            return False
        return self.company_id is None or self.company_id == scope.company_id


class CounterpartyAlias(BaseModel):
    """Mapping from a raw extracted name to a contact.

    Once a name is resolved or created, an alias is stored so future
    documents with the same (normalized) name resolve instantly.

    Attributes:
        id: Alias ID (UUID string)
        kind: Customer or vendor alias table
        tenant_id: Owning tenant
        company_id: Owning company, None for tenant-wide aliases
        raw_name: Name as first seen (unnormalized)
        normalized_name: Normalized raw name (the lookup key)
        contact_id: Referenced contact
        confidence: Confidence of the mapping (0-1)
        created_by_id: Who caused this alias to be learned
    """
    id: str
    kind: CounterpartyKind = CounterpartyKind.CUSTOMER
    tenant_id: str
    company_id: Optional[str] = None
    raw_name: str
    normalized_name: str
    contact_id: str
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    created_by_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ResolutionResult(BaseModel):
    """Result of resolving a raw counterparty name.

    contact_id/confidence are meaningful iff strategy != NONE. For NONE,
    contact_name carries the input text and confidence is 0.
    """
    strategy: ResolutionStrategy = Field(default=ResolutionStrategy.NONE)
    kind: CounterpartyKind = Field(default=CounterpartyKind.CUSTOMER)
    contact_id: Optional[str] = Field(default=None, description="Canonical contact ID")
    contact_name: Optional[str] = Field(default=None, description="Canonical contact name")
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    matched_to: Optional[str] = Field(default=None, description="Stored name the input matched")
    normalized_name: str = Field(default="", description="Normalized input used for matching")

    @property
    def is_matched(self) -> bool:
        return self.strategy != ResolutionStrategy.NONE

    # Names used by the customer and vendor APIs
    @property
    def customer_id(self) -> Optional[str]:
        return self.contact_id

    @property
    def customer_name(self) -> Optional[str]:
        return self.contact_name

    @property
    def vendor_id(self) -> Optional[str]:
        return self.contact_id

    @property
    def vendor_name(self) -> Optional[str]:
        return self.contact_name
