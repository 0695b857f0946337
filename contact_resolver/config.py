"""Contact Resolver Configuration.

Every tunable constant of the matching algorithm lives in MatchingConfig.
Defaults reproduce production behavior; MatchingConfig.from_env() allows
overrides via CONTACT_RESOLVER_* environment variables (or a .env file).

Example .env:
    CONTACT_RESOLVER_DB=/var/lib/contacts/contacts.db
    CONTACT_RESOLVER_FUZZY_ACCEPT_THRESHOLD=0.95
    CONTACT_RESOLVER_INSIGNIFICANT_TOKENS=pte,ltd,llc,inc,the,and
"""

import os
from pathlib import Path
from typing import FrozenSet, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator


ENV_PREFIX = "CONTACT_RESOLVER_"

# Default database path (repo root, next to the package)
DEFAULT_DB_PATH = Path(__file__).resolve().parents[1] / "contacts.db"

# Canonical legal-suffix forms. Kept as tokens by the normalizer but not
# significant for the extra-token guard.
LEGAL_SUFFIX_TOKENS = frozenset({
    "pte", "ltd", "llc", "llp", "lp", "inc", "corp", "co", "plc",
    "pc", "pa", "pllc", "gmbh", "ag", "sa", "bv", "nv", "bhd", "sdn", "pty",
})

# Connective words that carry no identity
CONNECTIVE_TOKENS = frozenset({"the", "and", "of", "a", "an", "dba", "aka"})

DEFAULT_INSIGNIFICANT_TOKENS = LEGAL_SUFFIX_TOKENS | CONNECTIVE_TOKENS


def _load_env_file() -> None:
    env_path = Path(__file__).resolve().parents[1] / ".env"
    if env_path.exists():
        load_dotenv(env_path)


class MatchingConfig(BaseModel):
    """Configuration for the counterparty matching algorithm.

    Thresholds are similarities in [0, 1].
    """
    # Acceptance
    alias_confidence_floor: float = Field(
        default=0.93,
        description="Min confidence reported for an exact alias hit",
    )
    fuzzy_accept_threshold: float = Field(
        default=0.93,
        description="Min Jaro-Winkler score to accept a fuzzy candidate",
    )

    # Jaro-Winkler
    prefix_weight: float = Field(default=0.1, description="Winkler bonus per common prefix char")
    max_prefix_length: int = Field(default=4, description="Cap on the common prefix length")
    winkler_boost_threshold: float = Field(
        default=0.7,
        description="Jaro similarity above which the prefix bonus applies",
    )

    # Extra-token guard
    token_match_threshold: float = Field(
        default=0.9,
        description="Token-level similarity at which two tokens count as the same word",
    )
    symmetric_token_guard: bool = Field(
        default=True,
        description="Also reject when the query has unexplained significant tokens",
    )
    insignificant_tokens: FrozenSet[str] = Field(default=DEFAULT_INSIGNIFICANT_TOKENS)

    # Scan limits (newest first)
    alias_scan_limit: int = Field(default=1500, ge=1)
    contact_scan_limit: int = Field(default=500, ge=1)

    model_config = {"frozen": True}

    @field_validator(
        "alias_confidence_floor",
        "fuzzy_accept_threshold",
        "prefix_weight",
        "winkler_boost_threshold",
        "token_match_threshold",
    )
    @classmethod
    def _unit_interval(cls, v: float) -> float:
        if not 0.0 <= v <= 1.0:
            raise ValueError("must be within [0, 1]")
        return v

    @field_validator("insignificant_tokens", mode="before")
    @classmethod
    def _parse_tokens(cls, v):
        if isinstance(v, str):
            v = [t for t in v.split(",")]
        return frozenset(t.strip().casefold() for t in v if t and t.strip())

    @model_validator(mode="after")
    def _bounded_prefix_bonus(self) -> "MatchingConfig":
        # Keeps Jaro-Winkler within [0, 1]
        if self.max_prefix_length < 0 or self.prefix_weight * self.max_prefix_length > 1.0:
            raise ValueError("prefix_weight * max_prefix_length must be within [0, 1]")
        return self

    @classmethod
    def from_env(cls) -> "MatchingConfig":
        """Build a config from CONTACT_RESOLVER_* environment variables."""
        _load_env_file()
        overrides = {}
        for name in cls.model_fields:
            value = os.getenv(ENV_PREFIX + name.upper())
            if value is not None and value != "":
                overrides[name] = value
        return cls(**overrides)


def get_db_path(default: Optional[Path] = None) -> Path:
    """Resolve the SQLite database path from CONTACT_RESOLVER_DB."""
    _load_env_file()
    value = os.getenv(ENV_PREFIX + "DB")
    if value:
        return Path(value)
    return default or DEFAULT_DB_PATH


# Default matching config
DEFAULT_MATCHING_CONFIG = MatchingConfig()
