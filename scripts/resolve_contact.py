"""Command-line tool for the Contact Resolver.

Seed sample data, resolve or provision names, and inspect learned aliases
against the configured SQLite database.

Usage:
    python scripts/resolve_contact.py seed
    python scripts/resolve_contact.py resolve "Accounting and Corporate Authority (ACCA)"
    python scripts/resolve_contact.py --kind vendor provision "Nobody Pte Ltd"
    python scripts/resolve_contact.py --tenant demo-tenant --company demo-company aliases
    python scripts/resolve_contact.py normalize "ACME Private Limited"

Options:
    --db PATH        SQLite database (default: CONTACT_RESOLVER_DB or contacts.db)
    --tenant ID      Tenant scope (default: demo-tenant)
    --company ID     Company scope (default: demo-company; "" for tenant-wide)
"""

import argparse
import logging
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from contact_resolver import (
    ContactResolutionError,
    CounterpartyKind,
    MatchingConfig,
    Scope,
    explain_resolution,
    normalize_name,
    open_sqlite_stores,
    resolver_for,
    seed_sample_data,
    significant_tokens,
)
from contact_resolver.config import get_db_path
from contact_resolver.db import SAMPLE_COMPANY_ID, SAMPLE_TENANT_ID
from core.observability.logging import configure_logging


def build_resolver(args):
    kind = CounterpartyKind(args.kind)
    contacts, aliases = open_sqlite_stores(args.db, kind)
    return resolver_for(kind, contacts, aliases, MatchingConfig.from_env())


def cmd_seed(args) -> int:
    created = seed_sample_data(args.db)
    print(f"✓ Seeded {created['contacts']} contacts and {created['aliases']} aliases into {args.db}")
    return 0


async def cmd_resolve(args) -> int:
    resolver = build_resolver(args)
    result = await resolver.resolve(args.tenant, args.company, args.name, args.user)
    print(explain_resolution(result, args.name))
    return 0


async def cmd_provision(args) -> int:
    resolver = build_resolver(args)
    result = await resolver.get_or_create_contact(args.tenant, args.company, args.name, args.user)
    print(explain_resolution(result, args.name))
    return 0


def cmd_aliases(args) -> int:
    resolver = build_resolver(args)
    scope = Scope(tenant_id=args.tenant, company_id=args.company)
    aliases = resolver.aliases.find_aliases(scope, limit=args.limit)

    print("=" * 70)
    print(f"{args.kind.title()} aliases in {args.tenant}/{args.company or '*'}")
    print("=" * 70)
    if not aliases:
        print("  (none)")
    for alias in aliases:
        contact = resolver.contacts.find_by_id(alias.contact_id)
        name = contact.display_name if contact else "<missing contact>"
        print(f"  '{alias.normalized_name}' → {name} [{alias.confidence:.2f}]")
    print()
    print(f"Total: {len(aliases)}")
    return 0


def cmd_normalize(args) -> int:
    config = MatchingConfig.from_env()
    normalized = normalize_name(args.name)
    print(f"  '{args.name}' → '{normalized}'")
    print(f"  significant tokens: {significant_tokens(normalized, config.insignificant_tokens)}")
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Contact Resolver CLI")
    parser.add_argument("--db", type=Path, default=get_db_path(), help="SQLite database path")
    parser.add_argument("--tenant", default=SAMPLE_TENANT_ID, help="Tenant scope")
    parser.add_argument("--company", default=SAMPLE_COMPANY_ID,
                        help='Company scope ("" for tenant-wide)')
    parser.add_argument("--kind", choices=[k.value for k in CounterpartyKind],
                        default=CounterpartyKind.CUSTOMER.value)
    parser.add_argument("--user", default="cli", help="created_by_id for learned aliases")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("seed", help="Seed sample contacts and aliases")
    for name, help_text in (
        ("resolve", "Resolve a name (read-only)"),
        ("provision", "Resolve a name, creating the contact if needed"),
        ("normalize", "Show the normalized form of a name"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("name", help="Raw counterparty name")
    p = sub.add_parser("aliases", help="List learned aliases")
    p.add_argument("--limit", type=int, default=50)

    args = parser.parse_args()
    args.company = args.company or None
    configure_logging(level=logging.DEBUG if args.verbose else logging.WARNING, force=True)

    try:
        if args.command == "seed":
            return cmd_seed(args)
        if args.command == "resolve":
            return asyncio.run(cmd_resolve(args))
        if args.command == "provision":
            return asyncio.run(cmd_provision(args))
        if args.command == "aliases":
            return cmd_aliases(args)
        return cmd_normalize(args)
    except ContactResolutionError as e:
        print(f"✗ {type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
