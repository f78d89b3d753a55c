#!/usr/bin/env python3
"""CLI script to provision a new tenant from a seeder template.

Usage:
    python scripts/provision_tenant.py --name "Acme" --domain acme.example.com
    python scripts/provision_tenant.py --name "Acme EU" --domain eu.acme.example.com \
        --template isolated --identifier acme-eu --parent <parent public id> \
        --config app_name=Acme --config allow_public_config_api=true

Connects directly to the database using DATABASE_URL from environment or .env file.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys

# Ensure project root is on sys.path so we can import src.tenancy
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from dotenv import load_dotenv  # noqa: E402

# Load .env from project root
load_dotenv(os.path.join(os.path.dirname(__file__), "..", ".env"))


def parse_config_pairs(pairs: list[str]) -> dict:
    """Parse ``key=value`` pairs; values are decoded as JSON when possible."""
    config: dict = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep or not key:
            raise ValueError(f"Expected key=value, got: {pair}")
        try:
            config[key] = json.loads(raw)
        except ValueError:
            config[key] = raw
    return config


async def provision(args: argparse.Namespace) -> None:
    """Provision a tenant by calling the provisioning service directly."""
    from src.tenancy.config import get_settings
    from src.tenancy.core.database import close_db, get_shared_session, init_db
    from src.tenancy.core.redis import JsonCache, close_redis, get_redis_pool
    from src.tenancy.tenants.builtin import build_registries
    from src.tenancy.tenants.dump import TenantDumpService
    from src.tenancy.tenants.provisioning import TenantProvisioningService
    from src.tenancy.tenants.repository import TenantRepository

    settings = get_settings()
    await init_db()

    repository = TenantRepository(session_factory=get_shared_session)
    registries = build_registries(settings)
    dump_service = TenantDumpService(
        registries.providers,
        registries.pipeline,
        repository=repository,
        cache=JsonCache(get_redis_pool()),
        cache_ttl=settings.TENANT_CACHE_TTL,
    )
    service = TenantProvisioningService(repository, registries.seeders, dump_service=dump_service)

    try:
        print(f"Provisioning tenant: name={args.name}, domain={args.domain}, template={args.template}")
        tenant = await service.provision(
            name=args.name,
            domain=args.domain,
            template=args.template,
            identifier=args.identifier,
            parent_public_id=args.parent,
            base_config=parse_config_pairs(args.config),
            tier=args.tier,
        )
        print("Tenant provisioned successfully:")
        print(f"  ID:     {tenant.public_id}")
        print(f"  Name:   {tenant.name}")
        print(f"  Domain: {tenant.domain}")
        print(f"  Keys:   {', '.join(sorted(tenant.config.keys()))}")
    finally:
        await close_redis()
        await close_db()


def main() -> None:
    parser = argparse.ArgumentParser(description="Provision a new tenant")
    parser.add_argument("--name", required=True, help="Tenant display name (e.g., 'Acme')")
    parser.add_argument("--domain", required=True, help="Tenant host (e.g., acme.example.com)")
    parser.add_argument("--template", default="basic", help="Seeder template (basic, isolated)")
    parser.add_argument("--identifier", default=None, help="Slug for subdomain/path resolution")
    parser.add_argument("--parent", default=None, help="Parent tenant public id")
    parser.add_argument("--tier", default=None, help="Subscription tier label")
    parser.add_argument(
        "--config",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Base config passed to seeders (repeatable)",
    )
    args = parser.parse_args()

    try:
        parse_config_pairs(args.config)
    except ValueError as exc:
        parser.error(str(exc))

    asyncio.run(provision(args))


if __name__ == "__main__":
    main()
