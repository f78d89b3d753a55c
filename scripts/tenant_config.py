#!/usr/bin/env python3
"""CLI script to inspect and edit a tenant's persisted config.

Usage:
    python scripts/tenant_config.py show <public_id> [--mode protected|public|all]
    python scripts/tenant_config.py set <public_id> app_name '"Acme"' --visibility public
    python scripts/tenant_config.py forget <public_id> app_name

Values for ``set`` are decoded as JSON when possible. Changes drop the
resolver and dump cache entries of the tenant.
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


async def run(args: argparse.Namespace) -> int:
    from src.tenancy.config import get_settings
    from src.tenancy.core.database import close_db, get_shared_session
    from src.tenancy.core.exceptions import TenantError
    from src.tenancy.core.redis import JsonCache, close_redis, get_redis_pool
    from src.tenancy.core.tenant import tenant_scope
    from src.tenancy.tenants.builtin import build_registries
    from src.tenancy.tenants.dump import DumpMode, TenantDumpService
    from src.tenancy.tenants.provisioning import TenantProvisioningService
    from src.tenancy.tenants.repository import TenantRepository
    from src.tenancy.tenants.resolver import TenantResolver

    settings = get_settings()
    repository = TenantRepository(session_factory=get_shared_session)
    registries = build_registries(settings)
    cache = JsonCache(get_redis_pool())
    resolver = TenantResolver(repository, cache=cache, ttl=settings.TENANT_RESOLVER_TTL)
    dump_service = TenantDumpService(
        registries.providers, registries.pipeline, repository=repository, cache=cache
    )
    service = TenantProvisioningService(
        repository, registries.seeders, resolver=resolver, dump_service=dump_service
    )

    try:
        if args.command == "show":
            tenant = await service.get(args.public_id)
            with tenant_scope(tenant) as ctx:
                if args.mode == "all":
                    output = tenant.config.to_dict()
                else:
                    output = dump_service.serialize(ctx.get(), DumpMode(args.mode))
            print(json.dumps(output, indent=2, default=str))
        elif args.command == "set":
            try:
                value = json.loads(args.value)
            except ValueError:
                value = args.value
            await service.update_config(args.public_id, entries={args.key: (value, args.visibility)})
            print(f"Set {args.key} on {args.public_id}")
        elif args.command == "forget":
            await service.update_config(args.public_id, forget=[args.key])
            print(f"Removed {args.key} from {args.public_id}")
    except TenantError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1
    finally:
        await close_redis()
        await close_db()
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Inspect and edit tenant config")
    sub = parser.add_subparsers(dest="command", required=True)

    show = sub.add_parser("show", help="Print a tenant's config")
    show.add_argument("public_id")
    show.add_argument("--mode", choices=["protected", "public", "all"], default="protected")

    set_cmd = sub.add_parser("set", help="Set a config key")
    set_cmd.add_argument("public_id")
    set_cmd.add_argument("key")
    set_cmd.add_argument("value")
    set_cmd.add_argument("--visibility", choices=["public", "protected", "private"], default=None)

    forget = sub.add_parser("forget", help="Remove a config key")
    forget.add_argument("public_id")
    forget.add_argument("key")

    args = parser.parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
