"""Command-line tenant management for operators.

Examples:
    kinetic-admin init-db
    kinetic-admin migrate
    kinetic-admin create "Acme Corp" --plan business
    kinetic-admin block zk_live_...
"""
from __future__ import annotations

import argparse
import sys
from collections.abc import Sequence

from kinetic_authority.db.session import create_tables
from kinetic_authority.models import Client
from kinetic_authority.scripts.migrate import run_upgrade_head
from kinetic_authority.services.registry import (
    PLAN_LIMITS,
    ClientNotFoundError,
    ClientRegistry,
    get_client_registry,
)


def _describe(client: Client) -> str:
    limit = "unlimited" if client.is_unlimited else str(client.monthly_limit)
    expires = client.expires_at.isoformat() if client.expires_at else "never"
    return (
        f"{client.api_key}  {client.name!r}  plan={client.plan}  status={client.status}  "
        f"used={client.used_this_month}/{limit}  expires={expires}"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="kinetic-admin", description="Manage API clients")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables if missing")
    sub.add_parser("migrate", help="Apply Alembic migrations up to head")

    create = sub.add_parser("create", help="Provision a new client")
    create.add_argument("name")
    create.add_argument("--plan", choices=sorted(PLAN_LIMITS), default="starter")
    create.add_argument("--limit", type=int, default=None, help="Monthly limit (0 = unlimited)")
    create.add_argument("--days", type=int, default=None, help="Subscription length in days")

    sub.add_parser("list", help="List all clients")

    for name in ("block", "unblock", "delete", "show"):
        cmd = sub.add_parser(name, help=f"{name.capitalize()} a client")
        cmd.add_argument("api_key")

    renew = sub.add_parser("renew", help="Extend a subscription")
    renew.add_argument("api_key")
    renew.add_argument("--days", type=int, default=30)

    return parser


def main(argv: Sequence[str] | None = None, registry: ClientRegistry | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.command == "init-db":
        create_tables()
        print("[kinetic-admin] tables ready")
        return 0

    if args.command == "migrate":
        run_upgrade_head()
        print("[kinetic-admin] migrations applied")
        return 0

    registry = registry or get_client_registry()
    try:
        if args.command == "create":
            client = registry.create(args.name, args.plan, args.limit, args.days)
            print(_describe(client))
        elif args.command == "list":
            for client in registry.list_clients():
                print(_describe(client))
        elif args.command == "show":
            print(_describe(registry.lookup(args.api_key)))
        elif args.command == "block":
            print(_describe(registry.block(args.api_key)))
        elif args.command == "unblock":
            print(_describe(registry.unblock(args.api_key)))
        elif args.command == "renew":
            print(_describe(registry.renew(args.api_key, args.days)))
        elif args.command == "delete":
            registry.delete(args.api_key)
            print(f"[kinetic-admin] deleted {args.api_key[:12]}...")
    except ClientNotFoundError:
        print(f"[kinetic-admin] ERROR: unknown client {args.api_key[:12]}...", file=sys.stderr)
        return 1
    except ValueError as exc:
        print(f"[kinetic-admin] ERROR: {exc}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
