#!/usr/bin/env python3
"""
RumorMill Management CLI

Commands for managing the rumor board:
- migrate: Apply pending schema migrations
- sweep: Run the lifecycle sweep once
- credibility: Show an identity's credibility record
- serve: Run the API server

Usage:
    python -m rumormill.manage <command> [options]

Examples:
    python -m rumormill.manage migrate
    python -m rumormill.manage sweep
    python -m rumormill.manage credibility 3f2a...e9
    python -m rumormill.manage serve --port 3000
"""

import argparse
import sys

from .schemas import is_valid_identity


def cmd_migrate(args):
    """Apply pending schema migrations to the configured store."""
    from .shared import create_store

    store = create_store()
    try:
        applied = store.migrate()
    finally:
        store.close()

    if applied:
        print(f"[OK] Applied migrations: {', '.join(str(v) for v in applied)}")
    else:
        print("[OK] Schema is up to date")
    return 0


def cmd_sweep(args):
    """Archive stale and distrusted rumors, prune idle identities."""
    from .shared import create_service, create_store

    store = create_store()
    try:
        report = create_service(store).sweep()
    finally:
        store.close()

    print(f"Rumors archived:   {report.rumors_archived}")
    print(f"Identities pruned: {report.identities_pruned}")
    print(f"Votes pruned:      {report.votes_pruned}")
    return 0


def cmd_credibility(args):
    """Print an identity's credibility record."""
    from .shared import create_service, create_store

    if not is_valid_identity(args.identity):
        print("[FAIL] Identity must be a 64-character hex token")
        return 1

    store = create_store()
    try:
        record = create_service(store).get_credibility(args.identity)
    finally:
        store.close()

    print(f"Identity:       {record.hashed_token[:16]}...")
    print(f"Credibility:    {record.credibility:.4f}")
    print(f"Total votes:    {record.total_votes}")
    print(f"Aligned votes:  {record.aligned_votes}")
    print(f"Alignment rate: {record.alignment_rate:.2%}")
    return 0


def cmd_serve(args):
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "rumormill.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
    )
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="RumorMill Management CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # migrate
    subparsers.add_parser(
        "migrate",
        help="Apply pending schema migrations"
    )

    # sweep
    subparsers.add_parser(
        "sweep",
        help="Run the lifecycle sweep once"
    )

    # credibility
    p_cred = subparsers.add_parser(
        "credibility",
        help="Show an identity's credibility record"
    )
    p_cred.add_argument("identity", help="64-character hex identity token")

    # serve
    p_serve = subparsers.add_parser(
        "serve",
        help="Run the API server"
    )
    p_serve.add_argument("--host", default="127.0.0.1")
    p_serve.add_argument("--port", type=int, default=3000)
    p_serve.add_argument("--reload", action="store_true", help="Reload on code changes")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    commands = {
        "migrate": cmd_migrate,
        "sweep": cmd_sweep,
        "credibility": cmd_credibility,
        "serve": cmd_serve,
    }

    return commands[args.command](args) or 0


if __name__ == "__main__":
    sys.exit(main())
