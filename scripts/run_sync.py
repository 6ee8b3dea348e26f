#!/usr/bin/env python3
"""
Run identity service operations from the command line.

Uses the same configuration as the deployed service, read from the
environment (and a local .env file when present).
"""

import argparse
import json
import sys
from pathlib import Path

import dotenv

# Add the repository root to sys.path to import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from identity_service.core.config import load_config, validate_config
from identity_service.core.errors import IdentityServiceError
from identity_service.core.service import create_service


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Run identity service operations locally",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s health                      # Service health message
  %(prog)s profile USER_ID             # Reconcile one user's profile
  %(prog)s profiles                    # Reconcile every VERIFIED user
  %(prog)s verify USER_ID              # Verify one user's chaincode
  %(prog)s health-check                # Probe every VERIFIED user's service
  %(prog)s --store sqlite profiles     # Use the local SQLite store

Environment variables:
- environment=DEVELOPMENT|PRODUCTION (where secrets are read from)
- DOCUMENT_STORE=firestore|sqlite|memory
- DB_PATH=./data/identity.db
        """
    )

    parser.add_argument(
        "--store",
        choices=["firestore", "sqlite", "memory"],
        help="Override DOCUMENT_STORE"
    )

    parser.add_argument(
        "--db-path",
        help="Override DB_PATH for the sqlite store"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the full result as JSON"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("health", help="Print the service health message")

    profile_parser = subparsers.add_parser("profile", help="Reconcile one user")
    profile_parser.add_argument("user_id")
    profile_parser.add_argument("--session-id", default="", help="Session id to stamp on audit entries")

    subparsers.add_parser("profiles", help="Reconcile every VERIFIED user")

    verify_parser = subparsers.add_parser("verify", help="Verify one user's chaincode")
    verify_parser.add_argument("user_id")

    subparsers.add_parser("health-check", help="Probe every VERIFIED user's profile service")

    subparsers.add_parser("check-config", help="Validate configuration and exit")

    args = parser.parse_args(argv)

    dotenv.load_dotenv()
    config = load_config()
    overrides = {}
    if args.store:
        overrides["document_store"] = args.store
    if args.db_path:
        overrides["db_path"] = args.db_path
    if overrides:
        config = config.with_overrides(**overrides)

    if args.command == "check-config":
        issues = validate_config(config)
        if not issues:
            print("Configuration OK")
            return 0
        for issue in issues:
            print(f"ERROR: {issue}")
        return 1

    try:
        service = create_service(config)

        if args.command == "health":
            result = service.health()
        elif args.command == "profile":
            result = service.sync_profile(args.user_id, args.session_id)
        elif args.command == "profiles":
            result = service.sync_all_profiles()
        elif args.command == "verify":
            result = service.verify_user(args.user_id)
        else:
            result = service.check_all_health()

    except IdentityServiceError as e:
        print(f"ERROR ({e.status_code}): {e.message}")
        return 1

    if args.json:
        print(json.dumps({
            "status_code": result.status_code,
            "message": result.message,
            "report": result.report
        }, indent=2, default=str))
    else:
        print(f"{result.status_code} {result.message}")
        if result.report:
            print(json.dumps(result.report, indent=2, default=str))

    return 0


if __name__ == "__main__":
    sys.exit(main())
