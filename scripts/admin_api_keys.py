"""Admin CLI for managing ForceFlow API keys.

Usage examples:
    python scripts/admin_api_keys.py create --email analyst@example.com --role analyst
    python scripts/admin_api_keys.py list --json
    python scripts/admin_api_keys.py revoke --prefix abcd1234 --yes
"""

from __future__ import annotations

import argparse
import json
import sys
from datetime import datetime, timedelta

from sqlalchemy import select

from forceflow.config import settings
from forceflow.db import SessionLocal, init_db, utcnow
from forceflow.db_models import ApiKey
from forceflow.security.api_keys import ROLES, generate_api_key, hash_api_key, key_prefix


def _pepper() -> str:
    if not settings.api_key_pepper:
        sys.stderr.write("API key pepper must be configured to manage API keys.\n")
        raise SystemExit(1)
    return settings.api_key_pepper


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _describe(key: ApiKey) -> dict:
    return {
        "id": key.id,
        "key_prefix": key.key_prefix,
        "holder_email": key.holder_email,
        "holder_label": key.holder_label,
        "role": key.role,
        "created_at": _iso(key.created_at),
        "expires_at": _iso(key.expires_at),
        "revoked_at": _iso(key.revoked_at),
    }


def cmd_create(args) -> int:
    pepper = _pepper()
    expires_at = None
    if args.expires_at:
        expires_at = datetime.fromisoformat(args.expires_at)
    elif args.expires_in:
        expires_at = utcnow() + timedelta(days=args.expires_in)

    plaintext_key = generate_api_key(test=args.test)
    with SessionLocal() as session:
        api_key = ApiKey(
            key_prefix=key_prefix(plaintext_key),
            key_hash=hash_api_key(plaintext_key, pepper),
            holder_email=args.email,
            holder_label=args.label,
            role=args.role,
            expires_at=expires_at,
            notes=args.notes,
        )
        session.add(api_key)
        session.commit()
        session.refresh(api_key)
        output = {**_describe(api_key), "api_key": plaintext_key}

    if args.json:
        print(json.dumps(output, indent=2))
    else:
        print("API key created (store this secret securely, it will not be shown again):")
        for field in ("id", "key_prefix", "holder_email", "role", "expires_at", "api_key"):
            print(f"  {field}: {output[field]}")
    return 0


def cmd_list(args) -> int:
    with SessionLocal() as session:
        query = select(ApiKey).order_by(ApiKey.created_at.desc())
        if args.email:
            query = query.where(ApiKey.holder_email == args.email)
        if not args.show_revoked:
            query = query.where(ApiKey.revoked_at.is_(None))
        keys = [_describe(key) for key in session.execute(query).scalars()]

    if not keys:
        print("No API keys found.")
    elif args.json:
        print(json.dumps(keys, indent=2))
    else:
        for item in keys:
            print(
                f"{item['id']}: prefix={item['key_prefix']} email={item['holder_email']}"
                f" role={item['role']} expires={item['expires_at'] or 'none'}"
                f" revoked={item['revoked_at'] or 'active'}"
            )
    return 0


def cmd_revoke(args) -> int:
    with SessionLocal() as session:
        if args.id is not None:
            target = session.get(ApiKey, args.id)
        else:
            target = session.execute(
                select(ApiKey).where(ApiKey.key_prefix == args.prefix)
            ).scalar_one_or_none()

        if target is None:
            sys.stderr.write("API key not found.\n")
            return 1
        if target.revoked_at is not None:
            print("API key is already revoked.")
            return 0
        if not args.yes:
            answer = input(f"Revoke API key {target.key_prefix} for {target.holder_email}? [y/N]: ")
            if answer.strip().lower() not in {"y", "yes"}:
                print("Cancelled.")
                return 0

        target.revoked_at = utcnow()
        session.commit()
        print(f"API key {target.key_prefix} revoked at {target.revoked_at.isoformat()}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage ForceFlow API keys")
    sub = parser.add_subparsers(dest="command", required=True)

    create_cmd = sub.add_parser("create", help="Create a new API key")
    create_cmd.add_argument("--email", required=True, help="Email address for the key holder")
    create_cmd.add_argument("--label", help="Label or device name")
    create_cmd.add_argument("--role", choices=ROLES, default="viewer", help="Access role")
    create_cmd.add_argument("--expires-in", type=int, help="Expiration in days")
    create_cmd.add_argument("--expires-at", help="Expiration timestamp in ISO format (UTC)")
    create_cmd.add_argument("--notes", help="Optional notes for the key")
    create_cmd.add_argument("--test", action="store_true", help="Generate a test-only key")
    create_cmd.add_argument("--json", action="store_true", help="Return JSON output")
    create_cmd.set_defaults(func=cmd_create)

    list_cmd = sub.add_parser("list", help="List API keys")
    list_cmd.add_argument("--email", help="Filter by holder email")
    list_cmd.add_argument("--show-revoked", action="store_true", help="Include revoked keys")
    list_cmd.add_argument("--json", action="store_true", help="Return JSON output")
    list_cmd.set_defaults(func=cmd_list)

    revoke_cmd = sub.add_parser("revoke", help="Revoke an API key")
    target = revoke_cmd.add_mutually_exclusive_group(required=True)
    target.add_argument("--id", type=int, help="ID of the API key to revoke")
    target.add_argument("--prefix", help="Key prefix of the API key to revoke")
    revoke_cmd.add_argument("--yes", action="store_true", help="Confirm revocation without prompt")
    revoke_cmd.set_defaults(func=cmd_revoke)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    init_db()
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
