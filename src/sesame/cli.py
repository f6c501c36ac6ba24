"""sesame operator CLI.

Provides ``sesame`` console script and ``python -m sesame`` entry point.
Commands run the same async repositories the web app uses, one event loop
per invocation.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import os
import sys
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import inspect, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sesame.auth.errors import AccountNotFound, CredentialNotFound
from sesame.auth.federation.mappings import FederationMappings
from sesame.auth.models import PublicKeyCredential, User
from sesame.auth.passkeys.credentials import PublicKeyCredentials
from sesame.auth.session_store import SessionStore
from sesame.auth.users import Users
from sesame.config import Settings
from sesame.db.base import Base
from sesame.db.engine import create_async_engine_from_settings

T = TypeVar("T")

# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------
EXIT_OK = 0
EXIT_NOT_FOUND = 1
EXIT_BAD_ARGS = 2


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.isoformat()


def _output(data: Any, *, fmt: str = "json", pretty: bool = False) -> None:
    if fmt == "jsonl":
        if isinstance(data, list):
            for item in data:
                print(json.dumps(item, default=str))
        else:
            print(json.dumps(data, default=str))
    else:
        indent = 2 if pretty else None
        print(json.dumps(data, default=str, indent=indent))


def _err(msg: str) -> None:
    print(msg, file=sys.stderr)


def _require_yes(args: argparse.Namespace) -> bool:
    if not getattr(args, "yes", False):
        _err("--yes is required for mutating commands")
        return False
    return True


def _user_dict(user: User) -> dict:
    """Serialize a User model to a safe dict (no password)."""
    return {
        "id": user.id,
        "username": user.username,
        "display_name": user.display_name,
        "email": user.email,
        "has_password": user.password is not None,
        "approved_clients": list(user.approved_clients or []),
        "registered_at": _iso(user.registered_at),
        "expires_at": _iso(user.expires_at),
    }


def _passkey_dict(cred: PublicKeyCredential) -> dict:
    """Serialize a PublicKeyCredential to a safe dict (no public_key)."""
    return {
        "id": cred.id,
        "name": cred.name,
        "aaguid": cred.aaguid,
        "device_type": cred.device_type,
        "backed_up": cred.backed_up,
        "sign_count": cred.sign_count,
        "registered_at": _iso(cred.registered_at),
        "last_used_at": _iso(cred.last_used_at),
    }


def _get_settings(args: argparse.Namespace) -> Settings:
    """Resolve settings, letting --db override ``SESAME_DATABASE_URL``."""
    db_url = getattr(args, "db", None) or os.environ.get(
        "SESAME_DATABASE_URL", "sqlite:///./sesame.db"
    )
    return Settings(database_url=db_url)


async def _run_with_factory(
    args: argparse.Namespace,
    fn: Callable[[async_sessionmaker[AsyncSession]], Awaitable[T]],
    *,
    create_schema: bool = True,
) -> T:
    engine = create_async_engine_from_settings(_get_settings(args))
    try:
        if create_schema:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        return await fn(async_sessionmaker(engine, expire_on_commit=False))
    finally:
        await engine.dispose()


async def _run_with_db(
    args: argparse.Namespace,
    fn: Callable[[AsyncSession], Awaitable[T]],
    *,
    create_schema: bool = True,
) -> T:
    async def _with_session(factory: async_sessionmaker[AsyncSession]) -> T:
        async with factory() as db:
            return await fn(db)

    return await _run_with_factory(args, _with_session, create_schema=create_schema)


def _run(args: argparse.Namespace, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
    return asyncio.run(_run_with_db(args, fn))


async def _resolve_user(db: AsyncSession, args: argparse.Namespace) -> User | None:
    """Resolve a user by --user-id or --username."""
    users = Users(db)
    if getattr(args, "user_id", None):
        return await users.find_by_id(args.user_id)
    return await users.find_by_username(args.username)


def _check_user_selector(args: argparse.Namespace) -> bool:
    user_id = getattr(args, "user_id", None)
    username = getattr(args, "username", None)
    if bool(user_id) == bool(username):
        _err("specify exactly one of --user-id or --username")
        return False
    return True


# ---------------------------------------------------------------------------
# DB commands
# ---------------------------------------------------------------------------


def _cmd_db_ping(args: argparse.Namespace) -> int:
    async def _ping(db: AsyncSession) -> dict:
        await db.execute(text("SELECT 1"))
        conn = await db.connection()
        tables = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_table_names())
        missing = sorted(set(Base.metadata.tables) - set(tables))
        return {"ok": True, "schema_state": "missing_tables" if missing else "ok", "missing": missing}

    data = asyncio.run(_run_with_db(args, _ping, create_schema=False))
    _output(data, fmt=args.format, pretty=args.pretty)
    return EXIT_OK


def _cmd_db_init(args: argparse.Namespace) -> int:
    if not _require_yes(args):
        return EXIT_BAD_ARGS

    async def _noop(db: AsyncSession) -> None:
        return None

    _run(args, _noop)
    _output({"ok": True, "tables": sorted(Base.metadata.tables)}, fmt=args.format, pretty=args.pretty)
    return EXIT_OK


# ---------------------------------------------------------------------------
# Users commands
# ---------------------------------------------------------------------------


def _cmd_users_list(args: argparse.Namespace) -> int:
    async def _list(db: AsyncSession) -> list[dict]:
        users = await Users(db).list_all(offset=args.offset, limit=args.limit)
        return [_user_dict(u) for u in users]

    _output(_run(args, _list), fmt=args.format, pretty=args.pretty)
    return EXIT_OK


def _cmd_users_show(args: argparse.Namespace) -> int:
    if not _check_user_selector(args):
        return EXIT_BAD_ARGS

    async def _show(db: AsyncSession) -> dict | None:
        user = await _resolve_user(db, args)
        if user is None:
            return None
        data = _user_dict(user)
        data["passkeys"] = len(
            await PublicKeyCredentials(db).find_by_passkey_user_id(user.passkey_user_id)
        )
        data["federation_mappings"] = [
            {"issuer": m.issuer, "subject": m.subject, "created_at": _iso(m.created_at)}
            for m in await FederationMappings(db).find_by_user_id(user.id)
        ]
        return data

    data = _run(args, _show)
    if data is None:
        _err("user not found")
        return EXIT_NOT_FOUND
    _output(data, fmt=args.format, pretty=args.pretty)
    return EXIT_OK


def _cmd_users_delete(args: argparse.Namespace) -> int:
    if not _require_yes(args):
        return EXIT_BAD_ARGS
    if not _check_user_selector(args):
        return EXIT_BAD_ARGS

    async def _delete(db: AsyncSession) -> str | None:
        user = await _resolve_user(db, args)
        if user is None:
            return None
        try:
            await Users(db).delete(user.id)
        except AccountNotFound:
            return None
        await db.commit()
        return user.id

    user_id = _run(args, _delete)
    if user_id is None:
        _err("user not found")
        return EXIT_NOT_FOUND
    _output({"ok": True, "deleted": user_id}, fmt=args.format, pretty=args.pretty)
    return EXIT_OK


def _cmd_users_sweep(args: argparse.Namespace) -> int:
    if not _require_yes(args):
        return EXIT_BAD_ARGS

    async def _sweep(db: AsyncSession) -> list[str]:
        deleted = await Users(db).sweep_expired()
        await db.commit()
        return deleted

    deleted = _run(args, _sweep)
    _output({"ok": True, "deleted": deleted}, fmt=args.format, pretty=args.pretty)
    return EXIT_OK


# ---------------------------------------------------------------------------
# Passkeys commands
# ---------------------------------------------------------------------------


def _cmd_passkeys_list(args: argparse.Namespace) -> int:
    if not _check_user_selector(args):
        return EXIT_BAD_ARGS

    async def _list(db: AsyncSession) -> list[dict] | None:
        user = await _resolve_user(db, args)
        if user is None:
            return None
        creds = await PublicKeyCredentials(db).find_by_passkey_user_id(user.passkey_user_id)
        return [_passkey_dict(c) for c in creds]

    data = _run(args, _list)
    if data is None:
        _err("user not found")
        return EXIT_NOT_FOUND
    _output(data, fmt=args.format, pretty=args.pretty)
    return EXIT_OK


def _cmd_passkeys_remove(args: argparse.Namespace) -> int:
    if not _require_yes(args):
        return EXIT_BAD_ARGS

    async def _remove(db: AsyncSession) -> bool:
        creds = PublicKeyCredentials(db)
        cred = await creds.find_by_id(args.cred_id)
        if cred is None:
            return False
        try:
            await creds.remove(cred.id, cred.passkey_user_id)
        except CredentialNotFound:
            return False
        await db.commit()
        return True

    if not _run(args, _remove):
        _err("passkey not found")
        return EXIT_NOT_FOUND
    _output({"ok": True, "removed": args.cred_id}, fmt=args.format, pretty=args.pretty)
    return EXIT_OK


# ---------------------------------------------------------------------------
# Sessions commands
# ---------------------------------------------------------------------------


def _cmd_sessions_purge(args: argparse.Namespace) -> int:
    if not _require_yes(args):
        return EXIT_BAD_ARGS

    async def _purge(factory: async_sessionmaker[AsyncSession]) -> int:
        return await SessionStore(factory).purge_expired()

    count = asyncio.run(_run_with_factory(args, _purge))
    _output({"ok": True, "purged": count}, fmt=args.format, pretty=args.pretty)
    return EXIT_OK


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


def _add_user_selector(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--user-id", default=None, help="User ID (u...)")
    parser.add_argument("--username", default=None, help="Username")


def _build_parser() -> argparse.ArgumentParser:
    # Common flags shared by all leaf subcommands
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--db", default=None, help="Database URL override")
    common.add_argument(
        "--format", choices=["json", "jsonl"], default="json", help="Output format"
    )
    common.add_argument("--pretty", action="store_true", default=False, help="Pretty-print output")

    parser = argparse.ArgumentParser(
        prog="sesame",
        description="sesame operator CLI",
    )
    subparsers = parser.add_subparsers(dest="command")

    # ---- db ----
    db_parser = subparsers.add_parser("db", help="Database operations")
    db_sub = db_parser.add_subparsers(dest="db_command")

    db_sub.add_parser("ping", parents=[common], help="Check database connectivity and schema")
    db_init = db_sub.add_parser("init", parents=[common], help="Create missing tables")
    db_init.add_argument("--yes", action="store_true", help="Confirm mutation")

    # ---- users ----
    users_parser = subparsers.add_parser("users", help="User management")
    users_sub = users_parser.add_subparsers(dest="users_command")

    users_list = users_sub.add_parser("list", parents=[common], help="List users")
    users_list.add_argument("--limit", type=int, default=100, help="Max results")
    users_list.add_argument("--offset", type=int, default=0, help="Skip results")

    users_show = users_sub.add_parser("show", parents=[common], help="Show user details")
    _add_user_selector(users_show)

    users_delete = users_sub.add_parser(
        "delete", parents=[common], help="Delete a user with its passkeys and mappings"
    )
    _add_user_selector(users_delete)
    users_delete.add_argument("--yes", action="store_true", help="Confirm mutation")

    users_sweep = users_sub.add_parser(
        "sweep", parents=[common], help="Delete every user past its expiry"
    )
    users_sweep.add_argument("--yes", action="store_true", help="Confirm mutation")

    # ---- passkeys ----
    passkeys_parser = subparsers.add_parser("passkeys", help="Passkey management")
    passkeys_sub = passkeys_parser.add_subparsers(dest="passkeys_command")

    passkeys_list = passkeys_sub.add_parser(
        "list", parents=[common], help="List passkeys for a user"
    )
    _add_user_selector(passkeys_list)

    passkeys_remove = passkeys_sub.add_parser("remove", parents=[common], help="Remove a passkey")
    passkeys_remove.add_argument("--cred-id", required=True, help="Credential ID (base64url)")
    passkeys_remove.add_argument("--yes", action="store_true", help="Confirm mutation")

    # ---- sessions ----
    sessions_parser = subparsers.add_parser("sessions", help="Session store maintenance")
    sessions_sub = sessions_parser.add_subparsers(dest="sessions_command")

    sessions_purge = sessions_sub.add_parser(
        "purge", parents=[common], help="Delete expired sessions"
    )
    sessions_purge.add_argument("--yes", action="store_true", help="Confirm mutation")

    return parser


# ---------------------------------------------------------------------------
# Command dispatch
# ---------------------------------------------------------------------------

_COMMANDS: dict[tuple[str, str], Callable[[argparse.Namespace], int]] = {
    ("db", "ping"): _cmd_db_ping,
    ("db", "init"): _cmd_db_init,
    ("users", "list"): _cmd_users_list,
    ("users", "show"): _cmd_users_show,
    ("users", "delete"): _cmd_users_delete,
    ("users", "sweep"): _cmd_users_sweep,
    ("passkeys", "list"): _cmd_passkeys_list,
    ("passkeys", "remove"): _cmd_passkeys_remove,
    ("sessions", "purge"): _cmd_sessions_purge,
}


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns an integer exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_BAD_ARGS

    sub = getattr(args, f"{args.command}_command", None)
    handler = _COMMANDS.get((args.command, sub or ""))
    if handler is None:
        parser.parse_args([args.command, "--help"])
        return EXIT_BAD_ARGS
    return handler(args)
