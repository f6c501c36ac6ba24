"""Tests for the operator CLI."""

from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from sesame.auth.models import FederationMapping, PublicKeyCredential, SessionRecord, User
from sesame.cli import EXIT_BAD_ARGS, EXIT_NOT_FOUND, EXIT_OK, main
from sesame.db.base import Base
from tests.conftest import run_cli


@pytest.fixture()
def db_url(tmp_path):
    return f"sqlite:///{tmp_path / 'cli.db'}"


@pytest.fixture()
def seeded(db_url):
    """Two users: alice (one passkey, one mapping) and an expired bob."""
    engine = create_engine(db_url)
    Base.metadata.create_all(engine)
    now = datetime.now(UTC)
    with Session(engine) as session:
        alice = User(
            username="alice",
            display_name="Alice",
            email="alice@example.com",
            passkey_user_id="alice-handle",
            expires_at=now + timedelta(days=30),
        )
        bob = User(
            username="bob",
            passkey_user_id="bob-handle",
            password="pw",
            expires_at=now - timedelta(days=1),
        )
        session.add_all([alice, bob])
        session.flush()
        session.add(
            PublicKeyCredential(id="cred-a", passkey_user_id="alice-handle", public_key=b"pk")
        )
        session.add(FederationMapping(user_id=alice.id, issuer="https://idp.example", subject="1"))
        session.add_all(
            [
                SessionRecord(id="live", data="{}", expires_at=now + timedelta(days=1)),
                SessionRecord(id="stale", data="{}", expires_at=now - timedelta(days=1)),
            ]
        )
        session.commit()
        ids = {"alice": alice.id, "bob": bob.id}
    yield {"engine": engine, **ids}
    engine.dispose()


def _count(engine, model) -> int:
    with Session(engine) as session:
        return session.scalar(select(func.count()).select_from(model))


def _json(capsys) -> object:
    return json.loads(capsys.readouterr().out)


class TestParser:
    def test_no_command(self, capsys):
        assert main([]) == EXIT_BAD_ARGS

    def test_group_without_subcommand(self):
        with pytest.raises(SystemExit):
            main(["users"])

    def test_mutations_require_yes(self, db_url, capsys):
        assert main(["users", "sweep", "--db", db_url]) == EXIT_BAD_ARGS
        assert "--yes" in capsys.readouterr().err

    def test_user_selector_is_exclusive(self, db_url):
        assert main(["users", "show", "--db", db_url]) == EXIT_BAD_ARGS
        assert (
            main(["users", "show", "--db", db_url, "--user-id", "u1", "--username", "a"])
            == EXIT_BAD_ARGS
        )


class TestDb:
    def test_ping_reports_missing_tables(self, db_url, capsys):
        assert main(["db", "ping", "--db", db_url]) == EXIT_OK
        data = _json(capsys)
        assert data["ok"] is True
        assert data["schema_state"] == "missing_tables"
        assert "users" in data["missing"]

    def test_init_then_ping(self, db_url, capsys):
        assert main(["db", "init", "--db", db_url, "--yes"]) == EXIT_OK
        capsys.readouterr()
        assert main(["db", "ping", "--db", db_url]) == EXIT_OK
        assert _json(capsys)["schema_state"] == "ok"


class TestUsers:
    def test_list(self, seeded, db_url, capsys):
        assert main(["users", "list", "--db", db_url]) == EXIT_OK
        users = _json(capsys)
        assert {u["username"] for u in users} == {"alice", "bob"}
        assert all("password" not in u for u in users)

    def test_list_jsonl(self, seeded, db_url, capsys):
        assert main(["users", "list", "--db", db_url, "--format", "jsonl"]) == EXIT_OK
        lines = capsys.readouterr().out.strip().splitlines()
        assert len(lines) == 2

    def test_show(self, seeded, db_url, capsys):
        assert main(["users", "show", "--db", db_url, "--username", "alice"]) == EXIT_OK
        data = _json(capsys)
        assert data["id"] == seeded["alice"]
        assert data["passkeys"] == 1
        assert data["federation_mappings"][0]["issuer"] == "https://idp.example"
        assert data["has_password"] is False

    def test_show_missing(self, seeded, db_url, capsys):
        assert main(["users", "show", "--db", db_url, "--username", "nobody"]) == EXIT_NOT_FOUND

    def test_delete_cascades(self, seeded, db_url, capsys):
        code = main(["users", "delete", "--db", db_url, "--user-id", seeded["alice"], "--yes"])
        assert code == EXIT_OK
        assert _json(capsys) == {"ok": True, "deleted": seeded["alice"]}
        assert _count(seeded["engine"], User) == 1
        assert _count(seeded["engine"], PublicKeyCredential) == 0
        assert _count(seeded["engine"], FederationMapping) == 0

    def test_delete_missing(self, seeded, db_url):
        code = main(["users", "delete", "--db", db_url, "--username", "nobody", "--yes"])
        assert code == EXIT_NOT_FOUND

    def test_sweep(self, seeded, db_url, capsys):
        assert main(["users", "sweep", "--db", db_url, "--yes"]) == EXIT_OK
        assert _json(capsys)["deleted"] == [seeded["bob"]]
        assert _count(seeded["engine"], User) == 1


class TestPasskeys:
    def test_list(self, seeded, db_url, capsys):
        assert main(["passkeys", "list", "--db", db_url, "--username", "alice"]) == EXIT_OK
        keys = _json(capsys)
        assert [k["id"] for k in keys] == ["cred-a"]
        assert "public_key" not in keys[0]

    def test_remove(self, seeded, db_url, capsys):
        assert main(["passkeys", "remove", "--db", db_url, "--cred-id", "cred-a", "--yes"]) == EXIT_OK
        assert _count(seeded["engine"], PublicKeyCredential) == 0

    def test_remove_missing(self, seeded, db_url):
        code = main(["passkeys", "remove", "--db", db_url, "--cred-id", "nope", "--yes"])
        assert code == EXIT_NOT_FOUND


class TestSessions:
    def test_purge(self, seeded, db_url, capsys):
        assert main(["sessions", "purge", "--db", db_url, "--yes"]) == EXIT_OK
        assert _json(capsys) == {"ok": True, "purged": 1}
        assert _count(seeded["engine"], SessionRecord) == 1


class TestModuleEntryPoint:
    def test_python_m_users_list(self, seeded, db_url):
        result = run_cli("users", "list", "--db", db_url, "--pretty")
        assert result.returncode == 0, result.stderr
        assert len(json.loads(result.stdout)) == 2

    def test_env_database_url(self, seeded, db_url):
        result = run_cli("users", "list", env_override={"SESAME_DATABASE_URL": db_url})
        assert result.returncode == 0, result.stderr
        assert len(json.loads(result.stdout)) == 2
