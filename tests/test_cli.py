"""
tests/test_cli.py -- Administrative commands in main.py.

The commands open their own store through main._open_store(); tests swap in
the shared-memory store and keep it open so the result can be inspected.
"""

from __future__ import annotations

from collections.abc import Generator

import pytest

import main
from auth.identity import verify_credentials
from auth.store import UserStore

from conftest import DEMO_EMAIL, DEMO_PASSWORD, make_store


@pytest.fixture
def cli_store(monkeypatch) -> Generator[UserStore, None, None]:
    user_store = make_store()
    monkeypatch.setattr(main, "_open_store", lambda: user_store)
    monkeypatch.setattr(user_store, "close", lambda: None)
    yield user_store
    user_store.engine.dispose()


def test_seed_is_idempotent(cli_store: UserStore, capsys) -> None:
    assert main.main(["seed"]) == 0
    assert main.main(["seed"]) == 0
    out = capsys.readouterr().out
    assert "Seeded 1 user(s)." in out
    assert "Seeded 0 user(s). 1 user(s) in the database." in out
    assert verify_credentials(cli_store, DEMO_EMAIL, DEMO_PASSWORD).full_name == "John Doe"


def test_create_local_user(cli_store: UserStore, capsys) -> None:
    rc = main.main(["create-user", "--email", "Jane@Example.com", "--name", "Jane", "--password", "s3cret-pass"])
    assert rc == 0
    assert "Created local user" in capsys.readouterr().out
    assert verify_credentials(cli_store, "jane@example.com", "s3cret-pass").full_name == "Jane"


def test_create_oauth_only_user(cli_store: UserStore, capsys) -> None:
    assert main.main(["create-user", "--email", "octo@example.com"]) == 0
    assert "OAuth-only" in capsys.readouterr().out
    assert cli_store.get_by_email("octo@example.com").hashed_password is None


def test_create_duplicate_user_fails(cli_store: UserStore, capsys) -> None:
    main.main(["seed"])
    assert main.main(["create-user", "--email", DEMO_EMAIL, "--password", "other"]) == 1
    assert "already exists" in capsys.readouterr().out


def test_purge(cli_store: UserStore, capsys) -> None:
    assert main.main(["purge"]) == 0
    assert "Purged 0 session(s) and 0 access token(s)." in capsys.readouterr().out


def test_command_required() -> None:
    with pytest.raises(SystemExit):
        main.main([])
