"""Tests for CLI commands."""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from garden.cli import app
from garden.core.crypto import SecretCipher, generate_key
from garden.storage import GardenDatabase, RunStatus

runner = CliRunner(env={"COLUMNS": "200"})

SCRIPT = {"steps": [{"type": "click", "locator": "#go"}], "secrets": []}


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("GARDEN_STORAGE__DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("APP_ENC_KEY_BASE64", raising=False)
    monkeypatch.delenv("GARDEN_ENC_KEY_BASE64", raising=False)
    return tmp_path


def open_database(workspace: Path) -> GardenDatabase:
    return GardenDatabase(f"sqlite:///{workspace / 'data' / 'garden.db'}")


def test_version_command() -> None:
    """Test version command works."""
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "Garden v" in result.stdout


def test_help_command() -> None:
    """Test help command works."""
    result = runner.invoke(app, ["--help"])
    assert result.exit_code == 0
    for command in ("serve", "run", "site", "script", "runs", "keygen"):
        assert command in result.stdout


def test_keygen() -> None:
    result = runner.invoke(app, ["keygen"])
    assert result.exit_code == 0
    assert "APP_ENC_KEY_BASE64=" in result.stdout


def test_site_add_and_list(workspace: Path) -> None:
    assert runner.invoke(app, ["site", "add", "Example", "example.com"]).exit_code == 0

    duplicate = runner.invoke(app, ["site", "add", "Again", "example.com"])
    assert duplicate.exit_code == 1
    assert "already exists" in duplicate.stdout

    listing = runner.invoke(app, ["site", "list"])
    assert listing.exit_code == 0
    assert "example.com" in listing.stdout


def test_site_credentials_are_encrypted(workspace: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    key = generate_key()
    monkeypatch.setenv("APP_ENC_KEY_BASE64", key)
    runner.invoke(app, ["site", "add", "Example", "example.com"])

    result = runner.invoke(app, ["site", "credentials", "1", "--username", "ada", "--password", "s3cret"])

    assert result.exit_code == 0
    site = open_database(workspace).get_site(1)
    assert site is not None and site.username_enc and site.password_enc
    cipher = SecretCipher.from_base64(key)
    assert cipher.decrypt(site.username_enc) == "ada"
    assert cipher.decrypt(site.password_enc) == "s3cret"


def test_site_credentials_need_a_key(workspace: Path) -> None:
    runner.invoke(app, ["site", "add", "Example", "example.com"])

    result = runner.invoke(app, ["site", "credentials", "1", "--username", "ada", "--password", "s3cret"])

    assert result.exit_code == 1
    assert "garden keygen" in result.stdout


def test_script_check(workspace: Path) -> None:
    good = workspace / "good.json"
    good.write_text(json.dumps(SCRIPT))
    bad = workspace / "bad.json"
    bad.write_text('{"steps": []}')

    ok = runner.invoke(app, ["script", "check", str(good)])
    assert ok.exit_code == 0
    assert "is valid" in ok.stdout

    failed = runner.invoke(app, ["script", "check", str(bad)])
    assert failed.exit_code == 1
    assert "Invalid script format" in failed.stdout


def test_script_upload(workspace: Path) -> None:
    path = workspace / "login.json"
    path.write_text(json.dumps(SCRIPT))
    runner.invoke(app, ["site", "add", "Example", "example.com"])

    assert runner.invoke(app, ["script", "upload", "1", str(path)]).exit_code == 0
    assert runner.invoke(app, ["script", "upload", "2", str(path)]).exit_code == 1

    record = open_database(workspace).latest_script(1)
    assert record is not None and json.loads(record.content) == SCRIPT


def test_runs_show(workspace: Path) -> None:
    runner.invoke(app, ["site", "add", "Example", "example.com"])
    database = open_database(workspace)
    run = database.create_run(1)
    database.add_captcha_trace(run.id, 1, 1, "gpt-5-mini", "prompt", None, "no steps")  # type: ignore[arg-type]
    database.finish_run(run.id, RunStatus.FAILED, 900, "click at #go failed")  # type: ignore[arg-type]

    result = runner.invoke(app, ["runs", "show", str(run.id), "--events"])

    assert result.exit_code == 0
    assert "failed" in result.stdout
    assert "click at #go failed" in result.stdout
    assert "Captcha traces" in result.stdout

    assert runner.invoke(app, ["runs", "show", "99"]).exit_code == 1


def test_run_unknown_site(workspace: Path) -> None:
    result = runner.invoke(app, ["run", "5"])
    assert result.exit_code == 1
    assert "Site 5 not found" in result.stdout
