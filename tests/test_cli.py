"""Tests for the fishbowl-gateway CLI."""

import click
import pytest
from click.testing import CliRunner

from fishbowl_gateway import __version__
from fishbowl_gateway.cli.call import _parse_param
from fishbowl_gateway.cli.main import main


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ("USERNAME", "PASSWORD", "PROTOCOL", "BASE_URL"):
        monkeypatch.delenv(f"FISHBOWL_{name}", raising=False)
    monkeypatch.chdir(tmp_path)


def test_version():
    result = CliRunner().invoke(main, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_config_masks_password(monkeypatch):
    monkeypatch.setenv("FISHBOWL_USERNAME", "admin")
    monkeypatch.setenv("FISHBOWL_PASSWORD", "hunter2")

    result = CliRunner().invoke(main, ["config"])

    assert result.exit_code == 0
    assert "hunter2" not in result.output
    assert "admin" in result.output


def test_call_without_credentials_exits_2():
    result = CliRunner().invoke(main, ["call", "getParts"])
    assert result.exit_code == 2


def test_parse_param():
    assert _parse_param("partNumber=B201") == ("partNumber", "B201")
    assert _parse_param("quantity=5") == ("quantity", 5)
    assert _parse_param("note=a=b") == ("note", "a=b")
    with pytest.raises(click.BadParameter):
        _parse_param("partNumber")
