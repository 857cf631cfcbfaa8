"""Shared fixtures for CLI command tests."""

import os

import pytest
from click.testing import CliRunner


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Run each command from an empty directory with no stagewise settings."""
    for key in list(os.environ):
        if key.startswith("STAGEWISE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / ".config"))
    monkeypatch.chdir(tmp_path)
    # Handlers bound to CliRunner's streams would outlive each invocation
    monkeypatch.setattr("stagewise.config.research.ResearchConfig.setup_logging", lambda self: None)
