"""Tests for the command line entry point."""

import json
from unittest import mock

import pytest

from storefront.__main__ import main
from storefront.config import ENV_OVERRIDES

from storefront.local_store import LocalStore

from conftest import FakeUpstream, build_generation


def _json_out(text):
    """Parse the JSON document printed by a command."""
    return json.loads(text[text.index('{'):text.rindex('}') + 1])


@pytest.fixture
def env(monkeypatch, tmp_path):
    """Point the CLI at a temp database and no config file."""
    for name in ENV_OVERRIDES:
        monkeypatch.delenv(name, raising=False)
    db_path = tmp_path / "cli.db"
    monkeypatch.setenv('DATABASE_PATH', str(db_path))
    return ['--config', str(tmp_path / "absent.yaml")], str(db_path)


def test_status_on_empty_store(env, capsys):
    """Test that status prints zero counts for a fresh store."""
    args, _ = env
    assert main(args + ['status']) == 0
    assert _json_out(capsys.readouterr().out)['tenants'] == 0


def test_sync_requires_upstream_settings(env, capsys):
    """Test that sync without API_URL/API_AUTH_TOKEN exits with status 2."""
    args, _ = env
    assert main(args + ['sync']) == 2
    assert 'api.base_url' in capsys.readouterr().err


def test_sync_writes_snapshot(env, monkeypatch, capsys):
    """Test one sync cycle through the CLI."""
    args, db_path = env
    monkeypatch.setenv('API_URL', 'https://api.example.com')
    monkeypatch.setenv('API_AUTH_TOKEN', 'token')

    with mock.patch('storefront.__main__.UpstreamClient', return_value=FakeUpstream()):
        assert main(args + ['sync']) == 0

    assert _json_out(capsys.readouterr().out)['tenants'] == 2
    with LocalStore(db_path) as store:
        assert store.counts()['shops'] == 2


def test_resolve(env, capsys):
    """Test host resolution through the CLI."""
    args, db_path = env
    with LocalStore(db_path) as store:
        store.replace_all(*build_generation())

    assert main(args + ['resolve', 'www.rockers.com']) == 0
    assert _json_out(capsys.readouterr().out)['shop']['id'] == 'shop-001'

    assert main(args + ['resolve', 'unknown.org']) == 1
