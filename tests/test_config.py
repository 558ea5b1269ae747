"""
Tests for config loading and the local state store.
"""

import os

import pytest

from edusphere import config
from edusphere.credentials import CredentialStore, LocalStore


@pytest.fixture(autouse=True)
def fresh_config():
    config.reset_config()
    yield
    config.reset_config()


def test_missing_file_uses_defaults(tmp_path):
    cfg = config.load_config(tmp_path / "nope.yaml")
    assert cfg["api"]["base_url"] == "http://localhost:8080/api"
    assert cfg["api"]["timeout"] == 480
    assert cfg["api"]["download_pattern"] == "/download"


def test_env_vars_resolved_and_empty_falls_back(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "api:\n"
        "  base_url: ${EDUSPHERE_TEST_URL}\n"
        "  timeout: 60\n"
        "storage:\n"
        "  path: ${EDUSPHERE_TEST_UNSET_VAR}\n"
    )
    os.environ["EDUSPHERE_TEST_URL"] = "https://advising.example/api"
    try:
        cfg = config.load_config(path)
    finally:
        del os.environ["EDUSPHERE_TEST_URL"]

    assert cfg["api"]["base_url"] == "https://advising.example/api"
    assert cfg["api"]["timeout"] == 60
    assert cfg["api"]["stream_path"] == "/chat/stream"
    assert cfg["storage"]["path"] == "~/.edusphere/state.yaml"


def test_get_config_is_cached(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text("api:\n  timeout: 5\n")
    monkeypatch.setenv("EDUSPHERE_CONFIG", str(path))

    first = config.get_config()
    path.write_text("api:\n  timeout: 9\n")
    assert config.get_config() is first
    assert first["api"]["timeout"] == 5


# ---------------------------------------------------------------------------
# LocalStore / CredentialStore
# ---------------------------------------------------------------------------

def test_credential_store_contract():
    creds = CredentialStore(LocalStore())
    assert creds.get() is None
    assert not creds.present

    creds.set("one")
    creds.set("two")
    assert creds.get() == "two"
    assert creds.present

    creds.clear()
    creds.clear()
    assert creds.get() is None


def test_local_store_persists(tmp_path):
    path = tmp_path / "nested" / "state.yaml"
    store = LocalStore(path)
    store.set("access_token", "tok")
    store.set("uploaded_docs", [{"id": 1, "name": "a.pdf"}])

    reloaded = LocalStore(path)
    assert reloaded.get("access_token") == "tok"
    assert reloaded.get("uploaded_docs") == [{"id": 1, "name": "a.pdf"}]
    assert oct(path.stat().st_mode & 0o777) == "0o600"

    reloaded.remove("access_token")
    assert "access_token" not in LocalStore(path)


def test_local_store_ignores_corrupt_file(tmp_path):
    path = tmp_path / "state.yaml"
    path.write_text("- just\n- a list\n")
    assert LocalStore(path).get("access_token") is None
