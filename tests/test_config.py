import json

import pytest

from luckydraw.config import Settings, build_store
from luckydraw.errors import ConfigError
from luckydraw.sheets import SheetStore
from luckydraw.storage import MemoryStore

ENV = ["STORE_BACKEND", "GOOGLE_SHEET_ID", "GOOGLE_CLIENT_EMAIL", "GOOGLE_PRIVATE_KEY",
       "GOOGLE_CREDENTIALS", "ALLOWED_ORIGIN", "CAMPAIGN_TZ", "STORE_TIMEOUT", "LOG_LEVEL"]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV:
        monkeypatch.delenv(name, raising=False)


def test_defaults():
    s = Settings.from_env()
    assert s.store_backend == "sheets"
    assert s.allowed_origin == "*"
    assert s.timezone == "Asia/Taipei"
    assert s.store_timeout == 10.0
    assert s.log_level == "INFO"


def test_env_values(monkeypatch):
    monkeypatch.setenv("STORE_BACKEND", " Memory ")
    monkeypatch.setenv("ALLOWED_ORIGIN", "https://pro6899.onrender.com")
    monkeypatch.setenv("STORE_TIMEOUT", "3.5")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("GOOGLE_PRIVATE_KEY", "-----BEGIN-----\\nabc\\n-----END-----")
    s = Settings.from_env()
    assert s.store_backend == "memory"
    assert s.allowed_origin == "https://pro6899.onrender.com"
    assert s.store_timeout == 3.5
    assert s.log_level == "DEBUG"
    assert s.private_key == "-----BEGIN-----\nabc\n-----END-----"


def test_service_account_info_from_parts():
    s = Settings(client_email="svc@x.iam.gserviceaccount.com", private_key="PEM")
    info = s.service_account_info()
    assert info["client_email"] == "svc@x.iam.gserviceaccount.com"
    assert info["private_key"] == "PEM"
    assert info["token_uri"].startswith("https://")


def test_service_account_info_from_json():
    blob = {"type": "service_account", "client_email": "a@b", "private_key": "k",
            "token_uri": "https://oauth2.googleapis.com/token"}
    assert Settings(credentials_json=json.dumps(blob)).service_account_info() == blob
    with pytest.raises(ConfigError):
        Settings(credentials_json="{oops").service_account_info()


def test_memory_backend():
    store = build_store(Settings(store_backend="memory", timezone="Asia/Tokyo"))
    assert isinstance(store, MemoryStore)
    assert store.tz.zone == "Asia/Tokyo"


@pytest.mark.parametrize("settings", [
    Settings(store_backend="postgres"),
    Settings(store_backend="sheets"),
    Settings(store_backend="sheets", sheet_id="abc"),
    Settings(store_backend="sheets", sheet_id="abc", client_email="a@b"),
])
def test_unusable_configuration_is_fatal(settings):
    with pytest.raises(ConfigError):
        build_store(settings)


def test_unreachable_spreadsheet_is_fatal(monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("403 forbidden")

    monkeypatch.setattr(SheetStore, "connect", boom)
    settings = Settings(sheet_id="abc", client_email="a@b", private_key="k")
    with pytest.raises(ConfigError) as exc:
        build_store(settings)
    assert "403 forbidden" in str(exc.value)


def test_sheets_backend_connects(monkeypatch):
    calls = {}

    def fake_connect(sheet_id, info, timeout, tz):
        calls.update(sheet_id=sheet_id, info=info, timeout=timeout, tz=tz)
        return "store"

    monkeypatch.setattr(SheetStore, "connect", fake_connect)
    settings = Settings(sheet_id="abc", client_email="a@b", private_key="k", store_timeout=4)
    assert build_store(settings) == "store"
    assert calls["sheet_id"] == "abc"
    assert calls["timeout"] == 4.0
    assert calls["tz"] == "Asia/Taipei"
    assert calls["info"]["client_email"] == "a@b"


@pytest.mark.parametrize("name,value", [
    ("STORE_TIMEOUT", "abc"),
    ("STORE_TIMEOUT", "10s"),
    ("LOG_LEVEL", "loud"),
])
def test_bad_env_values_are_config_errors(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigError) as exc:
        Settings.from_env()
    assert name in str(exc.value)
