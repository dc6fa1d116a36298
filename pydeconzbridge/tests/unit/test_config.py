import json
import threading

import pytest

from pydeconzbridge.api_lock import acquire_lock_with_backoff
from pydeconzbridge.config import BridgeConfig, ConfigStore, PropertyStore


@pytest.mark.parametrize("host, expected", [
    ("10.0.0.5", "10.0.0.5"),
    ("10.0.0.5:8080", "10.0.0.5"),
    ("gateway.local", "gateway.local"),
    ("[fe80::1]:80", "[fe80::1]"),
    ("fe80::1", "fe80::1"),
])
def test_host_without_port(host, expected):
    assert BridgeConfig(host=host).host_without_port() == expected


def test_build_url():
    config = BridgeConfig(host="10.0.0.5:1234", http_port=8080)
    assert config.build_url() == "http://10.0.0.5:8080/api"
    assert config.build_url("KEY") == "http://10.0.0.5:8080/api/KEY"
    assert config.build_url("KEY", "/config") == "http://10.0.0.5:8080/api/KEY/config"


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("DECONZ_HOST", "10.1.1.1")
    monkeypatch.setenv("DECONZ_HTTP_PORT", "8080")
    monkeypatch.setenv("DECONZ_APIKEY", "ENVKEY")
    monkeypatch.delenv("DECONZ_PORT", raising=False)
    monkeypatch.delenv("DECONZ_TIMEOUT", raising=False)
    config = BridgeConfig.from_env(str(tmp_path / "missing.env"))
    assert config == BridgeConfig(host="10.1.1.1", http_port=8080, port=0, apikey="ENVKEY", timeout=2.0)


def test_load_missing_file_uses_defaults(tmp_path):
    store = ConfigStore(str(tmp_path / ".deconz"), BridgeConfig(host="h"))
    assert store.load() == BridgeConfig(host="h")


def test_load_corrupt_file_uses_defaults(tmp_path):
    path = tmp_path / ".deconz"
    path.write_text("{broken")
    store = ConfigStore(str(path), BridgeConfig(host="h"))
    assert store.load().apikey is None


def test_file_fills_unset_values_only(tmp_path):
    path = tmp_path / ".deconz"
    path.write_text(json.dumps({"host": "old", "apikey": "STORED", "port": 443, "http_port": 8080}))
    store = ConfigStore(str(path), BridgeConfig(host="new"))
    config = store.load()
    assert config.host == "new"
    assert config.apikey == "STORED"
    assert config.port == 443
    assert config.http_port == 80


def test_load_keeps_config_identity(tmp_path):
    store = ConfigStore(str(tmp_path / ".deconz"), BridgeConfig(host="h"))
    config = store.config
    assert store.load() is config


def test_persist_api_key_writes_without_notifying(tmp_path):
    path = tmp_path / ".deconz"
    store = ConfigStore(str(path), BridgeConfig(host="h"))
    notified = []
    store.add_listener(notified.append)
    store.persist_api_key("KEY1")
    assert store.config.apikey == "KEY1"
    assert json.loads(path.read_text())["apikey"] == "KEY1"
    assert notified == []
    # survives a reload
    assert ConfigStore(str(path), BridgeConfig(host="h")).load().apikey == "KEY1"


def test_update_configuration_notifies(tmp_path):
    store = ConfigStore(str(tmp_path / ".deconz"), BridgeConfig(host="h"))
    notified = []
    store.add_listener(notified.append)
    store.update_configuration(port=9000)
    assert notified == [{"port": 9000}]
    assert store.load().port == 9000
    store.remove_listener(notified.append)
    store.update_configuration(port=9001)
    assert len(notified) == 1


def test_update_configuration_rejects_unknown(tmp_path):
    store = ConfigStore(str(tmp_path / ".deconz"), BridgeConfig(host="h"))
    with pytest.raises(KeyError):
        store.update_configuration(colour="red")


def test_update_configuration_never_clears_api_key(tmp_path):
    store = ConfigStore(str(tmp_path / ".deconz"), BridgeConfig(host="h"))
    store.persist_api_key("KEY1")
    notified = []
    store.add_listener(notified.append)
    store.update_configuration(apikey=None, port=9000)
    assert store.config.apikey == "KEY1"
    assert notified == [{"port": 9000}]
    store.update_configuration(apikey="")
    assert len(notified) == 1
    assert store.load().apikey == "KEY1"


def test_cachefile_from_env(monkeypatch):
    monkeypatch.delenv("DECONZ_CACHE_FILE", raising=False)
    assert BridgeConfig.cachefile_from_env() == ".deconz"
    monkeypatch.setenv("DECONZ_CACHE_FILE", "/var/lib/deconz.json")
    assert BridgeConfig.cachefile_from_env() == "/var/lib/deconz.json"


def test_save_times_out_when_lock_held(tmp_path, monkeypatch):
    monkeypatch.setattr("pydeconzbridge.config.LOCK_TIMEOUT", 0.1)
    store = ConfigStore(str(tmp_path / ".deconz"), BridgeConfig(host="h"))
    store._lock.acquire()
    try:
        with pytest.raises(TimeoutError):
            store.save()
    finally:
        store._lock.release()


def test_property_store():
    props = PropertyStore()
    props.apply_properties({"uuid": "1", "fwversion": "a"})
    props.apply_properties({"fwversion": "b"})
    assert props.as_dict() == {"uuid": "1", "fwversion": "b"}
    assert props.get("missing", "-") == "-"


def test_acquire_lock_with_backoff_releases():
    lock = threading.Lock()
    with acquire_lock_with_backoff(lock, 1):
        assert lock.locked()
    assert not lock.locked()
