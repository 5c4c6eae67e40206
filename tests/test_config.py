import pytest

from shared.config import ClientConfig, load_config


def test_defaults_when_file_missing(tmp_path, monkeypatch):
    monkeypatch.delenv("HANGOUTS_CHANNEL_URL", raising=False)
    monkeypatch.delenv("HANGOUTS_LOG_LEVEL", raising=False)

    config = load_config(tmp_path / "absent.yaml")

    assert config == ClientConfig()
    assert config.active_timeout_secs == 120
    assert config.set_active_limit_secs == 60


def test_yaml_file_and_unknown_keys(tmp_path, monkeypatch, caplog):
    monkeypatch.delenv("HANGOUTS_CHANNEL_URL", raising=False)
    path = tmp_path / "hangouts.yaml"
    path.write_text("channel_url: wss://relay.example.com/c\nset_active_limit_secs: 30\nflavour: mint\n")

    config = load_config(path)

    assert config.channel_url == "wss://relay.example.com/c"
    assert config.set_active_limit_secs == 30
    assert "flavour" in caplog.text


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = tmp_path / "hangouts.yaml"
    path.write_text("channel_url: wss://file.example.com/c\n")
    monkeypatch.setenv("HANGOUTS_CONFIG", str(path))
    monkeypatch.setenv("HANGOUTS_CHANNEL_URL", "wss://env.example.com/c")
    monkeypatch.setenv("HANGOUTS_LOG_LEVEL", "debug")

    config = load_config()

    assert config.channel_url == "wss://env.example.com/c"
    assert config.log_level == "debug"


def test_non_mapping_file_is_rejected(tmp_path):
    path = tmp_path / "hangouts.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ValueError):
        load_config(path)


@pytest.mark.parametrize("values", [
    {"active_timeout_secs": 0},
    {"set_active_limit_secs": -1},
    {"active_timeout_secs": 60, "set_active_limit_secs": 60},
])
def test_invalid_timing_is_rejected(values):
    with pytest.raises(ValueError):
        ClientConfig.from_dict(values)
