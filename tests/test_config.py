import pytest

from wfclient.config import ChannelDirectory, ChannelInfo, ClientConfig


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("WFC_SERVER", "WFC_DOMAIN", "WFC_GAME_VERSION", "WFC_REGION", "WFC_HWID"):
        monkeypatch.delenv(name, raising=False)


def test_missing_file_gives_defaults(tmp_path):
    config = ClientConfig.load(tmp_path / "nope.yaml")
    assert config == ClientConfig()


def test_yaml_values_and_env_overrides(tmp_path, monkeypatch):
    path = tmp_path / "config.yaml"
    path.write_text(
        "server: ws://game.example:5222/xmpp\n"
        "game_version: 1.22\n"
        "hw_id: 31337\n"
        "request_timeout: 5\n"
        "bogus: 1\n"
    )
    monkeypatch.setenv("WFC_REGION", "ru")
    monkeypatch.setenv("WFC_HWID", "42")

    config = ClientConfig.load(path)

    assert config.server == "ws://game.example:5222/xmpp"
    assert config.game_version == "1.22"
    assert config.region_id == "ru"
    assert config.hw_id == 42
    assert config.request_timeout == 5.0


def test_invalid_yaml_falls_back_to_defaults(tmp_path, caplog):
    path = tmp_path / "config.yaml"
    path.write_text("server: [unclosed\n")

    assert ClientConfig.load(path) == ClientConfig()
    assert "Error reading" in caplog.text


def test_non_mapping_yaml_is_rejected(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("- just\n- a list\n")

    assert ClientConfig.load(path) == ClientConfig()


def test_bad_hw_id_reads_as_zero(tmp_path, monkeypatch):
    monkeypatch.setenv("WFC_HWID", "not-a-number")
    assert ClientConfig.load(tmp_path / "nope.yaml").hw_id == 0


def test_directory_loads_channels(tmp_path):
    path = tmp_path / "channels.yaml"
    path.write_text(
        "channels:\n"
        "  - resource: pve_12\n"
        "    channel: pve\n"
        "    server_id: 112\n"
        "    online: 1450\n"
        "    load: 0.48\n"
        "  - resource: broken\n"
        "  - not a mapping\n"
    )

    directory = ChannelDirectory(path)

    assert directory.get("pve_12") == ChannelInfo("pve_12", "pve", 112, 1450, 0.48)
    assert directory.get("broken") is None
    assert [c.resource for c in directory.all()] == ["pve_12"]


def test_directory_save_round_trip(tmp_path):
    path = tmp_path / "sub" / "channels.yaml"
    directory = ChannelDirectory(path)
    directory.set(ChannelInfo("pvp_pro_3", "pvp_pro", 7))
    directory.save()

    assert ChannelDirectory(path).get("pvp_pro_3") == ChannelInfo("pvp_pro_3", "pvp_pro", 7)
