"""
Unit tests for configuration loading and validation.
"""

from pathlib import Path

import pytest

from smollchat.config import ChatConfig, parse_bool
from smollchat.chat import DeliveryPolicy


class TestParseBool:

    @pytest.mark.parametrize("value", ["1", "true", "Yes", " ON ", True, None])
    def test_true(self, value):
        assert parse_bool(value) is True

    @pytest.mark.parametrize("value", ["0", "false", "No", "off", False])
    def test_false(self, value):
        assert parse_bool(value) is False

    @pytest.mark.parametrize("value", ["", "maybe", "2"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_bool(value)


class TestDefaults:

    def test_defaults(self):
        config = ChatConfig()

        assert config.host == "0.0.0.0"
        assert config.port == 8080
        assert config.room_name == "Room"
        assert config.static_dir is None
        assert config.long_poll_timeout == 30.0
        assert config.delivery_policy is DeliveryPolicy.FAN_OUT_ALL
        assert config.qrcode is False

    def test_defaults_are_valid(self):
        ChatConfig().validate()


class TestDotenv:

    def test_load_file(self, tmp_path: Path):
        env_file = tmp_path / ".env"
        env_file.write_text(
            "port=3000\n"
            "room-name=Lobby\n"
            "long-poll-timeout=12.5\n"
            "workers=16\n"
            "max-listeners=12\n"
            "qrcode\n"
            "unrelated=ignored\n"
        )

        config = ChatConfig.load(env_file=env_file, environ={})

        assert config.port == 3000
        assert config.room_name == "Lobby"
        assert config.long_poll_timeout == 12.5
        assert config.max_workers == 16
        assert config.max_listeners == 12
        assert config.qrcode is True

    def test_missing_file_skipped(self, tmp_path: Path):
        config = ChatConfig.load(env_file=tmp_path / "absent.env", environ={})
        assert config == ChatConfig()

    def test_none_skips_file(self):
        assert ChatConfig().with_dotenv(None) == ChatConfig()

    def test_bad_value(self, tmp_path: Path):
        env_file = tmp_path / ".env"
        env_file.write_text("port=eighty\n")

        with pytest.raises(ValueError, match="port"):
            ChatConfig.load(env_file=env_file, environ={})


class TestEnviron:

    def test_from_env(self):
        config = ChatConfig.from_env({
            "SMOLLCHAT_HOST": "127.0.0.1",
            "SMOLLCHAT_PORT": "9000",
            "SMOLLCHAT_QRCODE": "off",
            "SMOLLCHAT_LOG_LEVEL": "DEBUG",
            "UNRELATED": "x",
        })

        assert config.host == "127.0.0.1"
        assert config.port == 9000
        assert config.qrcode is False
        assert config.log_level == "DEBUG"

    def test_environ_beats_dotenv(self, tmp_path: Path):
        env_file = tmp_path / ".env"
        env_file.write_text("port=3000\nroom-name=Lobby\n")

        config = ChatConfig.load(env_file=env_file, environ={"SMOLLCHAT_PORT": "4000"})

        assert config.port == 4000
        assert config.room_name == "Lobby"

    def test_worker_and_listener_limits(self):
        config = ChatConfig.from_env({
            "SMOLLCHAT_WORKERS": "32",
            "SMOLLCHAT_MAX_LISTENERS": "20",
        })

        assert config.max_workers == 32
        assert config.max_listeners == 20
        config.validate()

    def test_bad_value_names_variable(self):
        with pytest.raises(ValueError, match="SMOLLCHAT_LONG_POLL_TIMEOUT"):
            ChatConfig.from_env({"SMOLLCHAT_LONG_POLL_TIMEOUT": "soon"})


class TestOverrides:

    def test_none_skipped(self):
        config = ChatConfig().with_overrides(port=None, room_name="Lobby")

        assert config.port == 8080
        assert config.room_name == "Lobby"

    def test_original_untouched(self):
        original = ChatConfig()
        original.with_overrides(port=1234)
        assert original.port == 8080

    def test_unknown_field(self):
        with pytest.raises(TypeError):
            ChatConfig().with_overrides(colour="blue")


class TestValidate:

    @pytest.mark.parametrize("overrides", [
        {"port": -1},
        {"port": 65536},
        {"backlog": 0},
        {"read_size": 100},
        {"max_request_size": 4096, "read_size": 8192},
        {"timeout": 0},
        {"min_workers": 0},
        {"min_workers": 8, "max_workers": 4},
        {"queue_size": 0},
        {"max_listeners": 0},
        {"max_listeners": 128, "max_workers": 128},
        {"long_poll_timeout": 0},
        {"poll_interval": 0},
        {"room_name": ""},
        {"log_level": "LOUD"},
        {"log_format": "xml"},
    ])
    def test_invalid(self, overrides):
        with pytest.raises(ValueError):
            ChatConfig().with_overrides(**overrides).validate()

    def test_static_dir_must_exist(self, tmp_path: Path):
        with pytest.raises(ValueError, match="static_dir"):
            ChatConfig(static_dir=str(tmp_path / "missing")).validate()

    def test_static_dir_ok(self, static_dir: Path):
        ChatConfig(static_dir=str(static_dir)).validate()

    def test_timeout_none_ok(self):
        ChatConfig(timeout=None).validate()
