"""Tests for configuration loading."""

from pathlib import Path

import pytest

from topicbridge.config import load_config, parse_config
from topicbridge.config.schema import DEFAULT_MAX_TOPICS
from topicbridge.core.errors import ConfigError, ExitCode


class TestParseConfig:
    def test_native_keys(self) -> None:
        config = parse_config(
            {
                "hosts": {"robot1": "192.168.1.10"},
                "send_topics": [
                    {"name": "/odom", "type": "json", "max_rate_hz": 10, "host": "robot1", "port": 5001}
                ],
                "recv_topics": [],
            }
        )
        assert config.hosts == {"robot1": "192.168.1.10"}
        assert config.send_topics is not None
        spec = config.send_topics[0]
        assert (spec.name, spec.type, spec.max_rate_hz, spec.host, spec.port) == (
            "/odom", "json", 10.0, "robot1", 5001,
        )
        assert config.recv_topics == []
        assert config.max_topics == DEFAULT_MAX_TOPICS

    def test_legacy_keys(self) -> None:
        config = parse_config(
            {
                "IP": {"robot2": "10.0.0.2"},
                "recv_topics": [
                    {"topic_name": "/cmd", "msg_type": "string", "max_freq": 0, "srcIP": "robot2", "srcPort": 6001}
                ],
            }
        )
        assert config.hosts == {"robot2": "10.0.0.2"}
        assert config.send_topics is None
        assert config.recv_topics is not None
        assert config.recv_topics[0].name == "/cmd"
        assert config.recv_topics[0].port == 6001

    def test_rate_defaults_to_unlimited(self) -> None:
        config = parse_config(
            {"hosts": {"h": "1.2.3.4"}, "send_topics": [{"name": "/a", "type": "json", "host": "h", "port": 1}]}
        )
        assert config.send_topics is not None
        assert config.send_topics[0].max_rate_hz == 0.0

    def test_missing_hosts(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            parse_config({"send_topics": []})
        assert exc_info.value.exit_code == ExitCode.MISSING_SECTION

    def test_not_a_mapping(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            parse_config(["hosts"])
        assert exc_info.value.exit_code == ExitCode.INVALID_CONFIG

    @pytest.mark.parametrize(
        "topic",
        [
            {"name": "/a", "type": "json", "host": "h"},
            {"name": "/a", "type": "json", "host": "h", "port": 0},
            {"name": "/a", "type": "json", "host": "h", "port": 70000},
            {"name": "/a", "host": "h", "port": 5001},
        ],
    )
    def test_invalid_topic(self, topic: dict) -> None:
        with pytest.raises(ConfigError) as exc_info:
            parse_config({"hosts": {"h": "1.2.3.4"}, "send_topics": [topic]})
        assert exc_info.value.exit_code == ExitCode.INVALID_CONFIG


class TestLoadConfig:
    def test_yaml_file(self, tmp_path: Path) -> None:
        path = tmp_path / "bridge.yaml"
        path.write_text(
            "hosts:\n"
            "  robot1: 192.168.1.10\n"
            "send_topics:\n"
            "  - {name: /odom, type: json, max_rate_hz: 10, host: robot1, port: 5001}\n"
            "recv_topics: []\n"
            "poll_interval: 0.05\n"
        )
        config = load_config(path)
        assert config.send_topics is not None
        assert config.send_topics[0].port == 5001
        assert config.poll_interval == 0.05

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path / "absent.yaml")
        assert exc_info.value.exit_code == ExitCode.MISSING_SECTION

    def test_malformed_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("hosts: [unterminated\n")
        with pytest.raises(ConfigError) as exc_info:
            load_config(path)
        assert exc_info.value.exit_code == ExitCode.INVALID_CONFIG

    def test_example_config_loads(self) -> None:
        path = Path(__file__).resolve().parent.parent / "examples" / "bridge.yaml"
        config = load_config(path)
        assert "robot1" in config.hosts
