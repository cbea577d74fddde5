"""
tests/test_config.py

SettlementConfig load order: defaults, YAML, environment.
"""

import pytest

from arenasettle.core.config import DEFAULT_PROGRAM_ID, SettlementConfig, env_overrides
from arenasettle.core.exceptions import ConfigError


def _write(tmp_path, text):
    path = tmp_path / "arenasettle.yaml"
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:

    def test_devnet_defaults(self):
        config = SettlementConfig.from_yaml(None, env={})
        assert config.rpc_url == "https://api.devnet.solana.com"
        assert config.program_id == DEFAULT_PROGRAM_ID
        assert config.rake_percent == 0.10
        assert config.tie_fee_percent == 0.02
        assert config.commitment == "confirmed"


class TestYaml:

    def test_values_override_defaults(self, tmp_path):
        path = _write(tmp_path, "rake_percent: 0.05\ninterval_seconds: 10\nclose_settled_games: false\n")
        config = SettlementConfig.from_yaml(path, env={})
        assert config.rake_percent == 0.05
        assert config.interval_seconds == 10
        assert config.close_settled_games is False

    def test_unknown_keys_go_to_extra(self, tmp_path):
        path = _write(tmp_path, "rpc_url: http://localhost:8899\nregion: eu-west\n")
        config = SettlementConfig.from_yaml(path, env={})
        assert config.rpc_url == "http://localhost:8899"
        assert config.extra == {"region": "eu-west"}

    def test_empty_file_is_defaults(self, tmp_path):
        config = SettlementConfig.from_yaml(_write(tmp_path, ""), env={})
        assert config.rake_percent == 0.10

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            SettlementConfig.from_yaml(tmp_path / "absent.yaml", env={})

    def test_non_mapping(self, tmp_path):
        with pytest.raises(ConfigError, match="mapping"):
            SettlementConfig.from_yaml(_write(tmp_path, "- a\n- b\n"), env={})

    def test_broken_yaml(self, tmp_path):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            SettlementConfig.from_yaml(_write(tmp_path, "rpc_url: [unclosed\n"), env={})


class TestEnvironment:

    def test_env_beats_yaml(self, tmp_path):
        path = _write(tmp_path, "rpc_url: http://yaml\ninterval_seconds: 10\n")
        config = SettlementConfig.from_yaml(path, env={
            "SOLANA_RPC_URL": "http://env",
            "ARENASETTLE_INTERVAL": "2.5",
        })
        assert config.rpc_url == "http://env"
        assert config.interval_seconds == 2.5

    def test_blank_values_are_ignored(self):
        assert env_overrides({"SOLANA_RPC_URL": "", "PROGRAM_ID": "abc"}) == {"program_id": "abc"}

    def test_strategy_constants_are_not_env_overridable(self):
        assert env_overrides({"RAKE_PERCENT": "0.5"}) == {}

    def test_unparseable_number(self):
        with pytest.raises(ConfigError, match="ARENASETTLE_MAX_PRIORITY_FEE"):
            env_overrides({"ARENASETTLE_MAX_PRIORITY_FEE": "lots"})


class TestValidation:

    @pytest.mark.parametrize("overrides", [
        {"commitment": "eventually"},
        {"rpc_timeout_seconds": 0},
        {"min_priority_fee": 10, "max_priority_fee": 5},
        {"rake_percent": 1.0},
        {"tie_fee_percent": -0.01},
        {"tie_tolerance": 0},
        {"interval_seconds": 0},
    ])
    def test_rejected(self, overrides):
        with pytest.raises(ConfigError):
            SettlementConfig.from_dict(overrides)

    def test_wrong_type_is_config_error(self):
        with pytest.raises(ConfigError):
            SettlementConfig.from_dict({"rake_percent": "ten"})
