"""Tests for loading and overriding the strategy config."""

import json

import pytest

from builders import addr
from conftest import DISCRIMINATOR_VALUES
from kamino_strategy.config import Discriminators, Operation, StrategyFlavor, config_from_dict, load_config
from kamino_strategy.constants import KLEND_PROGRAM_ID, TOKEN_PROGRAM_ID
from kamino_strategy.errors import ConfigError


def _raw(**extra):
    raw = {
        "vault": addr("vault"),
        "asset_mint": addr("usdc-mint"),
        "adaptor_program": addr("adaptor"),
        "farm_global_config": addr("farm-global-config"),
        "discriminators": {name: list(value) for name, value in DISCRIMINATOR_VALUES.items()},
    }
    raw.update(extra)
    return raw


class TestLoadConfig:
    def test_from_json_file(self, tmp_path):
        path = tmp_path / "vault.json"
        path.write_text(json.dumps(_raw(lookup_table_addresses=[addr("lut")])), encoding="utf-8")
        config = load_config(path)
        assert config.vault == addr("vault")
        assert config.lookup_table_addresses == (addr("lut"),)
        assert config.klend_program == KLEND_PROGRAM_ID
        assert config.asset_token_program == TOKEN_PROGRAM_ID
        assert config.discriminator(StrategyFlavor.KVAULT, Operation.CLAIM_REWARD) == bytes([8] * 8)
        assert config.discriminator(StrategyFlavor.MARKET, Operation.DEPOSIT) == bytes([2] * 8)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "vault.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_top_level_must_be_object(self, tmp_path):
        path = tmp_path / "vault.json"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_hex_discriminators(self):
        raw = _raw()
        raw["discriminators"] = {name: "0x" + value.hex() for name, value in DISCRIMINATOR_VALUES.items()}
        config = config_from_dict(raw)
        assert config.discriminators.initialize_market == bytes([1] * 8)

    def test_wrong_discriminator_length(self):
        raw = _raw()
        raw["discriminators"]["deposit_vault"] = [1, 2, 3]
        with pytest.raises(ConfigError, match="deposit_vault"):
            config_from_dict(raw)

    def test_missing_discriminator(self):
        raw = _raw()
        del raw["discriminators"]["withdraw_market"]
        with pytest.raises(ConfigError, match="withdraw_market"):
            config_from_dict(raw)

    def test_missing_discriminator_section(self):
        raw = _raw()
        del raw["discriminators"]
        with pytest.raises(ConfigError):
            config_from_dict(raw)

    def test_unknown_key(self):
        with pytest.raises(ConfigError, match="surprise"):
            config_from_dict(_raw(surprise=1))

    def test_missing_required_key(self):
        raw = _raw()
        del raw["vault"]
        with pytest.raises(ConfigError):
            config_from_dict(raw)

    def test_bad_pubkey(self):
        with pytest.raises(ConfigError, match="vault"):
            config_from_dict(_raw(vault="not-base58-0OIl"))


class TestOverrides:
    def test_none_values_are_ignored(self, config):
        updated = config.with_overrides(rpc_url=None, slippage_bps=100)
        assert updated.rpc_url == config.rpc_url
        assert updated.slippage_bps == 100

    def test_lookup_tables_become_tuple(self, config):
        updated = config.with_overrides(lookup_table_addresses=[addr("other-lut")])
        assert updated.lookup_table_addresses == (addr("other-lut"),)

    def test_override_is_validated(self, config):
        with pytest.raises(ConfigError):
            config.with_overrides(vault="0")


class TestDiscriminators:
    def test_bytes_required(self):
        values = dict(DISCRIMINATOR_VALUES, claim_market_reward=b"short")
        with pytest.raises(ConfigError):
            Discriminators(**values)
