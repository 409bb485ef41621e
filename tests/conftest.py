"""Shared fixtures: a deterministic strategy config and the in-memory collaborators."""

import pytest

from builders import FakeFetcher, FakeQuoteProvider, RecordingSubmitter, addr
from kamino_strategy.config import Discriminators, StrategyConfig


DISCRIMINATOR_VALUES = {
    "initialize_market": bytes([1] * 8),
    "deposit_market": bytes([2] * 8),
    "withdraw_market": bytes([3] * 8),
    "claim_market_reward": bytes([4] * 8),
    "initialize_vault": bytes([5] * 8),
    "deposit_vault": bytes([6] * 8),
    "withdraw_vault": bytes([7] * 8),
    "claim_vault_rewards": bytes([8] * 8),
}


@pytest.fixture
def discriminators():
    return Discriminators(**DISCRIMINATOR_VALUES)


@pytest.fixture
def config(discriminators):
    return StrategyConfig(
        vault=addr("vault"),
        asset_mint=addr("usdc-mint"),
        adaptor_program=addr("adaptor"),
        farm_global_config=addr("farm-global-config"),
        discriminators=discriminators,
        kvault_scope_prices=addr("scope-prices"),
        lookup_table_addresses=(addr("static-lut"),),
    )


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def quote_provider():
    return FakeQuoteProvider()


@pytest.fixture
def submitter():
    return RecordingSubmitter()
