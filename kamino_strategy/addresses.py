"""
Named PDA derivations for every program the strategy flows touch.

Each helper reproduces the exact seed layout the owning program checks;
they are recomputed on every call and never cached.
"""

from __future__ import annotations

import logging

from kamino_strategy import constants as c
from kamino_strategy.pda_utils import derive_address, find_ata, pubkey_seed, u8_seed

log = logging.getLogger(__name__)


def _derive(label: str, seeds, program: str) -> str:
    address = derive_address(seeds, program)
    log.debug("derived %s = %s (program %s)", label, address, program)
    return address


# === vault program ===

def vault_strategy_authority(vault: str, strategy: str, vault_program: str) -> str:
    return _derive(
        "vault_strategy_auth",
        (c.SEED_VAULT_STRATEGY_AUTH, pubkey_seed(vault), pubkey_seed(strategy)),
        vault_program,
    )


def protocol_address(vault_program: str) -> str:
    return _derive("protocol", (c.SEED_PROTOCOL,), vault_program)


def vault_asset_idle_authority(vault: str, vault_program: str) -> str:
    return _derive("vault_asset_idle_auth", (c.SEED_VAULT_ASSET_IDLE_AUTH, pubkey_seed(vault)), vault_program)


def vault_lp_mint(vault: str, vault_program: str) -> str:
    return _derive("vault_lp_mint", (c.SEED_VAULT_LP_MINT, pubkey_seed(vault)), vault_program)


def strategy_init_receipt(vault: str, strategy: str, vault_program: str) -> str:
    return _derive(
        "strategy_init_receipt",
        (c.SEED_STRATEGY_INIT_RECEIPT, pubkey_seed(vault), pubkey_seed(strategy)),
        vault_program,
    )


def direct_withdraw_init_receipt(vault: str, strategy: str, vault_program: str) -> str:
    return _derive(
        "direct_withdraw_init_receipt",
        (c.SEED_DIRECT_WITHDRAW_INIT_RECEIPT, pubkey_seed(vault), pubkey_seed(strategy)),
        vault_program,
    )


def adaptor_add_receipt(vault: str, adaptor_program: str, vault_program: str) -> str:
    return _derive(
        "adaptor_add_receipt",
        (c.SEED_ADAPTOR_ADD_RECEIPT, pubkey_seed(vault), pubkey_seed(adaptor_program)),
        vault_program,
    )


def request_withdraw_vault_receipt(vault: str, user: str, vault_program: str) -> str:
    return _derive(
        "request_withdraw_vault_receipt",
        (c.SEED_REQUEST_WITHDRAW_VAULT_RECEIPT, pubkey_seed(vault), pubkey_seed(user)),
        vault_program,
    )


# === lending program ===

def obligation(strategy_authority: str, lending_market: str, klend_program: str) -> str:
    """Vanilla obligation: tag 0, id 0, owner, market, then two default pubkeys."""
    return _derive(
        "obligation",
        (
            u8_seed(c.OBLIGATION_TAG),
            u8_seed(c.OBLIGATION_ID),
            pubkey_seed(strategy_authority),
            pubkey_seed(lending_market),
            pubkey_seed(c.DEFAULT_PUBKEY),
            pubkey_seed(c.DEFAULT_PUBKEY),
        ),
        klend_program,
    )


def lending_market_authority(lending_market: str, klend_program: str) -> str:
    return _derive("lending_market_authority", (c.SEED_LENDING_MARKET_AUTH, pubkey_seed(lending_market)), klend_program)


def user_metadata(owner: str, klend_program: str) -> str:
    return _derive("user_metadata", (c.SEED_USER_METADATA, pubkey_seed(owner)), klend_program)


def reserve_liquidity_supply(lending_market: str, mint: str, klend_program: str) -> str:
    return _derive(
        "reserve_liquidity_supply",
        (c.SEED_RESERVE_LIQ_SUPPLY, pubkey_seed(lending_market), pubkey_seed(mint)),
        klend_program,
    )


def reserve_collateral_mint(lending_market: str, mint: str, klend_program: str) -> str:
    return _derive(
        "reserve_collateral_mint",
        (c.SEED_RESERVE_COLL_MINT, pubkey_seed(lending_market), pubkey_seed(mint)),
        klend_program,
    )


# === pooled vault program ===

def kvault_shares_mint(kvault: str, kvaults_program: str) -> str:
    return _derive("shares_mint", (c.SEED_SHARES, pubkey_seed(kvault)), kvaults_program)


def kvault_token_vault(kvault: str, kvaults_program: str) -> str:
    return _derive("token_vault", (c.SEED_TOKEN_VAULT, pubkey_seed(kvault)), kvaults_program)


def kvault_base_authority(kvault: str, kvaults_program: str) -> str:
    return _derive("base_vault_authority", (c.SEED_BASE_AUTHORITY, pubkey_seed(kvault)), kvaults_program)


def kvault_ctoken_vault(kvault: str, reserve: str, kvaults_program: str) -> str:
    return _derive(
        "ctoken_vault",
        (c.SEED_CTOKEN_VAULT, pubkey_seed(kvault), pubkey_seed(reserve)),
        kvaults_program,
    )


def event_authority(program: str) -> str:
    return _derive("event_authority", (c.SEED_EVENT_AUTHORITY,), program)


# === farms program ===

def farm_user_state(farm_state: str, owner: str, farms_program: str) -> str:
    return _derive("farm_user_state", (c.SEED_FARM_USER, pubkey_seed(farm_state), pubkey_seed(owner)), farms_program)


def farm_rewards_vault(farm_state: str, reward_mint: str, farms_program: str) -> str:
    return _derive(
        "rewards_vault",
        (c.SEED_REWARDS_VAULT, pubkey_seed(farm_state), pubkey_seed(reward_mint)),
        farms_program,
    )


def farm_vaults_authority(farm_state: str, farms_program: str) -> str:
    return _derive("farm_vaults_authority", (c.SEED_FARM_VAULTS_AUTHORITY, pubkey_seed(farm_state)), farms_program)


def farm_rewards_treasury_vault(global_config: str, reward_mint: str, farms_program: str) -> str:
    return _derive(
        "rewards_treasury_vault",
        (c.SEED_REWARDS_TREASURY_VAULT, pubkey_seed(global_config), pubkey_seed(reward_mint)),
        farms_program,
    )


# === token accounts ===

def associated_token_address(owner: str, mint: str, token_program: str = c.TOKEN_PROGRAM_ID) -> str:
    address = find_ata(owner, mint, token_program, c.ASSOCIATED_TOKEN_PROGRAM_ID)
    log.debug("derived ata(%s, %s) = %s", owner, mint, address)
    return address
