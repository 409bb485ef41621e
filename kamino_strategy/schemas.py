"""
每个 (strategy 类型, 操作) 的 remaining accounts 顺序，以及 vault 程序指令的固定账户。

顺序即协议：adaptor 按下标取账户，任何重排都会让指令失败或作用到错误的账户上。
"""

from __future__ import annotations

from typing import Dict, Tuple

from kamino_strategy.accounts import AccountSchema, AccountSlot
from kamino_strategy.config import Operation, StrategyFlavor


def _schema(name: str, *slots: Tuple[str, bool]) -> AccountSchema:
    return AccountSchema(name, tuple(AccountSlot(role, writable) for role, writable in slots))


W = True
R = False

MARKET_INITIALIZE = _schema(
    "market_initialize",
    ("user_metadata", W),
    ("obligation", W),
    ("lending_market_authority", R),
    ("reserve", W),
    ("reserve_farm_state", W),
    ("obligation_farm", W),
    ("lending_market", R),
    ("farms_program", R),
    ("rent_sysvar", R),
    ("klend_program", R),
)

MARKET_DEPOSIT = _schema(
    "market_deposit",
    ("obligation", W),
    ("lending_market", R),
    ("lending_market_authority", R),
    ("reserve", W),
    ("reserve_liquidity_supply", W),
    ("reserve_collateral_mint", W),
    ("reserve_destination_collateral", W),
    ("collateral_token_program", R),
    ("instructions_sysvar", R),
    ("obligation_farm", W),
    ("reserve_farm_state", W),
    ("user_metadata", W),
    ("scope_prices", R),
    ("rent_sysvar", R),
    ("system_program", R),
    ("farms_program", R),
    ("klend_program", R),
)

MARKET_WITHDRAW = _schema(
    "market_withdraw",
    ("obligation", W),
    ("lending_market", R),
    ("lending_market_authority", R),
    ("reserve", W),
    ("reserve_source_collateral", W),
    ("reserve_collateral_mint", W),
    ("reserve_liquidity_supply", W),
    ("collateral_token_program", R),
    ("instructions_sysvar", R),
    ("obligation_farm", W),
    ("reserve_farm_state", W),
    ("scope_prices", R),
    ("farms_program", R),
    ("klend_program", R),
)

MARKET_CLAIM_REWARD = _schema(
    "market_claim_reward",
    ("obligation", W),
    ("lending_market", W),
    ("reserve", W),
    ("user_state", W),
    ("farm_state", W),
    ("global_config", R),
    ("reward_mint", R),
    ("user_reward_ata", W),
    ("rewards_vault", W),
    ("rewards_treasury_vault", W),
    ("farm_vaults_authority", R),
    ("scope_prices", R),
    ("reward_token_program", R),
    ("farms_program", R),
    ("klend_program", R),
)

KVAULT_INITIALIZE = _schema("kvault_initialize")

KVAULT_DEPOSIT = _schema(
    "kvault_deposit",
    ("kvault", W),
    ("token_vault", W),
    ("base_vault_authority", R),
    ("shares_mint", W),
    ("strategy_shares_ata", W),
    ("event_authority", R),
    ("klend_program", R),
    ("kvaults_program", R),
    ("shares_token_program", R),
)

KVAULT_WITHDRAW = _schema(
    "kvault_withdraw",
    ("kvault", W),
    ("token_vault", W),
    ("base_vault_authority", R),
    ("shares_mint", W),
    ("strategy_shares_ata", W),
    ("reserve", W),
    ("ctoken_vault", W),
    ("lending_market", R),
    ("lending_market_authority", R),
    ("reserve_liquidity_supply", W),
    ("reserve_collateral_mint", W),
    ("event_authority", R),
    ("klend_program", R),
    ("kvaults_program", R),
    ("shares_token_program", R),
    ("instructions_sysvar", R),
)

KVAULT_CLAIM_REWARD = _schema(
    "kvault_claim_reward",
    ("kvault", W),
    ("user_shares_ata", W),
    ("user_state", W),
    ("farm_state", W),
    ("global_config", R),
    ("reward_mint", R),
    ("user_reward_ata", W),
    ("rewards_vault", W),
    ("rewards_treasury_vault", W),
    ("farm_vaults_authority", R),
    ("scope_prices", R),
    ("reward_token_program", R),
    ("farms_program", R),
    ("klend_program", R),
)

REMAINING_ACCOUNT_SCHEMAS: Dict[Tuple[StrategyFlavor, Operation], AccountSchema] = {
    (StrategyFlavor.MARKET, Operation.INITIALIZE): MARKET_INITIALIZE,
    (StrategyFlavor.MARKET, Operation.DEPOSIT): MARKET_DEPOSIT,
    (StrategyFlavor.MARKET, Operation.WITHDRAW): MARKET_WITHDRAW,
    (StrategyFlavor.MARKET, Operation.CLAIM_REWARD): MARKET_CLAIM_REWARD,
    (StrategyFlavor.KVAULT, Operation.INITIALIZE): KVAULT_INITIALIZE,
    (StrategyFlavor.KVAULT, Operation.DEPOSIT): KVAULT_DEPOSIT,
    (StrategyFlavor.KVAULT, Operation.WITHDRAW): KVAULT_WITHDRAW,
    (StrategyFlavor.KVAULT, Operation.CLAIM_REWARD): KVAULT_CLAIM_REWARD,
}


def remaining_accounts_schema(flavor: StrategyFlavor, operation: Operation) -> AccountSchema:
    return REMAINING_ACCOUNT_SCHEMAS[(flavor, operation)]


# === vault program fixed accounts ===

def _fixed(name: str, *slots: Tuple[str, bool, bool]) -> AccountSchema:
    return AccountSchema(name, tuple(AccountSlot(role, writable, signer) for role, writable, signer in slots))


SIGNER = True

INITIALIZE_STRATEGY = _fixed(
    "initialize_strategy",
    ("payer", W, SIGNER),
    ("manager", R, SIGNER),
    ("protocol", R, False),
    ("vault", R, False),
    ("strategy", R, False),
    ("adaptor_add_receipt", R, False),
    ("strategy_init_receipt", W, False),
    ("vault_strategy_auth", W, False),
    ("adaptor_program", R, False),
    ("system_program", R, False),
)

# deposit_strategy 与 withdraw_strategy 共用同一组固定账户
STRATEGY_TRANSFER = _fixed(
    "strategy_transfer",
    ("manager", R, SIGNER),
    ("protocol", R, False),
    ("vault", W, False),
    ("vault_asset_idle_auth", W, False),
    ("vault_asset_idle_ata", W, False),
    ("vault_strategy_auth", W, False),
    ("vault_strategy_asset_ata", W, False),
    ("strategy", R, False),
    ("adaptor_add_receipt", R, False),
    ("strategy_init_receipt", W, False),
    ("vault_asset_mint", R, False),
    ("asset_token_program", R, False),
    ("adaptor_program", R, False),
)

INITIALIZE_DIRECT_WITHDRAW_STRATEGY = _fixed(
    "initialize_direct_withdraw_strategy",
    ("payer", W, SIGNER),
    ("admin", R, SIGNER),
    ("protocol", R, False),
    ("vault", R, False),
    ("strategy", R, False),
    ("adaptor_add_receipt", R, False),
    ("strategy_init_receipt", R, False),
    ("direct_withdraw_init_receipt", W, False),
    ("adaptor_program", R, False),
    ("system_program", R, False),
)

REQUEST_WITHDRAW_VAULT = _fixed(
    "request_withdraw_vault",
    ("payer", W, SIGNER),
    ("user_transfer_authority", R, SIGNER),
    ("protocol", R, False),
    ("vault", R, False),
    ("vault_lp_mint", R, False),
    ("user_lp_ata", W, False),
    ("request_withdraw_lp_ata", W, False),
    ("request_withdraw_vault_receipt", W, False),
    ("lp_token_program", R, False),
    ("system_program", R, False),
)

DIRECT_WITHDRAW_STRATEGY = _fixed(
    "direct_withdraw_strategy",
    ("user", W, SIGNER),
    ("protocol", R, False),
    ("vault", W, False),
    ("strategy", R, False),
    ("adaptor_add_receipt", R, False),
    ("strategy_init_receipt", W, False),
    ("direct_withdraw_init_receipt", R, False),
    ("vault_asset_idle_auth", W, False),
    ("vault_strategy_auth", W, False),
    ("vault_lp_mint", W, False),
    ("request_withdraw_vault_receipt", W, False),
    ("request_withdraw_lp_ata", W, False),
    ("vault_asset_mint", R, False),
    ("vault_asset_idle_ata", W, False),
    ("vault_strategy_asset_ata", W, False),
    ("user_asset_ata", W, False),
    ("asset_token_program", R, False),
    ("lp_token_program", R, False),
    ("adaptor_program", R, False),
    ("system_program", R, False),
)

CREATE_ATA_IDEMPOTENT = _fixed(
    "create_associated_token_account_idempotent",
    ("payer", W, SIGNER),
    ("associated_token", W, False),
    ("owner", R, False),
    ("mint", R, False),
    ("system_program", R, False),
    ("token_program", R, False),
)
