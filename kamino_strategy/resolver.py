"""
Strategy account resolver: (flavor, operation) -> remaining accounts.

Market 策略直接面对一个 klend reserve；KVault 策略面对一个 kvault，并附带 vault
全部 reserve 的 metas。所有地址每次调用重新推导，不做缓存。

Reserve 没有 collateral farm 时，reserve_farm_state / obligation_farm 两个槽位填
klend 程序地址占位，不能省略。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from kamino_strategy import addresses
from kamino_strategy.accounts import AccountMeta, AccountSchema, compose_remaining_accounts
from kamino_strategy.config import Operation, StrategyConfig, StrategyFlavor
from kamino_strategy.constants import (
    SYSVAR_INSTRUCTIONS_PUBKEY,
    SYSVAR_RENT_PUBKEY,
    SYSTEM_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
)
from kamino_strategy.farms import FarmClaim
from kamino_strategy.layouts import KVaultState, Reserve, decode_kvault_state
from kamino_strategy.reserves import ReserveSelection, fetch_reserve, select_reserves
from kamino_strategy.rpc import AccountFetcher, require_account
from kamino_strategy.schemas import remaining_accounts_schema

log = logging.getLogger(__name__)


@dataclass
class ResolvedAccounts:
    flavor: StrategyFlavor
    operation: Operation
    strategy: str
    strategy_authority: str
    protocol: List[AccountMeta]
    reserves: List[AccountMeta] = field(default_factory=list)
    reserve_state: Optional[Reserve] = None
    vault_state: Optional[KVaultState] = None
    selection: Optional[ReserveSelection] = None
    # kvault withdraw 的 reserve metas 出现两次：协议账户之后一次，指令 remaining accounts 末尾再一次
    reserve_repeats: int = 1

    def remaining_accounts(self, swap: Sequence[AccountMeta] = ()) -> List[AccountMeta]:
        return compose_remaining_accounts(self.protocol, reserves=self.reserves * self.reserve_repeats, swap=swap)

    @property
    def lookup_tables(self) -> List[str]:
        if self.vault_state is None:
            return []
        return [self.vault_state.vault_lookup_table]


class StrategyAccountResolver:
    def __init__(self, fetcher: AccountFetcher, config: StrategyConfig) -> None:
        self.fetcher = fetcher
        self.config = config

    def strategy_authority(self, strategy: str) -> str:
        return addresses.vault_strategy_authority(self.config.vault, strategy, self.config.vault_program)

    def _build(self, flavor: StrategyFlavor, operation: Operation, roles: Dict[str, str]) -> List[AccountMeta]:
        schema: AccountSchema = remaining_accounts_schema(flavor, operation)
        metas = schema.build(roles)
        schema.validate(metas)
        return metas

    # === market ===

    def load_reserve(self, reserve_address: str) -> Reserve:
        return fetch_reserve(self.fetcher, reserve_address)

    def _market_roles(self, reserve_address: str, reserve: Reserve, authority: str) -> Dict[str, str]:
        cfg = self.config
        market = reserve.lending_market
        obligation = addresses.obligation(authority, market, cfg.klend_program)
        if reserve.has_collateral_farm:
            reserve_farm_state = reserve.farm_collateral
            obligation_farm = addresses.farm_user_state(reserve.farm_collateral, obligation, cfg.farms_program)
        else:
            log.debug("reserve %s has no collateral farm, using klend sentinel", reserve_address)
            reserve_farm_state = cfg.klend_program
            obligation_farm = cfg.klend_program
        return {
            "obligation": obligation,
            "lending_market": market,
            "lending_market_authority": addresses.lending_market_authority(market, cfg.klend_program),
            "reserve": reserve_address,
            "reserve_farm_state": reserve_farm_state,
            "obligation_farm": obligation_farm,
            "farms_program": cfg.farms_program,
            "klend_program": cfg.klend_program,
        }

    def _market(
        self,
        operation: Operation,
        reserve_address: str,
        reserve: Optional[Reserve],
        extra: Dict[str, str],
        drop: Sequence[str] = (),
    ) -> ResolvedAccounts:
        if reserve is None:
            reserve = self.load_reserve(reserve_address)
        authority = self.strategy_authority(reserve_address)
        roles = self._market_roles(reserve_address, reserve, authority)
        for name in drop:
            roles.pop(name)
        roles.update(extra)
        protocol = self._build(StrategyFlavor.MARKET, operation, roles)
        log.info("resolved market %s for reserve %s (%d accounts)", operation.value, reserve_address, len(protocol))
        return ResolvedAccounts(
            flavor=StrategyFlavor.MARKET,
            operation=operation,
            strategy=reserve_address,
            strategy_authority=authority,
            protocol=protocol,
            reserve_state=reserve,
        )

    def market_initialize(self, reserve_address: str, reserve: Optional[Reserve] = None) -> ResolvedAccounts:
        authority = self.strategy_authority(reserve_address)
        extra = {
            "user_metadata": addresses.user_metadata(authority, self.config.klend_program),
            "rent_sysvar": SYSVAR_RENT_PUBKEY,
        }
        return self._market(Operation.INITIALIZE, reserve_address, reserve, extra)

    def market_deposit(self, reserve_address: str, reserve: Optional[Reserve] = None) -> ResolvedAccounts:
        if reserve is None:
            reserve = self.load_reserve(reserve_address)
        authority = self.strategy_authority(reserve_address)
        extra = {
            "reserve_liquidity_supply": reserve.liquidity_supply,
            "reserve_collateral_mint": reserve.collateral_mint,
            "reserve_destination_collateral": reserve.collateral_supply,
            "collateral_token_program": TOKEN_PROGRAM_ID,
            "instructions_sysvar": SYSVAR_INSTRUCTIONS_PUBKEY,
            "user_metadata": addresses.user_metadata(authority, self.config.klend_program),
            "scope_prices": reserve.scope_price_feed,
            "rent_sysvar": SYSVAR_RENT_PUBKEY,
            "system_program": SYSTEM_PROGRAM_ID,
        }
        return self._market(Operation.DEPOSIT, reserve_address, reserve, extra)

    def market_withdraw(self, reserve_address: str, reserve: Optional[Reserve] = None) -> ResolvedAccounts:
        if reserve is None:
            reserve = self.load_reserve(reserve_address)
        extra = {
            "reserve_source_collateral": reserve.collateral_supply,
            "reserve_collateral_mint": reserve.collateral_mint,
            "reserve_liquidity_supply": reserve.liquidity_supply,
            "collateral_token_program": TOKEN_PROGRAM_ID,
            "instructions_sysvar": SYSVAR_INSTRUCTIONS_PUBKEY,
            "scope_prices": reserve.scope_price_feed,
        }
        return self._market(Operation.WITHDRAW, reserve_address, reserve, extra)

    def market_claim_reward(
        self,
        reserve_address: str,
        claim: FarmClaim,
        reserve: Optional[Reserve] = None,
    ) -> ResolvedAccounts:
        if reserve is None:
            reserve = self.load_reserve(reserve_address)
        extra = self._claim_roles(claim)
        extra["scope_prices"] = reserve.scope_price_feed
        # claim 指令不带 lma 和 reserve 自己的 farm 槽位
        drop = ("lending_market_authority", "reserve_farm_state", "obligation_farm")
        return self._market(Operation.CLAIM_REWARD, reserve_address, reserve, extra, drop=drop)

    def _claim_roles(self, claim: FarmClaim) -> Dict[str, str]:
        return {
            "user_state": claim.user_state,
            "farm_state": claim.farm_state,
            "global_config": self.config.farm_global_config,
            "reward_mint": claim.reward_mint,
            "user_reward_ata": claim.user_reward_ata,
            "rewards_vault": claim.rewards_vault,
            "rewards_treasury_vault": claim.rewards_treasury_vault,
            "farm_vaults_authority": claim.farm_vaults_authority,
            "reward_token_program": claim.reward_token_program,
            "farms_program": self.config.farms_program,
            "klend_program": self.config.klend_program,
        }

    # === kvault ===

    def load_kvault(self, kvault: str) -> KVaultState:
        return decode_kvault_state(require_account(self.fetcher, kvault, "kvault"))

    def _kvault_roles(self, kvault: str, authority: str) -> Dict[str, str]:
        cfg = self.config
        shares_mint = addresses.kvault_shares_mint(kvault, cfg.kvaults_program)
        return {
            "kvault": kvault,
            "token_vault": addresses.kvault_token_vault(kvault, cfg.kvaults_program),
            "base_vault_authority": addresses.kvault_base_authority(kvault, cfg.kvaults_program),
            "shares_mint": shares_mint,
            "strategy_shares_ata": addresses.associated_token_address(
                authority, shares_mint, cfg.shares_token_program
            ),
            "event_authority": addresses.event_authority(cfg.kvaults_program),
            "klend_program": cfg.klend_program,
            "kvaults_program": cfg.kvaults_program,
            "shares_token_program": cfg.shares_token_program,
        }

    def _kvault(
        self,
        operation: Operation,
        kvault: str,
        roles: Dict[str, str],
        vault_state: KVaultState,
        selection: ReserveSelection,
        reserve_repeats: int = 1,
    ) -> ResolvedAccounts:
        protocol = self._build(StrategyFlavor.KVAULT, operation, roles)
        log.info(
            "resolved kvault %s for %s (%d accounts + %d reserve metas)",
            operation.value,
            kvault,
            len(protocol),
            len(selection.all_metas) * reserve_repeats,
        )
        return ResolvedAccounts(
            flavor=StrategyFlavor.KVAULT,
            operation=operation,
            strategy=kvault,
            strategy_authority=self.strategy_authority(kvault),
            protocol=protocol,
            reserves=selection.all_metas,
            vault_state=vault_state,
            selection=selection,
            reserve_repeats=reserve_repeats,
        )

    def kvault_initialize(self, kvault: str) -> ResolvedAccounts:
        protocol = self._build(StrategyFlavor.KVAULT, Operation.INITIALIZE, {})
        return ResolvedAccounts(
            flavor=StrategyFlavor.KVAULT,
            operation=Operation.INITIALIZE,
            strategy=kvault,
            strategy_authority=self.strategy_authority(kvault),
            protocol=protocol,
        )

    def kvault_deposit(self, kvault: str) -> ResolvedAccounts:
        vault_state = self.load_kvault(kvault)
        selection = select_reserves(self.fetcher, vault_state)
        roles = self._kvault_roles(kvault, self.strategy_authority(kvault))
        return self._kvault(Operation.DEPOSIT, kvault, roles, vault_state, selection)

    def kvault_withdraw(self, kvault: str) -> ResolvedAccounts:
        cfg = self.config
        vault_state = self.load_kvault(kvault)
        selection = select_reserves(self.fetcher, vault_state)
        target = selection.require_active()
        market = target.lending_market
        roles = self._kvault_roles(kvault, self.strategy_authority(kvault))
        roles.update(
            reserve=target.reserve,
            ctoken_vault=addresses.kvault_ctoken_vault(kvault, target.reserve, cfg.kvaults_program),
            lending_market=market,
            lending_market_authority=addresses.lending_market_authority(market, cfg.klend_program),
            reserve_liquidity_supply=addresses.reserve_liquidity_supply(market, cfg.asset_mint, cfg.klend_program),
            reserve_collateral_mint=addresses.reserve_collateral_mint(market, cfg.asset_mint, cfg.klend_program),
            instructions_sysvar=SYSVAR_INSTRUCTIONS_PUBKEY,
        )
        return self._kvault(Operation.WITHDRAW, kvault, roles, vault_state, selection, reserve_repeats=2)

    def kvault_claim_reward(
        self,
        kvault: str,
        claim: FarmClaim,
        vault_state: Optional[KVaultState] = None,
        selection: Optional[ReserveSelection] = None,
    ) -> ResolvedAccounts:
        cfg = self.config
        if vault_state is None:
            vault_state = self.load_kvault(kvault)
        if selection is None:
            selection = select_reserves(self.fetcher, vault_state)
        authority = self.strategy_authority(kvault)
        shares_mint = addresses.kvault_shares_mint(kvault, cfg.kvaults_program)
        roles = self._claim_roles(claim)
        roles.update(
            kvault=kvault,
            user_shares_ata=addresses.associated_token_address(authority, shares_mint, cfg.shares_token_program),
            scope_prices=cfg.kvault_scope_prices,
        )
        return self._kvault(Operation.CLAIM_REWARD, kvault, roles, vault_state, selection)

    # === dispatch ===

    def resolve(
        self,
        flavor: StrategyFlavor,
        operation: Operation,
        strategy: str,
        claim: Optional[FarmClaim] = None,
    ) -> ResolvedAccounts:
        if operation is Operation.CLAIM_REWARD and claim is None:
            raise ValueError("claim_reward resolution needs a FarmClaim")
        if flavor is StrategyFlavor.MARKET:
            if operation is Operation.INITIALIZE:
                return self.market_initialize(strategy)
            if operation is Operation.DEPOSIT:
                return self.market_deposit(strategy)
            if operation is Operation.WITHDRAW:
                return self.market_withdraw(strategy)
            return self.market_claim_reward(strategy, claim)
        if operation is Operation.INITIALIZE:
            return self.kvault_initialize(strategy)
        if operation is Operation.DEPOSIT:
            return self.kvault_deposit(strategy)
        if operation is Operation.WITHDRAW:
            return self.kvault_withdraw(strategy)
        return self.kvault_claim_reward(strategy, claim)
