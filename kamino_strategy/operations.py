"""
Top-level strategy operations.

每个操作只产出 :class:`TransactionPlan`（指令 + fee payer + 额外签名者 + lookup
table 地址），签名/序列化/发送交给外部 :class:`Submitter`。组装是全有或全无的：
解析过程中任何异常都会在产出 plan 之前抛出。

Claim 流程按 farm 拆成独立的 plan；某个 farm 的报价失败
(:class:`~kamino_strategy.errors.SwapUnavailable`) 只影响它自己，其它 farm 继续。
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Sequence

from kamino_strategy import addresses, instructions
from kamino_strategy.accounts import Instruction, unique_addresses
from kamino_strategy.config import Operation, StrategyConfig, StrategyFlavor
from kamino_strategy.errors import SwapUnavailable
from kamino_strategy.farms import FarmClaim, FarmsReader, Instant, UserFarmSource, enumerate_farm_claims
from kamino_strategy.layouts import KVaultState, Reserve
from kamino_strategy.reserves import ReserveSelection, select_reserves
from kamino_strategy.resolver import ResolvedAccounts, StrategyAccountResolver
from kamino_strategy.rpc import AccountFetcher
from kamino_strategy.swap import JupiterQuoteProvider, QuoteProvider, compose_swap_leg

log = logging.getLogger(__name__)


@dataclass
class TransactionPlan:
    label: str
    instructions: List[Instruction]
    fee_payer: str
    extra_signers: List[str] = field(default_factory=list)
    lookup_table_addresses: List[str] = field(default_factory=list)
    priority_fee_micro_lamports: Optional[int] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "feePayer": self.fee_payer,
            "extraSigners": list(self.extra_signers),
            "lookupTables": list(self.lookup_table_addresses),
            "priorityFeeMicroLamports": self.priority_fee_micro_lamports,
            "instructions": [ix.to_json() for ix in self.instructions],
        }


@dataclass
class ClaimOutcome:
    claim: FarmClaim
    plan: Optional[TransactionPlan] = None
    error: Optional[SwapUnavailable] = None

    @property
    def ok(self) -> bool:
        return self.plan is not None


class Submitter(Protocol):
    def submit(
        self,
        instructions: Sequence[Instruction],
        fee_payer: str,
        extra_signers: Sequence[str],
        lookup_tables: Sequence[Any],
        priority_fee_micro_lamports: Optional[int] = None,
    ) -> str:
        ...


class LookupTableResolver(Protocol):
    def resolve(self, addresses: Sequence[str]) -> List[Any]:
        ...


class PassthroughLookupTables:
    """Hands lookup-table addresses to the submitter unchanged."""

    def resolve(self, addresses: Sequence[str]) -> List[Any]:
        return list(addresses)


def collect_lookup_addresses(ixs: Sequence[Instruction]) -> List[str]:
    """Unique account keys of ``ixs`` in first-seen order, for extending a lookup table."""
    return unique_addresses(ixs)


def _dedupe(items: Sequence[str]) -> List[str]:
    return list(dict.fromkeys(item for item in items if item))


def submit_plans(
    plans: Sequence[TransactionPlan],
    submitter: Submitter,
    lookup_resolver: Optional[LookupTableResolver] = None,
    priority_fee: Optional[int] = None,
) -> List[str]:
    """Submit plans strictly in the given order; the first failure stops the run."""
    lookup_resolver = lookup_resolver or PassthroughLookupTables()
    signatures: List[str] = []
    for plan in plans:
        tables = lookup_resolver.resolve(plan.lookup_table_addresses)
        fee = priority_fee if priority_fee is not None else plan.priority_fee_micro_lamports
        signature = submitter.submit(plan.instructions, plan.fee_payer, plan.extra_signers, tables, fee)
        log.info("%s submitted: %s", plan.label, signature)
        signatures.append(signature)
    return signatures


class StrategyOperations:
    def __init__(
        self,
        fetcher: AccountFetcher,
        config: StrategyConfig,
        quote_provider: Optional[QuoteProvider] = None,
        farm_source: Optional[UserFarmSource] = None,
    ) -> None:
        self.fetcher = fetcher
        self.config = config
        self.resolver = StrategyAccountResolver(fetcher, config)
        self.quote_provider = quote_provider or JupiterQuoteProvider(config.quote_endpoint)
        self.farm_source = farm_source or FarmsReader(fetcher, config.farms_program)

    # === helpers ===

    def _plan(
        self,
        label: str,
        ixs: List[Instruction],
        fee_payer: str,
        signers: Sequence[str] = (),
        lookup_tables: Sequence[str] = (),
    ) -> TransactionPlan:
        extra = _dedupe([signer for signer in signers if signer != fee_payer])
        plan = TransactionPlan(
            label=label,
            instructions=ixs,
            fee_payer=fee_payer,
            extra_signers=extra,
            lookup_table_addresses=_dedupe(lookup_tables),
            priority_fee_micro_lamports=self.config.priority_fee_micro_lamports,
        )
        log.info("%s: %d instructions, %d lookup tables", label, len(ixs), len(plan.lookup_table_addresses))
        return plan

    def _lookup_tables(self, resolved: Optional[ResolvedAccounts] = None, swap_tables: Sequence[str] = ()) -> List[str]:
        tables = list(swap_tables) + list(self.config.lookup_table_addresses)
        if resolved is not None:
            tables.extend(resolved.lookup_tables)
        return tables

    def _asset_setup(self, payer: str, owners: Sequence[str]) -> List[Instruction]:
        cfg = self.config
        return [
            instructions.ensure_token_account(payer, owner, cfg.asset_mint, cfg.asset_token_program)
            for owner in owners
        ]

    def _shares_setup(self, payer: str, kvault: str, authority: str) -> Instruction:
        shares_mint = addresses.kvault_shares_mint(kvault, self.config.kvaults_program)
        return instructions.ensure_token_account(payer, authority, shares_mint, self.config.shares_token_program)

    def _discriminator(self, flavor: StrategyFlavor, operation: Operation) -> bytes:
        return self.config.discriminator(flavor, operation)

    def _transfer(
        self,
        kind: str,
        manager: str,
        strategy: str,
        amount: int,
        flavor: StrategyFlavor,
        operation: Operation,
        remaining,
        additional_args: Optional[bytes] = None,
    ) -> Instruction:
        cfg = self.config
        builder = instructions.deposit_strategy if kind == "deposit" else instructions.withdraw_strategy
        return builder(
            manager=manager,
            vault=cfg.vault,
            strategy=strategy,
            asset_mint=cfg.asset_mint,
            adaptor_program=cfg.adaptor_program,
            amount=amount,
            discriminator=self._discriminator(flavor, operation),
            remaining_accounts=remaining,
            additional_args=additional_args,
            asset_token_program=cfg.asset_token_program,
            vault_program=cfg.vault_program,
        )

    def _initialize(self, payer: str, manager: str, flavor: StrategyFlavor, resolved: ResolvedAccounts) -> Instruction:
        cfg = self.config
        return instructions.initialize_strategy(
            payer=payer,
            manager=manager,
            vault=cfg.vault,
            strategy=resolved.strategy,
            adaptor_program=cfg.adaptor_program,
            discriminator=self._discriminator(flavor, Operation.INITIALIZE),
            remaining_accounts=resolved.remaining_accounts(),
            vault_program=cfg.vault_program,
        )

    # === market ===

    def initialize_market(self, payer: str, manager: str, reserve: str) -> TransactionPlan:
        resolved = self.resolver.market_initialize(reserve)
        ixs = self._asset_setup(payer, [resolved.strategy_authority, manager])
        ixs.append(self._initialize(payer, manager, StrategyFlavor.MARKET, resolved))
        return self._plan("initialize_market", ixs, payer, [manager], self._lookup_tables())

    def deposit_market(self, manager: str, reserve: str, amount: int) -> TransactionPlan:
        resolved = self.resolver.market_deposit(reserve)
        ixs = self._asset_setup(manager, [resolved.strategy_authority])
        ixs.append(
            self._transfer(
                "deposit", manager, reserve, amount, StrategyFlavor.MARKET, Operation.DEPOSIT, resolved.remaining_accounts()
            )
        )
        return self._plan("deposit_market", ixs, manager, lookup_tables=self._lookup_tables())

    def withdraw_market(self, manager: str, reserve: str, amount: int) -> TransactionPlan:
        resolved = self.resolver.market_withdraw(reserve)
        ixs = self._asset_setup(manager, [resolved.strategy_authority])
        ixs.append(
            self._transfer(
                "withdraw", manager, reserve, amount, StrategyFlavor.MARKET, Operation.WITHDRAW, resolved.remaining_accounts()
            )
        )
        return self._plan("withdraw_market", ixs, manager, lookup_tables=self._lookup_tables())

    def claim_market_rewards(
        self,
        manager: str,
        reserve: str,
        as_of: Optional[Instant] = None,
        max_workers: Optional[int] = None,
    ) -> List[ClaimOutcome]:
        reserve_state: Reserve = self.resolver.load_reserve(reserve)

        def resolve(claim: FarmClaim) -> ResolvedAccounts:
            return self.resolver.market_claim_reward(reserve, claim, reserve=reserve_state)

        return self._claim_all(manager, reserve, StrategyFlavor.MARKET, resolve, as_of, max_workers)

    # === kvault ===

    def initialize_kvault(self, payer: str, manager: str, kvault: str) -> TransactionPlan:
        resolved = self.resolver.kvault_initialize(kvault)
        authority = resolved.strategy_authority
        ixs = self._asset_setup(payer, [authority, manager])
        ixs.append(self._shares_setup(payer, kvault, authority))
        ixs.append(self._initialize(payer, manager, StrategyFlavor.KVAULT, resolved))
        return self._plan("initialize_kvault", ixs, payer, [manager], self._lookup_tables())

    def deposit_kvault(self, manager: str, kvault: str, amount: int) -> TransactionPlan:
        resolved = self.resolver.kvault_deposit(kvault)
        authority = resolved.strategy_authority
        ixs = self._asset_setup(manager, [authority, manager])
        ixs.append(self._shares_setup(manager, kvault, authority))
        ixs.append(
            self._transfer(
                "deposit", manager, kvault, amount, StrategyFlavor.KVAULT, Operation.DEPOSIT, resolved.remaining_accounts()
            )
        )
        return self._plan("deposit_kvault", ixs, manager, lookup_tables=self._lookup_tables(resolved))

    def withdraw_kvault(self, manager: str, kvault: str, amount: int) -> TransactionPlan:
        resolved = self.resolver.kvault_withdraw(kvault)
        authority = resolved.strategy_authority
        ixs = self._asset_setup(manager, [authority, manager])
        ixs.append(self._shares_setup(manager, kvault, authority))
        ixs.append(
            self._transfer(
                "withdraw", manager, kvault, amount, StrategyFlavor.KVAULT, Operation.WITHDRAW, resolved.remaining_accounts()
            )
        )
        return self._plan("withdraw_kvault", ixs, manager, lookup_tables=self._lookup_tables(resolved))

    def claim_kvault_rewards(
        self,
        manager: str,
        kvault: str,
        as_of: Optional[Instant] = None,
        max_workers: Optional[int] = None,
    ) -> List[ClaimOutcome]:
        vault_state: KVaultState = self.resolver.load_kvault(kvault)
        selection: ReserveSelection = select_reserves(self.fetcher, vault_state)

        def resolve(claim: FarmClaim) -> ResolvedAccounts:
            return self.resolver.kvault_claim_reward(kvault, claim, vault_state=vault_state, selection=selection)

        return self._claim_all(manager, kvault, StrategyFlavor.KVAULT, resolve, as_of, max_workers)

    # === claims ===

    def _claim_all(
        self,
        manager: str,
        strategy: str,
        flavor: StrategyFlavor,
        resolve,
        as_of: Optional[Instant],
        max_workers: Optional[int],
    ) -> List[ClaimOutcome]:
        cfg = self.config
        authority = self.resolver.strategy_authority(strategy)
        if as_of is None:
            as_of = datetime.now(timezone.utc)
        claims = enumerate_farm_claims(
            self.farm_source,
            authority,
            as_of,
            cfg.farm_global_config,
            cfg.farms_program,
        )

        def claim_one(claim: FarmClaim) -> ClaimOutcome:
            try:
                plan = self._claim_plan(manager, strategy, authority, flavor, claim, resolve(claim))
            except SwapUnavailable as exc:
                log.warning("claim for farm %s skipped: %s", claim.farm_state, exc)
                return ClaimOutcome(claim=claim, error=exc)
            return ClaimOutcome(claim=claim, plan=plan)

        if max_workers and max_workers > 1 and len(claims) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                outcomes = list(pool.map(claim_one, claims))
        else:
            outcomes = [claim_one(claim) for claim in claims]
        log.info(
            "%s claims for %s: %d ready, %d failed",
            flavor.value,
            strategy,
            sum(1 for outcome in outcomes if outcome.ok),
            sum(1 for outcome in outcomes if not outcome.ok),
        )
        return outcomes

    def _claim_plan(
        self,
        manager: str,
        strategy: str,
        authority: str,
        flavor: StrategyFlavor,
        claim: FarmClaim,
        resolved: ResolvedAccounts,
    ) -> TransactionPlan:
        cfg = self.config
        leg = compose_swap_leg(
            self.quote_provider,
            claim.reward_amount,
            authority,
            claim.reward_mint,
            cfg.asset_mint,
            cfg.slippage_bps,
            cfg.max_swap_accounts,
        )
        withdraw_ix = self._transfer(
            "withdraw",
            manager,
            strategy,
            0,
            flavor,
            Operation.CLAIM_REWARD,
            resolved.remaining_accounts(swap=leg.accounts),
            additional_args=leg.data,
        )
        ixs = [claim.create_reward_ata_instruction(manager, authority), withdraw_ix]
        return self._plan(
            f"claim_{flavor.value}_reward:{claim.farm_state}",
            ixs,
            manager,
            lookup_tables=self._lookup_tables(resolved, leg.lookup_table_addresses),
        )

    # === direct withdraw ===

    def initialize_direct_withdraw(
        self,
        payer: str,
        admin: str,
        strategy: str,
        discriminator: Optional[bytes] = None,
        additional_args: Optional[bytes] = None,
        allow_user_args: bool = False,
    ) -> TransactionPlan:
        cfg = self.config
        ix = instructions.initialize_direct_withdraw_strategy(
            payer=payer,
            admin=admin,
            vault=cfg.vault,
            strategy=strategy,
            adaptor_program=cfg.adaptor_program,
            discriminator=discriminator,
            additional_args=additional_args,
            allow_user_args=allow_user_args,
            vault_program=cfg.vault_program,
        )
        return self._plan("initialize_direct_withdraw", [ix], payer, [admin])

    def request_and_direct_withdraw_kvault(
        self,
        user: str,
        kvault: str,
        amount: int,
        is_amount_in_lp: bool = False,
        is_withdraw_all: bool = False,
        user_args: Optional[bytes] = None,
    ) -> TransactionPlan:
        cfg = self.config
        resolved = self.resolver.kvault_withdraw(kvault)
        authority = resolved.strategy_authority
        lp_mint = addresses.vault_lp_mint(cfg.vault, cfg.vault_program)
        receipt = addresses.request_withdraw_vault_receipt(cfg.vault, user, cfg.vault_program)

        ixs = [
            instructions.ensure_token_account(user, receipt, lp_mint, cfg.lp_token_program),
            instructions.request_withdraw_vault(
                payer=user,
                user=user,
                vault=cfg.vault,
                amount=amount,
                is_amount_in_lp=is_amount_in_lp,
                is_withdraw_all=is_withdraw_all,
                lp_token_program=cfg.lp_token_program,
                vault_program=cfg.vault_program,
            ),
        ]
        ixs.extend(self._asset_setup(user, [authority, user]))
        ixs.append(self._shares_setup(user, kvault, authority))
        ixs.append(
            instructions.direct_withdraw_strategy(
                user=user,
                vault=cfg.vault,
                strategy=kvault,
                asset_mint=cfg.asset_mint,
                adaptor_program=cfg.adaptor_program,
                remaining_accounts=resolved.remaining_accounts(),
                user_args=user_args,
                asset_token_program=cfg.asset_token_program,
                lp_token_program=cfg.lp_token_program,
                vault_program=cfg.vault_program,
            )
        )
        return self._plan("request_and_direct_withdraw_kvault", ixs, user, lookup_tables=self._lookup_tables(resolved))
