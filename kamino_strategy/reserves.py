"""
Reserve / allocation selection for pooled (kvault) strategies.

Given a decoded kvault, load every reserve its allocation table points at in
one ``getMultipleAccounts`` round-trip, confirm each reserve has a live price
oracle, and produce:

* the trailing reserve metas (writable) followed by their lending markets
  (read-only), both in allocation-table order;
* the reserve holding the largest target weight, which withdraw flows drain.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from kamino_strategy.accounts import AccountMeta
from kamino_strategy.constants import DEFAULT_PUBKEY
from kamino_strategy.errors import (
    NoActiveAllocation,
    ReserveDecodeError,
    ReserveNotFound,
    ReserveUnavailable,
)
from kamino_strategy.layouts import KVaultState, Reserve, VaultAllocation, decode_reserve
from kamino_strategy.rpc import AccountFetcher

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class MaxWeightReserve:
    reserve: str
    lending_market: str


@dataclass
class ReserveSelection:
    reserve_metas: List[AccountMeta] = field(default_factory=list)
    lending_market_metas: List[AccountMeta] = field(default_factory=list)
    reserves: Dict[str, Reserve] = field(default_factory=dict)
    oracles: Dict[str, str] = field(default_factory=dict)
    max_weight_reserve: Optional[MaxWeightReserve] = None

    @property
    def all_metas(self) -> List[AccountMeta]:
        return [*self.reserve_metas, *self.lending_market_metas]

    def require_active(self) -> MaxWeightReserve:
        if self.max_weight_reserve is None:
            raise NoActiveAllocation("vault 没有任何非零权重的 reserve 分配")
        return self.max_weight_reserve


def fetch_reserve(fetcher: AccountFetcher, address: str) -> Reserve:
    raw = fetcher.get_account(address)
    if raw is None:
        raise ReserveNotFound(address)
    return decode_reserve(raw)


def active_allocations(allocations: Sequence[VaultAllocation]) -> List[VaultAllocation]:
    return [allocation for allocation in allocations if not allocation.is_empty]


def pick_max_weight(allocations: Sequence[VaultAllocation]) -> Optional[VaultAllocation]:
    """Strictly largest positive weight among non-empty slots; first one wins ties."""
    best: Optional[VaultAllocation] = None
    best_weight = 0
    for allocation in allocations:
        if allocation.is_empty:
            continue
        if allocation.target_allocation_weight > best_weight:
            best = allocation
            best_weight = allocation.target_allocation_weight
    return best


def _load_reserves(fetcher: AccountFetcher, addresses: Sequence[str]) -> List[Reserve]:
    raw_accounts = fetcher.get_multiple_accounts(addresses)
    reserves: List[Reserve] = []
    for address, raw in zip(addresses, raw_accounts):
        if raw is None:
            raise ReserveUnavailable(f"Reserve account {address} was not found")
        try:
            reserves.append(decode_reserve(raw))
        except ReserveDecodeError as exc:
            raise ReserveUnavailable(f"Could not parse reserve {address}: {exc}") from exc
    return reserves


def correlate_oracles(
    fetcher: AccountFetcher,
    reserves: Sequence[Tuple[str, Reserve]],
) -> Dict[str, str]:
    """Map each reserve to its price feed; a reserve without a live feed is unusable."""
    feeds: Dict[str, str] = {}
    for address, reserve in reserves:
        if reserve.scope_price_feed == DEFAULT_PUBKEY:
            raise ReserveUnavailable(f"Could not find oracle for {reserve.name or address} reserve")
        feeds[address] = reserve.scope_price_feed
    unique_feeds = list(dict.fromkeys(feeds.values()))
    if not unique_feeds:
        return feeds
    raw_feeds = fetcher.get_multiple_accounts(unique_feeds)
    missing = {feed for feed, raw in zip(unique_feeds, raw_feeds) if raw is None}
    for address, feed in feeds.items():
        if feed in missing:
            raise ReserveUnavailable(f"oracle {feed} for reserve {address} was not found")
    return feeds


def select_reserves(
    fetcher: AccountFetcher,
    vault_state: KVaultState,
    require_active: bool = True,
) -> ReserveSelection:
    """
    默认要求至少一个正权重分配；``require_active=False`` 只用于检查分配表本身。
    """
    best = pick_max_weight(vault_state.allocations)
    if require_active and best is None:
        raise NoActiveAllocation("vault 没有任何非零权重的 reserve 分配")
    allocations = active_allocations(vault_state.allocations)
    addresses = [allocation.reserve for allocation in allocations]
    selection = ReserveSelection()
    if addresses:
        reserves = _load_reserves(fetcher, addresses)
        selection.oracles = correlate_oracles(fetcher, list(zip(addresses, reserves)))
        for address, reserve in zip(addresses, reserves):
            selection.reserves[address] = reserve
            selection.reserve_metas.append(AccountMeta(address, False, True))
            selection.lending_market_metas.append(AccountMeta(reserve.lending_market, False, False))

    if best is not None:
        selection.max_weight_reserve = MaxWeightReserve(
            reserve=best.reserve,
            lending_market=selection.reserves[best.reserve].lending_market,
        )
    log.debug(
        "selected %d reserves, max weight reserve %s",
        len(addresses),
        selection.max_weight_reserve,
    )
    return selection
