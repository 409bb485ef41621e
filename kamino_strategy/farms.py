"""
Farm reward enumeration for a strategy authority.

:class:`FarmsReader` lists every farm the authority has a user state in (one
``getProgramAccounts`` call filtered by owner, one ``getMultipleAccounts`` for
the farms) and projects each reward's per-share accumulator to the requested
instant. :func:`enumerate_farm_claims` turns that snapshot into claimable
:class:`FarmClaim` entries.

Only the first pending reward of each farm is considered per pass; farms that
pay several reward tokens need another pass per extra token.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Protocol, Sequence, Tuple, Union

from kamino_strategy import addresses
from kamino_strategy.accounts import Instruction
from kamino_strategy.constants import DEFAULT_PUBKEY, FARMS_PROGRAM_ID, TOKEN_PROGRAM_ID
from kamino_strategy.errors import AccountNotFound
from kamino_strategy.instructions import create_associated_token_account_idempotent
from kamino_strategy.layouts import (
    TIME_UNIT_SECONDS,
    USER_STATE_LAYOUT,
    USER_STATE_SIZE,
    FarmState,
    RewardInfo,
    RewardPoint,
    UserState,
    decode_farm_state,
    decode_user_state,
)
from kamino_strategy.rpc import AccountFetcher, data_size_filter, memcmp_filter

log = logging.getLogger(__name__)

WAD = 10**18
U64_MAX = 2**64 - 1

Instant = Union[datetime, int, float]


@dataclass(frozen=True)
class PendingReward:
    reward_token_mint: str
    reward_token_program: str
    cumulated_pending_rewards: int


@dataclass(frozen=True)
class UserFarm:
    user_state_address: str
    farm: str
    pending_rewards: Tuple[PendingReward, ...]


class UserFarmSource(Protocol):
    def get_all_farms_for_user(self, owner: str, as_of: Instant) -> List[UserFarm]:
        ...


def as_timestamp(as_of: Instant) -> int:
    if isinstance(as_of, datetime):
        return int(as_of.timestamp())
    return int(as_of)


def issued_between(curve: Sequence[RewardPoint], start_ts: int, end_ts: int) -> int:
    """Integrate a piecewise-constant reward schedule over ``[start_ts, end_ts)``."""
    if end_ts <= start_ts:
        return 0
    points = [point for point in curve if point.ts_start != U64_MAX]
    total = 0
    for idx, point in enumerate(points):
        seg_start = point.ts_start
        seg_end = points[idx + 1].ts_start if idx + 1 < len(points) else end_ts
        lo = max(seg_start, start_ts)
        hi = min(seg_end, end_ts)
        if hi > lo:
            total += (hi - lo) * point.reward_per_time_unit
    return total


def project_reward_per_share(info: RewardInfo, farm: FarmState, as_of_ts: int) -> int:
    rps = info.reward_per_share_scaled
    if (
        farm.time_unit != TIME_UNIT_SECONDS
        or farm.is_farm_frozen
        or farm.total_active_stake_scaled == 0
        or as_of_ts <= info.last_issuance_ts
    ):
        return rps
    raw = issued_between(info.curve, info.last_issuance_ts, as_of_ts)
    issued = min(raw // (10**info.rewards_per_second_decimals), info.rewards_available)
    return rps + issued * WAD * WAD // farm.total_active_stake_scaled


def pending_rewards(farm: FarmState, user: UserState, as_of_ts: int) -> Tuple[PendingReward, ...]:
    rewards: List[PendingReward] = []
    for idx, info in enumerate(farm.reward_infos):
        rps = project_reward_per_share(info, farm, as_of_ts)
        accrued = (rps * user.active_stake_scaled // WAD - user.rewards_tally_scaled[idx]) // WAD
        amount = user.rewards_issued_unclaimed[idx] + max(accrued, 0)
        token_program = info.token_program if info.token_program != DEFAULT_PUBKEY else TOKEN_PROGRAM_ID
        rewards.append(PendingReward(info.mint, token_program, amount))
    return tuple(rewards)


class FarmsReader:
    def __init__(self, fetcher: AccountFetcher, farms_program: str = FARMS_PROGRAM_ID) -> None:
        self.fetcher = fetcher
        self.farms_program = farms_program

    def user_states(self, owner: str) -> List[Tuple[str, UserState]]:
        accounts = self.fetcher.get_program_accounts(
            self.farms_program,
            [
                data_size_filter(USER_STATE_SIZE),
                memcmp_filter(USER_STATE_LAYOUT["owner"], owner),
            ],
        )
        states = [(address, decode_user_state(raw)) for address, raw in accounts]
        states.sort(key=lambda item: item[0])
        return states

    def get_all_farms_for_user(self, owner: str, as_of: Instant) -> List[UserFarm]:
        as_of_ts = as_timestamp(as_of)
        states = self.user_states(owner)
        if not states:
            return []
        farm_addresses = list(dict.fromkeys(state.farm_state for _addr, state in states))
        raw_farms = self.fetcher.get_multiple_accounts(farm_addresses)
        farms = {}
        for address, raw in zip(farm_addresses, raw_farms):
            if raw is None:
                raise AccountNotFound(address, "farm state")
            farms[address] = decode_farm_state(raw)

        result: List[UserFarm] = []
        for address, state in states:
            farm = farms[state.farm_state]
            result.append(
                UserFarm(
                    user_state_address=address,
                    farm=state.farm_state,
                    pending_rewards=pending_rewards(farm, state, as_of_ts),
                )
            )
        log.debug("owner %s has %d farm user states", owner, len(result))
        return result


@dataclass(frozen=True)
class FarmClaim:
    farm_state: str
    user_state: str
    reward_mint: str
    reward_amount: int
    reward_token_program: str
    user_reward_ata: str
    rewards_vault: str
    farm_vaults_authority: str
    rewards_treasury_vault: str

    def create_reward_ata_instruction(self, payer: str, owner: str) -> Instruction:
        return create_associated_token_account_idempotent(
            payer=payer,
            associated_token=self.user_reward_ata,
            owner=owner,
            mint=self.reward_mint,
            token_program=self.reward_token_program,
        )


def build_farm_claim(
    user_farm: UserFarm,
    reward: PendingReward,
    strategy_authority: str,
    global_config: str,
    farms_program: str,
) -> FarmClaim:
    farm = user_farm.farm
    mint = reward.reward_token_mint
    return FarmClaim(
        farm_state=farm,
        user_state=user_farm.user_state_address,
        reward_mint=mint,
        reward_amount=reward.cumulated_pending_rewards,
        reward_token_program=reward.reward_token_program,
        user_reward_ata=addresses.associated_token_address(strategy_authority, mint, reward.reward_token_program),
        rewards_vault=addresses.farm_rewards_vault(farm, mint, farms_program),
        farm_vaults_authority=addresses.farm_vaults_authority(farm, farms_program),
        rewards_treasury_vault=addresses.farm_rewards_treasury_vault(global_config, mint, farms_program),
    )


def enumerate_farm_claims(
    source: UserFarmSource,
    strategy_authority: str,
    as_of: Instant,
    global_config: str,
    farms_program: str = FARMS_PROGRAM_ID,
) -> List[FarmClaim]:
    claims: List[FarmClaim] = []
    for user_farm in source.get_all_farms_for_user(strategy_authority, as_of):
        if not user_farm.pending_rewards:
            log.info("farm %s has no reward tokens, skipping", user_farm.farm)
            continue
        reward = user_farm.pending_rewards[0]
        if reward.cumulated_pending_rewards <= 0:
            log.info("no rewards to claim for farm %s", user_farm.farm)
            continue
        claims.append(build_farm_claim(user_farm, reward, strategy_authority, global_config, farms_program))
    log.info("%d farm claims for %s", len(claims), strategy_authority)
    return claims
