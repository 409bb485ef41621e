#!/usr/bin/env python3
"""
解析借贷 Reserve、kvault VaultState、Farms FarmState / UserState 的原始账户数据。

只解析流程实际用到的字段，偏移均为 Anchor 账户（含 8 字节 discriminator）
内的绝对偏移：

Reserve
 0x0008 version
 0x0020 lending_market
 0x0040 farm_collateral        (全零 = 无 farm)
 0x0060 farm_debt
 0x0080 liquidity.mint
 0x00A0 liquidity.supply_vault
 0x0198 liquidity.token_program
 0x0A00 collateral.mint
 0x0A28 collateral.supply_vault
 0x13A8 config.token_info.name
 0x13F8 config.token_info.scope_configuration.price_feed

VaultState
 0x0050 token_mint
 0x00B8 shares_mint
 0x0130 vault_allocation_strategy[25]   (每项 2160 字节)
 0xE4C0 vault_lookup_table

用法示例：
    python3 -m kamino_strategy.layouts reserve <base64 file>
"""

from __future__ import annotations

import argparse
import base64
import json
import sys
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from kamino_strategy.constants import DEFAULT_PUBKEY
from kamino_strategy.errors import DecodeError, ReserveDecodeError
from kamino_strategy.pda_utils import account_discriminator, b58encode

RESERVE_DISCRIMINATOR = account_discriminator("Reserve")
VAULT_STATE_DISCRIMINATOR = account_discriminator("VaultState")
FARM_STATE_DISCRIMINATOR = account_discriminator("FarmState")
USER_STATE_DISCRIMINATOR = account_discriminator("UserState")

RESERVE_LAYOUT = {
    "version": 0x08,
    "last_update_slot": 0x10,
    "lending_market": 0x20,
    "farm_collateral": 0x40,
    "farm_debt": 0x60,
    "liquidity_mint": 0x80,
    "liquidity_supply_vault": 0xA0,
    "liquidity_fee_vault": 0xC0,
    "liquidity_available_amount": 0xE0,
    "liquidity_mint_decimals": 0x110,
    "liquidity_token_program": 0x198,
    "collateral_mint": 0xA00,
    "collateral_mint_total_supply": 0xA20,
    "collateral_supply_vault": 0xA28,
    "config_status": 0x12F8,
    "token_info_name": 0x13A8,
    "scope_price_feed": 0x13F8,
}
RESERVE_SIZE = 8624

VAULT_STATE_LAYOUT = {
    "vault_admin_authority": 0x08,
    "base_vault_authority": 0x28,
    "base_vault_authority_bump": 0x48,
    "token_mint": 0x50,
    "token_mint_decimals": 0x70,
    "token_vault": 0x78,
    "token_program": 0x98,
    "shares_mint": 0xB8,
    "shares_mint_decimals": 0xD8,
    "token_available": 0xE0,
    "shares_issued": 0xE8,
    "vault_allocation_strategy": 0x130,
    "vault_lookup_table": 0xE4C0,
    "vault_farm": 0xE4E0,
}
VAULT_ALLOCATION_LAYOUT = {
    "reserve": 0x00,
    "ctoken_vault": 0x20,
    "target_allocation_weight": 0x40,
    "token_allocation_cap": 0x48,
    "ctoken_vault_bump": 0x50,
}
VAULT_ALLOCATION_SIZE = 2160
MAX_VAULT_ALLOCATIONS = 25
VAULT_STATE_MIN_SIZE = VAULT_STATE_LAYOUT["vault_farm"] + 32

FARM_STATE_LAYOUT = {
    "farm_admin": 0x08,
    "global_config": 0x28,
    "token_mint": 0x48,
    "token_decimals": 0x68,
    "token_program": 0x70,
    "reward_infos": 0xC0,
    "num_reward_tokens": 0x1C40,
    "num_users": 0x1C48,
    "total_staked_amount": 0x1C50,
    "farm_vault": 0x1C58,
    "farm_vaults_authority": 0x1C78,
    "farm_vaults_authority_bump": 0x1C98,
    "delegate_authority": 0x1CA0,
    "time_unit": 0x1CC0,
    "is_farm_frozen": 0x1CC1,
    "is_farm_delegated": 0x1CC2,
    "withdraw_authority": 0x1CC8,
    "deposit_warmup_period": 0x1CE8,
    "withdrawal_cooldown_period": 0x1CEC,
    "total_active_stake_scaled": 0x1CF0,
}
REWARD_INFO_LAYOUT = {
    "mint": 0x00,
    "decimals": 0x20,
    "token_program": 0x28,
    "rewards_vault": 0x78,
    "rewards_available": 0x98,
    "reward_schedule_curve": 0xA0,  # 20 × (ts_start u64, reward_per_time_unit u64)
    "min_claim_duration_seconds": 0x1E0,
    "last_issuance_ts": 0x1E8,
    "rewards_issued_unclaimed": 0x1F0,
    "rewards_issued_cumulative": 0x1F8,
    "reward_per_share_scaled": 0x200,
    "placeholder0": 0x210,
    "reward_type": 0x218,
    "rewards_per_second_decimals": 0x219,
}
REWARD_INFO_SIZE = 0x2C0
MAX_REWARD_TOKENS = 10
REWARD_CURVE_POINTS = 20
FARM_STATE_MIN_SIZE = FARM_STATE_LAYOUT["total_active_stake_scaled"] + 16

USER_STATE_LAYOUT = {
    "user_id": 0x08,
    "farm_state": 0x10,
    "owner": 0x30,
    "is_farm_delegated": 0x50,
    "rewards_tally_scaled": 0x58,  # [u128; 10]
    "rewards_issued_unclaimed": 0xF8,  # [u64; 10]
    "last_claim_ts": 0x148,
    "active_stake_scaled": 0x198,
    "pending_deposit_stake_scaled": 0x1A8,
    "pending_deposit_stake_ts": 0x1B8,
    "pending_withdrawal_unstake_scaled": 0x1C0,
    "pending_withdrawal_unstake_ts": 0x1D0,
    "bump": 0x1D8,
    "delegatee": 0x1E0,
    "last_stake_ts": 0x200,
}
USER_STATE_SIZE = 920

TIME_UNIT_SECONDS = 0
TIME_UNIT_SLOTS = 1


def read_pubkey(raw: bytes, offset: int) -> str:
    return b58encode(raw[offset : offset + 32])


def read_u8(raw: bytes, offset: int) -> int:
    return raw[offset]


def read_u64(raw: bytes, offset: int) -> int:
    return int.from_bytes(raw[offset : offset + 8], "little")


def read_u128(raw: bytes, offset: int) -> int:
    return int.from_bytes(raw[offset : offset + 16], "little")


def _check_account(raw: bytes, discriminator: bytes, min_size: int, label: str, error=DecodeError) -> None:
    if raw is None:
        raise error(f"{label} 数据为空")
    if len(raw) < min_size:
        raise error(f"{label} 数据长度异常: {len(raw)} < {min_size}")
    if raw[:8] != discriminator:
        raise error(f"{label} discriminator 不匹配: {raw[:8].hex()}")


@dataclass(frozen=True)
class Reserve:
    lending_market: str
    farm_collateral: str
    farm_debt: str
    liquidity_mint: str
    liquidity_supply: str
    liquidity_fee_vault: str
    liquidity_token_program: str
    mint_decimals: int
    collateral_mint: str
    collateral_supply: str
    scope_price_feed: str
    name: str

    @property
    def has_collateral_farm(self) -> bool:
        return self.farm_collateral != DEFAULT_PUBKEY


def decode_reserve(raw: bytes) -> Reserve:
    _check_account(
        raw,
        RESERVE_DISCRIMINATOR,
        RESERVE_LAYOUT["scope_price_feed"] + 32,
        "reserve",
        ReserveDecodeError,
    )
    name_offset = RESERVE_LAYOUT["token_info_name"]
    name = raw[name_offset : name_offset + 32].rstrip(b"\x00").decode("utf-8", errors="replace")
    return Reserve(
        lending_market=read_pubkey(raw, RESERVE_LAYOUT["lending_market"]),
        farm_collateral=read_pubkey(raw, RESERVE_LAYOUT["farm_collateral"]),
        farm_debt=read_pubkey(raw, RESERVE_LAYOUT["farm_debt"]),
        liquidity_mint=read_pubkey(raw, RESERVE_LAYOUT["liquidity_mint"]),
        liquidity_supply=read_pubkey(raw, RESERVE_LAYOUT["liquidity_supply_vault"]),
        liquidity_fee_vault=read_pubkey(raw, RESERVE_LAYOUT["liquidity_fee_vault"]),
        liquidity_token_program=read_pubkey(raw, RESERVE_LAYOUT["liquidity_token_program"]),
        mint_decimals=read_u64(raw, RESERVE_LAYOUT["liquidity_mint_decimals"]),
        collateral_mint=read_pubkey(raw, RESERVE_LAYOUT["collateral_mint"]),
        collateral_supply=read_pubkey(raw, RESERVE_LAYOUT["collateral_supply_vault"]),
        scope_price_feed=read_pubkey(raw, RESERVE_LAYOUT["scope_price_feed"]),
        name=name,
    )


@dataclass(frozen=True)
class VaultAllocation:
    reserve: str
    ctoken_vault: str
    target_allocation_weight: int
    token_allocation_cap: int

    @property
    def is_empty(self) -> bool:
        return self.reserve == DEFAULT_PUBKEY


@dataclass(frozen=True)
class KVaultState:
    base_vault_authority: str
    token_mint: str
    token_vault: str
    token_program: str
    shares_mint: str
    allocations: Tuple[VaultAllocation, ...]
    vault_lookup_table: str
    vault_farm: str


def decode_vault_allocation(raw: bytes, offset: int) -> VaultAllocation:
    return VaultAllocation(
        reserve=read_pubkey(raw, offset + VAULT_ALLOCATION_LAYOUT["reserve"]),
        ctoken_vault=read_pubkey(raw, offset + VAULT_ALLOCATION_LAYOUT["ctoken_vault"]),
        target_allocation_weight=read_u64(raw, offset + VAULT_ALLOCATION_LAYOUT["target_allocation_weight"]),
        token_allocation_cap=read_u64(raw, offset + VAULT_ALLOCATION_LAYOUT["token_allocation_cap"]),
    )


def decode_kvault_state(raw: bytes) -> KVaultState:
    """Decode the pooled vault; the allocation table keeps its empty slots."""
    _check_account(raw, VAULT_STATE_DISCRIMINATOR, VAULT_STATE_MIN_SIZE, "kvault")
    base = VAULT_STATE_LAYOUT["vault_allocation_strategy"]
    allocations = tuple(
        decode_vault_allocation(raw, base + idx * VAULT_ALLOCATION_SIZE)
        for idx in range(MAX_VAULT_ALLOCATIONS)
    )
    return KVaultState(
        base_vault_authority=read_pubkey(raw, VAULT_STATE_LAYOUT["base_vault_authority"]),
        token_mint=read_pubkey(raw, VAULT_STATE_LAYOUT["token_mint"]),
        token_vault=read_pubkey(raw, VAULT_STATE_LAYOUT["token_vault"]),
        token_program=read_pubkey(raw, VAULT_STATE_LAYOUT["token_program"]),
        shares_mint=read_pubkey(raw, VAULT_STATE_LAYOUT["shares_mint"]),
        allocations=allocations,
        vault_lookup_table=read_pubkey(raw, VAULT_STATE_LAYOUT["vault_lookup_table"]),
        vault_farm=read_pubkey(raw, VAULT_STATE_LAYOUT["vault_farm"]),
    )


@dataclass(frozen=True)
class RewardPoint:
    ts_start: int
    reward_per_time_unit: int


@dataclass(frozen=True)
class RewardInfo:
    mint: str
    decimals: int
    token_program: str
    rewards_vault: str
    rewards_available: int
    curve: Tuple[RewardPoint, ...]
    last_issuance_ts: int
    reward_per_share_scaled: int
    reward_type: int
    rewards_per_second_decimals: int


@dataclass(frozen=True)
class FarmState:
    global_config: str
    token_mint: str
    reward_infos: Tuple[RewardInfo, ...]
    farm_vaults_authority: str
    time_unit: int
    is_farm_frozen: bool
    total_active_stake_scaled: int


def decode_reward_info(raw: bytes, offset: int) -> RewardInfo:
    curve_offset = offset + REWARD_INFO_LAYOUT["reward_schedule_curve"]
    curve = tuple(
        RewardPoint(
            ts_start=read_u64(raw, curve_offset + idx * 16),
            reward_per_time_unit=read_u64(raw, curve_offset + idx * 16 + 8),
        )
        for idx in range(REWARD_CURVE_POINTS)
    )
    return RewardInfo(
        mint=read_pubkey(raw, offset + REWARD_INFO_LAYOUT["mint"]),
        decimals=read_u64(raw, offset + REWARD_INFO_LAYOUT["decimals"]),
        token_program=read_pubkey(raw, offset + REWARD_INFO_LAYOUT["token_program"]),
        rewards_vault=read_pubkey(raw, offset + REWARD_INFO_LAYOUT["rewards_vault"]),
        rewards_available=read_u64(raw, offset + REWARD_INFO_LAYOUT["rewards_available"]),
        curve=curve,
        last_issuance_ts=read_u64(raw, offset + REWARD_INFO_LAYOUT["last_issuance_ts"]),
        reward_per_share_scaled=read_u128(raw, offset + REWARD_INFO_LAYOUT["reward_per_share_scaled"]),
        reward_type=read_u8(raw, offset + REWARD_INFO_LAYOUT["reward_type"]),
        rewards_per_second_decimals=read_u8(raw, offset + REWARD_INFO_LAYOUT["rewards_per_second_decimals"]),
    )


def decode_farm_state(raw: bytes) -> FarmState:
    _check_account(raw, FARM_STATE_DISCRIMINATOR, FARM_STATE_MIN_SIZE, "farm state")
    count = read_u64(raw, FARM_STATE_LAYOUT["num_reward_tokens"])
    if count > MAX_REWARD_TOKENS:
        raise DecodeError(f"farm state 奖励数量异常: {count}")
    base = FARM_STATE_LAYOUT["reward_infos"]
    infos = tuple(decode_reward_info(raw, base + idx * REWARD_INFO_SIZE) for idx in range(count))
    return FarmState(
        global_config=read_pubkey(raw, FARM_STATE_LAYOUT["global_config"]),
        token_mint=read_pubkey(raw, FARM_STATE_LAYOUT["token_mint"]),
        reward_infos=infos,
        farm_vaults_authority=read_pubkey(raw, FARM_STATE_LAYOUT["farm_vaults_authority"]),
        time_unit=read_u8(raw, FARM_STATE_LAYOUT["time_unit"]),
        is_farm_frozen=bool(read_u8(raw, FARM_STATE_LAYOUT["is_farm_frozen"])),
        total_active_stake_scaled=read_u128(raw, FARM_STATE_LAYOUT["total_active_stake_scaled"]),
    )


@dataclass(frozen=True)
class UserState:
    farm_state: str
    owner: str
    delegatee: str
    rewards_tally_scaled: Tuple[int, ...]
    rewards_issued_unclaimed: Tuple[int, ...]
    active_stake_scaled: int


def decode_user_state(raw: bytes) -> UserState:
    _check_account(raw, USER_STATE_DISCRIMINATOR, USER_STATE_LAYOUT["last_stake_ts"] + 8, "user state")
    tally_base = USER_STATE_LAYOUT["rewards_tally_scaled"]
    unclaimed_base = USER_STATE_LAYOUT["rewards_issued_unclaimed"]
    return UserState(
        farm_state=read_pubkey(raw, USER_STATE_LAYOUT["farm_state"]),
        owner=read_pubkey(raw, USER_STATE_LAYOUT["owner"]),
        delegatee=read_pubkey(raw, USER_STATE_LAYOUT["delegatee"]),
        rewards_tally_scaled=tuple(read_u128(raw, tally_base + idx * 16) for idx in range(MAX_REWARD_TOKENS)),
        rewards_issued_unclaimed=tuple(read_u64(raw, unclaimed_base + idx * 8) for idx in range(MAX_REWARD_TOKENS)),
        active_stake_scaled=read_u128(raw, USER_STATE_LAYOUT["active_stake_scaled"]),
    )


_DECODERS = {
    "reserve": decode_reserve,
    "kvault": decode_kvault_state,
    "farm": decode_farm_state,
    "user": decode_user_state,
}


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Decode a raw account dump (base64) into JSON.")
    parser.add_argument("kind", choices=sorted(_DECODERS))
    parser.add_argument("path", help="File holding the base64 account data, '-' for stdin.")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    text = sys.stdin.read() if args.path == "-" else Path(args.path).read_text(encoding="utf-8")
    try:
        decoded = _DECODERS[args.kind](base64.b64decode(text.strip()))
    except DecodeError as exc:
        print(f"decode failed: {exc}", file=sys.stderr)
        return 1
    print(json.dumps(asdict(decoded), indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
