"""
Explicit configuration for the strategy flows.

Nothing in the package reads environment variables or module-level mutable
state; callers build a :class:`StrategyConfig` (usually via
:func:`load_config`) and pass it down.

Example JSON::

    {
      "vault": "<voltr vault>",
      "asset_mint": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
      "adaptor_program": "<kamino adaptor>",
      "farm_global_config": "<farms global config>",
      "kvault_scope_prices": "<scope prices account>",
      "lookup_table_addresses": ["<lut>"],
      "discriminators": {
        "initialize_market": [..8 ints..],
        "deposit_market": [...],
        ...
      }
    }
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from kamino_strategy import constants
from kamino_strategy.errors import ConfigError
from kamino_strategy.pda_utils import b58decode

DISCRIMINATOR_LEN = 8


class StrategyFlavor(str, Enum):
    MARKET = "market"
    KVAULT = "kvault"


class Operation(str, Enum):
    INITIALIZE = "initialize"
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    CLAIM_REWARD = "claim_reward"


_DISCRIMINATOR_KEYS: Dict[Tuple[StrategyFlavor, Operation], str] = {
    (StrategyFlavor.MARKET, Operation.INITIALIZE): "initialize_market",
    (StrategyFlavor.MARKET, Operation.DEPOSIT): "deposit_market",
    (StrategyFlavor.MARKET, Operation.WITHDRAW): "withdraw_market",
    (StrategyFlavor.MARKET, Operation.CLAIM_REWARD): "claim_market_reward",
    (StrategyFlavor.KVAULT, Operation.INITIALIZE): "initialize_vault",
    (StrategyFlavor.KVAULT, Operation.DEPOSIT): "deposit_vault",
    (StrategyFlavor.KVAULT, Operation.WITHDRAW): "withdraw_vault",
    (StrategyFlavor.KVAULT, Operation.CLAIM_REWARD): "claim_vault_rewards",
}


@dataclass(frozen=True)
class Discriminators:
    """Opaque 8-byte adaptor discriminators, one per (flavor, operation)."""

    initialize_market: bytes
    deposit_market: bytes
    withdraw_market: bytes
    claim_market_reward: bytes
    initialize_vault: bytes
    deposit_vault: bytes
    withdraw_vault: bytes
    claim_vault_rewards: bytes

    def __post_init__(self) -> None:
        for item in fields(self):
            value = getattr(self, item.name)
            if not isinstance(value, (bytes, bytearray)) or len(value) != DISCRIMINATOR_LEN:
                raise ConfigError(
                    f"discriminator {item.name} must be {DISCRIMINATOR_LEN} bytes, got {value!r}"
                )

    def for_operation(self, flavor: StrategyFlavor, operation: Operation) -> bytes:
        return getattr(self, _DISCRIMINATOR_KEYS[(flavor, operation)])

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "Discriminators":
        values: Dict[str, bytes] = {}
        for item in fields(cls):
            if item.name not in raw:
                raise ConfigError(f"missing discriminator {item.name}")
            values[item.name] = _coerce_bytes(item.name, raw[item.name])
        return cls(**values)


def _coerce_bytes(name: str, value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, str):
        try:
            return bytes.fromhex(value.removeprefix("0x"))
        except ValueError as exc:
            raise ConfigError(f"{name}: invalid hex {value!r}") from exc
    if isinstance(value, Sequence):
        try:
            return bytes(value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{name}: expected a list of byte values") from exc
    raise ConfigError(f"{name}: unsupported discriminator value {value!r}")


@dataclass(frozen=True)
class StrategyConfig:
    vault: str
    asset_mint: str
    adaptor_program: str
    farm_global_config: str
    discriminators: Discriminators
    # kvault 的奖励领取需要额外传入 scope 价格账户
    kvault_scope_prices: str = constants.DEFAULT_PUBKEY
    asset_token_program: str = constants.TOKEN_PROGRAM_ID
    shares_token_program: str = constants.TOKEN_PROGRAM_ID
    lp_token_program: str = constants.TOKEN_PROGRAM_ID
    vault_program: str = constants.VOLTR_VAULT_PROGRAM_ID
    klend_program: str = constants.KLEND_PROGRAM_ID
    kvaults_program: str = constants.KVAULTS_PROGRAM_ID
    farms_program: str = constants.FARMS_PROGRAM_ID
    lookup_table_addresses: Tuple[str, ...] = field(default_factory=tuple)
    rpc_url: str = constants.RPC_DEFAULT
    commitment: str = "processed"
    quote_endpoint: str = constants.JUPITER_LITE_ENDPOINT
    slippage_bps: int = constants.DEFAULT_SLIPPAGE_BPS
    max_swap_accounts: int = constants.DEFAULT_MAX_SWAP_ACCOUNTS
    priority_fee_micro_lamports: Optional[int] = None

    def __post_init__(self) -> None:
        for item in fields(self):
            value = getattr(self, item.name)
            if item.type == "str" and item.name not in ("rpc_url", "commitment", "quote_endpoint"):
                _check_pubkey(item.name, value)
        for lut in self.lookup_table_addresses:
            _check_pubkey("lookup_table_addresses", lut)

    def discriminator(self, flavor: StrategyFlavor, operation: Operation) -> bytes:
        return self.discriminators.for_operation(flavor, operation)

    def with_overrides(self, **overrides: Any) -> "StrategyConfig":
        clean = {key: value for key, value in overrides.items() if value is not None}
        if "lookup_table_addresses" in clean:
            clean["lookup_table_addresses"] = tuple(clean["lookup_table_addresses"])
        return replace(self, **clean)


def _check_pubkey(name: str, value: Any) -> None:
    if not isinstance(value, str):
        raise ConfigError(f"{name} must be a base58 string, got {value!r}")
    try:
        b58decode(value)
    except ValueError as exc:
        raise ConfigError(f"{name}: {exc}") from exc


def config_from_dict(raw: Mapping[str, Any]) -> StrategyConfig:
    known = {item.name for item in fields(StrategyConfig)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ConfigError(f"unknown config keys: {', '.join(unknown)}")
    if "discriminators" not in raw:
        raise ConfigError("missing discriminators section")
    values = dict(raw)
    values["discriminators"] = Discriminators.from_mapping(raw["discriminators"])
    values["lookup_table_addresses"] = tuple(raw.get("lookup_table_addresses") or ())
    try:
        return StrategyConfig(**values)
    except TypeError as exc:
        raise ConfigError(str(exc)) from exc


def load_config(path: Path) -> StrategyConfig:
    with Path(path).open("r", encoding="utf-8") as fh:
        try:
            raw = json.load(fh)
        except json.JSONDecodeError as exc:
            raise ConfigError(f"{path}: invalid JSON ({exc})") from exc
    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a JSON object")
    return config_from_dict(raw)
