"""
kamino-strategy: dry-run planner for vault strategy operations.

只负责组装并打印交易计划（指令顺序、账户可写/签名标记、hex data），不签名也不发送。

    kamino-strategy --config vault.json deposit-market --manager <pubkey> --reserve <pubkey> --amount 1000000
    kamino-strategy --config vault.json claim-kvault --manager <pubkey> --kvault <pubkey> --workers 4
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from kamino_strategy.config import StrategyConfig, load_config
from kamino_strategy.errors import ConfigError, StrategyError
from kamino_strategy.operations import ClaimOutcome, StrategyOperations, TransactionPlan
from kamino_strategy.rpc import RpcAccountFetcher
from kamino_strategy.swap import JupiterQuoteProvider

log = logging.getLogger(__name__)


def _add_common(parser: argparse.ArgumentParser, *roles: str) -> None:
    for role in roles:
        parser.add_argument(f"--{role}", required=True, help=f"{role} public key (base58)")


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Plan vault strategy transactions (dry run).")
    parser.add_argument("--config", type=Path, required=True, help="Strategy config JSON.")
    parser.add_argument("--rpc", default=None, help="Override the RPC url from the config.")
    parser.add_argument("--quote-endpoint", default=None, help="Override the swap quote endpoint.")
    parser.add_argument("--slippage-bps", type=int, default=None)
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("initialize-market", help="Initialize a lending reserve strategy")
    _add_common(p, "payer", "manager", "reserve")

    p = sub.add_parser("deposit-market", help="Deposit vault assets into a reserve strategy")
    _add_common(p, "manager", "reserve")
    p.add_argument("--amount", type=int, required=True)

    p = sub.add_parser("withdraw-market", help="Withdraw vault assets from a reserve strategy")
    _add_common(p, "manager", "reserve")
    p.add_argument("--amount", type=int, required=True)

    p = sub.add_parser("claim-market", help="Claim farm rewards of a reserve strategy")
    _add_common(p, "manager", "reserve")
    p.add_argument("--workers", type=int, default=None, help="Resolve farm claims on N threads.")

    p = sub.add_parser("initialize-kvault", help="Initialize a kvault strategy")
    _add_common(p, "payer", "manager", "kvault")

    p = sub.add_parser("deposit-kvault", help="Deposit vault assets into a kvault strategy")
    _add_common(p, "manager", "kvault")
    p.add_argument("--amount", type=int, required=True)

    p = sub.add_parser("withdraw-kvault", help="Withdraw from the max-weight reserve of a kvault strategy")
    _add_common(p, "manager", "kvault")
    p.add_argument("--amount", type=int, required=True)

    p = sub.add_parser("claim-kvault", help="Claim farm rewards of a kvault strategy")
    _add_common(p, "manager", "kvault")
    p.add_argument("--workers", type=int, default=None, help="Resolve farm claims on N threads.")

    p = sub.add_parser("init-direct-withdraw", help="Enable direct user withdrawals for a strategy")
    _add_common(p, "payer", "admin", "strategy")
    p.add_argument("--discriminator", default=None, help="Hex adaptor discriminator (optional).")
    p.add_argument("--additional-args", default=None, help="Hex additional args (optional).")
    p.add_argument("--allow-user-args", action="store_true")

    p = sub.add_parser("request-direct-withdraw", help="Request a vault withdrawal and withdraw directly from a kvault")
    _add_common(p, "user", "kvault")
    p.add_argument("--amount", type=int, required=True)
    p.add_argument("--in-lp", action="store_true", help="Amount is denominated in vault LP tokens.")
    p.add_argument("--all", dest="withdraw_all", action="store_true", help="Withdraw the whole position.")
    return parser.parse_args(argv)


def _hex_or_none(name: str, value: Optional[str]) -> Optional[bytes]:
    if value is None:
        return None
    try:
        return bytes.fromhex(value.removeprefix("0x"))
    except ValueError as exc:
        raise ConfigError(f"{name}: invalid hex {value!r}") from exc


def build_operations(config: StrategyConfig) -> StrategyOperations:
    fetcher = RpcAccountFetcher(config.rpc_url, config.commitment)
    return StrategyOperations(fetcher, config, quote_provider=JupiterQuoteProvider(config.quote_endpoint))


def _claim_json(outcome: ClaimOutcome) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "farmState": outcome.claim.farm_state,
        "rewardMint": outcome.claim.reward_mint,
        "rewardAmount": outcome.claim.reward_amount,
    }
    if outcome.plan is not None:
        entry["plan"] = outcome.plan.to_json()
    else:
        entry["error"] = str(outcome.error)
    return entry


def run(args: argparse.Namespace, ops: StrategyOperations) -> List[Dict[str, Any]]:
    command = args.command
    plan: Optional[TransactionPlan] = None
    if command == "initialize-market":
        plan = ops.initialize_market(args.payer, args.manager, args.reserve)
    elif command == "deposit-market":
        plan = ops.deposit_market(args.manager, args.reserve, args.amount)
    elif command == "withdraw-market":
        plan = ops.withdraw_market(args.manager, args.reserve, args.amount)
    elif command == "claim-market":
        return [_claim_json(o) for o in ops.claim_market_rewards(args.manager, args.reserve, max_workers=args.workers)]
    elif command == "initialize-kvault":
        plan = ops.initialize_kvault(args.payer, args.manager, args.kvault)
    elif command == "deposit-kvault":
        plan = ops.deposit_kvault(args.manager, args.kvault, args.amount)
    elif command == "withdraw-kvault":
        plan = ops.withdraw_kvault(args.manager, args.kvault, args.amount)
    elif command == "claim-kvault":
        return [_claim_json(o) for o in ops.claim_kvault_rewards(args.manager, args.kvault, max_workers=args.workers)]
    elif command == "init-direct-withdraw":
        plan = ops.initialize_direct_withdraw(
            args.payer,
            args.admin,
            args.strategy,
            discriminator=_hex_or_none("--discriminator", args.discriminator),
            additional_args=_hex_or_none("--additional-args", args.additional_args),
            allow_user_args=args.allow_user_args,
        )
    elif command == "request-direct-withdraw":
        plan = ops.request_and_direct_withdraw_kvault(
            args.user,
            args.kvault,
            args.amount,
            is_amount_in_lp=args.in_lp,
            is_withdraw_all=args.withdraw_all,
        )
    else:
        raise ValueError(f"unknown command {command}")
    return [plan.to_json()]


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    try:
        config = load_config(args.config).with_overrides(
            rpc_url=args.rpc,
            quote_endpoint=args.quote_endpoint,
            slippage_bps=args.slippage_bps,
        )
        output = run(args, build_operations(config))
    except StrategyError as exc:
        log.error("%s failed: %s", args.command, exc)
        return 1
    print(json.dumps(output, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
