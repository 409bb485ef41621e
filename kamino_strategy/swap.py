"""
Swap leg: quote + swap-instructions from a Jupiter-style aggregator.

The leg is appended after the protocol remaining accounts. Layout of the
returned account list::

    [swap program id (readonly)] + provider accounts (writability as reported)

Provider accounts are never marked as signers; the strategy authority signs
through the adaptor CPI, not at the transaction level.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol

import requests

from kamino_strategy.accounts import AccountMeta
from kamino_strategy.constants import (
    DEFAULT_MAX_SWAP_ACCOUNTS,
    DEFAULT_SLIPPAGE_BPS,
    JUPITER_LITE_ENDPOINT,
)
from kamino_strategy.errors import SwapUnavailable

log = logging.getLogger(__name__)


class QuoteProvider(Protocol):
    def quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int,
        max_accounts: int,
    ) -> Dict[str, Any]:
        ...

    def swap_instructions(self, quote: Dict[str, Any], user: str) -> Dict[str, Any]:
        ...


class JupiterQuoteProvider:
    def __init__(
        self,
        endpoint: str = JUPITER_LITE_ENDPOINT,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ) -> None:
        self.endpoint = endpoint.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _json(self, response: requests.Response, what: str) -> Dict[str, Any]:
        try:
            response.raise_for_status()
            return response.json()
        except requests.RequestException as exc:
            raise SwapUnavailable(f"{what} 请求失败: {exc}") from exc
        except ValueError as exc:
            raise SwapUnavailable(f"{what} 返回非 JSON 数据") from exc

    def quote(
        self,
        input_mint: str,
        output_mint: str,
        amount: int,
        slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
        max_accounts: int = DEFAULT_MAX_SWAP_ACCOUNTS,
    ) -> Dict[str, Any]:
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": slippage_bps,
            "maxAccounts": max_accounts,
        }
        log.debug("quote %s -> %s amount=%s", input_mint, output_mint, amount)
        try:
            response = self.session.get(f"{self.endpoint}/quote", params=params, timeout=self.timeout)
        except requests.RequestException as exc:
            raise SwapUnavailable(f"quote 请求失败: {exc}") from exc
        return self._json(response, "quote")

    def swap_instructions(self, quote: Dict[str, Any], user: str) -> Dict[str, Any]:
        body = {"quoteResponse": quote, "userPublicKey": user}
        try:
            response = self.session.post(
                f"{self.endpoint}/swap-instructions",
                json=body,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise SwapUnavailable(f"swap-instructions 请求失败: {exc}") from exc
        return self._json(response, "swap-instructions")


@dataclass
class SwapLeg:
    data: bytes
    accounts: List[AccountMeta] = field(default_factory=list)
    lookup_table_addresses: List[str] = field(default_factory=list)
    quote: Dict[str, Any] = field(default_factory=dict)

    @property
    def program_id(self) -> str:
        return self.accounts[0].pubkey


def _check_error(payload: Any, what: str) -> Dict[str, Any]:
    if not isinstance(payload, dict):
        raise SwapUnavailable(f"{what}: unexpected response {payload!r}")
    if payload.get("error"):
        raise SwapUnavailable(f"{what}: {payload['error']}")
    return payload


def swap_leg_from_response(payload: Dict[str, Any], quote: Dict[str, Any]) -> SwapLeg:
    swap_ix = payload.get("swapInstruction")
    if not swap_ix or "programId" not in swap_ix:
        raise SwapUnavailable("swap-instructions response has no swapInstruction")
    try:
        data = base64.b64decode(swap_ix.get("data", ""), validate=True)
    except ValueError as exc:
        raise SwapUnavailable(f"swap instruction data is not base64: {exc}") from exc

    accounts = [AccountMeta(swap_ix["programId"], False, False)]
    try:
        for entry in swap_ix.get("accounts", []):
            accounts.append(AccountMeta(entry["pubkey"], False, bool(entry.get("isWritable"))))
    except (KeyError, TypeError, AttributeError) as exc:
        raise SwapUnavailable(f"malformed swap instruction account: {exc!r}") from exc
    return SwapLeg(
        data=data,
        accounts=accounts,
        lookup_table_addresses=list(payload.get("addressLookupTableAddresses") or []),
        quote=quote,
    )


def compose_swap_leg(
    provider: QuoteProvider,
    amount_in: int,
    authority: str,
    input_mint: str,
    output_mint: str,
    slippage_bps: int = DEFAULT_SLIPPAGE_BPS,
    max_accounts: int = DEFAULT_MAX_SWAP_ACCOUNTS,
) -> SwapLeg:
    """Quote ``amount_in`` of ``input_mint`` into ``output_mint`` for ``authority``; no retry."""
    if amount_in <= 0:
        raise SwapUnavailable(f"refusing to quote non-positive amount {amount_in}")
    quote = _check_error(
        provider.quote(input_mint, output_mint, amount_in, slippage_bps, max_accounts),
        "quote",
    )
    payload = _check_error(provider.swap_instructions(quote, authority), "swap-instructions")
    leg = swap_leg_from_response(payload, quote)
    log.info(
        "swap leg %s -> %s amount=%d out=%s accounts=%d luts=%d",
        input_mint,
        output_mint,
        amount_in,
        quote.get("outAmount"),
        len(leg.accounts),
        len(leg.lookup_table_addresses),
    )
    return leg
