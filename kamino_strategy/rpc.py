"""
AccountFetcher: point-in-time account reads.

The core only depends on the :class:`AccountFetcher` protocol; the JSON-RPC
implementation below is the one the CLI wires in. Every bulk read goes through
a single ``getMultipleAccounts`` call so the returned accounts share a slot.
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import requests

from kamino_strategy.constants import RPC_DEFAULT
from kamino_strategy.errors import AccountNotFound, RpcError

log = logging.getLogger(__name__)

MAX_MULTIPLE_ACCOUNTS = 100


class AccountFetcher(Protocol):
    def get_account(self, address: str) -> Optional[bytes]:
        ...

    def get_multiple_accounts(self, addresses: Sequence[str]) -> List[Optional[bytes]]:
        ...

    def get_program_accounts(
        self,
        program_id: str,
        filters: Sequence[Dict[str, Any]],
    ) -> List[Tuple[str, bytes]]:
        ...


def require_account(fetcher: AccountFetcher, address: str, label: str = "account") -> bytes:
    raw = fetcher.get_account(address)
    if raw is None:
        raise AccountNotFound(address, label)
    return raw


def memcmp_filter(offset: int, address: str) -> Dict[str, Any]:
    return {"memcmp": {"offset": offset, "bytes": address}}


def data_size_filter(size: int) -> Dict[str, Any]:
    return {"dataSize": size}


def _decode_account_value(value: Optional[Dict[str, Any]]) -> Optional[bytes]:
    if not value:
        return None
    data_field = value.get("data")
    if not data_field or not isinstance(data_field, list):
        raise RpcError(f"unexpected account encoding: {data_field!r}")
    data_b64, _encoding = data_field
    return base64.b64decode(data_b64)


class RpcAccountFetcher:
    def __init__(
        self,
        rpc_url: str = RPC_DEFAULT,
        commitment: str = "processed",
        session: Optional[requests.Session] = None,
        timeout: float = 15.0,
    ) -> None:
        self.rpc_url = rpc_url
        self.commitment = commitment
        self.session = session or requests.Session()
        self.timeout = timeout

    def rpc_request(self, method: str, params: List[Any]) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "id": method,
            "method": method,
            "params": params,
        }
        log.debug("rpc %s -> %s", method, self.rpc_url)
        try:
            resp = self.session.post(
                self.rpc_url,
                json=payload,
                headers={"Content-Type": "application/json"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            data = resp.json()
        except requests.RequestException as exc:
            raise RpcError(f"RPC 请求失败: {exc}") from exc
        except ValueError as exc:
            raise RpcError(f"{method} 返回非 JSON 数据") from exc
        if "error" in data:
            raise RpcError(f"{method} 调用失败: {data['error']}")
        return data.get("result")

    def _account_config(self) -> Dict[str, Any]:
        return {"encoding": "base64", "commitment": self.commitment}

    def get_account(self, address: str) -> Optional[bytes]:
        result = self.rpc_request("getAccountInfo", [address, self._account_config()])
        return _decode_account_value(result.get("value") if result else None)

    def get_multiple_accounts(self, addresses: Sequence[str]) -> List[Optional[bytes]]:
        if not addresses:
            return []
        if len(addresses) > MAX_MULTIPLE_ACCOUNTS:
            # 拆成多次请求就不再是同一 slot 的快照
            raise RpcError(
                f"getMultipleAccounts 最多 {MAX_MULTIPLE_ACCOUNTS} 个地址, got {len(addresses)}"
            )
        result = self.rpc_request("getMultipleAccounts", [list(addresses), self._account_config()])
        values = (result or {}).get("value") or []
        if len(values) != len(addresses):
            raise RpcError(f"getMultipleAccounts returned {len(values)} entries for {len(addresses)} addresses")
        return [_decode_account_value(value) for value in values]

    def get_program_accounts(
        self,
        program_id: str,
        filters: Sequence[Dict[str, Any]],
    ) -> List[Tuple[str, bytes]]:
        config = self._account_config()
        config["filters"] = list(filters)
        result = self.rpc_request("getProgramAccounts", [program_id, config]) or []
        accounts: List[Tuple[str, bytes]] = []
        for entry in result:
            pubkey = entry.get("pubkey")
            raw = _decode_account_value(entry.get("account"))
            if pubkey and raw is not None:
                accounts.append((pubkey, raw))
        return accounts
