"""Tests for the JSON-RPC account fetcher (stub session, no network)."""

import base64

import pytest
import requests

from builders import addr
from kamino_strategy.errors import AccountNotFound, RpcError
from kamino_strategy.rpc import MAX_MULTIPLE_ACCOUNTS, RpcAccountFetcher, data_size_filter, memcmp_filter, require_account


def _account(raw):
    return {"data": [base64.b64encode(raw).decode("ascii"), "base64"], "owner": addr("owner")}


class StubResponse:
    def __init__(self, payload, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        return self.payload


class StubSession:
    def __init__(self, *payloads):
        self.payloads = list(payloads)
        self.bodies = []

    def post(self, url, json=None, headers=None, timeout=None):
        self.bodies.append(json)
        payload = self.payloads.pop(0)
        if isinstance(payload, Exception):
            raise payload
        if isinstance(payload, StubResponse):
            return payload
        return StubResponse(payload)


def _fetcher(*payloads):
    session = StubSession(*payloads)
    return RpcAccountFetcher("http://rpc.test", commitment="confirmed", session=session), session


class TestRpcAccountFetcher:
    def test_get_account(self):
        fetcher, session = _fetcher({"result": {"value": _account(b"abc")}})
        assert fetcher.get_account(addr("a")) == b"abc"
        body = session.bodies[0]
        assert body["method"] == "getAccountInfo"
        assert body["params"] == [addr("a"), {"encoding": "base64", "commitment": "confirmed"}]

    def test_missing_account(self):
        fetcher, _session = _fetcher({"result": {"value": None}})
        assert fetcher.get_account(addr("a")) is None

    def test_require_account(self):
        fetcher, _session = _fetcher({"result": {"value": None}})
        with pytest.raises(AccountNotFound):
            require_account(fetcher, addr("a"), "kvault")

    def test_get_multiple_accounts_single_call(self):
        fetcher, session = _fetcher({"result": {"value": [_account(b"1"), None]}})
        assert fetcher.get_multiple_accounts([addr("a"), addr("b")]) == [b"1", None]
        assert len(session.bodies) == 1
        assert session.bodies[0]["params"][0] == [addr("a"), addr("b")]

    def test_get_multiple_accounts_empty(self):
        fetcher, session = _fetcher()
        assert fetcher.get_multiple_accounts([]) == []
        assert session.bodies == []

    def test_get_multiple_accounts_limit(self):
        fetcher, _session = _fetcher()
        with pytest.raises(RpcError):
            fetcher.get_multiple_accounts([addr(str(idx)) for idx in range(MAX_MULTIPLE_ACCOUNTS + 1)])

    def test_get_multiple_accounts_length_mismatch(self):
        fetcher, _session = _fetcher({"result": {"value": [None]}})
        with pytest.raises(RpcError):
            fetcher.get_multiple_accounts([addr("a"), addr("b")])

    def test_get_program_accounts(self):
        filters = [data_size_filter(920), memcmp_filter(8, addr("owner"))]
        fetcher, session = _fetcher({"result": [{"pubkey": addr("u"), "account": _account(b"user")}]})
        assert fetcher.get_program_accounts(addr("farms"), filters) == [(addr("u"), b"user")]
        config = session.bodies[0]["params"][1]
        assert config["filters"] == [{"dataSize": 920}, {"memcmp": {"offset": 8, "bytes": addr("owner")}}]

    def test_rpc_error_field(self):
        fetcher, _session = _fetcher({"error": {"code": -32602, "message": "invalid"}})
        with pytest.raises(RpcError, match="getAccountInfo"):
            fetcher.get_account(addr("a"))

    def test_transport_error(self):
        fetcher, _session = _fetcher(requests.ConnectionError("refused"))
        with pytest.raises(RpcError):
            fetcher.get_account(addr("a"))

    def test_http_status_error(self):
        fetcher, _session = _fetcher(StubResponse({}, status=503))
        with pytest.raises(RpcError):
            fetcher.get_account(addr("a"))

    def test_unexpected_encoding(self):
        fetcher, _session = _fetcher({"result": {"value": {"data": "raw"}}})
        with pytest.raises(RpcError):
            fetcher.get_account(addr("a"))
