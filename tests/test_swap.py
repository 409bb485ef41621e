"""Tests for the swap leg composer and the HTTP quote provider."""

import base64

import pytest
import requests

from builders import SWAP_DATA, SWAP_LUT, SWAP_PROGRAM, FakeQuoteProvider, addr
from kamino_strategy.accounts import AccountMeta
from kamino_strategy.errors import SwapUnavailable
from kamino_strategy.swap import JupiterQuoteProvider, compose_swap_leg, swap_leg_from_response

AUTHORITY = addr("strategy-authority")
JTO = addr("jto-mint")
USDC = addr("usdc-mint")


class TestComposeSwapLeg:
    def test_program_id_first_and_read_only(self):
        leg = compose_swap_leg(FakeQuoteProvider(), 42, AUTHORITY, JTO, USDC)
        assert leg.accounts[0] == AccountMeta(SWAP_PROGRAM, False, False)
        assert leg.program_id == SWAP_PROGRAM

    def test_writability_preserved_and_never_signer(self):
        leg = compose_swap_leg(FakeQuoteProvider(), 42, AUTHORITY, JTO, USDC)
        assert leg.accounts[1:] == [
            AccountMeta(AUTHORITY, False, True),
            AccountMeta(addr("swap-pool"), False, True),
            AccountMeta(addr("swap-oracle"), False, False),
        ]

    def test_data_and_lookup_tables_passed_through(self):
        leg = compose_swap_leg(FakeQuoteProvider(), 42, AUTHORITY, JTO, USDC)
        assert leg.data == SWAP_DATA
        assert leg.lookup_table_addresses == [SWAP_LUT]
        assert leg.quote["outAmount"] == "84"

    def test_defaults_forwarded(self):
        provider = FakeQuoteProvider()
        compose_swap_leg(provider, 42, AUTHORITY, JTO, USDC)
        assert provider.quotes == [(JTO, USDC, 42, 50, 18)]
        assert provider.swaps[0][1] == AUTHORITY

    def test_provider_error(self):
        provider = FakeQuoteProvider(failing=[JTO])
        with pytest.raises(SwapUnavailable, match="no route"):
            compose_swap_leg(provider, 42, AUTHORITY, JTO, USDC)
        assert provider.swaps == []

    def test_account_without_pubkey(self):
        payload = {
            "swapInstruction": {
                "programId": SWAP_PROGRAM,
                "accounts": [{"isSigner": False, "isWritable": True}],
                "data": base64.b64encode(SWAP_DATA).decode("ascii"),
            }
        }
        with pytest.raises(SwapUnavailable):
            swap_leg_from_response(payload, {})

    def test_data_not_base64(self):
        payload = {"swapInstruction": {"programId": SWAP_PROGRAM, "accounts": [], "data": "not base64!"}}
        with pytest.raises(SwapUnavailable):
            swap_leg_from_response(payload, {})

    def test_zero_amount_is_rejected_before_quoting(self):
        provider = FakeQuoteProvider()
        with pytest.raises(SwapUnavailable):
            compose_swap_leg(provider, 0, AUTHORITY, JTO, USDC)
        assert provider.quotes == []


class StubResponse:
    def __init__(self, payload=None, status=200):
        self.payload = payload
        self.status = status

    def raise_for_status(self):
        if self.status >= 400:
            raise requests.HTTPError(f"{self.status} error")

    def json(self):
        if self.payload is None:
            raise ValueError("no json")
        return self.payload


class StubSession:
    def __init__(self, get_response=None, post_response=None):
        self.get_response = get_response
        self.post_response = post_response
        self.requests = []

    def get(self, url, params=None, timeout=None):
        self.requests.append(("GET", url, params))
        return self.get_response

    def post(self, url, json=None, headers=None, timeout=None):
        self.requests.append(("POST", url, json))
        return self.post_response


class TestJupiterQuoteProvider:
    def test_quote_request(self):
        session = StubSession(get_response=StubResponse({"outAmount": "1"}))
        provider = JupiterQuoteProvider("https://quote.example/swap/v1/", session=session)
        assert provider.quote(JTO, USDC, 42, 50, 18) == {"outAmount": "1"}
        method, url, params = session.requests[0]
        assert method == "GET"
        assert url == "https://quote.example/swap/v1/quote"
        assert params == {
            "inputMint": JTO,
            "outputMint": USDC,
            "amount": "42",
            "slippageBps": 50,
            "maxAccounts": 18,
        }

    def test_swap_instructions_request(self):
        body = {
            "swapInstruction": {"programId": SWAP_PROGRAM, "accounts": [], "data": base64.b64encode(b"x").decode()},
        }
        session = StubSession(post_response=StubResponse(body))
        provider = JupiterQuoteProvider("https://quote.example", session=session)
        assert provider.swap_instructions({"q": 1}, AUTHORITY) == body
        method, url, payload = session.requests[0]
        assert (method, url) == ("POST", "https://quote.example/swap-instructions")
        assert payload == {"quoteResponse": {"q": 1}, "userPublicKey": AUTHORITY}

    def test_http_error(self):
        session = StubSession(get_response=StubResponse({}, status=502))
        provider = JupiterQuoteProvider(session=session)
        with pytest.raises(SwapUnavailable):
            provider.quote(JTO, USDC, 42)

    def test_non_json(self):
        session = StubSession(post_response=StubResponse(None))
        provider = JupiterQuoteProvider(session=session)
        with pytest.raises(SwapUnavailable):
            provider.swap_instructions({}, AUTHORITY)

    def test_error_body_surfaces_through_composer(self):
        session = StubSession(get_response=StubResponse({"error": "no route"}))
        provider = JupiterQuoteProvider(session=session)
        with pytest.raises(SwapUnavailable, match="no route"):
            compose_swap_leg(provider, 42, AUTHORITY, JTO, USDC)
