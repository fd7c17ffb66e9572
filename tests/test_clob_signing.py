import asyncio
import base64
import hmac
from hashlib import sha256
from typing import Any

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data

from joly_trader.auth import (
    CLOB_AUTH_TYPES,
    POLY_ADDRESS,
    POLY_NONCE,
    POLY_SIGNATURE,
    POLY_TIMESTAMP,
    build_hmac_signature,
    build_l1_headers,
    build_l2_headers,
    clob_auth_domain,
    clob_auth_message,
)
from joly_trader.errors import AccessRestrictedError, describe_error
from joly_trader.types import ApiCredentials

TEST_ACCOUNT = Account.from_key("0x" + "ab" * 32)
SECRET = base64.urlsafe_b64encode(b"super-secret-key-material").decode()


class _KeySigner:
    async def get_address(self) -> str:
        return TEST_ACCOUNT.address

    async def sign_typed_data(
        self, domain: dict[str, Any], types: dict[str, Any], value: dict[str, Any]
    ) -> str:
        signed = TEST_ACCOUNT.sign_typed_data(
            domain_data=domain, message_types=types, message_data=value
        )
        return "0x" + bytes(signed.signature).hex()


def test_hmac_signature_matches_manual_computation() -> None:
    body = '{"order":{"salt":1}}'
    message = "1700000000" + "POST" + "/order" + body
    expected = base64.urlsafe_b64encode(
        hmac.new(base64.urlsafe_b64decode(SECRET), message.encode("utf-8"), sha256).digest()
    ).decode()
    assert build_hmac_signature(SECRET, "1700000000", "POST", "/order", body) == expected


def test_hmac_signature_uppercases_method() -> None:
    assert build_hmac_signature(SECRET, "1", "get", "/orders") == build_hmac_signature(
        SECRET, "1", "GET", "/orders"
    )


def test_undecodable_secret_is_access_restricted() -> None:
    with pytest.raises(AccessRestrictedError) as exc_info:
        build_hmac_signature("abc", "1700000000", "GET", "/orders")
    assert not describe_error(exc_info.value).startswith("REGION_BLOCKED")


@pytest.mark.parametrize("secret", ["!!!!", "c2Vj!cmV0", "c2Vj cmV0"])
def test_secret_with_characters_outside_base64_is_access_restricted(secret: str) -> None:
    with pytest.raises(AccessRestrictedError):
        build_hmac_signature(secret, "1", "POST", "/order", "")


def test_secret_accepts_urlsafe_alphabet() -> None:
    secret = base64.urlsafe_b64encode(b"\xfb\xff\xfe" * 8).decode()
    assert "-" in secret or "_" in secret
    expected = base64.urlsafe_b64encode(
        hmac.new(base64.urlsafe_b64decode(secret), b"1GET/orders", sha256).digest()
    ).decode()
    assert build_hmac_signature(secret, "1", "GET", "/orders") == expected


def test_l2_headers_carry_key_and_passphrase() -> None:
    creds = ApiCredentials(key="k-1", secret=SECRET, passphrase="pp")
    headers = build_l2_headers(
        creds, address=TEST_ACCOUNT.address, method="GET", path="/trades", timestamp="42"
    )
    assert headers["POLY_API_KEY"] == "k-1"
    assert headers["POLY_PASSPHRASE"] == "pp"
    assert headers[POLY_TIMESTAMP] == "42"
    assert headers[POLY_SIGNATURE] == build_hmac_signature(SECRET, "42", "GET", "/trades")


def test_l1_headers_signature_recovers_wallet_address() -> None:
    headers = asyncio.run(build_l1_headers(_KeySigner(), chain_id=137, timestamp="1700000000"))

    assert headers[POLY_ADDRESS] == TEST_ACCOUNT.address
    assert headers[POLY_NONCE] == "0"
    assert headers[POLY_TIMESTAMP] == "1700000000"

    signable = encode_typed_data(
        domain_data=clob_auth_domain(137),
        message_types=CLOB_AUTH_TYPES,
        message_data=clob_auth_message(
            address=TEST_ACCOUNT.address, timestamp="1700000000", nonce=0
        ),
    )
    recovered = Account.recover_message(
        signable, signature=bytes.fromhex(headers[POLY_SIGNATURE][2:])
    )
    assert recovered == TEST_ACCOUNT.address


def test_l1_signature_is_bound_to_chain_id() -> None:
    headers = asyncio.run(build_l1_headers(_KeySigner(), chain_id=137, timestamp="1700000000"))
    signable = encode_typed_data(
        domain_data=clob_auth_domain(80002),
        message_types=CLOB_AUTH_TYPES,
        message_data=clob_auth_message(
            address=TEST_ACCOUNT.address, timestamp="1700000000", nonce=0
        ),
    )
    recovered = Account.recover_message(
        signable, signature=bytes.fromhex(headers[POLY_SIGNATURE][2:])
    )
    assert recovered != TEST_ACCOUNT.address
