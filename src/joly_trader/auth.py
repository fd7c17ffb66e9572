"""CLOB authentication headers.

L1 proves wallet control with an EIP-712 ``ClobAuth`` signature and is only
used to derive or create API credentials. L2 signs each request with an
HMAC keyed by the derived API secret.
"""

from __future__ import annotations

import base64
import binascii
import hmac
import time
from hashlib import sha256
from typing import Any

from joly_trader.chain.wallet import Signer
from joly_trader.errors import AccessRestrictedError
from joly_trader.types import ApiCredentials

CLOB_AUTH_DOMAIN_NAME = "ClobAuthDomain"
CLOB_AUTH_VERSION = "1"
CLOB_AUTH_MESSAGE = "This message attests that I control the given wallet"

CLOB_AUTH_TYPES: dict[str, list[dict[str, str]]] = {
    "ClobAuth": [
        {"name": "address", "type": "address"},
        {"name": "timestamp", "type": "string"},
        {"name": "nonce", "type": "uint256"},
        {"name": "message", "type": "string"},
    ],
}

POLY_ADDRESS = "POLY_ADDRESS"
POLY_SIGNATURE = "POLY_SIGNATURE"
POLY_TIMESTAMP = "POLY_TIMESTAMP"
POLY_NONCE = "POLY_NONCE"
POLY_API_KEY = "POLY_API_KEY"
POLY_PASSPHRASE = "POLY_PASSPHRASE"


def _now_s() -> str:
    return str(int(time.time()))


def clob_auth_domain(chain_id: int) -> dict[str, Any]:
    return {"name": CLOB_AUTH_DOMAIN_NAME, "version": CLOB_AUTH_VERSION, "chainId": chain_id}


def clob_auth_message(*, address: str, timestamp: str, nonce: int) -> dict[str, Any]:
    return {
        "address": address,
        "timestamp": timestamp,
        "nonce": nonce,
        "message": CLOB_AUTH_MESSAGE,
    }


async def build_l1_headers(
    signer: Signer,
    *,
    chain_id: int,
    nonce: int = 0,
    timestamp: str | None = None,
) -> dict[str, str]:
    address = await signer.get_address()
    ts = timestamp if timestamp is not None else _now_s()
    signature = await signer.sign_typed_data(
        clob_auth_domain(chain_id),
        CLOB_AUTH_TYPES,
        clob_auth_message(address=address, timestamp=ts, nonce=nonce),
    )
    return {
        POLY_ADDRESS: address,
        POLY_SIGNATURE: signature,
        POLY_TIMESTAMP: ts,
        POLY_NONCE: str(nonce),
    }


def build_hmac_signature(
    secret: str,
    timestamp: str,
    method: str,
    path: str,
    body: str = "",
) -> str:
    try:
        key = base64.b64decode(secret, altchars=b"-_", validate=True)
    except (binascii.Error, ValueError) as e:
        # Blocked regions get issued credentials whose secret is not valid base64;
        # validate=True rejects stray characters instead of dropping them.
        raise AccessRestrictedError(f"api secret is not valid base64: {e}") from e
    message = f"{timestamp}{method.upper()}{path}{body}"
    digest = hmac.new(key, message.encode("utf-8"), sha256).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8")


def build_l2_headers(
    credentials: ApiCredentials,
    *,
    address: str,
    method: str,
    path: str,
    body: str = "",
    timestamp: str | None = None,
) -> dict[str, str]:
    ts = timestamp if timestamp is not None else _now_s()
    return {
        POLY_ADDRESS: address,
        POLY_API_KEY: credentials.key,
        POLY_PASSPHRASE: credentials.passphrase,
        POLY_SIGNATURE: build_hmac_signature(credentials.secret, ts, method, path, body),
        POLY_TIMESTAMP: ts,
    }
