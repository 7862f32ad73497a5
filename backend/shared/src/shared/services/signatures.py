"""Webhook authenticity checks for each payment provider.

- WATA: RSA PKCS#1 v1.5 / SHA-512 over the exact raw body, base64 in X-Signature
- P2PKassa: SHA-256 hex of api key + payment fields (inbound), SHA-512 for
  outbound API calls
- PayID19: the merchant private key echoed back in the payload

All checks compare with hmac.compare_digest() and return False instead of
raising on bad input. None of them touch dedup or order state.
"""

import base64
import binascii
import hashlib
import hmac
import logging
import math
from collections.abc import Mapping
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

import httpx
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

logger = logging.getLogger(__name__)

WATA_KEY_FETCH_TIMEOUT = 10.0

# Published WATA key, used when the key endpoint is unreachable
WATA_FALLBACK_PUBLIC_KEY_PEM = (
    "-----BEGIN PUBLIC KEY-----\n"
    "MIIBIjANBgkqhkiG9w0BAQEFAAOCAQ8AMIIBCgKCAQEAoL3WIP92OShyu4Y+ecbS\n"
    "ZJQyU2AW7gbg8X3KqX7dkctQL54kcxvpMySR8UMjZOCSzLuly2BFHP1pNVMPF304\n"
    "uIVpRtHtwEw3k3qE259L/7xEJHSzfehHuMlfSng7Lh/HxLW93douDCwohJvAISwF\n"
    "cXlqmNo/eJfBu9kQNlclQXFMYLHOtotZbsMM/oAJJvks7bgnN5o9RXMx8SG5rfq/\n"
    "aK+BZAlEC83HTpnVrv0wpjmeleSPDSiOkWIY6BBTcg1bpH162en9XasJ/xnHLBFY\n"
    "kQSjFQw8nN17CFpd5Hkb0QpABgSEVStvaeLHF5XrWi3B/x5v8sUKsEgUnOJ7LnlH\n"
    "HQIDAQAB\n"
    "-----END PUBLIC KEY-----\n"
)

KASSA_REQUIRED_FIELDS = ("id", "order_id", "project_id", "amount", "currency", "sign")


# =============================================================================
# WATA (RSA)
# =============================================================================


def load_rsa_public_key(pem: str | bytes) -> rsa.RSAPublicKey:
    """Load an RSA public key from PEM.

    Raises:
        ValueError: If the PEM is not an RSA public key
    """
    data = pem.encode("utf-8") if isinstance(pem, str) else pem
    try:
        key = serialization.load_pem_public_key(data)
    except UnsupportedAlgorithm as e:
        raise ValueError(f"Unsupported public key: {e}") from e
    if not isinstance(key, rsa.RSAPublicKey):
        raise ValueError("Public key is not an RSA key")
    return key


def verify_rsa_signature(
    public_key: rsa.RSAPublicKey,
    body: bytes,
    signature_b64: str | None,
) -> bool:
    """Verify a base64 RSA-SHA512 signature over the exact body bytes.

    Args:
        public_key: Provider RSA public key
        body: Raw request body, exactly as received
        signature_b64: Value of the signature header

    Returns:
        True only for a valid signature; False for missing, undecodable or
        mismatching signatures.
    """
    if not signature_b64:
        return False
    try:
        signature = base64.b64decode(signature_b64.strip(), validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Signature header is not valid base64")
        return False
    try:
        public_key.verify(signature, body, padding.PKCS1v15(), hashes.SHA512())
    except InvalidSignature:
        return False
    return True


class WataSignatureVerifier:
    """Verifies WATA webhooks, fetching the provider key on first use.

    The key is taken from, in order: an explicitly configured PEM, the WATA
    public-key endpoint, the built-in fallback PEM. Once loaded it is cached
    for the lifetime of the verifier.
    """

    def __init__(
        self,
        public_key_url: str,
        *,
        public_key_pem: str | None = None,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = WATA_KEY_FETCH_TIMEOUT,
    ) -> None:
        self._url = public_key_url
        self._http = http_client
        self._timeout = timeout
        self._public_key: rsa.RSAPublicKey | None = (
            load_rsa_public_key(public_key_pem) if public_key_pem else None
        )

    async def get_public_key(self) -> rsa.RSAPublicKey:
        if self._public_key is None:
            pem = await self._fetch_public_key_pem()
            try:
                self._public_key = load_rsa_public_key(pem)
            except ValueError:
                logger.warning("WATA returned an unusable public key, using fallback")
                self._public_key = load_rsa_public_key(WATA_FALLBACK_PUBLIC_KEY_PEM)
        return self._public_key

    async def _fetch_public_key_pem(self) -> str:
        try:
            if self._http is not None:
                response = await self._http.get(self._url, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(self._url)
            response.raise_for_status()
            pem = response.json().get("value")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Failed to fetch WATA public key (%s), using fallback", e)
            return WATA_FALLBACK_PUBLIC_KEY_PEM
        if not pem:
            logger.warning("WATA public key response had no value, using fallback")
            return WATA_FALLBACK_PUBLIC_KEY_PEM
        logger.info("WATA public key fetched")
        return pem

    async def verify(self, raw_body: bytes, signature: str | None) -> bool:
        """Check a WATA webhook. Never raises."""
        if not signature:
            return False
        public_key = await self.get_public_key()
        return verify_rsa_signature(public_key, raw_body, signature)


# =============================================================================
# P2PKassa (hash)
# =============================================================================


def _to_decimal(value: Any) -> Decimal | None:
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return None


def _format_fixed_2(amount: Decimal) -> str:
    # Rounds the binary float value half-up, as JS toFixed(2) does: 10.125 -> "10.13"
    return str(Decimal(float(amount)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _format_js_number(amount: Decimal) -> str:
    # Same text a JS template literal produces: 150, 150.5
    return format(amount.normalize(), "f")


def compute_kassa_webhook_signature(
    api_key: str,
    payment_id: str,
    order_id: str,
    project_id: str | int,
    amount: Decimal,
    currency: str,
) -> str:
    """SHA-256 hex digest P2PKassa puts in the webhook "sign" field."""
    message = f"{api_key}{payment_id}{order_id}{project_id}{_format_fixed_2(amount)}{currency}"
    return hashlib.sha256(message.encode("utf-8")).hexdigest()


def verify_kassa_webhook_signature(payload: Mapping[str, Any], api_key: str) -> bool:
    """Verify an inbound P2PKassa webhook.

    The amount is always hashed with two decimals, so an amount of 10 is
    signed as "10.00".

    Args:
        payload: Decoded webhook body
        api_key: Merchant API key

    Returns:
        False if any signed field or the signature is missing, or the
        signature does not match (case-insensitive hex).
    """
    if not api_key or not all(payload.get(field) for field in KASSA_REQUIRED_FIELDS):
        return False
    amount = _to_decimal(payload["amount"])
    if amount is None or not math.isfinite(float(amount)):
        return False

    expected = compute_kassa_webhook_signature(
        api_key,
        str(payload["id"]),
        str(payload["order_id"]),
        payload["project_id"],
        amount,
        str(payload["currency"]),
    )
    received = str(payload["sign"]).lower()
    return hmac.compare_digest(expected.encode("utf-8"), received.encode("utf-8"))


def create_kassa_api_signature(
    api_key: str,
    order_id: str,
    project_id: str | int,
    amount: Decimal | int | float | str,
    currency: str = "RUB",
) -> str:
    """SHA-512 hex signature for outbound P2PKassa API requests.

    Distinct from the inbound webhook signature: different hash, and the
    amount is rendered without padding (150, not 150.00).
    """
    amount_text = _format_js_number(Decimal(str(amount)))
    message = f"{api_key}{order_id}{project_id}{amount_text}{currency}"
    return hashlib.sha512(message.encode("utf-8")).hexdigest()


# =============================================================================
# PayID19 (key echo)
# =============================================================================


def verify_payid19_webhook(payload: Mapping[str, Any], private_key: str) -> bool:
    """Check that the payload echoes the merchant private key."""
    received = payload.get("private_key")
    if not private_key or not received:
        return False
    return hmac.compare_digest(str(received).encode("utf-8"), private_key.encode("utf-8"))


def is_payid19_test_passthrough(payload: Mapping[str, Any]) -> bool:
    """Test-mode invoices and payloads without an order ID skip verification.

    Such payloads are acknowledged but are not provisioned by default.
    """
    return str(payload.get("test", "")) == "1" or not payload.get("order_id")
