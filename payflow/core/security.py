"""Payflow Sweeper - Custody API request stamping.

Every request to the custody backend carries an ``X-Stamp`` header that
proves possession of the operator's P-256 API key.
"""

import base64
import json

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from payflow.core.exceptions import ConfigError


class ApiKeyStamper:
    """ECDSA P-256 request stamper.

    Usage:
        stamper = ApiKeyStamper(public_key_hex, private_key_hex)
        headers = {stamper.HEADER_NAME: stamper.stamp(body)}

    The stamp format: base64url(json({publicKey, scheme, signature}))
    - publicKey: compressed SEC1 point, hex
    - signature: DER-encoded ECDSA signature over SHA-256(body), hex
    """

    HEADER_NAME = "X-Stamp"
    SCHEME = "SIGNATURE_SCHEME_TK_API_P256"

    def __init__(self, public_key_hex: str, private_key_hex: str) -> None:
        try:
            self._private_key = ec.derive_private_key(int(private_key_hex, 16), ec.SECP256R1())
        except ValueError as e:
            raise ConfigError(f"Invalid API private key: {e}") from e

        derived = public_key_hex_for(self._private_key)
        if public_key_hex and public_key_hex.lower() != derived:
            raise ConfigError("API public key does not match the private key")
        self.public_key = derived

    def stamp(self, payload: str | bytes) -> str:
        """Stamp a request body.

        Args:
            payload: Exact request body that will be sent

        Returns:
            Value for the X-Stamp header
        """
        if isinstance(payload, str):
            payload = payload.encode("utf-8")
        signature = self._private_key.sign(payload, ec.ECDSA(hashes.SHA256()))
        stamp = {
            "publicKey": self.public_key,
            "scheme": self.SCHEME,
            "signature": signature.hex(),
        }
        encoded = base64.urlsafe_b64encode(json.dumps(stamp).encode("utf-8"))
        return encoded.decode("ascii").rstrip("=")


def public_key_hex_for(private_key: ec.EllipticCurvePrivateKey) -> str:
    """Compressed public key hex for a private key."""
    return (
        private_key.public_key()
        .public_bytes(Encoding.X962, PublicFormat.CompressedPoint)
        .hex()
    )


def generate_api_key() -> tuple[str, str]:
    """Generate a new P-256 API key pair.

    Returns:
        Tuple of (public_key_hex, private_key_hex)
    """
    private_key = ec.generate_private_key(ec.SECP256R1())
    private_hex = format(private_key.private_numbers().private_value, "064x")
    return public_key_hex_for(private_key), private_hex


def decode_stamp(stamp: str) -> dict:
    """Decode an X-Stamp header value back into its JSON fields."""
    padded = stamp + "=" * (-len(stamp) % 4)
    return json.loads(base64.urlsafe_b64decode(padded))
