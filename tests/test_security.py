import pytest
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import ec

from payflow.core.exceptions import ConfigError
from payflow.core.security import ApiKeyStamper, decode_stamp, generate_api_key


def _verify(stamp: dict, payload: bytes) -> None:
    public_key = ec.EllipticCurvePublicKey.from_encoded_point(
        ec.SECP256R1(), bytes.fromhex(stamp["publicKey"])
    )
    public_key.verify(bytes.fromhex(stamp["signature"]), payload, ec.ECDSA(hashes.SHA256()))


def test_stamp_verifies_with_public_key():
    public_key, private_key = generate_api_key()
    stamper = ApiKeyStamper(public_key, private_key)
    body = '{"organizationId":"org-1"}'

    stamp = decode_stamp(stamper.stamp(body))

    assert stamp["publicKey"] == public_key
    assert stamp["scheme"] == ApiKeyStamper.SCHEME
    _verify(stamp, body.encode())


def test_stamp_does_not_verify_other_body():
    public_key, private_key = generate_api_key()
    stamp = decode_stamp(ApiKeyStamper(public_key, private_key).stamp("a"))

    with pytest.raises(InvalidSignature):
        _verify(stamp, b"b")


def test_stamp_is_unpadded_base64url():
    public_key, private_key = generate_api_key()

    value = ApiKeyStamper(public_key, private_key).stamp(b"{}")

    assert "=" not in value
    assert "+" not in value and "/" not in value


def test_public_key_is_derived_when_omitted():
    public_key, private_key = generate_api_key()

    assert ApiKeyStamper("", private_key).public_key == public_key


def test_mismatched_public_key():
    public_key, _ = generate_api_key()
    _, private_key = generate_api_key()

    with pytest.raises(ConfigError):
        ApiKeyStamper(public_key, private_key)


@pytest.mark.parametrize("private_key", ["not-hex", "0"])
def test_invalid_private_key(private_key):
    with pytest.raises(ConfigError):
        ApiKeyStamper("", private_key)
