"""
JSON Web Key conversion for key import/export.

Only parses and re-encodes key material; all signing and encryption is done
by the vault.
"""
from typing import Any, Dict, Optional

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from jwt.algorithms import ECAlgorithm, RSAAlgorithm
from jwt.exceptions import InvalidKeyError
from jwt.utils import base64url_decode, base64url_encode

from azkeyvault.core.errors import MalformedInput

# Key Vault and PyJWT disagree on the name of the secp256k1 curve
_VAULT_CURVES = {"secp256k1": "P-256K"}
_JWT_CURVES = {v: k for k, v in _VAULT_CURVES.items()}


def b64url_encode(data: bytes) -> str:
    return base64url_encode(data).decode("ascii")


def b64url_decode(data: str) -> bytes:
    return base64url_decode(data)


def private_key_to_jwk(pem: bytes, password: Optional[str] = None) -> Dict[str, Any]:
    try:
        key = serialization.load_pem_private_key(pem, password=password.encode() if password else None)
    except (ValueError, TypeError) as e:
        raise MalformedInput(f"Could not read private key: {e}") from e

    try:
        if isinstance(key, rsa.RSAPrivateKey):
            jwk = RSAAlgorithm.to_jwk(key, as_dict=True)
        elif isinstance(key, ec.EllipticCurvePrivateKey):
            jwk = ECAlgorithm.to_jwk(key, as_dict=True)
            jwk["crv"] = _VAULT_CURVES.get(jwk["crv"], jwk["crv"])
        else:
            raise MalformedInput(f"Unsupported key type {type(key).__name__}")
    except InvalidKeyError as e:
        raise MalformedInput(f"Key is not supported by Key Vault: {e}") from e
    # operations are set on the vault side
    jwk.pop("key_ops", None)
    return jwk


def jwk_to_public_key(jwk: Dict[str, Any]):
    kty = jwk.get("kty", "")
    try:
        if kty.startswith("RSA"):
            return RSAAlgorithm.from_jwk({"kty": "RSA", "n": jwk["n"], "e": jwk["e"]})
        if kty.startswith("EC"):
            crv = jwk.get("crv")
            return ECAlgorithm.from_jwk({"kty": "EC", "crv": _JWT_CURVES.get(crv, crv),
                                         "x": jwk["x"], "y": jwk["y"]})
    except (KeyError, InvalidKeyError) as e:
        raise MalformedInput(f"Cannot read {kty} key: {e}") from e
    raise MalformedInput(f"Cannot export a public key of type '{kty}'")
