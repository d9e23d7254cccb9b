"""Verification of wallet signatures answering a login challenge."""

from __future__ import annotations

import base64
import binascii
import hashlib
import re
from dataclasses import dataclass

from Crypto.Hash import keccak
from nacl.exceptions import CryptoError
from nacl.signing import VerifyKey

from nexusnode.challenge import ChallengeStore, InvalidChainError

_HEX_RE = re.compile(r"[0-9a-fA-F]*")
_BASE58_ALPHABET = "123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
_BASE58_INDEX = {ch: i for i, ch in enumerate(_BASE58_ALPHABET)}

_P = 2**256 - 2**32 - 977
_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
_G = (
    0x79BE667EF9DCBBAC55A06295CE870B07029BFCDB2DCE28D959F2815B16F81798,
    0x483ADA7726A3C4655DA4FBFC0E1108A8FD17B448A68554199C47D08FFB10D4B8,
)

_CHAIN_INFO = "chain name must be between solana, peaq, aptos, sui, eclipse, ethereum"


class ChallengeNotFoundError(LookupError):
    """The challenge id is unknown or has expired."""

    def __init__(self, message: str = "challenge id not found") -> None:
        super().__init__(message)


class SignatureError(ValueError):
    """A signature or key could not be decoded or checked."""


@dataclass
class AuthenticateRequest:
    """A signed answer to a login challenge."""

    challenge_id: str
    signature: str
    chain_name: str
    pub_key: str = ""


@dataclass
class AuthenticatePayload:
    """Response body of an authentication attempt."""

    status: int
    success: bool
    message: str
    token: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            "status": self.status,
            "success": self.success,
            "message": self.message,
            "token": self.token,
        }


def error_payload(text: str) -> AuthenticatePayload:
    """Build a failed-authentication payload carrying a message."""
    return AuthenticatePayload(status=401, success=False, message=text)


def base58_decode(text: str) -> bytes:
    """Decode a base58 string; leading '1' characters become zero bytes."""
    if not text:
        raise ValueError("zero length string")
    value = 0
    for ch in text:
        try:
            value = value * 58 + _BASE58_INDEX[ch]
        except KeyError:
            raise ValueError(f"invalid base58 digit ({ch!r})") from None
    body = value.to_bytes((value.bit_length() + 7) // 8, "big") if value else b""
    zeros = len(text) - len(text.lstrip("1"))
    return b"\x00" * zeros + body


def _hex_decode(text: str) -> bytes:
    if len(text) % 2:
        raise SignatureError("encoding/hex: odd length hex string")
    if _HEX_RE.fullmatch(text) is None:
        raise SignatureError("encoding/hex: invalid byte in hex string")
    return bytes.fromhex(text)


def _hex_decode_prefixed(text: str) -> bytes:
    if not text:
        raise SignatureError("empty hex string")
    if text[:2] not in ("0x", "0X"):
        raise SignatureError("hex string without 0x prefix")
    return _hex_decode(text[2:])


def _keccak256(data: bytes) -> bytes:
    return keccak.new(digest_bits=256, data=data).digest()


def _point_add(a, b):
    if a is None:
        return b
    if b is None:
        return a
    if a[0] == b[0] and (a[1] + b[1]) % _P == 0:
        return None
    if a == b:
        slope = 3 * a[0] * a[0] * pow(2 * a[1], -1, _P)
    else:
        slope = (b[1] - a[1]) * pow(b[0] - a[0], -1, _P)
    slope %= _P
    x = (slope * slope - a[0] - b[0]) % _P
    y = (slope * (a[0] - x) - a[1]) % _P
    return (x, y)


def _point_mul(k: int, point):
    result = None
    addend = point
    while k:
        if k & 1:
            result = _point_add(result, addend)
        addend = _point_add(addend, addend)
        k >>= 1
    return result


def _checksum_address(raw: bytes) -> str:
    lower = raw.hex()
    digest = _keccak256(lower.encode()).hex()
    chars = (
        ch.upper() if ch.isalpha() and int(nibble, 16) >= 8 else ch
        for ch, nibble in zip(lower, digest)
    )
    return "0x" + "".join(chars)


def recover_ethereum_address(message_hash: bytes, signature: bytes) -> str:
    """Recover the checksummed address that made an [R || S || V] signature.

    V must already be a recovery id (0 to 3).
    """
    if len(message_hash) != 32:
        raise SignatureError("hash is required to be exactly 32 bytes")
    if len(signature) != 65:
        raise SignatureError("invalid signature length")
    r = int.from_bytes(signature[:32], "big")
    s = int.from_bytes(signature[32:64], "big")
    recovery_id = signature[64]
    if recovery_id > 3:
        raise SignatureError("invalid signature recovery id")
    if not 0 < r < _N or not 0 < s < _N:
        raise SignatureError("invalid signature values")
    x = r + (recovery_id >> 1) * _N
    if x >= _P:
        raise SignatureError("invalid signature: x coordinate out of range")
    alpha = (pow(x, 3, _P) + 7) % _P
    y = pow(alpha, (_P + 1) // 4, _P)
    if y * y % _P != alpha:
        raise SignatureError("invalid signature: point not on curve")
    if y & 1 != recovery_id & 1:
        y = _P - y
    r_inv = pow(r, -1, _N)
    e = int.from_bytes(message_hash, "big")
    public = _point_add(
        _point_mul(s * r_inv % _N, (x, y)),
        _point_mul(-e * r_inv % _N, _G),
    )
    if public is None:
        raise SignatureError("invalid signature: recovered point at infinity")
    encoded = public[0].to_bytes(32, "big") + public[1].to_bytes(32, "big")
    return _checksum_address(_keccak256(encoded)[12:])


def check_sign_aptos(
    signature: str, challenge_id: str, message: str, pub_key: str, store: ChallengeStore
) -> str | None:
    """Check an Aptos ed25519 signature; return the wallet or None if rejected."""
    signed = _hex_decode_prefixed(signature) + message.encode()
    pub_bytes = _hex_decode_prefixed(pub_key)
    address = "0x" + hashlib.sha3_256(pub_bytes + b"\x00").hexdigest()

    record = store.get(challenge_id)
    if record is None:
        raise ChallengeNotFoundError()
    if address.casefold() != record.wallet_address.casefold():
        return None
    if len(pub_bytes) < 32:
        raise SignatureError("public key must be at least 32 bytes")
    try:
        opened = VerifyKey(pub_bytes[:32]).verify(signed)
    except (CryptoError, ValueError):
        return None
    if opened != message.encode():
        return None
    return record.wallet_address


def check_sign_ethereum(
    signature: str, challenge_id: str, message: str, store: ChallengeStore
) -> str:
    """Check a personal_sign signature; return the wallet it belongs to."""
    payload = message.encode()
    prefixed = b"\x19Ethereum Signed Message:\n" + str(len(payload)).encode() + payload
    message_hash = _keccak256(prefixed)
    raw = bytearray(_hex_decode_prefixed(signature))
    if len(raw) != 65:
        raise SignatureError("invalid signature length")
    if raw[64] in (27, 28):
        raw[64] -= 27
    address = recover_ethereum_address(message_hash, bytes(raw))

    record = store.get(challenge_id)
    if record is None:
        raise ChallengeNotFoundError()
    if record.wallet_address.casefold() == address.casefold():
        return record.wallet_address
    raise SignatureError("mismatch wallet_address")


def check_sign_sui(
    signature: str, challenge_id: str, store: ChallengeStore
) -> str | None:
    """Check a Sui signature's public key against the wallet; None if it differs."""
    try:
        raw = base64.b64decode(signature, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise SignatureError(f"illegal base64 data: {exc}") from exc
    if len(raw) < 32:
        raise SignatureError("signature is too short to hold a public key")
    public_key = raw[-32:]
    address = "0x" + hashlib.blake2b(b"\x00" + public_key, digest_size=32).hexdigest()

    record = store.get(challenge_id)
    if record is None:
        raise ChallengeNotFoundError()
    if address.casefold() != record.wallet_address.casefold():
        return None
    return record.wallet_address


def check_sign_solana(
    signature: str, challenge_id: str, message: str, pub_key: str, store: ChallengeStore
) -> str:
    """Check a Solana signature and return the challenged wallet.

    The key and signature must decode, but the outcome of the ed25519
    verification does not decide the result.
    """
    try:
        pub_bytes = base58_decode(pub_key)
    except ValueError as exc:
        raise SignatureError(str(exc)) from exc
    signed = _hex_decode(signature)

    record = store.get(challenge_id)
    if record is None:
        raise ChallengeNotFoundError()
    if len(pub_bytes) != 32:
        raise SignatureError(f"ed25519: bad public key length: {len(pub_bytes)}")
    try:
        VerifyKey(pub_bytes).verify(message.encode(), signed)
    except (CryptoError, ValueError):
        pass
    return record.wallet_address


def verify_chain_signature(
    request: AuthenticateRequest, eula: str, store: ChallengeStore
) -> str | None:
    """Check a request for its chain; return the wallet, or None if rejected."""
    chain = request.chain_name
    if chain in ("ethereum", "peaq"):
        return check_sign_ethereum(
            request.signature, request.challenge_id, eula + request.challenge_id, store
        )
    if chain == "aptos":
        message = f"APTOS\nmessage: {eula}\nnonce: {request.challenge_id}"
        return check_sign_aptos(
            request.signature, request.challenge_id, message, request.pub_key, store
        )
    if chain == "sui":
        return check_sign_sui(request.signature, request.challenge_id, store)
    if chain == "solana":
        return check_sign_solana(
            request.signature,
            request.challenge_id,
            eula + request.challenge_id,
            request.pub_key,
            store,
        )
    raise InvalidChainError(f"Invalid chain name, INFO : {_CHAIN_INFO}")