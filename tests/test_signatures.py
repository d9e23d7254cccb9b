import base64
import hashlib

import pytest
from Crypto.Hash import keccak
from nacl.signing import SigningKey

from nexusnode.challenge import ChallengeStore, InvalidChainError
from nexusnode.signatures import (
    AuthenticatePayload,
    AuthenticateRequest,
    ChallengeNotFoundError,
    SignatureError,
    base58_decode,
    check_sign_aptos,
    check_sign_ethereum,
    check_sign_solana,
    check_sign_sui,
    error_payload,
    recover_ethereum_address,
    verify_chain_signature,
)

P = 2**256 - 2**32 - 977
N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
G = (
    0x79BE667EF9DCBBAC55A06295CE870B07029BFCDB2DCE28D959F2815B16F81798,
    0x483ADA7726A3C4655DA4FBFC0E1108A8FD17B448A68554199C47D08FFB10D4B8,
)
# Address of the secp256k1 private key 1.
KEY_ONE_ADDRESS = "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"


def _add(a, b):
    if a is None:
        return b
    if b is None:
        return a
    if a[0] == b[0] and (a[1] + b[1]) % P == 0:
        return None
    if a == b:
        lam = 3 * a[0] * a[0] * pow(2 * a[1], -1, P)
    else:
        lam = (b[1] - a[1]) * pow(b[0] - a[0], -1, P)
    lam %= P
    x = (lam * lam - a[0] - b[0]) % P
    return (x, (lam * (a[0] - x) - a[1]) % P)


def _mul(k, point):
    result, addend = None, point
    while k:
        if k & 1:
            result = _add(result, addend)
        addend = _add(addend, addend)
        k >>= 1
    return result


def _sign(digest, private, nonce):
    point = _mul(nonce, G)
    r = point[0] % N
    s = pow(nonce, -1, N) * (int.from_bytes(digest, "big") + r * private) % N
    return r.to_bytes(32, "big") + s.to_bytes(32, "big") + bytes([point[1] & 1])


def _personal_hash(message):
    data = message.encode()
    prefixed = b"\x19Ethereum Signed Message:\n" + str(len(data)).encode() + data
    return keccak.new(digest_bits=256, data=prefixed).digest()


def _eth_signature(message, nonce=123456789, offset=27):
    raw = bytearray(_sign(_personal_hash(message), 1, nonce))
    raw[64] += offset
    return "0x" + bytes(raw).hex()


SIGNING_KEY = SigningKey(bytes(range(32)))
PUBLIC_BYTES = bytes(SIGNING_KEY.verify_key)
APTOS_ADDRESS = "0x" + hashlib.sha3_256(PUBLIC_BYTES + b"\x00").hexdigest()
SUI_ADDRESS = "0x" + hashlib.blake2b(b"\x00" + PUBLIC_BYTES, digest_size=32).hexdigest()


def test_error_payload():
    payload = error_payload("Forbidden")
    assert payload == AuthenticatePayload(status=401, success=False, message="Forbidden")
    assert payload.to_dict() == {
        "status": 401,
        "success": False,
        "message": "Forbidden",
        "token": "",
    }


def test_base58_decode_known_values():
    assert base58_decode("StV1DL6CwTryKyV") == b"hello world"
    assert base58_decode("11") == b"\x00\x00"
    assert base58_decode("1" * 32) == bytes(32)


@pytest.mark.parametrize("text", ["", "0OIl", "abc0"])
def test_base58_decode_rejects(text):
    with pytest.raises(ValueError):
        base58_decode(text)


def test_recover_key_one_address():
    digest = _personal_hash("hello")
    assert recover_ethereum_address(digest, _sign(digest, 1, 987654321)) == KEY_ONE_ADDRESS


def test_recover_is_independent_of_nonce():
    digest = _personal_hash("nonce check")
    first = recover_ethereum_address(digest, _sign(digest, 7, 1111))
    second = recover_ethereum_address(digest, _sign(digest, 7, 2222))
    assert first == second


def test_recover_rejects_zero_r():
    with pytest.raises(SignatureError):
        recover_ethereum_address(bytes(32), bytes(64) + b"\x00")


def test_recover_rejects_bad_length():
    with pytest.raises(SignatureError):
        recover_ethereum_address(bytes(32), bytes(64))


def test_check_sign_ethereum_success():
    store = ChallengeStore()
    stored = KEY_ONE_ADDRESS.lower()
    cid = store.generate(stored, "ethereum")
    message = "terms" + cid
    assert check_sign_ethereum(_eth_signature(message), cid, message, store) == stored
    assert check_sign_ethereum(_eth_signature(message, offset=0), cid, message, store) == stored


def test_check_sign_ethereum_mismatch():
    store = ChallengeStore()
    cid = store.generate("0x" + "00" * 20, "ethereum")
    with pytest.raises(SignatureError, match="mismatch wallet_address"):
        check_sign_ethereum(_eth_signature("msg"), cid, "msg", store)


def test_check_sign_ethereum_unknown_challenge():
    with pytest.raises(ChallengeNotFoundError):
        check_sign_ethereum(_eth_signature("msg"), "missing", "msg", ChallengeStore())


@pytest.mark.parametrize("signature", ["abcd", "0x" + "00" * 64, "0xabc"])
def test_check_sign_ethereum_bad_signature(signature):
    store = ChallengeStore()
    cid = store.generate(KEY_ONE_ADDRESS, "ethereum")
    with pytest.raises(SignatureError):
        check_sign_ethereum(signature, cid, "msg", store)


def _aptos_signature(message):
    return "0x" + SIGNING_KEY.sign(message.encode()).signature.hex()


def test_check_sign_aptos_success():
    store = ChallengeStore()
    stored = APTOS_ADDRESS.upper().replace("0X", "0x")
    cid = store.generate(stored, "aptos")
    result = check_sign_aptos(
        _aptos_signature("hi"), cid, "hi", "0x" + PUBLIC_BYTES.hex(), store
    )
    assert result == stored


def test_check_sign_aptos_wrong_message():
    store = ChallengeStore()
    cid = store.generate(APTOS_ADDRESS, "aptos")
    result = check_sign_aptos(
        _aptos_signature("other"), cid, "hi", "0x" + PUBLIC_BYTES.hex(), store
    )
    assert result is None


def test_check_sign_aptos_wrong_address():
    store = ChallengeStore()
    cid = store.generate("0x" + "0" * 64, "aptos")
    result = check_sign_aptos(
        _aptos_signature("hi"), cid, "hi", "0x" + PUBLIC_BYTES.hex(), store
    )
    assert result is None


def test_check_sign_aptos_unknown_challenge():
    with pytest.raises(ChallengeNotFoundError):
        check_sign_aptos(
            _aptos_signature("hi"), "missing", "hi", "0x" + PUBLIC_BYTES.hex(), ChallengeStore()
        )


def test_check_sign_aptos_bad_hex():
    with pytest.raises(SignatureError):
        check_sign_aptos("zz", "missing", "hi", "0x00", ChallengeStore())


def _sui_signature():
    signature = SIGNING_KEY.sign(b"payload").signature
    return base64.b64encode(b"\x00" + signature + PUBLIC_BYTES).decode()


def test_check_sign_sui_success():
    store = ChallengeStore()
    cid = store.generate(SUI_ADDRESS, "sui")
    assert check_sign_sui(_sui_signature(), cid, store) == SUI_ADDRESS


def test_check_sign_sui_wrong_address():
    store = ChallengeStore()
    cid = store.generate("0x" + "1" * 64, "sui")
    assert check_sign_sui(_sui_signature(), cid, store) is None


def test_check_sign_sui_errors():
    store = ChallengeStore()
    with pytest.raises(SignatureError):
        check_sign_sui("not base64!", "missing", store)
    with pytest.raises(SignatureError):
        check_sign_sui(base64.b64encode(b"short").decode(), "missing", store)
    with pytest.raises(ChallengeNotFoundError):
        check_sign_sui(_sui_signature(), "missing", store)


def test_check_sign_solana_returns_wallet():
    store = ChallengeStore()
    cid = store.generate("1" * 32, "solana")
    assert check_sign_solana("ab" * 64, cid, "msg", "1" * 32, store) == "1" * 32


def test_check_sign_solana_errors():
    store = ChallengeStore()
    cid = store.generate("1" * 32, "solana")
    with pytest.raises(SignatureError):
        check_sign_solana("ab" * 64, cid, "msg", "0" * 32, store)
    with pytest.raises(SignatureError):
        check_sign_solana("xyz", cid, "msg", "1" * 32, store)
    with pytest.raises(SignatureError):
        check_sign_solana("ab" * 64, cid, "msg", "1" * 31, store)
    with pytest.raises(ChallengeNotFoundError):
        check_sign_solana("ab" * 64, "missing", "msg", "1" * 32, store)


@pytest.mark.parametrize("chain", ["ethereum", "peaq"])
def test_verify_chain_signature_ethereum_family(chain):
    store = ChallengeStore()
    cid = store.generate(KEY_ONE_ADDRESS, chain)
    request = AuthenticateRequest(
        challenge_id=cid, signature=_eth_signature("EULA " + cid), chain_name=chain
    )
    assert verify_chain_signature(request, "EULA ", store) == KEY_ONE_ADDRESS


def test_verify_chain_signature_aptos_message_format():
    store = ChallengeStore()
    cid = store.generate(APTOS_ADDRESS, "aptos")
    message = f"APTOS\nmessage: EULA\nnonce: {cid}"
    request = AuthenticateRequest(
        challenge_id=cid,
        signature=_aptos_signature(message),
        chain_name="aptos",
        pub_key="0x" + PUBLIC_BYTES.hex(),
    )
    assert verify_chain_signature(request, "EULA", store) == APTOS_ADDRESS


def test_verify_chain_signature_sui():
    store = ChallengeStore()
    cid = store.generate(SUI_ADDRESS, "sui")
    request = AuthenticateRequest(challenge_id=cid, signature=_sui_signature(), chain_name="sui")
    assert verify_chain_signature(request, "EULA", store) == SUI_ADDRESS


@pytest.mark.parametrize("chain", ["eclipse", "bitcoin", ""])
def test_verify_chain_signature_rejects_chain(chain):
    request = AuthenticateRequest(challenge_id="x", signature="y", chain_name=chain)
    with pytest.raises(InvalidChainError, match="Invalid chain name"):
        verify_chain_signature(request, "EULA", ChallengeStore())