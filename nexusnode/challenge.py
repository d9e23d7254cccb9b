"""Login challenges and wallet address validation per blockchain."""

from __future__ import annotations

import re
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

_BASE58_RE = re.compile(r"[1-9A-HJ-NP-Za-km-z]+")
_HEX_RE = re.compile(r"[0-9a-fA-F]*")
_BIGINT_HEX_RE = re.compile(r"[+-]?[0-9a-fA-F]+")


class InvalidChainError(ValueError):
    """The blockchain name is not supported."""

    def __init__(self, message: str = "unsupported blockchain") -> None:
        super().__init__(message)


class InvalidAddressError(ValueError):
    """The wallet address is not valid for its blockchain."""

    def __init__(self, message: str = "invalid address format") -> None:
        super().__init__(message)


@dataclass(frozen=True)
class ChallengeRecord:
    """The wallet and chain a challenge was issued for."""

    wallet_address: str
    chain_name: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class ChallengeStore:
    """In-memory store of outstanding login challenges.

    Issuing a new challenge discards every earlier one, so only the most
    recent challenge can be answered.
    """

    def __init__(self) -> None:
        self._records: dict[str, ChallengeRecord] = {}
        self._lock = threading.Lock()

    def generate(self, wallet_address: str, chain_name: str) -> str:
        """Issue a new challenge id for a wallet and return it."""
        challenge_id = str(uuid.uuid4())
        record = ChallengeRecord(wallet_address=wallet_address, chain_name=chain_name)
        with self._lock:
            self._records = {challenge_id: record}
        return challenge_id

    def get(self, challenge_id: str) -> ChallengeRecord | None:
        """Return the record for a challenge id, or None if unknown."""
        with self._lock:
            return self._records.get(challenge_id)

    def remove(self, challenge_id: str) -> None:
        """Forget a challenge; unknown ids are ignored."""
        with self._lock:
            self._records.pop(challenge_id, None)


def _is_base58(text: str) -> bool:
    return _BASE58_RE.fullmatch(text) is not None


def _is_hex_bytes(text: str) -> bool:
    return len(text) % 2 == 0 and _HEX_RE.fullmatch(text) is not None


def validate_solana_address(address: str) -> bool:
    """Return True for a base58 string of 32 to 44 characters."""
    if not 32 <= len(address.encode()) <= 44:
        return False
    return _is_base58(address)


def validate_peaq_address(address: str) -> bool:
    """Return True for a 48-character base58 string starting with '5'."""
    if len(address.encode()) != 48 or not address.startswith("5"):
        return False
    return _is_base58(address)


def validate_aptos_address(address: str) -> bool:
    """Return True for '0x' followed by 64 hex digits."""
    if len(address.encode()) != 66 or not address.startswith("0x"):
        return False
    return _is_hex_bytes(address[2:])


def validate_sui_address(address: str) -> bool:
    """Return True for '0x' followed by 40 hex digits."""
    if len(address.encode()) != 42 or not address.startswith("0x"):
        return False
    return _is_hex_bytes(address[2:])


def validate_ethereum_address(address: str) -> bool:
    """Return True for '0x' followed by a 40-character hexadecimal number."""
    if len(address.encode()) != 42 or not address.startswith("0x"):
        return False
    return _BIGINT_HEX_RE.fullmatch(address[2:]) is not None


_VALIDATORS = {
    "ethereum": validate_ethereum_address,
    "solana": validate_solana_address,
    "eclipse": validate_solana_address,
    "peaq": validate_peaq_address,
    "aptos": validate_aptos_address,
    "sui": validate_sui_address,
}


def validate_address(chain: str, address: str) -> None:
    """Raise if the address is not valid for the named chain."""
    validator = _VALIDATORS.get(chain)
    if validator is None:
        raise InvalidChainError()
    if not validator(address):
        raise InvalidAddressError()