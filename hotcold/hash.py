"""Fixed-size hashes used by the ledger types in this package."""

from typing import Type, TypeVar, Union

from nacl.encoding import RawEncoder
from nacl.hash import blake2b

from hotcold.exception import DecodingException
from hotcold.serialization import CBORSerializable, limit_primitive_type

__all__ = [
    "VERIFICATION_KEY_HASH_SIZE",
    "SCRIPT_HASH_SIZE",
    "SCRIPT_DATA_HASH_SIZE",
    "TRANSACTION_HASH_SIZE",
    "ANCHOR_DATA_HASH_SIZE",
    "ConstrainedBytes",
    "VerificationKeyHash",
    "ScriptHash",
    "ScriptDataHash",
    "TransactionId",
    "AnchorDataHash",
    "blake2b_224",
    "blake2b_256",
]

VERIFICATION_KEY_HASH_SIZE = 28
SCRIPT_HASH_SIZE = 28
SCRIPT_DATA_HASH_SIZE = 32
TRANSACTION_HASH_SIZE = 32
ANCHOR_DATA_HASH_SIZE = 32


def blake2b_224(data: bytes) -> bytes:
    return blake2b(data, 28, encoder=RawEncoder)


def blake2b_256(data: bytes) -> bytes:
    return blake2b(data, 32, encoder=RawEncoder)


T = TypeVar("T", bound="ConstrainedBytes")


class ConstrainedBytes(CBORSerializable):
    """Bytes whose length must fall within ``[MIN_SIZE, MAX_SIZE]``.

    Args:
        payload (bytes): The raw bytes.

    Raises:
        ValueError: When ``payload`` has a length out of range.
    """

    __slots__ = "_payload"

    MAX_SIZE = 32
    MIN_SIZE = 0

    def __init__(self, payload: bytes):
        if not self.MIN_SIZE <= len(payload) <= self.MAX_SIZE:
            raise ValueError(
                f"{self.__class__.__name__} takes {self.MIN_SIZE} to {self.MAX_SIZE} "
                f"bytes, got {len(payload)}"
            )
        self._payload = payload

    @property
    def payload(self) -> bytes:
        return self._payload

    def __bytes__(self):
        return self._payload

    def __hash__(self):
        return hash(self._payload)

    def __eq__(self, other):
        return isinstance(other, ConstrainedBytes) and self._payload == other.payload

    def __lt__(self, other):
        return self._payload < other.payload

    def __repr__(self):
        return f"{self.__class__.__name__}(hex='{self._payload.hex()}')"

    def __str__(self):
        return self._payload.hex()

    def to_primitive(self) -> bytes:
        return self._payload

    @classmethod
    @limit_primitive_type(bytes, str)
    def from_primitive(cls: Type[T], value: Union[bytes, str]) -> T:
        return cls(bytes.fromhex(value) if isinstance(value, str) else value)

    @classmethod
    def from_hex(cls: Type[T], value: str, name: str = "value") -> T:
        """Parse a hex string, naming the offending input when it is malformed.

        Raises:
            DecodingException: When ``value`` is not hex or has the wrong length.
        """
        try:
            payload = bytes.fromhex(value)
        except ValueError as e:
            raise DecodingException(f"{name}: malformed hex string {value!r}") from e
        try:
            return cls(payload)
        except ValueError as e:
            raise DecodingException(f"{name}: {e}") from e


class VerificationKeyHash(ConstrainedBytes):
    """Hash of an ed25519 verification key. Identifies delegates and administrators."""

    MAX_SIZE = MIN_SIZE = VERIFICATION_KEY_HASH_SIZE


class ScriptHash(ConstrainedBytes):
    """Hash of a script. Doubles as the minting policy id of that script."""

    MAX_SIZE = MIN_SIZE = SCRIPT_HASH_SIZE


class ScriptDataHash(ConstrainedBytes):
    """Script integrity hash committing to redeemers, datums and cost models."""

    MAX_SIZE = MIN_SIZE = SCRIPT_DATA_HASH_SIZE


class TransactionId(ConstrainedBytes):
    MAX_SIZE = MIN_SIZE = TRANSACTION_HASH_SIZE


class AnchorDataHash(ConstrainedBytes):
    """Hash of the document an anchor points to."""

    MAX_SIZE = MIN_SIZE = ANCHOR_DATA_HASH_SIZE
