"""Shelley addresses handled at the byte level.

Layout reference:
    - CIP-0019: https://github.com/cardano-foundation/CIPs/tree/master/CIP-0019

Only the binary form is needed here: addresses arrive inside CBOR outputs and
leave inside CBOR outputs. Byron addresses are carried through unchanged.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional, Type, Union

from hotcold.exception import DeserializeException, InvalidArgumentException
from hotcold.hash import VERIFICATION_KEY_HASH_SIZE, ScriptHash, VerificationKeyHash
from hotcold.network import Network
from hotcold.serialization import CBORSerializable, limit_primitive_type

__all__ = ["AddressType", "Address"]


class AddressType(Enum):
    """
    Address type, the high nibble of the header byte.
    """

    KEY_KEY = 0b0000
    SCRIPT_KEY = 0b0001
    KEY_SCRIPT = 0b0010
    SCRIPT_SCRIPT = 0b0011
    KEY_POINTER = 0b0100
    SCRIPT_POINTER = 0b0101
    KEY_NONE = 0b0110
    SCRIPT_NONE = 0b0111
    BYRON = 0b1000
    NONE_KEY = 0b1110
    NONE_SCRIPT = 0b1111


Credential = Union[VerificationKeyHash, ScriptHash]


def _kind_of(part: Union[Credential, bytes, None]) -> Optional[str]:
    if isinstance(part, VerificationKeyHash):
        return "key"
    if isinstance(part, ScriptHash):
        return "script"
    if isinstance(part, bytes):
        return "pointer"
    return None


def _part(kind: Optional[str], payload: bytes) -> Union[Credential, bytes, None]:
    if kind == "key":
        return VerificationKeyHash(payload)
    if kind == "script":
        return ScriptHash(payload)
    if kind == "pointer":
        return payload
    return None


# (payment kind, staking kind) -> address type
_ADDRESS_TYPES = {
    ("key", "key"): AddressType.KEY_KEY,
    ("script", "key"): AddressType.SCRIPT_KEY,
    ("key", "script"): AddressType.KEY_SCRIPT,
    ("script", "script"): AddressType.SCRIPT_SCRIPT,
    ("key", "pointer"): AddressType.KEY_POINTER,
    ("script", "pointer"): AddressType.SCRIPT_POINTER,
    ("key", None): AddressType.KEY_NONE,
    ("script", None): AddressType.SCRIPT_NONE,
    (None, "key"): AddressType.NONE_KEY,
    (None, "script"): AddressType.NONE_SCRIPT,
}


class Address(CBORSerializable):
    """A shelley address made of a payment part and an optional staking part.

    Pointer staking parts are kept as their raw variable-length encoding.

    Args:
        payment_part: Key or script hash that controls spending.
        staking_part: Key hash, script hash or pointer bytes that control delegation.
        network (Network): Network the address belongs to.
    """

    def __init__(
        self,
        payment_part: Optional[Credential] = None,
        staking_part: Union[Credential, bytes, None] = None,
        network: Network = Network.MAINNET,
    ):
        self._payment_part = payment_part
        self._staking_part = staking_part
        self._network = network
        self._byron: Optional[bytes] = None
        self._address_type = self._infer_address_type()

    @classmethod
    def _from_byron(cls, value: bytes) -> Address:
        address = cls.__new__(cls)
        address._payment_part = None
        address._staking_part = None
        address._network = Network.MAINNET
        address._byron = value
        address._address_type = AddressType.BYRON
        return address

    def _infer_address_type(self) -> AddressType:
        kinds = (_kind_of(self.payment_part), _kind_of(self.staking_part))
        if kinds not in _ADDRESS_TYPES:
            raise InvalidArgumentException(
                f"Cannot construct a shelley address from a combination of "
                f"payment part: {self.payment_part} and stake part: {self.staking_part}"
            )
        return _ADDRESS_TYPES[kinds]

    @property
    def payment_part(self) -> Optional[Credential]:
        return self._payment_part

    @property
    def staking_part(self) -> Union[Credential, bytes, None]:
        return self._staking_part

    @property
    def network(self) -> Network:
        return self._network

    @property
    def address_type(self) -> AddressType:
        return self._address_type

    @property
    def header_byte(self) -> bytes:
        return (self.address_type.value << 4 | self.network.value).to_bytes(
            1, byteorder="big"
        )

    def __bytes__(self):
        if self._byron is not None:
            return self._byron
        payment = bytes(self.payment_part) if self.payment_part else b""
        staking = bytes(self.staking_part) if self.staking_part else b""
        return self.header_byte + payment + staking

    def to_primitive(self) -> bytes:
        return bytes(self)

    @classmethod
    @limit_primitive_type(bytes)
    def from_primitive(cls: Type[Address], value: bytes) -> Address:
        if not value:
            raise DeserializeException("Empty address bytes")

        header = value[0]
        try:
            addr_type = AddressType((header & 0xF0) >> 4)
        except ValueError as e:
            raise DeserializeException(f"Unknown address header {header:#04x}") from e

        if addr_type == AddressType.BYRON:
            return cls._from_byron(value)

        try:
            network = Network(header & 0x0F)
        except ValueError as e:
            raise DeserializeException(f"Unknown network {header:#04x}") from e
        payment_kind, staking_kind = next(
            kinds for kinds, t in _ADDRESS_TYPES.items() if t == addr_type
        )
        payload = value[1:]
        if payment_kind is None:
            return cls(None, _part(staking_kind, payload), network)
        return cls(
            _part(payment_kind, payload[:VERIFICATION_KEY_HASH_SIZE]),
            _part(staking_kind, payload[VERIFICATION_KEY_HASH_SIZE:]),
            network,
        )

    def __eq__(self, other):
        if not isinstance(other, Address):
            return False
        return bytes(self) == bytes(other)

    def __hash__(self):
        return hash(bytes(self))

    def __repr__(self):
        return bytes(self).hex()
