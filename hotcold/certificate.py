from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Any, Optional, Type, Union

from hotcold.exception import DeserializeException
from hotcold.hash import AnchorDataHash, ScriptHash, VerificationKeyHash
from hotcold.serialization import (
    ArrayCBORSerializable,
    CodedSerializable,
    limit_primitive_type,
)

__all__ = [
    "Anchor",
    "Certificate",
    "StakeCredential",
    "DRepCredential",
    "DRep",
    "DRepKind",
    "StakeRegistrationAndVoteDelegation",
    "RegDRepCert",
    "UnregDRepCertificate",
    "certificate_hook",
]


@dataclass(repr=False)
class Anchor(ArrayCBORSerializable):
    """A URL and the hash of the document found there.

    Votes and DRep registrations carry one to point at their off-chain rationale.
    """

    url: str

    data_hash: AnchorDataHash


@dataclass(repr=False)
class StakeCredential(ArrayCBORSerializable):
    """A key hash (code 0) or a script hash (code 1)."""

    _CODE: Optional[int] = field(init=False, default=None)

    credential: Union[VerificationKeyHash, ScriptHash]

    def __post_init__(self):
        self._CODE = int(isinstance(self.credential, ScriptHash))

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(
        cls: Type[StakeCredential], values: Union[list, tuple]
    ) -> StakeCredential:
        code, payload = values
        if code not in (0, 1):
            raise DeserializeException(f"Invalid {cls.__name__} type {code}")
        return cls(ScriptHash(payload) if code else VerificationKeyHash(payload))

    def __hash__(self):
        return hash(self.to_cbor())


@dataclass(repr=False)
class DRepCredential(StakeCredential):
    """Credential a DRep registers and retires under, encoded as a stake credential."""


@unique
class DRepKind(Enum):
    VERIFICATION_KEY_HASH = 0
    SCRIPT_HASH = 1
    ALWAYS_ABSTAIN = 2
    ALWAYS_NO_CONFIDENCE = 3


@dataclass(repr=False)
class DRep(ArrayCBORSerializable):
    """The target of a vote delegation."""

    kind: DRepKind

    credential: Optional[Union[VerificationKeyHash, ScriptHash]] = field(
        default=None, metadata={"optional": True}
    )

    @classmethod
    def script(cls: Type[DRep], credential: ScriptHash) -> DRep:
        return cls(DRepKind.SCRIPT_HASH, credential)

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(cls: Type[DRep], values: Union[list, tuple]) -> DRep:
        try:
            kind = DRepKind(values[0])
        except ValueError as e:
            raise DeserializeException(f"Invalid DRep type {values[0]}") from e

        credential_type = {
            DRepKind.VERIFICATION_KEY_HASH: VerificationKeyHash,
            DRepKind.SCRIPT_HASH: ScriptHash,
        }.get(kind)
        if credential_type is None:
            return cls(kind)
        return cls(kind, credential_type(values[1]))

    def to_shallow_primitive(self):
        if self.credential is None:
            return [self.kind.value]
        return [self.kind.value, self.credential]


@dataclass(repr=False)
class StakeRegistrationAndVoteDelegation(CodedSerializable):
    """Registers a stake credential and delegates its votes in one certificate."""

    _CODE: int = field(init=False, default=12)

    stake_credential: StakeCredential

    drep: DRep

    coin: int
    """Stake key deposit."""


@dataclass(repr=False)
class RegDRepCert(CodedSerializable):
    _CODE: int = field(init=False, default=16)

    drep_credential: DRepCredential

    coin: int
    """DRep deposit."""

    anchor: Optional[Anchor] = field(default=None)


@dataclass(repr=False)
class UnregDRepCertificate(CodedSerializable):
    _CODE: int = field(init=False, default=17)

    drep_credential: DRepCredential

    coin: int
    """Refunded DRep deposit. Must equal the deposit paid at registration."""


Certificate = Union[
    StakeRegistrationAndVoteDelegation,
    RegDRepCert,
    UnregDRepCertificate,
]

_CERTIFICATE_TYPES = {
    cls._CODE: cls
    for cls in (StakeRegistrationAndVoteDelegation, RegDRepCert, UnregDRepCertificate)
}


def certificate_hook(values: Any) -> Any:
    """Restore one certificate from its primitive.

    Certificate kinds this package never builds are kept as primitives, so a foreign
    transaction can still be read and written back unchanged.
    """
    cls = _CERTIFICATE_TYPES.get(values[0])
    if cls is None:
        return values
    return cls.from_primitive(values)
