"""Definitions of transaction-related data types."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, Type, Union

from cbor2 import CBORTag
from pprintpp import pformat

from hotcold.address import Address
from hotcold.certificate import Certificate, certificate_hook
from hotcold.exception import (
    DecodingException,
    InvalidArgumentException,
    InvalidDataException,
)
from hotcold.governance import VotingProcedures
from hotcold.hash import (
    ConstrainedBytes,
    ScriptDataHash,
    ScriptHash,
    TransactionId,
    VerificationKeyHash,
    blake2b_256,
)
from hotcold.network import Network
from hotcold.serialization import (
    ArrayCBORSerializable,
    CBORSerializable,
    DictCBORSerializable,
    MapCBORSerializable,
    NonEmptyOrderedSet,
    OrderedSet,
    Primitive,
    limit_primitive_type,
    list_hook,
)
from hotcold.types import typechecked
from hotcold.witness import TransactionWitnessSet

__all__ = [
    "MAX_INT64",
    "MIN_INT64",
    "TransactionInput",
    "AssetName",
    "Asset",
    "MultiAsset",
    "Value",
    "TransactionOutput",
    "UTxO",
    "TransactionBody",
    "Transaction",
]

MAX_INT64 = (1 << 63) - 1
MIN_INT64 = -(1 << 63)


@dataclass(repr=False, order=True)
class TransactionInput(ArrayCBORSerializable):
    """A reference to a transaction output.

    Inputs order by transaction id bytes, then by index, which is the order the
    ledger uses to number spend redeemers.
    """

    transaction_id: TransactionId

    index: int

    @classmethod
    def from_str(
        cls: Type[TransactionInput], value: str, name: str = "input"
    ) -> TransactionInput:
        """Parse ``<transaction id>#<index>``.

        Raises:
            InvalidArgumentException: When ``value`` has no ``#`` separator.
            DecodingException: When the id is not 32 bytes of hex or the index is not
                a non-negative integer.
        """
        tx_hex, sep, index = value.partition("#")
        if not sep:
            raise InvalidArgumentException(
                f"{name}: malformed output reference {value!r}, expected <txid>#<index>"
            )
        transaction_id = TransactionId.from_hex(tx_hex, name)
        try:
            output_index = int(index)
        except ValueError as e:
            raise DecodingException(f"{name}: invalid output index {index!r}") from e
        if output_index < 0:
            raise DecodingException(f"{name}: negative output index {output_index}")
        return cls(transaction_id, output_index)

    def __hash__(self):
        return hash(str(self.transaction_id) + str(self.index))

    def __repr__(self):
        return f"{self.transaction_id}#{self.index}"


class AssetName(ConstrainedBytes):
    MAX_SIZE = 32

    def __repr__(self):
        return f"AssetName({self.payload})"


@typechecked
class Asset(DictCBORSerializable):
    """Quantities of the assets under one policy, keyed by name.

    Zero quantities are never written, and are dropped when read.
    """

    KEY_TYPE = AssetName

    VALUE_TYPE = int

    def normalize(self) -> Asset:
        for name in [name for name, quantity in self.items() if quantity == 0]:
            del self[name]
        return self

    @classmethod
    @limit_primitive_type(dict)
    def from_primitive(cls: Type[Asset], value: dict) -> Asset:
        return super().from_primitive(value).normalize()

    def to_shallow_primitive(self) -> dict:
        return DictCBORSerializable.to_shallow_primitive(self.copy().normalize())


@typechecked
class MultiAsset(DictCBORSerializable):
    """Assets keyed by policy id. Policies left without assets are dropped."""

    KEY_TYPE = ScriptHash

    VALUE_TYPE = Asset

    def normalize(self) -> MultiAsset:
        for policy_id in list(self):
            if not self[policy_id].normalize():
                del self[policy_id]
        return self

    def count(self, criteria: Callable[[ScriptHash, AssetName, int], bool]) -> int:
        """Number of assets for which ``criteria(policy_id, name, quantity)`` holds."""
        return sum(
            1
            for policy_id, asset in self.items()
            for name, quantity in asset.items()
            if criteria(policy_id, name, quantity)
        )

    @classmethod
    @limit_primitive_type(dict)
    def from_primitive(cls: Type[MultiAsset], value: dict) -> MultiAsset:
        return super().from_primitive(value).normalize()

    def to_shallow_primitive(self) -> dict:
        return DictCBORSerializable.to_shallow_primitive(deepcopy(self).normalize())


@typechecked
@dataclass(repr=False)
class Value(ArrayCBORSerializable):
    coin: int = 0
    """Amount of lovelace"""

    multi_asset: MultiAsset = field(default_factory=MultiAsset)

    def __eq__(self, other):
        if not isinstance(other, (Value, int)):
            return False
        if isinstance(other, int):
            other = Value(other)
        return self.coin == other.coin and self.multi_asset == other.multi_asset

    def to_shallow_primitive(self):
        if self.multi_asset:
            return super().to_shallow_primitive()
        else:
            return self.coin


@dataclass(repr=False)
class _MapOutput(MapCBORSerializable):
    address: Address = field(metadata={"key": 0})

    amount: Union[int, Value] = field(metadata={"key": 1})

    datum: Any = field(default=None, metadata={"key": 2, "optional": True})

    script_ref: Any = field(default=None, metadata={"key": 3, "optional": True})


@dataclass(repr=False)
class _ArrayOutput(ArrayCBORSerializable):
    address: Address

    amount: Union[int, Value]

    datum_hash: Optional[bytes] = field(default=None, metadata={"optional": True})


@dataclass(repr=False)
class TransactionOutput(CBORSerializable):
    """A transaction output.

    Outputs built here use the map format. Outputs read from chain keep the format
    they were written in, and their datum options and script references stay as
    primitives.
    """

    address: Address

    amount: Value

    datum: Any = None

    script_ref: Any = None

    datum_hash: Optional[bytes] = None

    post_alonzo: bool = True

    def __post_init__(self):
        if isinstance(self.amount, int):
            self.amount = Value(self.amount)

    def validate(self):
        super().validate()
        negative = self.amount.multi_asset.count(lambda policy_id, name, q: q < 0)
        if self.amount.coin < 0 or negative:
            raise InvalidDataException(
                f"Output to {self.address} holds a negative quantity: {self.amount}"
            )

    @property
    def lovelace(self) -> int:
        return self.amount.coin

    def to_primitive(self) -> Primitive:
        if self.post_alonzo:
            return _MapOutput(
                self.address, self.amount, self.datum, self.script_ref
            ).to_primitive()
        return _ArrayOutput(self.address, self.amount, self.datum_hash).to_primitive()

    @classmethod
    def from_primitive(
        cls: Type[TransactionOutput],
        value: Primitive,
        type_args: Optional[tuple] = None,
    ) -> TransactionOutput:
        if isinstance(value, list):
            array = _ArrayOutput.from_primitive(value)
            return cls(
                array.address,
                array.amount,
                datum_hash=array.datum_hash,
                post_alonzo=False,
            )
        output = _MapOutput.from_primitive(value)
        return cls(
            output.address,
            output.amount,
            datum=output.datum,
            script_ref=output.script_ref,
        )


@dataclass(repr=False)
class UTxO(ArrayCBORSerializable):
    """An output together with the reference that spends it."""

    input: TransactionInput

    output: TransactionOutput

    def __repr__(self):
        return pformat(vars(self))

    def __hash__(self):
        return hash(self.input)


def _certificates_hook(value: Primitive) -> NonEmptyOrderedSet[Certificate]:
    if isinstance(value, CBORTag) and value.tag == 258:
        return NonEmptyOrderedSet([certificate_hook(v) for v in value.value])
    return NonEmptyOrderedSet([certificate_hook(v) for v in value], use_tag=False)


@dataclass(repr=False)
class TransactionBody(MapCBORSerializable):
    """Conway transaction body.

    Entries this package never writes (withdrawals, proposals, treasury fields and
    the like) are kept as primitives so that a body read from chain re-encodes
    unchanged.
    """

    inputs: Union[List[TransactionInput], OrderedSet[TransactionInput]] = field(
        default_factory=OrderedSet,
        metadata={"key": 0},
    )

    outputs: List[TransactionOutput] = field(
        default_factory=list,
        metadata={"key": 1, "object_hook": list_hook(TransactionOutput)},
    )

    fee: int = field(default=0, metadata={"key": 2})

    ttl: Optional[int] = field(default=None, metadata={"key": 3, "optional": True})

    certificates: Optional[NonEmptyOrderedSet[Certificate]] = field(
        default=None,
        metadata={"key": 4, "optional": True, "object_hook": _certificates_hook},
    )

    withdraws: Any = field(default=None, metadata={"key": 5, "optional": True})

    update: Any = field(default=None, metadata={"key": 6, "optional": True})

    auxiliary_data_hash: Any = field(
        default=None, metadata={"key": 7, "optional": True}
    )

    validity_start: Optional[int] = field(
        default=None, metadata={"key": 8, "optional": True}
    )

    mint: Optional[MultiAsset] = field(
        default=None, metadata={"key": 9, "optional": True}
    )

    script_data_hash: Optional[ScriptDataHash] = field(
        default=None, metadata={"key": 11, "optional": True}
    )

    collateral: Optional[
        Union[List[TransactionInput], NonEmptyOrderedSet[TransactionInput]]
    ] = field(default=None, metadata={"key": 13, "optional": True})

    required_signers: Optional[
        Union[List[VerificationKeyHash], NonEmptyOrderedSet[VerificationKeyHash]]
    ] = field(default=None, metadata={"key": 14, "optional": True})

    network_id: Optional[Network] = field(
        default=None, metadata={"key": 15, "optional": True}
    )

    collateral_return: Optional[TransactionOutput] = field(
        default=None, metadata={"key": 16, "optional": True}
    )

    total_collateral: Optional[int] = field(
        default=None, metadata={"key": 17, "optional": True}
    )

    reference_inputs: Optional[
        Union[List[TransactionInput], NonEmptyOrderedSet[TransactionInput]]
    ] = field(default=None, metadata={"key": 18, "optional": True})

    voting_procedures: Optional[VotingProcedures] = field(
        default=None, metadata={"key": 19, "optional": True}
    )

    proposal_procedures: Any = field(
        default=None, metadata={"key": 20, "optional": True}
    )

    current_treasury_value: Optional[int] = field(
        default=None, metadata={"key": 21, "optional": True}
    )

    donation: Optional[int] = field(
        default=None, metadata={"key": 22, "optional": True}
    )

    def validate(self):
        out_of_range = self.mint is not None and self.mint.count(
            lambda policy_id, name, quantity: not MIN_INT64 <= quantity <= MAX_INT64
        )
        if out_of_range:
            raise InvalidDataException(
                f"Mint quantities must fit a signed 64-bit integer: {self.mint}"
            )

    def hash(self) -> bytes:
        return blake2b_256(self.to_cbor())

    @property
    def id(self) -> TransactionId:
        return TransactionId(self.hash())


@dataclass(repr=False)
class Transaction(ArrayCBORSerializable):
    transaction_body: TransactionBody

    transaction_witness_set: TransactionWitnessSet

    valid: Optional[bool] = field(default=True, metadata={"optional": True})

    auxiliary_data: Any = None

    @property
    def json_type(self) -> str:
        return (
            "Unwitnessed Tx ConwayEra"
            if self.transaction_witness_set.vkey_witnesses is None
            else "Signed Tx ConwayEra"
        )

    @property
    def json_description(self) -> str:
        return "Ledger Cddl Format"

    @property
    def id(self) -> TransactionId:
        return self.transaction_body.id
