"""Plutus data, redeemers and scripts."""

from __future__ import annotations

import inspect
import typing
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, List, Optional, Type, Union

from cbor2 import CBORTag
from typeguard import typechecked

from hotcold.exception import DeserializeException, InvalidArgumentException
from hotcold.hash import ScriptHash, blake2b_224
from hotcold.serialization import (
    ArrayCBORSerializable,
    CBORSerializable,
    DictCBORSerializable,
    IndefiniteList,
    Primitive,
    limit_primitive_type,
)

__all__ = [
    "Language",
    "PlutusData",
    "RawPlutusData",
    "Datum",
    "RedeemerTag",
    "ExecutionUnits",
    "RedeemerKey",
    "RedeemerValue",
    "RedeemerMap",
    "PlutusScript",
    "PlutusV3Script",
    "script_hash",
    "get_tag",
    "get_constructor_id_and_fields",
    "Unit",
]


class Language(Enum):
    """Plutus language versions, valued by their ledger language id."""

    PLUTUS_V1 = 0
    PLUTUS_V2 = 1
    PLUTUS_V3 = 2

    @property
    def cost_model_name(self) -> str:
        """Name of the cost model in protocol parameters, e.g. ``PlutusV3``."""
        return f"PlutusV{self.value + 1}"

    @classmethod
    def from_cost_model_name(cls, name: str) -> Language:
        for language in cls:
            if language.cost_model_name == name:
                return language
        raise InvalidArgumentException(f"Unknown Plutus language: {name}")


def get_tag(constr_id: int) -> Optional[int]:
    """CBOR tag of a constructor term, ``None`` when it needs the general form (102)."""
    if 0 <= constr_id < 7:
        return 121 + constr_id
    if 7 <= constr_id < 128:
        return 1280 + constr_id - 7
    return None


def get_constructor_id_and_fields(
    raw_tag: CBORTag,
) -> typing.Tuple[int, typing.List[Any]]:
    """Split a tagged constructor term into its constructor index and fields.

    Raises:
        DeserializeException: When the tag does not denote a constructor.
    """
    tag, value = raw_tag.tag, raw_tag.value
    if tag == 102:
        if len(value) != 2:
            raise DeserializeException(
                f"Expect the length of value to be exactly 2, got {len(value)} instead."
            )
        return value[0], value[1]
    if 121 <= tag < 128:
        return tag - 121, value
    if 1280 <= tag < 1401:
        return tag - 1280 + 7, value
    raise DeserializeException(f"Unexpected tag for Plutus data: {tag}")


_FIELD_TYPES = (dict, int, bytes, IndefiniteList)


@dataclass(repr=False)
class PlutusData(ArrayCBORSerializable):
    """
    A constructor term of Plutus data.

    Subclasses set ``CONSTR_ID`` and declare their fields in order. A non-empty field
    list is written as an indefinite array, which is how Plutus itself serialises data.

    Examples:

        >>> @dataclass
        ... class Signature(PlutusData):
        ...     CONSTR_ID = 0
        ...     key_hash: bytes
        >>> Signature(b"\\x01").to_cbor_hex()
        'd8799f4101ff'
    """

    CONSTR_ID: typing.ClassVar[int] = 0

    MAX_BYTES_SIZE: typing.ClassVar[int] = 64

    def __post_init__(self):
        for f in fields(self):
            if inspect.isclass(f.type) and not issubclass(
                f.type, _FIELD_TYPES + (PlutusData, RawPlutusData)
            ):
                raise TypeError(f"Invalid field type for Plutus data: {f.type}")
            value = getattr(self, f.name)
            if isinstance(value, bytes) and len(value) > self.MAX_BYTES_SIZE:
                raise InvalidArgumentException(
                    f"{f.name}: {len(value)} bytes exceed {self.MAX_BYTES_SIZE}"
                )

    def to_shallow_primitive(self) -> CBORTag:
        values: Primitive = super().to_shallow_primitive()
        if values:
            values = IndefiniteList(values)
        tag = get_tag(self.CONSTR_ID)
        if tag is None:
            return CBORTag(102, [self.CONSTR_ID, values])
        return CBORTag(tag, values)

    @classmethod
    @limit_primitive_type(CBORTag)
    def from_primitive(cls: Type[PlutusData], value: CBORTag) -> PlutusData:
        constr, values = get_constructor_id_and_fields(value)
        if constr != cls.CONSTR_ID:
            raise DeserializeException(
                f"{cls.__name__} has constructor {cls.CONSTR_ID}, got {constr}"
            )
        if len(values) != len(fields(cls)):
            raise DeserializeException(
                f"{cls.__name__} has {len(fields(cls))} fields, got {len(values)}"
            )
        return super(PlutusData, cls).from_primitive(values)


@dataclass(repr=True)
class RawPlutusData(CBORSerializable):
    """Plutus data kept as decoded CBOR primitives.

    Indefinite arrays decode to :class:`IndefiniteFrozenList`, so writing the value back
    produces the bytes it was read from.
    """

    data: RawDatum

    def to_primitive(self) -> Primitive:
        return self.data

    @classmethod
    @limit_primitive_type(dict, int, bytes, list, IndefiniteList, CBORTag)
    def from_primitive(cls: Type[RawPlutusData], value: RawDatum) -> RawPlutusData:
        return cls(value)


RawDatum = Union[dict, int, bytes, list, IndefiniteList, CBORTag]

Datum = Union[PlutusData, RawPlutusData, dict, int, bytes, IndefiniteList]
"""Any value that may be attached to a redeemer."""


class RedeemerTag(CBORSerializable, Enum):
    """
    Purpose of a redeemer: which part of the transaction the script validates.
    """

    SPEND = 0
    MINT = 1
    CERTIFICATE = 2
    WITHDRAWAL = 3
    VOTING = 4
    PROPOSING = 5

    def to_primitive(self) -> int:
        return self.value

    @classmethod
    @limit_primitive_type(int)
    def from_primitive(cls: Type[RedeemerTag], value: int) -> RedeemerTag:
        return cls(value)


@dataclass(repr=False)
class ExecutionUnits(ArrayCBORSerializable):
    mem: int

    steps: int

    def __add__(self, other: ExecutionUnits) -> ExecutionUnits:
        if not isinstance(other, ExecutionUnits):
            raise TypeError(
                f"Expect type: {ExecutionUnits}, got {type(other)} instead."
            )
        return ExecutionUnits(self.mem + other.mem, self.steps + other.steps)

    def is_empty(self) -> bool:
        return self.mem == 0 and self.steps == 0


@dataclass(repr=False)
class RedeemerKey(ArrayCBORSerializable):
    tag: RedeemerTag

    index: int = field(default=0)

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(cls: Type[RedeemerKey], values: list) -> RedeemerKey:
        return cls(RedeemerTag.from_primitive(values[0]), values[1])

    @property
    def purpose(self) -> str:
        """Key used by script evaluators, e.g. ``spend:0`` or ``certificate:1``."""
        return f"{self.tag.name.lower()}:{self.index}"

    def __eq__(self, other):
        if not isinstance(other, RedeemerKey):
            return False
        return self.tag == other.tag and self.index == other.index

    def __hash__(self):
        return hash(self.to_cbor())


@dataclass(repr=False)
class RedeemerValue(ArrayCBORSerializable):
    data: Any

    ex_units: ExecutionUnits

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(cls: Type[RedeemerValue], values: list) -> RedeemerValue:
        return cls(
            RawPlutusData.from_primitive(values[0]),
            ExecutionUnits.from_primitive(values[1]),
        )

    def __eq__(self, other):
        if not isinstance(other, RedeemerValue):
            return False
        return self.data == other.data and self.ex_units == other.ex_units


@typechecked
class RedeemerMap(DictCBORSerializable):
    """Redeemers keyed by purpose.

    Iteration follows insertion order, which is the order a builder supplies
    execution units in. The CBOR encoding sorts keys canonically.
    """

    KEY_TYPE = RedeemerKey

    VALUE_TYPE = RedeemerValue

    @classmethod
    def from_primitive(cls: Type[RedeemerMap], value: Any) -> RedeemerMap:
        # Redeemers may also be written in the pre-Conway list form:
        # [[tag, index, data, ex_units], ...]
        if isinstance(value, (list, IndefiniteList)):
            restored = cls()
            for tag, index, data, ex_units in value:
                restored[RedeemerKey(RedeemerTag.from_primitive(tag), index)] = (
                    RedeemerValue.from_primitive([data, ex_units])
                )
            return restored
        return super().from_primitive(value)


class PlutusScript(CBORSerializable, bytes):
    """Compiled Plutus script bytes. Subclasses fix the language version."""

    @property
    def version(self) -> int:
        raise NotImplementedError("")

    @property
    def language(self) -> Language:
        return Language(self.version - 1)

    def to_shallow_primitive(self) -> bytes:
        return bytes(self)

    @classmethod
    def from_primitive(
        cls: Type[PlutusScript], value: Any, type_args: Optional[tuple] = None
    ) -> PlutusScript:
        if not isinstance(value, (bytes, bytearray)):
            raise DeserializeException(f"Expect bytes, got {type(value)} instead.")
        return cls(value)

    def get_script_hash_prefix(self) -> bytes:
        raise NotImplementedError("")

    def __repr__(self):
        return f"{self.__class__.__name__}({self.hex()})"


class PlutusV3Script(PlutusScript):
    def get_script_hash_prefix(self) -> bytes:
        return bytes.fromhex("03")

    @property
    def version(self) -> int:
        return 3


def script_hash(script: PlutusScript) -> ScriptHash:
    """Hash of a Plutus script: blake2b-224 over its language prefix and bytes.

    Args:
        script (PlutusScript): A plutus script.

    Returns:
        ScriptHash: The script hash, also used as its minting policy id.
    """
    if not isinstance(script, PlutusScript):
        raise TypeError(f"Unexpected script type: {type(script)}")
    return ScriptHash(blake2b_224(script.get_script_hash_prefix() + script))


@dataclass
class Unit(PlutusData):
    """The void term, constructor 0 without fields."""

    CONSTR_ID = 0
