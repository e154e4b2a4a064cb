"""CBOR serialization interfaces shared by every ledger type in the package."""

from __future__ import annotations

import json
import typing
from collections import UserList
from copy import deepcopy
from dataclasses import Field, dataclass, field, fields
from functools import wraps
from inspect import getfullargspec, isclass
from typing import (
    Any,
    Callable,
    ClassVar,
    Dict,
    Generic,
    Iterable,
    List,
    Optional,
    Sequence,
    Type,
    TypeVar,
    Union,
    cast,
    get_type_hints,
)

from hotcold.cbor import cbor2
from hotcold.logging import logger

# Sets (tag 258) stay tagged lists, element order matters to the ledger.
try:
    cbor2._decoder.semantic_decoders.pop(258)
except Exception as e:
    logger.warning(f"Failed to remove semantic decoder for CBOR tag 258: {e}")

from cbor2 import CBOREncoder, CBORTag, FrozenDict, dumps
from frozenlist import FrozenList
from pprintpp import pformat

from hotcold.exception import DeserializeException, SerializeException
from hotcold.types import check_type, typechecked

__all__ = [
    "default_encoder",
    "IndefiniteList",
    "IndefiniteFrozenList",
    "Primitive",
    "CBORBase",
    "CBORSerializable",
    "ArrayCBORSerializable",
    "MapCBORSerializable",
    "DictCBORSerializable",
    "list_hook",
    "limit_primitive_type",
    "OrderedSet",
    "NonEmptyOrderedSet",
    "CodedSerializable",
]

T = TypeVar("T")


class IndefiniteList(UserList):
    """A list encoded with an indefinite-length header, ``0x9f`` items ``0xff``.

    Plutus data uses this form for every non-empty constructor field list.
    """

    def __init__(self, li: Optional[Iterable[Any]] = None):  # type: ignore
        super().__init__(li if li is not None else [])


class IndefiniteFrozenList(FrozenList, IndefiniteList):  # type: ignore
    """What the decoder returns for an indefinite array."""


Primitive = Union[
    bytes,
    bytearray,
    str,
    int,
    bool,
    None,
    tuple,
    list,
    IndefiniteList,
    dict,
    CBORTag,
    FrozenDict,
    FrozenList,
    IndefiniteFrozenList,
]

PRIMITIVE_TYPES = (
    bytes,
    bytearray,
    str,
    int,
    bool,
    type(None),
    tuple,
    list,
    IndefiniteList,
    dict,
    CBORTag,
    FrozenDict,
    FrozenList,
    IndefiniteFrozenList,
)
"""Types handed back unchanged when restoring a field."""


def limit_primitive_type(*allowed_types):
    """Make ``from_primitive`` raise :class:`DeserializeException` on other types."""

    def decorator(func):
        @wraps(func)
        def wrapper(cls, value: Primitive):
            if not isinstance(value, allowed_types):
                names = [t.__name__ for t in allowed_types]
                raise DeserializeException(
                    f"{names} typed value is required for deserialization. "
                    f"Got {type(value)}: {value}"
                )
            return func(cls, value)

        return wrapper

    return decorator


CBORBase = TypeVar("CBORBase", bound="CBORSerializable")


def _decode_array(self, subtype: int) -> Sequence[Any]:
    items = self.decode_array(subtype=subtype)
    # Additional information 31 marks an indefinite-length array.
    if subtype != 31:
        return items
    frozen = IndefiniteFrozenList(list(items))
    frozen.freeze()
    return frozen


# Indefinite arrays decode to IndefiniteFrozenList, so decoded Plutus data is
# written back byte for byte.
try:
    cbor2._decoder.major_decoders[4] = _decode_array
except Exception as e:
    logger.warning(f"Failed to replace major decoder for indefinite array: {e}")


def default_encoder(
    encoder: CBOREncoder, value: Union[CBORSerializable, IndefiniteList]
):
    """Fallback cbor2 calls for anything that is not a plain primitive."""
    if isinstance(value, IndefiniteList):
        encoder.write(b"\x9f")
        for item in value:
            encoder.encode(item)
        encoder.write(b"\xff")
    elif isinstance(value, FrozenList):
        encoder.encode(list(value))
    elif isinstance(value, FrozenDict):
        encoder.encode(dict(value))
    elif isinstance(value, CBORSerializable):
        encoder.encode(value.to_validated_primitive())
    else:
        raise SerializeException(
            f"Type of input value is not CBORSerializable, got {type(value)} instead."
        )


def _freeze(items: list, indefinite: bool) -> FrozenList:
    frozen = IndefiniteFrozenList(items) if indefinite else FrozenList(items)
    frozen.freeze()
    return frozen


def _primitive_of(value: Any, hashable: bool = False) -> Primitive:
    """Resolve nested serializables. Map keys come out hashable."""
    if isinstance(value, CBORSerializable):
        return _primitive_of(value.to_primitive(), hashable)
    if isinstance(value, (dict, FrozenDict)):
        restored = {
            _primitive_of(k, hashable=True): _primitive_of(v, hashable)
            for k, v in value.items()
        }
        return FrozenDict(restored) if hashable else restored
    if isinstance(value, CBORTag):
        return CBORTag(value.tag, _primitive_of(value.value, hashable))
    if isinstance(value, tuple):
        return tuple(_primitive_of(v, hashable) for v in value)
    if isinstance(value, (list, FrozenList, IndefiniteList)):
        items = [_primitive_of(v, hashable) for v in value]
        indefinite = isinstance(value, IndefiniteList)
        if hashable or isinstance(value, FrozenList):
            return _freeze(items, indefinite)
        return IndefiniteList(items) if indefinite else items
    return value


def _conforms(value: Any, hint: Any) -> bool:
    if hint is Any:
        return True

    if isinstance(value, CBORSerializable):
        value.validate()

    origin = typing.get_origin(hint)
    args = typing.get_args(hint)
    if origin is None:
        return isinstance(value, hint)
    if origin is ClassVar:
        return _conforms(value, args[0])
    if origin is Union:
        return any(_conforms(value, arg) for arg in args)
    if isinstance(value, (dict, FrozenDict)) and len(args) == 2:
        return all(
            _conforms(k, args[0]) and _conforms(v, args[1]) for k, v in value.items()
        )
    if origin in (list, tuple, OrderedSet) and value is not None:
        if len(args) == 1:
            return all(_conforms(item, args[0]) for item in value)
        return all(_conforms(item, arg) for item, arg in zip(value, args))
    return True


@typechecked
class CBORSerializable:
    """
    Base of every type that is written to or read from CBOR.

    Subclasses implement :meth:`to_shallow_primitive` (or :meth:`to_primitive`) and
    :meth:`from_primitive`. A shallow primitive may still hold other
    :class:`CBORSerializable` objects, :meth:`to_primitive` resolves them.
    """

    def to_shallow_primitive(self) -> Union[Primitive, CBORSerializable]:
        """
        Convert the instance to a primitive whose children may still be
        :class:`CBORSerializable`.

        Raises:
            SerializeException: When the object could not be converted.
        """
        raise NotImplementedError(
            f"'to_shallow_primitive()' is not implemented by {self.__class__}."
        )

    def to_primitive(self) -> Primitive:
        """Convert the instance and its children to CBOR primitives."""
        return _primitive_of(self.to_shallow_primitive())

    def validate(self):
        """Check every annotated field against its type hint.

        Raises:
            TypeError: When a field holds a value of the wrong type.
        """
        for name, hint in get_type_hints(self.__class__).items():
            value = getattr(self, name)
            if not _conforms(value, hint):
                raise TypeError(
                    f"Field '{name}' should be of type {hint}, "
                    f"got {repr(value)} instead."
                )

    def to_validated_primitive(self) -> Primitive:
        self.validate()
        return self.to_primitive()

    @classmethod
    def from_primitive(
        cls: Type[CBORBase], value: Any, type_args: Optional[tuple] = None
    ) -> CBORBase:
        """Restore an instance from a CBOR primitive.

        Raises:
            DeserializeException: When the object could not be restored.
        """
        raise NotImplementedError(
            f"'from_primitive()' is not implemented by {cls.__name__}."
        )

    def to_cbor(self) -> bytes:
        """Encode the object into CBOR bytes.

        Examples:
            >>> from hotcold.hash import TransactionId
            >>> TransactionId(bytes(32)).to_cbor().hex()[:4]
            '5820'
        """
        return dumps(self, default=default_encoder)

    def to_cbor_hex(self) -> str:
        return self.to_cbor().hex()

    @classmethod
    def from_cbor(cls: Type[CBORBase], payload: Union[str, bytes]) -> CBORBase:
        """Restore an object from CBOR bytes or their hex form."""
        if isinstance(payload, str):
            payload = bytes.fromhex(payload)
        return cls.from_primitive(cbor2.loads(payload))

    def __repr__(self):
        return pformat(vars(self), indent=2)

    @property
    def json_type(self) -> str:
        return self.__class__.__name__

    @property
    def json_description(self) -> str:
        return self.__class__.__doc__ or "Generated with hotcold"

    def to_json(
        self,
        key_type: Optional[str] = None,
        description: Optional[str] = None,
        **kwargs,
    ) -> str:
        """
        Text envelope understood by cardano-cli: ``type``, ``description`` and
        ``cborHex``.

        Args:
            key_type (str): Overrides :attr:`json_type`.
            description (str): Overrides :attr:`json_description`.
            **kwargs: Passed on to ``json.dumps()``.
        """
        kwargs.setdefault("indent", 2)
        envelope = {
            "type": key_type or self.json_type,
            "description": description or self.json_description,
            "cborHex": self.to_cbor_hex(),
        }
        return json.dumps(envelope, **kwargs)


def _restore(t: Any, v: Primitive) -> Union[Primitive, CBORSerializable]:
    """Restore a primitive as the type ``t``, through lists, dicts and unions."""
    if t is Any or (t in PRIMITIVE_TYPES and isinstance(v, t)):
        return v

    origin = typing.get_origin(t)
    args = typing.get_args(t)
    target = origin or t
    if isclass(target) and issubclass(target, CBORSerializable):
        if "type_args" in getfullargspec(target.from_primitive).args:
            return target.from_primitive(v, type_args=args)
        return target.from_primitive(v)

    if origin is list:
        if not isinstance(v, (list, IndefiniteList)):
            raise DeserializeException(f"Expected type list but got {type(v)}")
        return v.__class__([_restore(args[0], w) for w in v])

    if origin is dict:
        if not isinstance(v, dict):
            raise DeserializeException(f"Expected dict type but got {type(v)}")
        key_t, val_t = args
        return {_restore(key_t, k): _restore(val_t, w) for k, w in v.items()}

    if origin is Union:
        for arg in args:
            try:
                return _restore(arg, v)
            except DeserializeException:
                continue
        raise DeserializeException(
            f"Cannot deserialize object: \n{v}\n in any valid type from {args}."
        )

    if isclass(t) and issubclass(t, IndefiniteList):
        try:
            return t(v)
        except TypeError as e:
            raise DeserializeException(
                f"Can not initialize IndefiniteList from {v}"
            ) from e

    raise DeserializeException(f"Cannot deserialize object: \n{v}\n to type {t}.")


def _restore_field(f: Field, hint: Any, v: Primitive) -> Any:
    if "object_hook" in f.metadata:
        return f.metadata["object_hook"](v)
    return _restore(hint, v)


ArrayBase = TypeVar("ArrayBase", bound="ArrayCBORSerializable")


@dataclass(repr=False)
class ArrayCBORSerializable(CBORSerializable):
    """
    A dataclass written as a CBOR array, one element per field in declaration order.

    A field with ``metadata={"optional": True}`` is left out while it is ``None``,
    so optional fields have to come last.

    Examples:
        >>> from dataclasses import dataclass
        >>> @dataclass
        ... class Budget(ArrayCBORSerializable):
        ...     mem: int
        ...     steps: int
        >>> Budget(10, 20).to_primitive()
        [10, 20]
    """

    def to_shallow_primitive(self) -> Primitive:
        return [
            getattr(self, f.name)
            for f in fields(self)
            if not (getattr(self, f.name) is None and f.metadata.get("optional"))
        ]

    @classmethod
    @limit_primitive_type(list, tuple, IndefiniteList)
    def from_primitive(
        cls: Type[ArrayBase], values: Union[list, tuple, IndefiniteList]
    ) -> ArrayBase:
        hints = get_type_hints(cls)
        init_fields = [f for f in fields(cls) if f.init]
        return cls(
            *[_restore_field(f, hints[f.name], v) for f, v in zip(init_fields, values)]
        )

    def __repr__(self):
        return super().__repr__()


MapBase = TypeVar("MapBase", bound="MapCBORSerializable")


@dataclass(repr=False)
class MapCBORSerializable(CBORSerializable):
    """
    A dataclass written as a CBOR map.

    Each field is keyed by ``metadata["key"]``, or by its name when no key is given.
    With ``metadata={"optional": True}`` the entry is dropped while it is ``None``.

    Examples:
        >>> from dataclasses import dataclass, field
        >>> @dataclass
        ... class Body(MapCBORSerializable):
        ...     fee: int = field(default=0, metadata={"key": 2})
        ...     ttl: int = field(default=None, metadata={"key": 3, "optional": True})
        >>> Body(fee=170000).to_primitive()
        {2: 170000}
    """

    def to_shallow_primitive(self) -> Primitive:
        primitives = {}
        for f in fields(self):
            key = f.metadata.get("key", f.name)
            if key in primitives:
                raise SerializeException(f"Key: '{key}' already exists in the map.")
            val = getattr(self, f.name)
            if val is not None or not f.metadata.get("optional"):
                primitives[key] = val
        return primitives

    @classmethod
    @limit_primitive_type(dict, FrozenDict)
    def from_primitive(cls: Type[MapBase], values: Union[dict, FrozenDict]) -> MapBase:
        by_key = {f.metadata.get("key", f.name): f for f in fields(cls) if f.init}
        hints = get_type_hints(cls)
        kwargs = {}
        for key, v in values.items():
            if key not in by_key:
                raise DeserializeException(f"Unexpected map key {key} in CBOR.")
            f = by_key[key]
            kwargs[f.name] = _restore_field(f, hints[f.name], v)
        return cls(**kwargs)

    def __repr__(self):
        return super().__repr__()


DictBase = TypeVar("DictBase", bound="DictCBORSerializable")


def _canonical_key(key: Any):
    # Length first, then bytewise (RFC 7049, section 3.9).
    encoded = dumps(key, default=default_encoder)
    return len(encoded), encoded


class DictCBORSerializable(CBORSerializable):
    """A mapping with one key type and one value type.

    Entries iterate in insertion order and are written in canonical CBOR key order.
    """

    KEY_TYPE = Type[Any]
    VALUE_TYPE = Type[Any]

    def __init__(self, *args, **kwargs):
        self.data = dict(*args, **kwargs)

    def __getattr__(self, item):
        return getattr(self.data, item)

    def __setitem__(self, key: Any, value: Any):
        check_type(key, self.KEY_TYPE)
        check_type(value, self.VALUE_TYPE)
        self.data[key] = value

    def __getitem__(self, key):
        return self.data[key]

    def __delitem__(self, key):
        del self.data[key]

    def __eq__(self, other):
        return isinstance(other, DictCBORSerializable) and self.data == other.data

    def __len__(self):
        return len(self.data)

    def __iter__(self):
        return iter(self.data)

    def __repr__(self):
        return repr(self.data)

    def __copy__(self):
        return self.__class__(self.data)

    def __deepcopy__(self, memo):
        return self.__class__(deepcopy(self.data, memo))

    def copy(self) -> DictCBORSerializable:
        return self.__class__(self.data)

    def validate(self):
        for entry in self.data.items():
            for item in entry:
                if isinstance(item, CBORSerializable):
                    item.validate()

    def to_shallow_primitive(self) -> dict:
        return dict(sorted(self.data.items(), key=lambda kv: _canonical_key(kv[0])))

    @classmethod
    @limit_primitive_type(dict, FrozenDict)
    def from_primitive(cls: Type[DictBase], value: dict) -> DictBase:
        def _as(t, v):
            if isclass(t) and issubclass(t, CBORSerializable):
                return t.from_primitive(v)
            return v

        restored = cls()
        for k, v in value.items():
            restored[_as(cls.KEY_TYPE, k)] = _as(cls.VALUE_TYPE, v)
        return restored


@typechecked
def list_hook(
    cls: Type[CBORBase],
) -> Callable[[List[Primitive]], List[CBORBase]]:
    """Object hook restoring every element of a list as ``cls``."""
    return lambda vals: [cls.from_primitive(v) for v in vals]


class OrderedSet(Generic[T], CBORSerializable):
    """Set that keeps insertion order. Written as a tag 258 array unless ``use_tag``
    is off. Membership is decided on the CBOR encoding of the items."""

    def __init__(
        self,
        iterable: Optional[Union[List[T], IndefiniteList]] = None,
        use_tag: bool = True,
    ):
        super().__init__()
        self._items: List[T] = []
        self._seen: Dict[bytes, int] = {}
        self._use_tag = use_tag
        self._is_indefinite_list = isinstance(iterable, IndefiniteList)
        if iterable:
            self.extend(iterable)

    def append(self, item: T) -> None:
        encoded = dumps(item, default=default_encoder)
        if encoded not in self._seen:
            self._seen[encoded] = len(self._items)
            self._items.append(item)

    def extend(self, items: Iterable[T]) -> None:
        for item in items:
            self.append(item)

    def __contains__(self, item: object) -> bool:
        return dumps(item, default=default_encoder) in self._seen

    def __iter__(self):
        return iter(self._items)

    def __getitem__(self, index: int) -> T:
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, (OrderedSet, list)):
            return list(self) == list(other)
        return False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({list(self)})"

    def __deepcopy__(self, memo):
        items = deepcopy(self._items, memo)
        if self._is_indefinite_list:
            items = IndefiniteList(items)
        return self.__class__(items, use_tag=self._use_tag)

    def to_shallow_primitive(self) -> Union[CBORTag, list, IndefiniteList]:
        items: Union[list, IndefiniteList] = list(self._items)
        if self._is_indefinite_list:
            items = IndefiniteList(items)
        return CBORTag(258, items) if self._use_tag else items

    @classmethod
    def from_primitive(
        cls: Type[OrderedSet[T]], value: Primitive, type_args: Optional[tuple] = None
    ) -> OrderedSet[T]:
        item_type = type_args[0] if type_args else None

        def _items(values):
            if isclass(item_type) and issubclass(item_type, CBORSerializable):
                return [item_type.from_primitive(v) for v in values]
            return list(values)

        if isinstance(value, CBORTag) and value.tag == 258:
            return cls(_items(value.value), use_tag=True)
        if isinstance(value, (list, tuple, IndefiniteList)):
            return cls(_items(value), use_tag=False)
        raise DeserializeException(f"Cannot deserialize {value} to {cls}")


class NonEmptyOrderedSet(OrderedSet[T]):
    """An :class:`OrderedSet` that refuses to be written or read while empty."""

    def validate(self):
        if not self:
            raise ValueError("NonEmptyOrderedSet cannot be empty")

    @classmethod
    def from_primitive(
        cls: Type[NonEmptyOrderedSet[T]],
        value: Primitive,
        type_args: Optional[tuple] = None,
    ) -> NonEmptyOrderedSet[T]:
        result = cast(NonEmptyOrderedSet[T], super().from_primitive(value, type_args))
        if not result:
            raise DeserializeException("NonEmptyOrderedSet cannot be empty")
        return result


@dataclass(repr=False)
class CodedSerializable(ArrayCBORSerializable):
    """An array led by a constant ``_CODE`` naming the variant, as certificates are.

    Examples:
        >>> from dataclasses import dataclass, field
        >>> @dataclass
        ... class Retire(CodedSerializable):
        ...     _CODE: int = field(init=False, default=17)
        ...     coin: int
        >>> Retire(500).to_primitive()
        [17, 500]
    """

    _CODE: int = field(init=False)

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(
        cls: Type[CodedSerializable], values: Union[list, tuple]
    ) -> CodedSerializable:
        if values[0] != cls._CODE:
            raise DeserializeException(f"Invalid {cls.__name__} type {values[0]}")
        return cast(Type[CodedSerializable], super()).from_primitive(values[1:])
