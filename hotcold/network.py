"""Cardano network discriminants."""

from __future__ import annotations

from enum import Enum
from typing import Type

from hotcold.serialization import CBORSerializable, limit_primitive_type

__all__ = ["Network"]


class Network(CBORSerializable, Enum):
    """
    Network id, as written in address headers and in the transaction body.
    """

    TESTNET = 0
    MAINNET = 1

    def to_primitive(self) -> int:
        return self.value

    @classmethod
    @limit_primitive_type(int)
    def from_primitive(cls: Type[Network], value: int) -> Network:
        return cls(value)
