"""Transaction witness set."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

from hotcold.plutus import PlutusV3Script, RedeemerMap
from hotcold.serialization import MapCBORSerializable, NonEmptyOrderedSet

__all__ = ["TransactionWitnessSet"]


@dataclass(repr=False)
class TransactionWitnessSet(MapCBORSerializable):
    """Witnesses attached to a transaction.

    Transactions built here are unsigned: they carry redeemers and the validator
    script only. Key witnesses, native and older Plutus scripts, and datums found in
    transactions read from chain are kept as primitives.
    """

    vkey_witnesses: Any = field(default=None, metadata={"key": 0, "optional": True})

    native_scripts: Any = field(default=None, metadata={"key": 1, "optional": True})

    bootstrap_witness: Any = field(
        default=None, metadata={"key": 2, "optional": True}
    )

    plutus_v1_script: Any = field(default=None, metadata={"key": 3, "optional": True})

    plutus_data: Any = field(default=None, metadata={"key": 4, "optional": True})

    redeemer: Optional[RedeemerMap] = field(
        default=None,
        metadata={
            "key": 5,
            "optional": True,
            "object_hook": RedeemerMap.from_primitive,
        },
    )

    plutus_v2_script: Any = field(default=None, metadata={"key": 6, "optional": True})

    plutus_v3_script: Optional[
        Union[List[PlutusV3Script], NonEmptyOrderedSet[PlutusV3Script]]
    ] = field(default=None, metadata={"key": 7, "optional": True})

