"""Value arithmetic, output sizing, fee estimation and the script integrity hash."""

from __future__ import annotations

import math
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from hotcold.backend.base import ProtocolParameters
from hotcold.cbor import cbor2
from hotcold.exception import InvalidArgumentException, ValueOverflowException
from hotcold.hash import ScriptDataHash, ScriptHash, blake2b_256
from hotcold.plutus import Datum, ExecutionUnits, Language, RedeemerMap
from hotcold.serialization import IndefiniteList, default_encoder
from hotcold.transaction import (
    MAX_INT64,
    MIN_INT64,
    Asset,
    AssetName,
    MultiAsset,
    TransactionOutput,
    Value,
)

__all__ = [
    "MIN_VALUE_OVERHEAD",
    "FEE_OVERHEAD",
    "REDEEMER_SIZE",
    "SIGNATURE_SIZE",
    "lovelace_of",
    "subtract",
    "aggregate_assets",
    "min_value_output",
    "execution_cost",
    "estimate_fee",
    "script_integrity_hash",
]

MIN_VALUE_OVERHEAD = 164
"""Bytes added to a serialized output when sizing its minimum coin: the ledger's
160 byte constant plus room for the coin growing from the placeholder to its
final width."""

FEE_OVERHEAD = 5
REDEEMER_SIZE = 16
SIGNATURE_SIZE = 102
"""Bytes one vkey witness (key and signature) adds to the signed transaction."""


def lovelace_of(value: Union[int, Value]) -> int:
    """The coin of a value, whichever representation it uses."""
    if isinstance(value, int):
        return value
    return value.coin


def subtract(value: Union[int, Value], cost: int) -> Optional[Value]:
    """Take ``cost`` lovelace out of ``value``, keeping its native assets untouched.

    Returns ``None`` unless the coin strictly exceeds ``cost``, so a result never
    carries a zero coin.

    Examples:
        >>> subtract(Value(10), 4)
        {'coin': 6, 'multi_asset': {}}
        >>> subtract(Value(10), 10) is None
        True
    """
    if isinstance(value, int):
        value = Value(value)
    if value.coin <= cost:
        return None
    return Value(value.coin - cost, value.multi_asset.copy())


def aggregate_assets(
    policy_id: ScriptHash,
    assets: Sequence[Tuple[AssetName, int]],
    positive: bool = False,
) -> MultiAsset:
    """Build a single-policy multi-asset from ``(name, quantity)`` pairs.

    Args:
        policy_id: The minting policy of every asset.
        assets: Names and quantities, in order.
        positive: Require strictly positive quantities (held values) instead of
            non-zero ones (mint and burn).

    Raises:
        ValueOverflowException: When a quantity does not fit a signed 64-bit integer.
        InvalidArgumentException: When a quantity has the wrong sign or a name repeats.
    """
    asset = Asset()
    for name, quantity in assets:
        if not MIN_INT64 <= quantity <= MAX_INT64:
            raise ValueOverflowException(
                f"Quantity {quantity} of asset {name} is out of range"
            )
        if quantity == 0 or (positive and quantity < 0):
            raise InvalidArgumentException(
                f"Invalid quantity {quantity} for asset {name}"
            )
        if name in asset:
            raise InvalidArgumentException(f"Asset {name} appears more than once")
        asset[name] = quantity
    return MultiAsset({policy_id: asset})


def min_value_output(
    coins_per_utxo_byte: int, build: Callable[[int], TransactionOutput]
) -> TransactionOutput:
    """Build the output returned by ``build`` with the least coin the ledger accepts.

    The output is built once with a 1 lovelace placeholder to measure its size, then
    rebuilt with ``(size + MIN_VALUE_OVERHEAD) * coins_per_utxo_byte``.
    """
    probe = build(1)
    return build((len(probe.to_cbor()) + MIN_VALUE_OVERHEAD) * coins_per_utxo_byte)


def execution_cost(
    protocol_param: ProtocolParameters, ex_units: Iterable[ExecutionUnits]
) -> int:
    """Lovelace charged for the given budgets, each rounded up separately."""
    return sum(
        math.ceil(protocol_param.price_mem * units.mem)
        + math.ceil(protocol_param.price_step * units.steps)
        for units in ex_units
    )


def estimate_fee(
    protocol_param: ProtocolParameters,
    tx_size: int,
    ex_units: Sequence[ExecutionUnits],
    signer_count: int,
) -> int:
    """Fee of a transaction once signed, from its unsigned size.

    Args:
        protocol_param: Fee constants and script prices.
        tx_size: Length of the unsigned transaction CBOR.
        ex_units: Budget of every redeemer.
        signer_count: Number of vkey witnesses the transaction will carry.
    """
    size = (
        FEE_OVERHEAD
        + len(ex_units) * REDEEMER_SIZE
        + signer_count * SIGNATURE_SIZE
        + tx_size
    )
    return (
        protocol_param.min_fee_constant
        + protocol_param.min_fee_coefficient * size
        + execution_cost(protocol_param, ex_units)
    )


def _language_views(cost_models: List[Tuple[Language, List[int]]]) -> dict:
    views = {}
    for language, cost_model in sorted(cost_models, key=lambda v: v[0].value):
        if language == Language.PLUTUS_V1:
            # The ledger wraps both the key and the indefinite list of the V1 view
            # in byte strings.
            # https://github.com/IntersectMBO/cardano-ledger/issues/2512
            key = cbor2.dumps(language.value)
            if key in views:
                raise InvalidArgumentException(f"Duplicate cost model for {language}")
            views[key] = cbor2.dumps(
                IndefiniteList(list(cost_model)), default=default_encoder
            )
        else:
            if language.value in views:
                raise InvalidArgumentException(f"Duplicate cost model for {language}")
            views[language.value] = list(cost_model)
    return views


def script_integrity_hash(
    redeemers: Optional[RedeemerMap] = None,
    datums: Optional[List[Datum]] = None,
    cost_models: Optional[List[Tuple[Language, List[int]]]] = None,
) -> Optional[ScriptDataHash]:
    """Hash committing a transaction to its redeemers, datums and cost models.

    The preimage is the redeemers, then the datums, then the language views map.
    Views are ordered PlutusV1, PlutusV2, PlutusV3 whatever order they are given in.

    Returns:
        Optional[ScriptDataHash]: ``None`` when there is nothing to commit to.
    """
    if not redeemers and not datums and not cost_models:
        return None

    preimage = b""
    if redeemers is not None:
        preimage += cbor2.dumps(redeemers, default=default_encoder)
    if datums:
        preimage += cbor2.dumps(datums, default=default_encoder)
    preimage += cbor2.dumps(_language_views(cost_models or []), default=default_encoder)

    return ScriptDataHash(blake2b_256(preimage))
