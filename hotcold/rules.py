"""Quorum rules of the hot/cold contract and the state token that commits to them.

The rules are written as a Plutus multisig term. A contract built here always uses
``AtLeast``::

    AtLeast { required: quorum, scripts: [Signature { key_hash }, ...] }

and the name of the state token minted alongside is ``b"gov_"`` followed by the
blake2b-224 hash of that term's CBOR.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, List, Tuple, Union

from cbor2 import CBORTag

from hotcold.backend.base import ChainContext
from hotcold.exception import (
    DeserializeException,
    InvalidArgumentException,
    ResolutionException,
)
from hotcold.hash import ScriptHash, VerificationKeyHash, blake2b_224
from hotcold.logging import logger
from hotcold.plutus import (
    PlutusData,
    RawPlutusData,
    RedeemerTag,
    Unit,
    get_constructor_id_and_fields,
)
from hotcold.serialization import IndefiniteList
from hotcold.transaction import AssetName, Value

__all__ = [
    "STATE_TOKEN_PREFIX",
    "Signature",
    "AllOf",
    "AnyOf",
    "AtLeast",
    "QuorumRules",
    "build_rules",
    "decode_rules",
    "find_contract_token",
    "recover_rules",
]

STATE_TOKEN_PREFIX = b"gov_"


@dataclass
class Signature(PlutusData):
    CONSTR_ID = 0

    key_hash: bytes


@dataclass
class AllOf(PlutusData):
    CONSTR_ID = 1

    scripts: IndefiniteList


@dataclass
class AnyOf(PlutusData):
    CONSTR_ID = 2

    scripts: IndefiniteList


@dataclass
class AtLeast(PlutusData):
    CONSTR_ID = 3

    required: int

    scripts: IndefiniteList


@dataclass
class QuorumRules:
    """Delegates allowed to act for the contract and how many of them must sign.

    The order of ``delegates`` is part of the rules: reordering them changes the
    encoded term and therefore the state token name.

    Raises:
        InvalidArgumentException: When there is no delegate or the quorum is not
            between 1 and the number of delegates.
    """

    delegates: List[VerificationKeyHash]

    quorum: int

    def __post_init__(self):
        if not self.delegates:
            raise InvalidArgumentException("There must be at least one delegate")
        if not 1 <= self.quorum <= len(self.delegates):
            raise InvalidArgumentException(
                f"Quorum must be between 1 and {len(self.delegates)}, "
                f"got {self.quorum}"
            )

    def to_plutus_data(self) -> AtLeast:
        return AtLeast(
            self.quorum,
            IndefiniteList([Signature(d.payload) for d in self.delegates]),
        )

    @property
    def asset_name(self) -> AssetName:
        """Name of the state token committing to these rules."""
        return AssetName(
            STATE_TOKEN_PREFIX + blake2b_224(self.to_plutus_data().to_cbor())
        )


def build_rules(
    delegates: List[VerificationKeyHash], quorum: int
) -> Tuple[PlutusData, AssetName]:
    """Encode quorum rules and derive the name of their state token.

    Args:
        delegates: Key hashes of the delegates, in the order the contract sees them.
        quorum: Number of delegate signatures required.

    Returns:
        Tuple[PlutusData, AssetName]: The rules term and the state token name.

    Examples:
        >>> rules, name = build_rules([VerificationKeyHash(bytes(28))], 1)
        >>> rules.to_cbor_hex()[:8]
        'd87c9f01'
        >>> name.payload[:4]
        b'gov_'
    """
    rules = QuorumRules(list(delegates), quorum)
    return rules.to_plutus_data(), rules.asset_name


def _signature(term: Any) -> VerificationKeyHash:
    if not isinstance(term, CBORTag):
        raise DeserializeException(f"Expect a signature, got {term!r}")
    constr, fields = get_constructor_id_and_fields(term)
    if constr != Signature.CONSTR_ID or len(fields) != 1:
        raise DeserializeException(f"Expect a signature, got {term}")
    key_hash = fields[0]
    if not isinstance(key_hash, bytes) or len(key_hash) != 28:
        raise DeserializeException(f"Invalid delegate key hash: {key_hash!r}")
    return VerificationKeyHash(key_hash)


def decode_rules(data: Union[PlutusData, RawPlutusData, CBORTag]) -> QuorumRules:
    """Recover delegates and quorum from a rules term.

    ``AllOf`` and ``AnyOf`` terms are read as a quorum of every delegate and of one
    delegate respectively.

    Raises:
        DeserializeException: When ``data`` is not a multisig term over signatures.
    """
    if isinstance(data, PlutusData):
        term = data.to_primitive()
    elif isinstance(data, RawPlutusData):
        term = data.data
    else:
        term = data

    if not isinstance(term, CBORTag):
        raise DeserializeException(f"Expect a constructor term, got {term!r}")

    constr, fields = get_constructor_id_and_fields(term)
    if constr == AtLeast.CONSTR_ID and len(fields) == 2:
        quorum, scripts = fields
    elif constr == AllOf.CONSTR_ID and len(fields) == 1:
        scripts = fields[0]
        quorum = len(scripts) if isinstance(scripts, (list, IndefiniteList)) else None
    elif constr == AnyOf.CONSTR_ID and len(fields) == 1:
        scripts = fields[0]
        quorum = 1
    else:
        raise DeserializeException(f"Unexpected quorum rules: {term}")

    if not isinstance(quorum, int) or not isinstance(scripts, (list, IndefiniteList)):
        raise DeserializeException(f"Malformed quorum rules: {term}")

    try:
        return QuorumRules([_signature(s) for s in scripts], quorum)
    except InvalidArgumentException as e:
        raise DeserializeException(f"Invalid quorum rules: {e}") from e


def find_contract_token(value: Union[int, Value]) -> AssetName:
    """Name of the state token held in a contract output's value.

    Raises:
        InvalidArgumentException: When the value holds no native asset.
    """
    if isinstance(value, Value):
        for asset in value.multi_asset.values():
            for name in asset:
                return name
    raise InvalidArgumentException(f"No state token found in contract value {value}")


def _is_void(data: Any) -> bool:
    if isinstance(data, (PlutusData, RawPlutusData)):
        data = data.to_primitive()
    return (
        isinstance(data, CBORTag)
        and data.tag == 121 + Unit.CONSTR_ID
        and len(data.value) == 0
    )


def recover_rules(
    context: ChainContext, validator_hash: ScriptHash, value: Union[int, Value]
) -> Tuple[Any, AssetName]:
    """Fetch the rules a contract output's state token was minted with.

    Every state token is minted together with a DRep registration whose certificate
    redeemer carries the rules, so they are read back from the most recent minting
    transaction of the token.

    Args:
        context: Chain context used to look up minting transactions.
        validator_hash: Policy id of the state token.
        value: Value of the contract output.

    Returns:
        Tuple[Any, AssetName]: The rules term exactly as it was minted, and the
        state token name.

    Raises:
        InvalidArgumentException: When ``value`` holds no state token.
        ResolutionException: When no minting transaction or no rules redeemer is found.
    """
    name = find_contract_token(value)
    minted = context.minting(validator_hash, name)
    if not minted:
        raise ResolutionException(
            f"No minting transaction found for {validator_hash}.{name.payload.hex()}"
        )

    tx = minted[0]
    logger.debug(f"Recovering rules from minting transaction {tx.id}")
    redeemers = tx.transaction_witness_set.redeemer or {}
    for key, redeemer in redeemers.items():
        if key.tag == RedeemerTag.CERTIFICATE and not _is_void(redeemer.data):
            return redeemer.data, name

    raise ResolutionException(
        f"Minting transaction {tx.id} carries no rules in its certificate redeemers"
    )
