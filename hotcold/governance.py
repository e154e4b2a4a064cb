"""Conway voting procedures, the part of governance a DRep transaction carries."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, unique
from typing import Dict, Optional, Tuple, Type, Union

from hotcold.certificate import Anchor
from hotcold.exception import DecodingException, DeserializeException
from hotcold.hash import ScriptHash, TransactionId, VerificationKeyHash
from hotcold.serialization import (
    ArrayCBORSerializable,
    DictCBORSerializable,
    Primitive,
    limit_primitive_type,
)

__all__ = [
    "Vote",
    "GovActionId",
    "VotingProcedure",
    "VoterType",
    "Voter",
    "GovActionIdToVotingProcedure",
    "VotingProcedures",
]


@unique
class Vote(Enum):
    NO = 0
    YES = 1
    ABSTAIN = 2


@dataclass(repr=False)
class GovActionId(ArrayCBORSerializable):
    """A proposal, named by the transaction that submitted it and its position there."""

    transaction_id: TransactionId

    gov_action_index: int

    def __post_init__(self):
        if not 0 <= self.gov_action_index <= 0xFFFF:
            raise ValueError("gov_action_index must be between 0 and 65535")

    @classmethod
    def from_str(
        cls: Type[GovActionId], value: str, name: str = "proposal"
    ) -> GovActionId:
        """Parse ``<transaction id>#<index>``.

        Raises:
            DecodingException: When either half is malformed.
        """
        tx_hex, sep, index = value.partition("#")
        if not sep:
            raise DecodingException(f"{name}: malformed governance action id {value!r}")
        try:
            return cls(TransactionId.from_hex(tx_hex, name), int(index))
        except ValueError as e:
            raise DecodingException(f"{name}: {e}") from e

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(
        cls: Type[GovActionId], values: Union[list, tuple]
    ) -> GovActionId:
        return cls(TransactionId(values[0]), values[1])

    def __hash__(self):
        return hash((self.transaction_id, self.gov_action_index))

    def __repr__(self):
        return f"{self.transaction_id}#{self.gov_action_index}"


@dataclass(repr=False)
class VotingProcedure(ArrayCBORSerializable):
    vote: Vote

    anchor: Optional[Anchor] = None

    def to_shallow_primitive(self) -> Primitive:
        return [self.vote.value, self.anchor]

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(
        cls: Type[VotingProcedure], values: Union[list, tuple]
    ) -> VotingProcedure:
        anchor = None if values[1] is None else Anchor.from_primitive(values[1])
        return cls(Vote(values[0]), anchor)


@unique
class VoterType(Enum):
    COMMITTEE_HOT = "committee_hot"
    DREP = "drep"
    STAKING_POOL = "staking_pool"


# (voter type, credential is a script) -> ledger voter code
_VOTER_CODES: Dict[Tuple[VoterType, bool], int] = {
    (VoterType.COMMITTEE_HOT, False): 0,
    (VoterType.COMMITTEE_HOT, True): 1,
    (VoterType.DREP, False): 2,
    (VoterType.DREP, True): 3,
    (VoterType.STAKING_POOL, False): 4,
}


@dataclass(repr=False)
class Voter(ArrayCBORSerializable):
    """Who casts a vote. The hot/cold contract always votes as a script DRep."""

    _CODE: Optional[int] = field(init=False, default=None)

    credential: Union[VerificationKeyHash, ScriptHash]

    voter_type: VoterType

    def __post_init__(self):
        key = (self.voter_type, isinstance(self.credential, ScriptHash))
        if key not in _VOTER_CODES:
            raise ValueError(
                f"{self.voter_type.value} voter cannot use "
                f"{type(self.credential).__name__}"
            )
        self._CODE = _VOTER_CODES[key]

    def to_shallow_primitive(self) -> Primitive:
        return self._CODE, self.credential

    @classmethod
    @limit_primitive_type(list, tuple)
    def from_primitive(cls: Type[Voter], values: Union[list, tuple]) -> Voter:
        for (voter_type, is_script), code in _VOTER_CODES.items():
            if code == values[0]:
                credential_type = ScriptHash if is_script else VerificationKeyHash
                return cls(credential_type(values[1]), voter_type)
        raise DeserializeException(f"Invalid Voter type {values[0]}")

    def __hash__(self):
        return hash((self._CODE, self.credential))


class GovActionIdToVotingProcedure(DictCBORSerializable):
    KEY_TYPE = GovActionId
    VALUE_TYPE = VotingProcedure


class VotingProcedures(DictCBORSerializable):
    """Votes keyed by voter, then by proposal."""

    KEY_TYPE = Voter
    VALUE_TYPE = GovActionIdToVotingProcedure
