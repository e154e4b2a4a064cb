"""Transactions of the hot/cold DRep contract.

Every operation here resolves what it needs from the chain once, then hands the
:class:`~hotcold.txbuilder.TransactionBuilder` a function that builds the whole
transaction from a fee and a list of execution units. That function is pure, so
the builder can call it as many times as it needs to settle the fee.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from fractions import Fraction
from typing import Any, List, Optional, Tuple

from hotcold.address import Address
from hotcold.anchor import fetch_anchor
from hotcold.backend.base import ChainContext, ProtocolParameters
from hotcold.certificate import (
    Certificate,
    DRep,
    DRepCredential,
    RegDRepCert,
    StakeCredential,
    StakeRegistrationAndVoteDelegation,
    UnregDRepCertificate,
)
from hotcold.exception import (
    DecodingException,
    InsufficientFundsException,
    InvalidArgumentException,
)
from hotcold.governance import (
    GovActionId,
    GovActionIdToVotingProcedure,
    Vote,
    Voter,
    VoterType,
    VotingProcedure,
    VotingProcedures,
)
from hotcold.hash import ScriptHash, VerificationKeyHash
from hotcold.logging import logger
from hotcold.network import Network
from hotcold.plutus import (
    ExecutionUnits,
    Language,
    PlutusV3Script,
    RedeemerKey,
    RedeemerMap,
    RedeemerTag,
    RedeemerValue,
    Unit,
    script_hash,
)
from hotcold.rules import build_rules, find_contract_token, recover_rules
from hotcold.serialization import NonEmptyOrderedSet
from hotcold.transaction import (
    MultiAsset,
    Transaction,
    TransactionBody,
    TransactionInput,
    TransactionOutput,
    UTxO,
    Value,
)
from hotcold.txbuilder import TransactionBuilder, budget
from hotcold.utils import (
    aggregate_assets,
    lovelace_of,
    min_value_output,
    script_integrity_hash,
    subtract,
)
from hotcold.witness import TransactionWitnessSet

__all__ = [
    "Validator",
    "assign_stake",
    "delegate",
    "redelegate",
    "vote",
]


@dataclass(frozen=True)
class Validator:
    """The contract's validator.

    The same script is the minting policy of the state token, the spending
    validator of the output holding it, and the credential of the DRep.
    """

    script: PlutusV3Script

    @classmethod
    def from_hex(cls, value: str, name: str = "validator") -> Validator:
        """Read a compiled validator from hex.

        Raises:
            DecodingException: When ``value`` is not a non-empty hex string.
        """
        try:
            script = bytes.fromhex(value)
        except ValueError as e:
            raise DecodingException(f"{name}: malformed hex string") from e
        if not script:
            raise DecodingException(f"{name}: empty script")
        return cls(PlutusV3Script(script))

    @property
    def hash(self) -> ScriptHash:
        return script_hash(self.script)

    def address(self, network: Network) -> Address:
        """Address whose payment and staking parts are both the validator."""
        return Address(self.hash, self.hash, network)


def _deduct(value: Value, cost: int, purpose: str) -> Value:
    remaining = subtract(value, cost)
    if remaining is None:
        available = lovelace_of(value)
        raise InsufficientFundsException(
            f"Insufficient funds for {purpose}: {cost} lovelace needed out of "
            f"{available}, short by {cost - available + 1}"
        )
    return remaining


def _redeemers(
    ex_units: List[ExecutionUnits], *purposes: Tuple[RedeemerTag, int, Any]
) -> RedeemerMap:
    """Redeemers in the given order, the ``i``-th one using the ``i``-th units."""
    return RedeemerMap(
        {
            RedeemerKey(tag, index): RedeemerValue(data, budget(ex_units, i))
            for i, (tag, index, data) in enumerate(purposes)
        }
    )


def _optional_set(items: Optional[List[Any]]) -> Optional[NonEmptyOrderedSet]:
    return NonEmptyOrderedSet(list(items)) if items else None


def _script_transaction(
    context: ChainContext,
    protocol_param: ProtocolParameters,
    validator: Validator,
    fuel: UTxO,
    fee: int,
    inputs: List[TransactionInput],
    outputs: List[TransactionOutput],
    redeemers: RedeemerMap,
    required_signers: List[VerificationKeyHash],
    certificates: Optional[List[Certificate]] = None,
    mint: Optional[MultiAsset] = None,
    reference_inputs: Optional[List[TransactionInput]] = None,
    voting_procedures: Optional[VotingProcedures] = None,
) -> Transaction:
    total_collateral = math.ceil(
        Fraction(fee * protocol_param.collateral_percent, 100)
    )
    collateral_return = TransactionOutput(
        fuel.output.address,
        _deduct(fuel.output.amount, total_collateral, "collateral"),
    )

    body = TransactionBody(
        inputs=NonEmptyOrderedSet(inputs),
        outputs=outputs,
        fee=fee,
        certificates=_optional_set(certificates),
        mint=mint,
        script_data_hash=script_integrity_hash(
            redeemers,
            None,
            [(Language.PLUTUS_V3, protocol_param.cost_model(Language.PLUTUS_V3))],
        ),
        collateral=NonEmptyOrderedSet([fuel.input]),
        required_signers=_optional_set(required_signers),
        network_id=context.network,
        collateral_return=collateral_return,
        total_collateral=total_collateral,
        reference_inputs=_optional_set(reference_inputs),
        voting_procedures=voting_procedures or None,
    )
    witness = TransactionWitnessSet(
        redeemer=redeemers,
        plutus_v3_script=NonEmptyOrderedSet([validator.script]),
    )
    return Transaction(body, witness)


def assign_stake(
    context: ChainContext, validator: Validator, fuel: TransactionInput
) -> Transaction:
    """Register the fuel owner's stake key and delegate its votes to the contract.

    Args:
        context (ChainContext): Chain to build against.
        validator (Validator): The contract's validator, acting as DRep.
        fuel (TransactionInput): Output paying the fee and the stake key deposit.
            Its address must have a key payment part, which becomes the stake key.

    Returns:
        Transaction: The unsigned transaction.
    """
    protocol_param = context.protocol_param
    fuel_utxo = context.resolve_utxo(fuel)

    owner = fuel_utxo.output.address.payment_part
    if not isinstance(owner, VerificationKeyHash):
        raise InvalidArgumentException(
            f"fuel: {fuel} must be locked by a verification key, "
            f"got address {fuel_utxo.output.address}"
        )

    stake_address = Address(owner, owner, context.network)
    certificate = StakeRegistrationAndVoteDelegation(
        StakeCredential(owner),
        DRep.script(validator.hash),
        protocol_param.key_deposit,
    )

    def compose(fee: int, ex_units: List[ExecutionUnits]) -> Transaction:
        change = _deduct(
            fuel_utxo.output.amount,
            fee + protocol_param.key_deposit,
            "fee and stake key deposit",
        )
        body = TransactionBody(
            inputs=NonEmptyOrderedSet([fuel]),
            outputs=[TransactionOutput(stake_address, change)],
            fee=fee,
            certificates=NonEmptyOrderedSet([certificate]),
            network_id=context.network,
        )
        return Transaction(body, TransactionWitnessSet())

    return TransactionBuilder(context).build(compose)


def delegate(
    context: ChainContext,
    validator: Validator,
    delegates: List[VerificationKeyHash],
    quorum: int,
    administrators: List[VerificationKeyHash],
    fuel: TransactionInput,
) -> Transaction:
    """Register the contract as a DRep and hand its control to a quorum of delegates.

    A state token named after the rules is minted into a new contract output, and
    the rules are attached as the redeemer of the DRep registration.

    Args:
        context (ChainContext): Chain to build against.
        validator (Validator): The contract's validator.
        delegates (List[VerificationKeyHash]): Delegates, in order.
        quorum (int): Number of delegate signatures required to vote.
        administrators (List[VerificationKeyHash]): Keys that will sign the
            transaction.
        fuel (TransactionInput): Output paying the fee, deposit and collateral.

    Returns:
        Transaction: The unsigned transaction.
    """
    rules, name = build_rules(delegates, quorum)
    protocol_param = context.protocol_param
    fuel_utxo = context.resolve_utxo(fuel)
    network = context.network

    contract = min_value_output(
        protocol_param.coins_per_utxo_byte,
        lambda coin: TransactionOutput(
            validator.address(network),
            Value(coin, aggregate_assets(validator.hash, [(name, 1)], positive=True)),
        ),
    )
    mint = aggregate_assets(validator.hash, [(name, 1)])
    certificate = RegDRepCert(
        DRepCredential(validator.hash), protocol_param.drep_deposit, None
    )

    def compose(fee: int, ex_units: List[ExecutionUnits]) -> Transaction:
        total_cost = protocol_param.drep_deposit + lovelace_of(contract.amount) + fee
        change = TransactionOutput(
            fuel_utxo.output.address,
            _deduct(fuel_utxo.output.amount, total_cost, "DRep registration"),
        )
        redeemers = _redeemers(
            ex_units,
            (RedeemerTag.MINT, 0, Unit()),
            (RedeemerTag.CERTIFICATE, 0, rules),
        )
        return _script_transaction(
            context,
            protocol_param,
            validator,
            fuel_utxo,
            fee,
            inputs=[fuel],
            outputs=[contract, change],
            redeemers=redeemers,
            required_signers=administrators,
            certificates=[certificate],
            mint=mint,
        )

    return TransactionBuilder(context, [fuel_utxo]).build(compose)


def redelegate(
    context: ChainContext,
    validator: Validator,
    contract: TransactionInput,
    delegates: List[VerificationKeyHash],
    quorum: int,
    administrators: List[VerificationKeyHash],
    fuel: TransactionInput,
) -> Transaction:
    """Replace the rules of an already registered contract.

    The contract output is spent, its state token burnt and a token for the new
    rules minted into a new contract output. The DRep is unregistered and registered
    again so that the new rules are attached to a registration certificate.

    Args:
        context (ChainContext): Chain to build against.
        validator (Validator): The contract's validator.
        contract (TransactionInput): Current contract output.
        delegates (List[VerificationKeyHash]): New delegates, in order.
        quorum (int): New number of delegate signatures required to vote.
        administrators (List[VerificationKeyHash]): Keys that will sign the
            transaction.
        fuel (TransactionInput): Output paying the fee and collateral.

    Returns:
        Transaction: The unsigned transaction.

    Raises:
        InvalidArgumentException: When the new rules are the ones already in place.
    """
    rules, new_name = build_rules(delegates, quorum)
    protocol_param = context.protocol_param
    contract_utxo = context.resolve_utxo(contract)
    fuel_utxo = context.resolve_utxo(fuel)
    network = context.network

    old_name = find_contract_token(contract_utxo.output.amount)
    if old_name == new_name:
        raise InvalidArgumentException(
            "The contract is already delegated with these delegates and quorum"
        )

    new_contract = min_value_output(
        protocol_param.coins_per_utxo_byte,
        lambda coin: TransactionOutput(
            validator.address(network),
            Value(
                coin,
                aggregate_assets(validator.hash, [(new_name, 1)], positive=True),
            ),
        ),
    )
    mint = aggregate_assets(validator.hash, [(new_name, 1), (old_name, -1)])

    inputs = sorted([contract, fuel])
    contract_index = next(i for i, x in enumerate(inputs) if x == contract)

    credential = DRepCredential(validator.hash)
    certificates: List[Certificate] = [
        UnregDRepCertificate(credential, protocol_param.drep_deposit),
        RegDRepCert(credential, protocol_param.drep_deposit, None),
    ]

    def compose(fee: int, ex_units: List[ExecutionUnits]) -> Transaction:
        total_cost = (
            lovelace_of(new_contract.amount)
            + fee
            - lovelace_of(contract_utxo.output.amount)
        )
        change = TransactionOutput(
            fuel_utxo.output.address,
            _deduct(fuel_utxo.output.amount, total_cost, "redelegation"),
        )
        redeemers = _redeemers(
            ex_units,
            (RedeemerTag.MINT, 0, Unit()),
            (RedeemerTag.SPEND, contract_index, Unit()),
            (RedeemerTag.CERTIFICATE, 0, Unit()),
            (RedeemerTag.CERTIFICATE, 1, rules),
        )
        return _script_transaction(
            context,
            protocol_param,
            validator,
            fuel_utxo,
            fee,
            inputs=inputs,
            outputs=[new_contract, change],
            redeemers=redeemers,
            required_signers=administrators,
            certificates=certificates,
            mint=mint,
        )

    return TransactionBuilder(context, [contract_utxo, fuel_utxo]).build(compose)


def vote(
    context: ChainContext,
    validator: Validator,
    contract: TransactionInput,
    delegates: List[VerificationKeyHash],
    fuel: TransactionInput,
    proposal: GovActionId,
    choice: Vote,
    anchor_url: Optional[str] = None,
) -> Transaction:
    """Cast the contract's vote on a governance proposal.

    The rules are not asked for again: they are recovered from the transaction that
    minted the contract's current state token, and the contract output is only
    referenced.

    Args:
        context (ChainContext): Chain to build against.
        validator (Validator): The contract's validator.
        contract (TransactionInput): Current contract output.
        delegates (List[VerificationKeyHash]): Delegates that will sign.
        fuel (TransactionInput): Output paying the fee and collateral.
        proposal (GovActionId): Proposal voted on.
        choice (Vote): The vote.
        anchor_url (Optional[str]): Location of a rationale document.

    Returns:
        Transaction: The unsigned transaction.

    Raises:
        AnchorFetchException: When the rationale document cannot be fetched.
    """
    protocol_param = context.protocol_param
    contract_utxo = context.resolve_utxo(contract)
    fuel_utxo = context.resolve_utxo(fuel)

    rules, _ = recover_rules(context, validator.hash, contract_utxo.output.amount)
    anchor = fetch_anchor(anchor_url) if anchor_url is not None else None
    if anchor is not None:
        logger.info(f"Anchoring vote to {anchor.url}")

    voting_procedures = VotingProcedures(
        {
            Voter(validator.hash, VoterType.DREP): GovActionIdToVotingProcedure(
                {proposal: VotingProcedure(choice, anchor)}
            )
        }
    )

    def compose(fee: int, ex_units: List[ExecutionUnits]) -> Transaction:
        change = TransactionOutput(
            fuel_utxo.output.address,
            _deduct(fuel_utxo.output.amount, fee, "fee"),
        )
        redeemers = _redeemers(ex_units, (RedeemerTag.VOTING, 0, rules))
        return _script_transaction(
            context,
            protocol_param,
            validator,
            fuel_utxo,
            fee,
            inputs=[fuel],
            outputs=[change],
            redeemers=redeemers,
            required_signers=delegates,
            reference_inputs=[contract],
            voting_procedures=voting_procedures,
        )

    return TransactionBuilder(context, [contract_utxo, fuel_utxo]).build(compose)
