import math
from dataclasses import replace
from fractions import Fraction
from test.hotcold.util import EX_UNITS, PLUTUS_V3_COST_MODEL, FixedChainContext
from unittest.mock import patch

import pytest

from hotcold.address import Address
from hotcold.certificate import (
    Anchor,
    DRep,
    DRepCredential,
    RegDRepCert,
    StakeCredential,
    StakeRegistrationAndVoteDelegation,
)
from hotcold.drep import Validator, assign_stake, delegate, redelegate, vote
from hotcold.exception import (
    DecodingException,
    InsufficientFundsException,
    InvalidArgumentException,
    ResolutionException,
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
from hotcold.hash import AnchorDataHash, TransactionId
from hotcold.network import Network
from hotcold.plutus import Language, RedeemerKey, RedeemerTag, Unit, script_hash
from hotcold.rules import build_rules, recover_rules
from hotcold.transaction import (
    Asset,
    MultiAsset,
    Transaction,
    TransactionInput,
    TransactionOutput,
    UTxO,
)
from hotcold.utils import estimate_fee, script_integrity_hash


def _record_contract(chain_context, tx):
    """Make the contract output of ``tx`` and its minting history visible on chain."""
    chain_context.record_minting(tx)
    contract = UTxO(TransactionInput(tx.id, 0), tx.transaction_body.outputs[0])
    chain_context.add_utxo(contract)
    return contract.input


def _assert_collateral(tx, fuel):
    body = tx.transaction_body
    total_collateral = math.ceil(Fraction(body.fee * 150, 100))
    assert list(body.collateral) == [fuel.input]
    assert body.total_collateral == total_collateral
    assert body.collateral_return == TransactionOutput(
        fuel.output.address, fuel.output.lovelace - total_collateral
    )


@pytest.fixture
def registration(chain_context, validator, delegates, administrators, fuel):
    return delegate(chain_context, validator, delegates, 2, administrators, fuel.input)


def test_validator_from_hex(validator):
    restored = Validator.from_hex(bytes(validator.script).hex())

    assert restored == validator
    assert restored.hash == script_hash(validator.script)
    assert validator.address(Network.TESTNET) == Address(
        validator.hash, validator.hash, Network.TESTNET
    )


@pytest.mark.parametrize("value", ["", "not hex", "abc"])
def test_validator_from_bad_hex(value):
    with pytest.raises(DecodingException):
        Validator.from_hex(value)


def test_assign_stake(validator, owner):
    protocol_param = replace(
        FixedChainContext().protocol_param,
        min_fee_constant=170000,
        min_fee_coefficient=0,
        price_mem=Fraction(0),
        price_step=Fraction(0),
    )
    chain_context = FixedChainContext(protocol_param=protocol_param)
    fuel = UTxO(
        TransactionInput(TransactionId(bytes.fromhex("f2" * 32)), 0),
        TransactionOutput(Address(owner, None, Network.TESTNET), 10_000_000),
    )
    chain_context.add_utxo(fuel)

    tx = assign_stake(chain_context, validator, fuel.input)

    body = tx.transaction_body
    assert body.fee == 170000
    assert list(body.inputs) == [fuel.input]
    assert body.outputs == [
        TransactionOutput(Address(owner, owner, Network.TESTNET), 7_830_000)
    ]
    assert list(body.certificates) == [
        StakeRegistrationAndVoteDelegation(
            StakeCredential(owner), DRep.script(validator.hash), 2_000_000
        )
    ]
    assert body.certificates[0].to_primitive()[0] == 12
    assert body.network_id == Network.TESTNET
    assert body.collateral is None
    assert body.script_data_hash is None
    assert tx.transaction_witness_set.redeemer is None
    assert chain_context.evaluated == []


def test_assign_stake_requires_key_fuel(chain_context, validator):
    fuel = UTxO(
        TransactionInput(TransactionId(bytes.fromhex("f3" * 32)), 0),
        TransactionOutput(validator.address(Network.TESTNET), 10_000_000),
    )
    chain_context.add_utxo(fuel)

    with pytest.raises(InvalidArgumentException):
        assign_stake(chain_context, validator, fuel.input)


def test_delegate(chain_context, validator, delegates, administrators, fuel):
    rules, name = build_rules(delegates, 2)

    tx = delegate(chain_context, validator, delegates, 2, administrators, fuel.input)

    body = tx.transaction_body
    contract, change = body.outputs
    token = MultiAsset({validator.hash: Asset({name: 1})})

    assert body.mint == token
    assert contract.address == validator.address(Network.TESTNET)
    assert contract.amount.multi_asset == token
    assert change.address == fuel.output.address
    assert (
        contract.lovelace + change.lovelace + body.fee + 500_000_000
        == fuel.output.lovelace
    )
    assert list(body.certificates) == [
        RegDRepCert(DRepCredential(validator.hash), 500_000_000, None)
    ]
    assert list(body.required_signers) == administrators
    assert body.network_id == Network.TESTNET

    redeemers = tx.transaction_witness_set.redeemer
    assert list(redeemers) == [
        RedeemerKey(RedeemerTag.MINT, 0),
        RedeemerKey(RedeemerTag.CERTIFICATE, 0),
    ]
    assert redeemers[RedeemerKey(RedeemerTag.MINT, 0)].data == Unit()
    assert (
        redeemers[RedeemerKey(RedeemerTag.CERTIFICATE, 0)].data.to_cbor()
        == rules.to_cbor()
    )
    assert all(r.ex_units == EX_UNITS for r in redeemers.values())
    assert body.script_data_hash == script_integrity_hash(
        redeemers, None, [(Language.PLUTUS_V3, PLUTUS_V3_COST_MODEL)]
    )
    assert list(tx.transaction_witness_set.plutus_v3_script) == [validator.script]
    _assert_collateral(tx, fuel)


def test_delegate_fee_covers_estimate(chain_context, registration):
    body = registration.transaction_body
    cbor = registration.to_cbor()

    assert body.fee >= estimate_fee(
        chain_context.protocol_param, len(cbor), [EX_UNITS, EX_UNITS], 2
    )
    assert chain_context.evaluated[-1] == cbor


def test_delegate_round_trip(registration):
    cbor = registration.to_cbor()
    assert Transaction.from_cbor(cbor).to_cbor() == cbor


def test_delegate_insufficient_funds(chain_context, validator, delegates, owner):
    fuel = UTxO(
        TransactionInput(TransactionId(bytes.fromhex("f4" * 32)), 0),
        TransactionOutput(Address(owner, None, Network.TESTNET), 5_000_000),
    )
    chain_context.add_utxo(fuel)

    with pytest.raises(InsufficientFundsException):
        delegate(chain_context, validator, delegates, 1, [], fuel.input)


def test_recover_rules_after_delegate(
    chain_context, validator, delegates, registration
):
    rules, name = build_rules(delegates, 2)
    contract = _record_contract(chain_context, registration)

    recovered, token = recover_rules(
        chain_context, validator.hash, chain_context.resolve(contract).amount
    )

    assert token == name
    assert recovered.to_cbor() == rules.to_cbor()


def test_redelegate(
    chain_context, validator, delegates, administrators, fuel, registration
):
    _, old_name = build_rules(delegates, 2)
    rules, new_name = build_rules(delegates[:2], 1)
    contract = _record_contract(chain_context, registration)
    contract_output = chain_context.resolve(contract)

    tx = redelegate(
        chain_context,
        validator,
        contract,
        delegates[:2],
        1,
        administrators,
        fuel.input,
    )

    body = tx.transaction_body
    inputs = sorted([contract, fuel.input])
    assert list(body.inputs) == inputs
    assert body.mint == MultiAsset(
        {validator.hash: Asset({new_name: 1, old_name: -1})}
    )
    assert body.outputs[0].amount.multi_asset == MultiAsset(
        {validator.hash: Asset({new_name: 1})}
    )
    assert [c.to_primitive()[0] for c in body.certificates] == [17, 16]
    assert (
        sum(o.lovelace for o in body.outputs) + body.fee
        == fuel.output.lovelace + contract_output.lovelace
    )

    redeemers = tx.transaction_witness_set.redeemer
    assert list(redeemers) == [
        RedeemerKey(RedeemerTag.MINT, 0),
        RedeemerKey(RedeemerTag.SPEND, inputs.index(contract)),
        RedeemerKey(RedeemerTag.CERTIFICATE, 0),
        RedeemerKey(RedeemerTag.CERTIFICATE, 1),
    ]
    assert redeemers[RedeemerKey(RedeemerTag.CERTIFICATE, 0)].data == Unit()
    assert (
        redeemers[RedeemerKey(RedeemerTag.CERTIFICATE, 1)].data.to_cbor()
        == rules.to_cbor()
    )
    _assert_collateral(tx, fuel)

    new_contract = _record_contract(chain_context, tx)
    recovered, _ = recover_rules(
        chain_context, validator.hash, chain_context.resolve(new_contract).amount
    )
    assert recovered.to_cbor() == rules.to_cbor()


def test_redelegate_spends_contract_at_sorted_position(
    chain_context, validator, delegates, administrators, owner, registration
):
    contract = _record_contract(chain_context, registration)
    fuel = UTxO(
        TransactionInput(TransactionId(bytes(32)), 0),
        TransactionOutput(Address(owner, None, Network.TESTNET), 1_000_000_000),
    )
    chain_context.add_utxo(fuel)

    tx = redelegate(
        chain_context,
        validator,
        contract,
        delegates[:2],
        1,
        administrators,
        fuel.input,
    )

    assert list(tx.transaction_body.inputs) == [fuel.input, contract]
    redeemers = tx.transaction_witness_set.redeemer
    assert RedeemerKey(RedeemerTag.SPEND, 1) in redeemers
    assert RedeemerKey(RedeemerTag.SPEND, 0) not in redeemers


def test_redelegate_to_same_rules(
    chain_context, validator, delegates, administrators, fuel, registration
):
    contract = _record_contract(chain_context, registration)

    with pytest.raises(InvalidArgumentException):
        redelegate(
            chain_context,
            validator,
            contract,
            delegates,
            2,
            administrators,
            fuel.input,
        )


def test_vote(chain_context, validator, delegates, fuel, registration, proposal_id):
    rules, _ = build_rules(delegates, 2)
    contract = _record_contract(chain_context, registration)
    proposal = GovActionId(proposal_id, 0)

    tx = vote(
        chain_context, validator, contract, delegates[:2], fuel.input, proposal, Vote.NO
    )

    body = tx.transaction_body
    assert list(body.inputs) == [fuel.input]
    assert list(body.reference_inputs) == [contract]
    assert list(body.required_signers) == delegates[:2]
    assert body.mint is None
    assert body.certificates is None
    assert body.outputs[0].lovelace + body.fee == fuel.output.lovelace
    assert body.voting_procedures == VotingProcedures(
        {
            Voter(validator.hash, VoterType.DREP): GovActionIdToVotingProcedure(
                {proposal: VotingProcedure(Vote.NO, None)}
            )
        }
    )

    redeemers = tx.transaction_witness_set.redeemer
    assert list(redeemers) == [RedeemerKey(RedeemerTag.VOTING, 0)]
    assert (
        redeemers[RedeemerKey(RedeemerTag.VOTING, 0)].data.to_cbor() == rules.to_cbor()
    )
    _assert_collateral(tx, fuel)


def test_vote_with_anchor(
    chain_context, validator, delegates, fuel, registration, proposal_id
):
    contract = _record_contract(chain_context, registration)
    proposal = GovActionId(proposal_id, 3)
    anchor = Anchor("https://example.com/rationale.json", AnchorDataHash(bytes(32)))

    with patch("hotcold.drep.fetch_anchor", return_value=anchor) as mock_fetch:
        tx = vote(
            chain_context,
            validator,
            contract,
            delegates,
            fuel.input,
            proposal,
            Vote.ABSTAIN,
            anchor_url=anchor.url,
        )

    mock_fetch.assert_called_once_with(anchor.url)
    procedures = tx.transaction_body.voting_procedures
    voter = Voter(validator.hash, VoterType.DREP)
    assert procedures[voter][proposal] == VotingProcedure(Vote.ABSTAIN, anchor)


def test_vote_without_minting_history(
    chain_context, validator, delegates, fuel, registration, proposal_id
):
    contract = UTxO(
        TransactionInput(registration.id, 0), registration.transaction_body.outputs[0]
    )
    chain_context.add_utxo(contract)

    with pytest.raises(ResolutionException):
        vote(
            chain_context,
            validator,
            contract.input,
            delegates,
            fuel.input,
            GovActionId(proposal_id, 0),
            Vote.YES,
        )
