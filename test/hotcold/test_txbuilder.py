from dataclasses import replace
from fractions import Fraction
from test.hotcold.util import EX_UNITS, FixedChainContext
from unittest.mock import MagicMock

import pytest

from hotcold.exception import (
    InvalidTransactionException,
    TransactionBuilderException,
    TransactionFailedException,
)
from hotcold.plutus import (
    ExecutionUnits,
    RedeemerKey,
    RedeemerMap,
    RedeemerTag,
    RedeemerValue,
    Unit,
)
from hotcold.transaction import (
    Transaction,
    TransactionBody,
    TransactionOutput,
    Value,
)
from hotcold.txbuilder import TransactionBuilder, budget
from hotcold.utils import estimate_fee
from hotcold.witness import TransactionWitnessSet


class Composer:
    """Records every call made by the builder."""

    def __init__(self, fuel, with_script=False):
        self.fuel = fuel
        self.with_script = with_script
        self.calls = []
        self.built = []

    def __call__(self, fee, ex_units):
        self.calls.append((fee, list(ex_units)))
        body = TransactionBody(
            inputs=[self.fuel.input],
            outputs=[
                TransactionOutput(
                    self.fuel.output.address, Value(self.fuel.output.lovelace - fee)
                )
            ],
            fee=fee,
        )
        witness = TransactionWitnessSet()
        if self.with_script:
            witness.redeemer = RedeemerMap(
                {
                    RedeemerKey(RedeemerTag.MINT, 0): RedeemerValue(
                        Unit(), budget(ex_units, 0)
                    )
                }
            )
        tx = Transaction(body, witness)
        self.built.append(tx)
        return tx


@pytest.fixture
def flat_fee_context():
    protocol_param = replace(
        FixedChainContext().protocol_param,
        min_fee_constant=170000,
        min_fee_coefficient=0,
        price_mem=Fraction(0),
        price_step=Fraction(0),
    )
    return FixedChainContext(protocol_param=protocol_param)


def test_budget():
    assert budget([EX_UNITS], 0) == EX_UNITS
    assert budget([EX_UNITS], 1) == ExecutionUnits(0, 0)
    assert budget([], 0) == ExecutionUnits(0, 0)


def test_flat_fee_settles_on_second_attempt(flat_fee_context, fuel):
    compose = Composer(fuel)
    builder = TransactionBuilder(flat_fee_context)

    tx = builder.build(compose)

    assert compose.calls == [(0, []), (170000, [])]
    assert tx is compose.built[-1]
    assert tx.transaction_body.fee == 170000
    assert builder.fee == 170000
    assert builder.ex_units == []


def test_script_settles(chain_context, fuel):
    compose = Composer(fuel, with_script=True)
    builder = TransactionBuilder(chain_context, [fuel])

    tx = builder.build(compose)

    assert [units for _, units in compose.calls] == [[], [EX_UNITS], [EX_UNITS]]
    assert tx is compose.built[-1]
    assert builder.ex_units == [EX_UNITS]

    redeemer = tx.transaction_witness_set.redeemer[RedeemerKey(RedeemerTag.MINT, 0)]
    assert redeemer.ex_units == EX_UNITS

    fee = tx.transaction_body.fee
    assert fee == builder.fee
    assert fee >= estimate_fee(
        chain_context.protocol_param, len(tx.to_cbor()), [EX_UNITS], 1
    )
    assert chain_context.evaluated[-1] == tx.to_cbor()


def test_fee_never_settles(chain_context, fuel):
    builder = TransactionBuilder(chain_context, [fuel], max_attempts=1)
    with pytest.raises(TransactionBuilderException):
        builder.build(Composer(fuel, with_script=True))


def test_scripts_not_evaluated_without_resolved_inputs(chain_context, fuel):
    compose = Composer(fuel, with_script=True)

    TransactionBuilder(chain_context).build(compose)

    assert chain_context.evaluated == []
    assert all(units in ([], [ExecutionUnits(0, 0)]) for _, units in compose.calls)


def test_missing_evaluation(chain_context, fuel):
    chain_context.evaluation = {"spend:0": EX_UNITS}
    builder = TransactionBuilder(chain_context, [fuel])
    with pytest.raises(TransactionBuilderException, match="mint:0"):
        builder.build(Composer(fuel, with_script=True))


def test_evaluation_failure_propagates(chain_context, fuel):
    chain_context.evaluate_tx_cbor = MagicMock(
        side_effect=TransactionFailedException("script failure")
    )
    builder = TransactionBuilder(chain_context, [fuel])
    with pytest.raises(TransactionFailedException):
        builder.build(Composer(fuel, with_script=True))


def test_transaction_too_large(fuel):
    protocol_param = replace(FixedChainContext().protocol_param, max_tx_size=64)
    builder = TransactionBuilder(FixedChainContext(protocol_param=protocol_param))
    with pytest.raises(InvalidTransactionException):
        builder.build(Composer(fuel))
