from typing import List
from test.hotcold.util import VALIDATOR_HEX, FixedChainContext

import pytest

from hotcold.address import Address
from hotcold.drep import Validator
from hotcold.hash import TransactionId, VerificationKeyHash
from hotcold.network import Network
from hotcold.plutus import PlutusV3Script
from hotcold.transaction import TransactionInput, TransactionOutput, UTxO, Value


@pytest.fixture
def chain_context() -> FixedChainContext:
    return FixedChainContext()


@pytest.fixture
def validator() -> Validator:
    return Validator(PlutusV3Script(bytes.fromhex(VALIDATOR_HEX)))


@pytest.fixture
def owner() -> VerificationKeyHash:
    return VerificationKeyHash(bytes.fromhex("5b" * 28))


@pytest.fixture
def delegates() -> List[VerificationKeyHash]:
    return [
        VerificationKeyHash(bytes.fromhex(b * 28)) for b in ("a1", "b2", "c3")
    ]


@pytest.fixture
def administrators() -> List[VerificationKeyHash]:
    return [VerificationKeyHash(bytes.fromhex("d4" * 28))]


@pytest.fixture
def fuel(chain_context, owner) -> UTxO:
    utxo = UTxO(
        TransactionInput(TransactionId(bytes.fromhex("f1" * 32)), 1),
        TransactionOutput(
            Address(owner, None, Network.TESTNET), Value(1_000_000_000)
        ),
    )
    chain_context.add_utxo(utxo)
    return utxo


@pytest.fixture
def proposal_id() -> TransactionId:
    return TransactionId(bytes.fromhex("9e" * 32))
