import pytest

from hotcold.address import Address, AddressType
from hotcold.exception import (
    DecodingException,
    InvalidArgumentException,
    InvalidDataException,
)
from hotcold.governance import GovActionId
from hotcold.hash import ScriptHash, TransactionId, VerificationKeyHash
from hotcold.network import Network
from hotcold.plutus import PlutusV3Script, script_hash
from hotcold.transaction import (
    Asset,
    AssetName,
    MultiAsset,
    TransactionInput,
    TransactionOutput,
    Value,
)

TX_HEX = "732bfd67e66be8e8288349fcaaa2294973ef6271cc189a239bb431275401b8e5"


def test_transaction_input_from_str():
    tx_in = TransactionInput.from_str(f"{TX_HEX}#3")

    assert tx_in == TransactionInput(TransactionId(bytes.fromhex(TX_HEX)), 3)
    assert repr(tx_in) == f"{TX_HEX}#3"


def test_transaction_input_from_str_without_separator():
    with pytest.raises(InvalidArgumentException, match="fuel"):
        TransactionInput.from_str(TX_HEX, "fuel")


@pytest.mark.parametrize(
    "value",
    [
        f"{TX_HEX[:-2]}#0",
        f"{'zz' * 32}#0",
        f"{TX_HEX}#one",
        f"{TX_HEX}#-1",
        f"{TX_HEX}#",
    ],
)
def test_transaction_input_from_str_malformed(value):
    with pytest.raises(DecodingException):
        TransactionInput.from_str(value)


def test_transaction_input_order():
    low = TransactionInput(TransactionId(bytes.fromhex("aa" * 32)), 5)
    high = TransactionInput(TransactionId(bytes.fromhex("bb" * 32)), 0)
    next_index = TransactionInput(TransactionId(bytes.fromhex("aa" * 32)), 6)

    assert sorted([high, next_index, low]) == [low, next_index, high]


def test_gov_action_id_from_str():
    action = GovActionId.from_str(f"{TX_HEX}#12")
    assert action == GovActionId(TransactionId(bytes.fromhex(TX_HEX)), 12)

    with pytest.raises(DecodingException):
        GovActionId.from_str(TX_HEX)
    with pytest.raises(DecodingException):
        GovActionId.from_str(f"{TX_HEX}#70000")


def test_value_equality():
    policy = ScriptHash(bytes.fromhex("7c" * 28))
    assets = MultiAsset({policy: Asset({AssetName(b"gov_"): 1})})

    assert Value(5) == 5
    assert Value(5) == Value(5, MultiAsset())
    assert Value(5, assets) != Value(5)
    assert Value(5, assets).to_primitive() == [5, {policy.payload: {b"gov_": 1}}]
    assert Value(5).to_primitive() == 5


def test_negative_output():
    address = Address(VerificationKeyHash(bytes(28)), None, Network.TESTNET)

    with pytest.raises(InvalidDataException):
        TransactionOutput(address, -1).to_validated_primitive()


def test_script_address():
    script = PlutusV3Script(bytes.fromhex("4e4d01000033222220051200120011"))
    policy = script_hash(script)
    address = Address(policy, policy, Network.TESTNET)

    assert address.address_type == AddressType.SCRIPT_SCRIPT
    assert bytes(address)[:1] == b"\x30"
    assert Address.from_primitive(bytes(address)) == address
    assert Address.from_primitive(bytes(address)).staking_part == policy


def test_key_address():
    owner = VerificationKeyHash(bytes.fromhex("5b" * 28))
    address = Address(owner, None, Network.MAINNET)

    assert bytes(address) == b"\x61" + owner.payload
    restored = Address.from_primitive(bytes(address))
    assert restored.payment_part == owner
    assert restored.staking_part is None
    assert restored.network == Network.MAINNET
