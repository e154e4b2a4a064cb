from fractions import Fraction
from typing import Dict, List, Optional, Union

from hotcold.backend.base import ChainContext, ProtocolParameters
from hotcold.exception import ResolutionException
from hotcold.hash import ScriptHash
from hotcold.network import Network
from hotcold.plutus import ExecutionUnits
from hotcold.serialization import CBORSerializable
from hotcold.transaction import (
    AssetName,
    Transaction,
    TransactionInput,
    TransactionOutput,
    UTxO,
)

PLUTUS_V3_COST_MODEL = [100788, 420, 1, 1, 1000, 173, 0, 1, 1000, 59957, 4, 1]

VALIDATOR_HEX = (
    "58a701010032323232323225333002323232323253330073370e900118041baa00113"
    "23232533300a3370e900018059baa00513232533300f301100213253330103370e9"
    "00018089baa0011533301030113756601e60226ea800c4c8c8cc004004dd5980a180"
)

EX_UNITS = ExecutionUnits(mem=14000, steps=3000000)


def check_two_way_cbor(serializable: CBORSerializable):
    restored = serializable.from_cbor(serializable.to_cbor())
    assert restored == serializable


class FixedChainContext(ChainContext):
    """In-memory chain: UTxOs and minting history set up by each test."""

    _protocol_param = ProtocolParameters(
        min_fee_constant=155381,
        min_fee_coefficient=44,
        price_mem=Fraction(577, 10000),
        price_step=Fraction(721, 10000000),
        collateral_percent=150,
        coins_per_utxo_byte=4310,
        key_deposit=2000000,
        drep_deposit=500000000,
        max_tx_size=16384,
        cost_models={"PlutusV3": PLUTUS_V3_COST_MODEL},
    )

    def __init__(
        self,
        protocol_param: Optional[ProtocolParameters] = None,
        network: Network = Network.TESTNET,
    ):
        if protocol_param is not None:
            self._protocol_param = protocol_param
        self._network = network
        self.utxos: Dict[TransactionInput, TransactionOutput] = {}
        self.minted: Dict[bytes, List[Transaction]] = {}
        self.evaluation: Dict[str, ExecutionUnits] = {
            purpose: EX_UNITS
            for purpose in (
                "spend:0",
                "spend:1",
                "mint:0",
                "certificate:0",
                "certificate:1",
                "voting:0",
            )
        }
        self.evaluated: List[bytes] = []

    @property
    def protocol_param(self) -> ProtocolParameters:
        return self._protocol_param

    @property
    def network(self) -> Network:
        return self._network

    def add_utxo(self, utxo: UTxO):
        self.utxos[utxo.input] = utxo.output

    def record_minting(self, tx: Transaction):
        """Index ``tx`` as the latest minting transaction of every token it mints."""
        for policy_id, assets in (tx.transaction_body.mint or {}).items():
            for name, quantity in assets.items():
                if quantity > 0:
                    key = policy_id.payload + name.payload
                    self.minted.setdefault(key, []).insert(0, tx)

    def resolve(self, transaction_input: TransactionInput) -> TransactionOutput:
        if transaction_input not in self.utxos:
            raise ResolutionException(f"Unknown output {transaction_input}")
        return self.utxos[transaction_input]

    def minting(
        self, policy_id: ScriptHash, asset_name: AssetName
    ) -> List[Transaction]:
        return list(self.minted.get(policy_id.payload + asset_name.payload, []))

    def evaluate_tx_cbor(
        self, cbor: Union[bytes, str], utxos: List[UTxO]
    ) -> Dict[str, ExecutionUnits]:
        self.evaluated.append(cbor)
        return dict(self.evaluation)

