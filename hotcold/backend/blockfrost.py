import os
import tempfile
from fractions import Fraction
from typing import Dict, List, Optional, Union

import requests
from blockfrost import ApiError, ApiUrls, BlockFrostApi

from hotcold.backend.base import ChainContext, ProtocolParameters
from hotcold.exception import (
    DeserializeException,
    InvalidArgumentException,
    ResolutionException,
    TransactionFailedException,
)
from hotcold.hash import ScriptHash, TransactionId
from hotcold.logging import logger
from hotcold.network import Network
from hotcold.plutus import ExecutionUnits
from hotcold.transaction import (
    AssetName,
    Transaction,
    TransactionInput,
    TransactionOutput,
    UTxO,
)

__all__ = ["BlockFrostChainContext"]

_PURPOSES = {
    "spend": "spend",
    "mint": "mint",
    "certificate": "certificate",
    "cert": "certificate",
    "publish": "certificate",
    "withdrawal": "withdrawal",
    "withdraw": "withdrawal",
    "reward": "withdrawal",
    "voting": "voting",
    "vote": "voting",
    "proposing": "proposing",
    "propose": "proposing",
}


def _redeemer_key(key: str) -> str:
    """Evaluator keys (``publish:0``, ``vote:0``...) as :attr:`RedeemerKey.purpose`."""
    purpose, sep, index = key.partition(":")
    return f"{_PURPOSES.get(purpose.lower(), purpose.lower())}{sep}{index}"


def _base_url_of(project_id: str) -> str:
    for url in ApiUrls:
        if project_id.startswith(url.name):
            return url.value
    raise InvalidArgumentException(
        f"Cannot tell the network of project id {project_id[:7]}..., "
        f"set BLOCKFROST_BASE_URL"
    )


class BlockFrostChainContext(ChainContext):
    """Chain context backed by the `BlockFrost <https://blockfrost.io/>`_ API.

    Args:
        project_id (str): A BlockFrost project ID obtained from https://blockfrost.io.
        base_url (str): Base URL for the BlockFrost API. Derived from the prefix of
            the project id (``mainnet``, ``preprod``, ``preview``) when omitted.
        timeout (float): Seconds to wait for a transaction download.
    """

    api: BlockFrostApi
    _protocol_param: Optional[ProtocolParameters] = None

    def __init__(
        self, project_id: str, base_url: Optional[str] = None, timeout: float = 30
    ):
        self._project_id = project_id
        self._timeout = timeout
        self._base_url = base_url if base_url else _base_url_of(project_id)
        self._network = (
            Network.MAINNET if "mainnet" in self._base_url else Network.TESTNET
        )
        self.api = BlockFrostApi(project_id=self._project_id, base_url=self._base_url)
        self._protocol_param = None

    @classmethod
    def from_env(cls) -> "BlockFrostChainContext":
        """Build a context from ``BLOCKFROST_PROJECT_ID`` and ``BLOCKFROST_BASE_URL``.

        Raises:
            :class:`InvalidArgumentException`: When no project id is configured.
        """
        project_id = os.environ.get("BLOCKFROST_PROJECT_ID")
        if not project_id:
            raise InvalidArgumentException(
                "BLOCKFROST_PROJECT_ID must be set to query the chain"
            )
        return cls(project_id, base_url=os.environ.get("BLOCKFROST_BASE_URL"))

    @property
    def network(self) -> Network:
        return self._network

    @property
    def protocol_param(self) -> ProtocolParameters:
        if not self._protocol_param:
            params = self.api.epoch_latest_parameters()
            raw_models = getattr(params, "cost_models_raw", None)
            if raw_models is not None:
                cost_models = {k: list(v) for k, v in raw_models.to_dict().items()}
            else:
                logger.warning(
                    "No raw cost models in protocol parameters, "
                    "falling back to named cost models"
                )
                cost_models = {
                    k: list(v.to_dict().values())
                    for k, v in params.cost_models.to_dict().items()
                }
            self._protocol_param = ProtocolParameters(
                min_fee_constant=int(params.min_fee_b),
                min_fee_coefficient=int(params.min_fee_a),
                price_mem=Fraction(str(params.price_mem)),
                price_step=Fraction(str(params.price_step)),
                collateral_percent=int(params.collateral_percent),
                coins_per_utxo_byte=int(params.coins_per_utxo_size),
                key_deposit=int(params.key_deposit),
                drep_deposit=int(params.drep_deposit),
                max_tx_size=int(params.max_tx_size),
                cost_models=cost_models,
            )
        return self._protocol_param

    def _tx_cbor(self, tx_hash: Union[TransactionId, str]) -> bytes:
        url = f"{self._base_url}/{self.api.api_version}/txs/{tx_hash}/cbor"
        try:
            response = requests.get(
                url, headers={"project_id": self._project_id}, timeout=self._timeout
            )
        except requests.RequestException as e:
            raise ResolutionException(f"Failed to fetch transaction {tx_hash}") from e
        if response.status_code == 404:
            raise ResolutionException(f"Transaction {tx_hash} not found")
        if not 200 <= response.status_code < 300:
            logger.warning(
                f"Blockfrost answered {response.status_code}: {response.text}"
            )
            raise ResolutionException(
                f"Failed to fetch transaction {tx_hash}: status {response.status_code}"
            )
        return bytes.fromhex(response.json()["cbor"])

    def _transaction(self, tx_hash: Union[TransactionId, str]) -> Transaction:
        cbor = self._tx_cbor(tx_hash)
        try:
            return Transaction.from_cbor(cbor)
        except DeserializeException as e:
            raise ResolutionException(f"Cannot decode transaction {tx_hash}") from e

    def resolve(self, transaction_input: TransactionInput) -> TransactionOutput:
        tx = self._transaction(transaction_input.transaction_id)
        outputs = tx.transaction_body.outputs
        if transaction_input.index >= len(outputs):
            raise ResolutionException(
                f"Transaction {transaction_input.transaction_id} has no output "
                f"{transaction_input.index}"
            )
        return outputs[transaction_input.index]

    def minting(
        self, policy_id: ScriptHash, asset_name: AssetName
    ) -> List[Transaction]:
        asset = f"{policy_id}{asset_name.payload.hex()}"
        try:
            history = self.api.asset_history(asset, gather_pages=True, order="desc")
        except ApiError as e:
            logger.warning(f"Failed to fetch history of asset {asset}: {e.message}")
            if e.status_code == 404:
                return []
            raise ResolutionException(
                f"Failed to fetch history of asset {asset}. "
                f"Error code: {e.status_code}. Error message: {e.message}"
            ) from e
        # rules are only ever read from the latest mint
        for event in history:
            if event.action == "minted":
                return [self._transaction(event.tx_hash)]
        return []

    def evaluate_tx_cbor(
        self, cbor: Union[bytes, str], utxos: List[UTxO]
    ) -> Dict[str, ExecutionUnits]:
        """Evaluate execution units of a transaction.

        Blockfrost resolves spent and referenced outputs from the chain itself, so
        ``utxos`` is not sent along.

        Args:
            cbor (Union[bytes, str]): The serialized transaction to be evaluated.
            utxos (List[UTxO]): Outputs spent or referenced by the transaction.

        Returns:
            Dict[str, ExecutionUnits]: Execution units keyed by redeemer purpose.

        Raises:
            :class:`TransactionFailedException`: When fails to evaluate the transaction.
        """
        if isinstance(cbor, bytes):
            cbor = cbor.hex()
        with tempfile.NamedTemporaryFile(delete=False, mode="w") as f:
            f.write(cbor)

        try:
            response = self.api.transaction_evaluate(f.name)
        except ApiError as e:
            raise TransactionFailedException(
                f"Failed to evaluate transaction. Error code: {e.status_code}. "
                f"Error message: {e.message}"
            ) from e
        finally:
            os.remove(f.name)

        evaluation = getattr(getattr(response, "result", None), "EvaluationResult", None)
        if evaluation is None:
            logger.warning(f"Transaction evaluation failed: {response}")
            raise TransactionFailedException(response)
        return {
            _redeemer_key(key): ExecutionUnits(units.memory, units.steps)
            for key, units in vars(evaluation).items()
        }
