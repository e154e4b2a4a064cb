"""Interface through which operations read the chain and evaluate scripts."""

from dataclasses import dataclass
from fractions import Fraction
from typing import Dict, List, Union

from hotcold.exception import InvalidArgumentException
from hotcold.hash import ScriptHash
from hotcold.network import Network
from hotcold.plutus import ExecutionUnits, Language
from hotcold.transaction import (
    AssetName,
    Transaction,
    TransactionInput,
    TransactionOutput,
    UTxO,
)
from hotcold.types import typechecked

__all__ = ["ProtocolParameters", "ChainContext"]


@dataclass(frozen=True)
class ProtocolParameters:
    """Snapshot of the protocol parameters an operation prices its transaction with."""

    min_fee_constant: int

    min_fee_coefficient: int

    price_mem: Fraction

    price_step: Fraction

    collateral_percent: int
    """Collateral required, as a percentage of the fee (e.g. 150)."""

    coins_per_utxo_byte: int

    key_deposit: int

    drep_deposit: int

    max_tx_size: int

    cost_models: Dict[str, List[int]]
    """Cost models keyed by language name ("PlutusV1", "PlutusV2", "PlutusV3"),
    each as the ordered list of its parameter values."""

    def cost_model(self, language: Language) -> List[int]:
        """The cost model of ``language``.

        Raises:
            :class:`InvalidArgumentException`: When the parameters carry no such model.
        """
        try:
            return self.cost_models[language.cost_model_name]
        except KeyError as e:
            raise InvalidArgumentException(
                f"No cost model for {language.cost_model_name} in protocol parameters"
            ) from e


@typechecked
class ChainContext:
    """Chain queries and script evaluation used while building transactions."""

    @property
    def protocol_param(self) -> ProtocolParameters:
        """Get current protocol parameters"""
        raise NotImplementedError()

    @property
    def network(self) -> Network:
        """Get current network"""
        raise NotImplementedError()

    def resolve(self, transaction_input: TransactionInput) -> TransactionOutput:
        """Find the output a transaction input refers to.

        Args:
            transaction_input (TransactionInput): Reference to the output.

        Returns:
            TransactionOutput: The referenced output.

        Raises:
            :class:`ResolutionException`: When the output cannot be found.
        """
        raise NotImplementedError()

    def resolve_utxo(self, transaction_input: TransactionInput) -> UTxO:
        """Like :meth:`resolve`, keeping the reference alongside the output."""
        return UTxO(transaction_input, self.resolve(transaction_input))

    def minting(
        self, policy_id: ScriptHash, asset_name: AssetName
    ) -> List[Transaction]:
        """Transactions that minted ``policy_id.asset_name``, most recent first.

        Only entry 0 is ever consumed, so a backend may stop after the most recent
        one.

        Raises:
            :class:`ResolutionException`: When the chain cannot be queried for them.
        """
        raise NotImplementedError()

    def evaluate_tx(
        self, tx: Transaction, utxos: List[UTxO]
    ) -> Dict[str, ExecutionUnits]:
        """Evaluate execution units of a transaction.

        Args:
            tx (Transaction): The transaction to be evaluated.
            utxos (List[UTxO]): Outputs spent or referenced by the transaction.

        Returns:
            Dict[str, ExecutionUnits]: Execution units keyed by redeemer purpose and
            index, e.g. ``"certificate:1"``.
        """
        return self.evaluate_tx_cbor(tx.to_cbor(), utxos)

    def evaluate_tx_cbor(
        self, cbor: Union[bytes, str], utxos: List[UTxO]
    ) -> Dict[str, ExecutionUnits]:
        """Evaluate execution units of a serialized transaction.

        Args:
            cbor (Union[bytes, str]): The serialized transaction to be evaluated.
            utxos (List[UTxO]): Outputs spent or referenced by the transaction.

        Returns:
            Dict[str, ExecutionUnits]: Execution units keyed by redeemer purpose and
            index, one of ``spend``, ``mint``, ``certificate``, ``withdrawal``,
            ``voting`` or ``proposing``.

        Raises:
            :class:`TransactionFailedException`: When a script fails or the
                evaluator rejects the transaction.
        """
        raise NotImplementedError()
