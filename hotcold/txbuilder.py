from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, List

from hotcold.backend.base import ChainContext
from hotcold.exception import (
    InvalidTransactionException,
    TransactionBuilderException,
)
from hotcold.logging import log_state, logger
from hotcold.plutus import ExecutionUnits
from hotcold.transaction import Transaction, UTxO
from hotcold.utils import estimate_fee

__all__ = ["TransactionBuilder", "Compose", "budget"]

Compose = Callable[[int, List[ExecutionUnits]], Transaction]
"""Builds a complete transaction from a fee and the execution units of its
redeemers, given in the order the transaction's redeemer map lists them."""


def budget(ex_units: List[ExecutionUnits], index: int) -> ExecutionUnits:
    """Execution units of the ``index``-th redeemer, zero when not measured yet."""
    if index < len(ex_units):
        return ex_units[index]
    return ExecutionUnits(0, 0)


@dataclass
class TransactionBuilder:
    """Finds the fee and execution units a transaction is consistent with.

    The fee depends on the size of the transaction and on the cost of its scripts,
    while both depend on the fee through the outputs it is taken from. :meth:`build`
    therefore rebuilds the transaction until the fee covers its own estimate and the
    evaluator measures exactly the units the transaction declares.

    Args:
        context (ChainContext): Protocol parameters and script evaluator.
        resolved_inputs (List[UTxO]): Outputs spent or referenced by the transaction.
            Scripts are only evaluated when this is not empty.
        max_attempts (int): Number of builds after which the search is abandoned.
    """

    context: ChainContext

    resolved_inputs: List[UTxO] = field(default_factory=list)

    max_attempts: int = 3

    _fee: int = field(init=False, default=0)

    _ex_units: List[ExecutionUnits] = field(init=False, default_factory=list)

    _attempts: int = field(init=False, default=0)

    @property
    def fee(self) -> int:
        return self._fee

    @property
    def ex_units(self) -> List[ExecutionUnits]:
        return self._ex_units

    def _measure(self, tx: Transaction, cbor: bytes) -> List[ExecutionUnits]:
        redeemers = tx.transaction_witness_set.redeemer
        if not redeemers:
            return []

        if not self.resolved_inputs:
            return [ExecutionUnits(0, 0) for _ in redeemers]

        evaluated = self.context.evaluate_tx_cbor(cbor, self.resolved_inputs)
        measured = []
        for key in redeemers:
            if key.purpose not in evaluated:
                raise TransactionBuilderException(
                    f"Cannot find execution unit for redeemer: {key.purpose} "
                    f"in evaluated execution units: {evaluated}"
                )
            measured.append(evaluated[key.purpose])
        return measured

    @log_state
    def build(self, compose: Compose) -> Transaction:
        """Rebuild the transaction until its fee and execution units settle.

        Args:
            compose (Compose): Pure function building the transaction. It must return
                the same transaction whenever it is called with the same arguments.

        Returns:
            Transaction: The last transaction built, whose bytes were evaluated.

        Raises:
            :class:`TransactionBuilderException`: When the fee has not settled after
                ``max_attempts`` builds, or a redeemer was not evaluated.
            :class:`TransactionFailedException`: When the evaluator rejects the
                transaction.
            :class:`InvalidTransactionException`: When the settled transaction
                exceeds the maximum transaction size.
        """
        protocol_param = self.context.protocol_param
        self._fee = 0
        self._ex_units = []
        self._attempts = 0

        while self._attempts < self.max_attempts:
            self._attempts += 1

            tx = compose(self._fee, self._ex_units)
            cbor = tx.to_cbor()
            measured = self._measure(tx, cbor)
            used = [budget(self._ex_units, i) for i in range(len(measured))]

            body = tx.transaction_body
            signer_count = len(body.inputs) + len(body.required_signers or [])
            estimated = estimate_fee(protocol_param, len(cbor), used, signer_count)

            logger.debug(
                f"Attempt {self._attempts}: fee={self._fee}, estimated={estimated}, "
                f"size={len(cbor)}, used={used}, measured={measured}"
            )

            if self._fee >= estimated and measured == used:
                if len(cbor) > protocol_param.max_tx_size:
                    raise InvalidTransactionException(
                        f"Transaction size ({len(cbor)}) exceeds the max limit "
                        f"({protocol_param.max_tx_size}) of the current protocol."
                    )
                logger.info(
                    f"Transaction {tx.id} settled after {self._attempts} attempt(s) "
                    f"with fee {self._fee}"
                )
                return tx

            self._fee = estimated
            self._ex_units = measured

        raise TransactionBuilderException(
            f"Fee and execution units did not settle after {self.max_attempts} "
            f"attempts, last fee: {self._fee}"
        )
