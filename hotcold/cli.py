"""Command line interface: builds one unsigned transaction and prints its envelope."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from hotcold.backend.base import ChainContext
from hotcold.backend.blockfrost import BlockFrostChainContext
from hotcold.drep import Validator, assign_stake, delegate, redelegate, vote
from hotcold.exception import HotColdException
from hotcold.governance import GovActionId, Vote
from hotcold.hash import VerificationKeyHash
from hotcold.logging import logger
from hotcold.transaction import Transaction, TransactionInput

__all__ = ["build_parser", "main"]


def _context() -> ChainContext:
    return BlockFrostChainContext.from_env()


def _key_hashes(values: List[str], name: str) -> List[VerificationKeyHash]:
    return [VerificationKeyHash.from_hex(v, name) for v in values]


def cmd_assign_stake(args: argparse.Namespace) -> Transaction:
    validator = Validator.from_hex(args.validator)
    fuel = TransactionInput.from_str(args.fuel, "fuel")
    return assign_stake(_context(), validator, fuel)


def cmd_delegate(args: argparse.Namespace) -> Transaction:
    validator = Validator.from_hex(args.validator)
    delegates = _key_hashes(args.delegate, "delegate")
    administrators = _key_hashes(args.administrator, "administrator")
    quorum = args.quorum if args.quorum is not None else len(delegates)
    fuel = TransactionInput.from_str(args.fuel, "fuel")

    if args.contract is None:
        return delegate(
            _context(), validator, delegates, quorum, administrators, fuel
        )

    contract = TransactionInput.from_str(args.contract, "contract")
    return redelegate(
        _context(), validator, contract, delegates, quorum, administrators, fuel
    )


def cmd_vote(args: argparse.Namespace) -> Transaction:
    validator = Validator.from_hex(args.validator)
    contract = TransactionInput.from_str(args.contract, "contract")
    delegates = _key_hashes(args.delegate, "delegate")
    fuel = TransactionInput.from_str(args.fuel, "fuel")
    proposal = GovActionId.from_str(args.proposal, "proposal")
    return vote(
        _context(),
        validator,
        contract,
        delegates,
        fuel,
        proposal,
        args.choice,
        anchor_url=args.anchor,
    )


def _add_validator(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--validator", required=True, help="Compiled validator, hex-encoded"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hotcold",
        description="Build transactions for a hot/cold DRep contract.",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log every build attempt"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_assign = subparsers.add_parser(
        "assign-stake", help="Delegate the fuel owner's stake to the contract's DRep"
    )
    _add_validator(p_assign)
    p_assign.add_argument("--fuel", required=True, help="Fuel output, as TX#IX")
    p_assign.set_defaults(func=cmd_assign_stake)

    p_delegate = subparsers.add_parser(
        "delegate", help="Register the DRep, or hand it over to new delegates"
    )
    _add_validator(p_delegate)
    p_delegate.add_argument(
        "--delegate",
        action="append",
        required=True,
        help="Key hash of a delegate; repeat for each, order matters",
    )
    p_delegate.add_argument(
        "--administrator",
        action="append",
        default=[],
        help="Key hash of an administrator signing the transaction; repeatable",
    )
    p_delegate.add_argument(
        "--quorum",
        type=int,
        default=None,
        help="Delegate signatures required to vote (default: all delegates)",
    )
    p_delegate.add_argument(
        "--contract",
        default=None,
        help="Current contract output, as TX#IX, to redelegate",
    )
    p_delegate.add_argument("--fuel", required=True, help="Fuel output, as TX#IX")
    p_delegate.set_defaults(func=cmd_delegate)

    p_vote = subparsers.add_parser("vote", help="Vote on a governance action")
    _add_validator(p_vote)
    p_vote.add_argument(
        "--contract", required=True, help="Current contract output, as TX#IX"
    )
    p_vote.add_argument(
        "--delegate",
        action="append",
        required=True,
        help="Key hash of a delegate signing the vote; repeatable",
    )
    p_vote.add_argument("--fuel", required=True, help="Fuel output, as TX#IX")
    p_vote.add_argument(
        "--proposal", required=True, help="Governance action id, as TX#IX"
    )
    p_vote.add_argument("--anchor", default=None, help="URL of a rationale document")
    choice = p_vote.add_mutually_exclusive_group(required=True)
    choice.add_argument("--yes", dest="choice", action="store_const", const=Vote.YES)
    choice.add_argument("--no", dest="choice", action="store_const", const=Vote.NO)
    choice.add_argument(
        "--abstain", dest="choice", action="store_const", const=Vote.ABSTAIN
    )
    p_vote.set_defaults(func=cmd_vote)

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logger.setLevel(logging.DEBUG)

    try:
        tx = args.func(args)
    except HotColdException as exc:
        print(f"error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc

    print(tx.to_json())


if __name__ == "__main__":
    main()
