import json
from unittest.mock import patch

import pytest

from hotcold import drep
from hotcold.cli import build_parser, main
from hotcold.drep import Validator
from hotcold.governance import Vote
from hotcold.transaction import Transaction


@pytest.fixture
def patched_context(chain_context):
    with patch("hotcold.cli._context", return_value=chain_context):
        yield chain_context


def _hex(validator: Validator) -> str:
    return bytes(validator.script).hex()


def test_parser_vote_choice(validator, fuel, proposal_id):
    args = build_parser().parse_args(
        [
            "vote",
            "--validator",
            _hex(validator),
            "--contract",
            f"{'ab' * 32}#0",
            "--delegate",
            "a1" * 28,
            "--fuel",
            repr(fuel.input),
            "--proposal",
            f"{proposal_id}#0",
            "--abstain",
        ]
    )
    assert args.choice == Vote.ABSTAIN
    assert args.anchor is None


def test_parser_vote_requires_one_choice(validator):
    with pytest.raises(SystemExit):
        build_parser().parse_args(
            ["vote", "--validator", _hex(validator), "--yes", "--no"]
        )


def test_assign_stake(patched_context, validator, fuel, capsys):
    main(["assign-stake", "--validator", _hex(validator), "--fuel", repr(fuel.input)])

    envelope = json.loads(capsys.readouterr().out)
    assert envelope["type"] == "Unwitnessed Tx ConwayEra"
    assert envelope["description"] == "Ledger Cddl Format"
    tx = Transaction.from_cbor(envelope["cborHex"])
    assert list(tx.transaction_body.inputs) == [fuel.input]


def test_delegate_quorum_defaults_to_all(
    patched_context, validator, delegates, fuel, capsys
):
    argv = ["delegate", "--validator", _hex(validator), "--fuel", repr(fuel.input)]
    for d in delegates:
        argv += ["--delegate", str(d)]

    with patch("hotcold.cli.delegate", wraps=drep.delegate) as mock_delegate:
        main(argv)

    assert mock_delegate.call_args.args[3] == len(delegates)

    envelope = json.loads(capsys.readouterr().out)
    assert envelope["type"] == "Unwitnessed Tx ConwayEra"


def test_error_exit(patched_context, validator, capsys):
    with pytest.raises(SystemExit) as e:
        main(
            [
                "assign-stake",
                "--validator",
                _hex(validator),
                "--fuel",
                "not-an-output-reference",
            ]
        )

    assert e.value.code == 1
    captured = capsys.readouterr()
    assert captured.out == ""
    assert captured.err.startswith("error: fuel:")


def test_unknown_fuel(patched_context, validator, capsys):
    with pytest.raises(SystemExit) as e:
        main(
            [
                "assign-stake",
                "--validator",
                _hex(validator),
                "--fuel",
                f"{'ee' * 32}#0",
            ]
        )

    assert e.value.code == 1
    assert "Unknown output" in capsys.readouterr().err
