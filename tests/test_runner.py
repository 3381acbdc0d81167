import csv
import json
from pathlib import Path

from buyback.integration.runner import main

EXAMPLE_CONFIG = Path(__file__).resolve().parent.parent / "configs" / "buyback.example.yaml"


def test_paper_run_prints_summary(capsys, tmp_path):
    audit = tmp_path / "audit.jsonl"
    export = tmp_path / "records.csv"

    rc = main([
        "--config", str(EXAMPLE_CONFIG),
        "--paper",
        "--max-iterations", "3",
        "--interval-sec", "0",
        "--audit-log", str(audit),
        "--export", str(export),
        "--summary-json",
    ])

    assert rc == 0
    summary = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    assert summary["attempts"] == 3
    assert summary["outcomes"] == {"SUCCESS": 3}
    assert summary["execution_count"] == 3
    assert int(summary["total_buyback_amount"]) == 15 * 10 ** 18
    assert int(summary["sink_balance"]) == int(summary["total_tokens_acquired"])
    assert summary["circuit_breaker"] == {"active": False, "cooldown_end": 0}
    assert len(summary["config_hash"]) == 64

    assert len(audit.read_text().splitlines()) == 3
    with open(export, newline="") as f:
        assert len(list(csv.DictReader(f))) == 3


def test_state_file_carries_over_between_runs(capsys, tmp_path):
    state = tmp_path / "state.json"
    args = ["--config", str(EXAMPLE_CONFIG), "--paper", "--max-iterations", "1",
            "--interval-sec", "0", "--state-file", str(state), "--summary-json"]

    assert main(args) == 0
    assert main(args) == 0

    last = json.loads(capsys.readouterr().out.strip().splitlines()[-1])
    # second run restarts the paper clock, so the interval has not elapsed
    assert last["execution_count"] == 1
    assert last["outcomes"] == {"TriggerNotMet": 1}


def test_live_mode_refused(capsys):
    assert main(["--config", str(EXAMPLE_CONFIG)]) == 2
    assert "--paper" in capsys.readouterr().err


def test_bad_config_exit_code(tmp_path, capsys):
    path = tmp_path / "bad.yaml"
    path.write_text("buyback:\n  revenue_source: t\n")
    assert main(["--config", str(path), "--paper"]) == 2
    assert "ERROR" in capsys.readouterr().err


def test_non_numeric_paper_value_exit_code(tmp_path, capsys):
    path = tmp_path / "bad_paper.yaml"
    text = EXAMPLE_CONFIG.read_text()
    path.write_text(text.replace("pool_token_reserve: 1000000000000000000000000", "pool_token_reserve: lots"))
    assert main(["--config", str(path), "--paper"]) == 2
    assert "Invalid paper value" in capsys.readouterr().err
