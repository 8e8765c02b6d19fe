"""Command line scripts run as separate processes."""

import os
import subprocess
import sys
from pathlib import Path

import pytest

from fund_me.utils import find_free_port

#: Repository root
ROOT = Path(__file__).resolve().parent.parent


def run_script(name: str, cwd: Path, **env_vars) -> subprocess.CompletedProcess:
    env = dict(os.environ)
    env.update(
        {
            "PYTHONPATH": str(ROOT),
            "NETWORK": "tester",
            "LOG_LEVEL": "info",
            "REPORT_GAS": "false",
        }
    )
    env.update(env_vars)
    return subprocess.run(
        [sys.executable, str(ROOT / "scripts" / name)],
        cwd=cwd,
        env=env,
        capture_output=True,
        text=True,
        timeout=600,
    )


def test_fund_script(tmp_path):
    result = run_script("fund.py", tmp_path)
    assert result.returncode == 0, result.stderr
    assert "Funding contract.." in result.stderr
    assert "Funded!" in result.stderr


def test_fund_script_unknown_network(tmp_path):
    result = run_script("fund.py", tmp_path, NETWORK="goerli")
    assert result.returncode == 1
    assert "Funding failed" in result.stderr
    assert "Funded!" not in result.stderr


def test_fund_script_unreachable_node(tmp_path):
    port = find_free_port()
    result = run_script("fund.py", tmp_path, NETWORK="sepolia", SEPOLIA_RPC_URL=f"http://127.0.0.1:{port}")
    assert result.returncode == 1
    assert "Funding failed" in result.stderr


def test_deploy_script(tmp_path):
    result = run_script("deploy.py", tmp_path, TAGS="all")
    assert result.returncode == 0, result.stderr
    assert "FundMe" in result.stdout
    assert "MockV3Aggregator" in result.stdout


@pytest.mark.parametrize("cheaper", ["false", "true"])
def test_withdraw_script(tmp_path, cheaper: str):
    result = run_script("withdraw.py", tmp_path, CHEAPER=cheaper)
    assert result.returncode == 0, result.stderr
    method = "cheaperWithdraw()" if cheaper == "true" else "withdraw()"
    assert method in result.stderr
