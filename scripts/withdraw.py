"""Withdraw all funds from the FundMe contract to its owner.

Environment variables
---------------------
- ``NETWORK``: network name, default ``tester``.
- ``CHEAPER``: ``true`` to use ``cheaperWithdraw()`` instead of ``withdraw()``.
- ``LOG_LEVEL``: logging level (default: ``info``).

Usage::

    NETWORK=localhost CHEAPER=true poetry run python scripts/withdraw.py
"""

import logging
import os
import sys

from web3 import Web3

from fund_me.config import FundMeConfig
from fund_me.deploy import open_deployment_environment
from fund_me.utils import setup_console_logging

logger = logging.getLogger(__name__)


def main():
    setup_console_logging(default_log_level="info", simplified_logging=True)

    config = FundMeConfig.from_env()
    cheaper = os.environ.get("CHEAPER", "false").lower() in ("1", "true", "yes")
    method = "cheaperWithdraw" if cheaper else "withdraw"

    with open_deployment_environment(config) as env:
        deployer = env.get_named_account("deployer")
        fund_me = env.get_contract("FundMe")
        balance = env.web3.eth.get_balance(fund_me.address)
        logger.info("Withdrawing %s ETH from %s with %s()", Web3.from_wei(balance, "ether"), fund_me.address, method)
        result = env.execute("FundMe", method, from_=deployer, confirmations=env.network.block_confirmations)
        logger.info("Withdrawn in block %d, gas used %d", result.block_number, result.gas_used)


def cli():
    try:
        main()
    except Exception:
        logger.exception("Withdrawal failed")
        sys.exit(1)


if __name__ == "__main__":
    cli()
