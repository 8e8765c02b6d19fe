"""Fund the deployed FundMe contract with 0.1 ETH.

Sends ``fund()`` from the ``deployer`` account and waits for one confirmation.

Environment variables
---------------------
- ``NETWORK``: network name, default ``tester``. On ``tester`` and ``anvil`` the contracts
  are deployed first, as a chain started by this process has no earlier state.
- ``LOG_LEVEL``: logging level (default: ``info``).
- See :py:mod:`fund_me.config` for RPC URLs and keys.

Usage::

    NETWORK=localhost poetry run python scripts/fund.py

Exits with status 1 if funding fails.
"""

import logging
import sys

from web3 import Web3

from fund_me.config import FundMeConfig
from fund_me.deploy import open_deployment_environment
from fund_me.utils import setup_console_logging

logger = logging.getLogger(__name__)

#: How much we fund with
SEND_VALUE_ETH = "0.1"


def main():
    setup_console_logging(default_log_level="info", simplified_logging=True)

    config = FundMeConfig.from_env()
    with open_deployment_environment(config) as env:
        deployer = env.get_named_account("deployer")
        fund_me = env.get_contract("FundMe")
        logger.info("FundMe at %s on %s", fund_me.address, env.network.name)

        logger.info("Funding contract..")
        result = env.execute("FundMe", "fund", from_=deployer, value=Web3.to_wei(SEND_VALUE_ETH, "ether"), confirmations=1)
        logger.info("Gas used %d, paid %s ETH", result.gas_used, Web3.from_wei(result.gas_cost, "ether"))
        logger.info("Funded!")


def cli():
    try:
        main()
    except Exception:
        logger.exception("Funding failed")
        sys.exit(1)


if __name__ == "__main__":
    cli()
