"""Run the deploy scripts against a network.

Deployment records are written to ``deployments/<network>/``,
except on ``tester`` and ``anvil``, chains that die with the process.

Environment variables
---------------------
- ``NETWORK``: network name, default ``tester``.
- ``TAGS``: comma separated deploy script tags, default ``all``.
- ``REPORT_GAS``: write deployment gas to ``GAS_REPORT_FILE``, priced when ``COINMARKETCAP_API_KEY`` is set.
- ``LOG_LEVEL``: logging level (default: ``info``).

Usage::

    NETWORK=sepolia PRIVATE_KEY=0x... SEPOLIA_RPC_URL=https://... poetry run python scripts/deploy.py

    # Only the mock price feed on a local node
    NETWORK=localhost TAGS=mocks poetry run python scripts/deploy.py
"""

import logging
import os
import sys

from tabulate import tabulate

from fund_me.config import FundMeConfig
from fund_me.deploy import DeploymentEnvironment, run_deploy_scripts
from fund_me.gas_report import GasReporter, write_gas_report
from fund_me.networks import get_network
from fund_me.provider.connection import connect_network
from fund_me.utils import setup_console_logging

logger = logging.getLogger(__name__)


def main():
    setup_console_logging(default_log_level="info", simplified_logging=True)

    config = FundMeConfig.from_env()
    tags = [t.strip() for t in os.environ.get("TAGS", "all").split(",") if t.strip()]
    network = get_network(config.network)

    if not network.is_development:
        assert config.has_private_key(), f"PRIVATE_KEY needed to deploy on {network.name}"

    gas_reporter = GasReporter()
    with connect_network(network, config) as web3:
        env = DeploymentEnvironment(web3, network, config, gas_reporter=gas_reporter)
        records = run_deploy_scripts(env, tags)

    write_gas_report(gas_reporter, config.gas_reporter)

    rows = [[r.name, r.address, r.block_number, r.gas_used] for r in records.values()]
    print(tabulate(rows, headers=["Contract", "Address", "Block", "Gas used"], tablefmt="simple"))


def cli():
    try:
        main()
    except Exception:
        logger.exception("Deployment failed")
        sys.exit(1)


if __name__ == "__main__":
    cli()
