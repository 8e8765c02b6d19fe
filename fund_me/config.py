"""Environment configuration.

All settings come from environment variables, optionally loaded from a ``.env``
file in the working directory. Every variable has a literal fallback so that
development chain runs need no configuration at all.

Environment variables
---------------------

``NETWORK``
    Network name to connect to, see :py:data:`fund_me.networks.NETWORKS`.
    Defaults to ``tester``, the in-process chain.

``RINKEBY_URL``, ``SEPOLIA_RPC_URL``, ``MAINNET_RPC_URL``, ``POLYGON_RPC_URL``
    JSON-RPC endpoints of the live networks.

``PRIVATE_KEY``
    Deployer private key used on live networks.

``ETHERSCAN_API_KEY``
    Block explorer API key.

``COINMARKETCAP_API_KEY``
    API key used to price the gas report in fiat.

``REPORT_GAS``
    ``true`` (default) to write the gas report.

``GAS_REPORT_FILE``
    Gas report output path, default ``gas-report.txt``.

``DEPLOYMENTS_DIR``
    Where deployment records are kept, default ``deployments``.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

#: Placeholder used when no private key is configured.
#:
#: Not a valid key, so any attempt to sign with it fails loudly.
PLACEHOLDER_PRIVATE_KEY = "0xkey"

#: Placeholder for unset API keys
PLACEHOLDER_API_KEY = "key"

#: Environment variable → fallback RPC URL for each live network
RPC_URL_VARIABLES: dict[str, tuple[str, str]] = {
    "mainnet": ("MAINNET_RPC_URL", "https://eth-mainnet"),
    "rinkeby": ("RINKEBY_URL", "https://eth-rinkeby"),
    "sepolia": ("SEPOLIA_RPC_URL", "https://eth-sepolia"),
    "polygon": ("POLYGON_RPC_URL", "https://polygon-mainnet"),
}

#: Named accounts and their index in the signer list
DEFAULT_NAMED_ACCOUNTS: dict[str, int] = {
    "deployer": 0,
}


def _is_true(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(slots=True)
class GasReporterConfig:
    """How the gas report is produced."""

    #: Collect and write the report
    enabled: bool = True

    #: Output path, relative to the working directory
    output_file: Path = Path("gas-report.txt")

    #: Fiat currency for the cost column
    currency: str = "USD"

    #: CoinMarketCap API key for the ETH quote
    coinmarketcap_api_key: str = PLACEHOLDER_API_KEY

    def has_price_source(self) -> bool:
        """Can we fetch the ETH price to show fiat costs."""
        return bool(self.coinmarketcap_api_key) and self.coinmarketcap_api_key != PLACEHOLDER_API_KEY


@dataclass(slots=True)
class FundMeConfig:
    """Harness configuration.

    Use :py:meth:`from_env` instead of constructing directly,
    unless in tests.
    """

    #: Network we deploy to and interact with
    network: str = "tester"

    #: Live network name → JSON-RPC URL
    rpc_urls: dict[str, str] = field(default_factory=dict)

    #: Private key for the live network signer
    private_key: str = PLACEHOLDER_PRIVATE_KEY

    #: Block explorer API key
    etherscan_api_key: str = PLACEHOLDER_API_KEY

    #: Deployment record folder
    deployments_dir: Path = Path("deployments")

    #: Account name → signer index
    named_accounts: dict[str, int] = field(default_factory=lambda: dict(DEFAULT_NAMED_ACCOUNTS))

    gas_reporter: GasReporterConfig = field(default_factory=GasReporterConfig)

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None, dotenv: bool = True) -> "FundMeConfig":
        """Read the configuration from environment variables.

        :param env:
            Environment mapping, defaults to ``os.environ``

        :param dotenv:
            Load ``.env`` from the working directory first.
            Existing environment variables are not overridden.
        """
        if env is None:
            if dotenv:
                load_dotenv()
            env = os.environ

        rpc_urls = {network: env.get(variable) or default for network, (variable, default) in RPC_URL_VARIABLES.items()}

        gas_reporter = GasReporterConfig(
            enabled=_is_true(env.get("REPORT_GAS", "true")),
            output_file=Path(env.get("GAS_REPORT_FILE", "gas-report.txt")),
            currency=env.get("GAS_REPORT_CURRENCY", "USD"),
            coinmarketcap_api_key=env.get("COINMARKETCAP_API_KEY") or PLACEHOLDER_API_KEY,
        )

        config = cls(
            network=env.get("NETWORK", "tester").lower(),
            rpc_urls=rpc_urls,
            private_key=env.get("PRIVATE_KEY") or PLACEHOLDER_PRIVATE_KEY,
            etherscan_api_key=env.get("ETHERSCAN_API_KEY") or PLACEHOLDER_API_KEY,
            deployments_dir=Path(env.get("DEPLOYMENTS_DIR", "deployments")),
            gas_reporter=gas_reporter,
        )
        logger.debug("Configuration loaded, network is %s", config.network)
        return config

    def get_rpc_url(self, network: str) -> str:
        """JSON-RPC URL of a live network.

        :raise KeyError:
            No URL known for the network
        """
        if network in self.rpc_urls:
            return self.rpc_urls[network]
        _, default = RPC_URL_VARIABLES[network]
        return default

    def has_private_key(self) -> bool:
        return bool(self.private_key) and self.private_key != PLACEHOLDER_PRIVATE_KEY
