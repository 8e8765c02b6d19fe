"""Known networks and Chainlink price feed resolution.

- Static ETH/USD price feed address table keyed by chain id

- Development chains use a freshly deployed ``MockV3Aggregator`` instead

Example:

.. code-block:: python

    from fund_me.networks import resolve_price_feed_address

    price_feed = resolve_price_feed_address(network.name, web3.eth.chain_id, env.deployments)
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from eth_typing import HexAddress, HexStr

if TYPE_CHECKING:
    from fund_me.deploy import DeploymentRegistry

logger = logging.getLogger(__name__)


#: Networks where we deploy our own mock price feed.
#:
#: - ``tester``: in-process eth-tester chain
#: - ``anvil``: Anvil node spawned by us
#: - ``localhost``: a node already running on ``127.0.0.1:8545``
DEVELOPMENT_CHAINS = frozenset({"tester", "anvil", "localhost"})

#: Development chains started and killed by the harness itself,
#: see :py:func:`fund_me.provider.connection.connect_network`
EPHEMERAL_CHAINS = frozenset({"tester", "anvil"})

#: Deployment name of the mock price feed on development chains
MOCK_PRICE_FEED = "MockV3Aggregator"

#: Decimals of the mock ETH/USD feed, same as the real Chainlink feed
DECIMALS = 8

#: Mock ETH/USD answer, 2000 USD with 8 decimals
INITIAL_ANSWER = 2000_00000000


class UnknownNetwork(KeyError):
    """Network name not in :py:data:`NETWORKS`."""


@dataclass(slots=True, frozen=True)
class NetworkConfigEntry:
    """Static per-chain configuration."""

    #: Human readable network name
    name: str

    #: Chainlink ETH/USD aggregator address
    eth_usd_price_feed: HexAddress


#: Chain id → static network configuration.
#:
#: See https://docs.chain.link/data-feeds/price-feeds/addresses
NETWORK_CONFIG: dict[int, NetworkConfigEntry] = {
    1: NetworkConfigEntry("mainnet", HexAddress(HexStr("0x5f4eC3Df9cbd43714FE2740f5E3616155c5b8419"))),
    4: NetworkConfigEntry("rinkeby", HexAddress(HexStr("0x8A753747A1Fa494EC906cE90E9f37563A8AF630e"))),
    137: NetworkConfigEntry("polygon", HexAddress(HexStr("0xF9680D99D6C9589e2a93a78A04A279e029a7945e"))),
    11155111: NetworkConfigEntry("sepolia", HexAddress(HexStr("0x694AA1769357215DE4FAC081bf1f309aDC325306"))),
}


@dataclass(slots=True, frozen=True)
class NetworkInfo:
    """A network the harness can connect to."""

    #: Network name used on the command line and in deployment folders
    name: str

    #: Expected chain id.
    #:
    #: ``None`` when the node decides, e.g. the in-process chain.
    chain_id: int | None

    #: Wait this many blocks after deployments
    block_confirmations: int = 1

    @property
    def is_development(self) -> bool:
        return self.name in DEVELOPMENT_CHAINS

    @property
    def persists_deployments(self) -> bool:
        """Write deployment records to disk.

        Chains we start ourselves die with the Python process,
        so their records would point to nothing on the next run.
        """
        return self.name not in EPHEMERAL_CHAINS


#: All networks by name
NETWORKS: dict[str, NetworkInfo] = {
    "tester": NetworkInfo("tester", chain_id=None),
    "anvil": NetworkInfo("anvil", chain_id=31337),
    "localhost": NetworkInfo("localhost", chain_id=31337),
    "mainnet": NetworkInfo("mainnet", chain_id=1, block_confirmations=6),
    "rinkeby": NetworkInfo("rinkeby", chain_id=4, block_confirmations=6),
    "sepolia": NetworkInfo("sepolia", chain_id=11155111, block_confirmations=6),
    "polygon": NetworkInfo("polygon", chain_id=137, block_confirmations=6),
}


def get_network(name: str) -> NetworkInfo:
    """Look up a network by name.

    :raise UnknownNetwork:
        Not a network we know
    """
    try:
        return NETWORKS[name.lower()]
    except KeyError as e:
        raise UnknownNetwork(f"Unknown network {name}, we know {', '.join(sorted(NETWORKS))}") from e


def resolve_price_feed_address(
    network_name: str,
    chain_id: int,
    deployments: "DeploymentRegistry",
) -> HexAddress:
    """Decide which ETH/USD price feed the contract is deployed with.

    - On development chains, the previously deployed mock feed

    - Otherwise the address configured for the chain id

    :param network_name:
        Active network name

    :param chain_id:
        Active chain id

    :param deployments:
        Deployment records of the active network

    :raise fund_me.deploy.DeploymentNotFound:
        Mock feed was never deployed on this development chain

    :raise KeyError:
        Chain id has no static configuration
    """
    if network_name in DEVELOPMENT_CHAINS:
        mock = deployments.get(MOCK_PRICE_FEED)
        logger.info("Using mock price feed %s on %s", mock.address, network_name)
        return mock.address

    entry = NETWORK_CONFIG[chain_id]
    logger.info("Using %s ETH/USD price feed %s", entry.name, entry.eth_usd_price_feed)
    return entry.eth_usd_price_feed
