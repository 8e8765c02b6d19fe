"""Connect to a named network."""

import logging
from contextlib import contextmanager
from typing import Iterator

from web3 import EthereumTesterProvider, HTTPProvider, Web3

from fund_me.config import FundMeConfig
from fund_me.networks import NetworkInfo
from fund_me.provider.anvil import AnvilLaunch, launch_anvil
from fund_me.utils import get_url_domain

logger = logging.getLogger(__name__)

#: Where ``localhost`` network expects a running node
LOCALHOST_RPC_URL = "http://127.0.0.1:8545"


def create_tester_web3() -> Web3:
    """Create an in-process py-evm chain with ten funded unlocked accounts."""
    return Web3(EthereumTesterProvider())


def create_http_web3(json_rpc_url: str, timeout: float = 30.0) -> Web3:
    """Create a Web3 connected to a JSON-RPC endpoint.

    :param timeout:
        HTTP read timeout, seconds
    """
    logger.info("Connecting to %s", get_url_domain(json_rpc_url))
    return Web3(HTTPProvider(json_rpc_url, request_kwargs={"timeout": timeout}))


@contextmanager
def connect_network(network: NetworkInfo, config: FundMeConfig) -> Iterator[Web3]:
    """Open a Web3 connection for the network and clean up afterwards.

    - ``tester``: in-process chain, gone when the context exits

    - ``anvil``: fresh Anvil node, killed when the context exits

    - ``localhost``: node running on :py:data:`LOCALHOST_RPC_URL`

    - live networks: RPC URL from the configuration

    Example:

    .. code-block:: python

        with connect_network(get_network("sepolia"), config) as web3:
            print(web3.eth.block_number)

    :raise AssertionError:
        The node reports a different chain id than the network has
    """
    anvil: AnvilLaunch | None = None

    if network.name == "tester":
        web3 = create_tester_web3()
    elif network.name == "anvil":
        anvil = launch_anvil(chain_id=network.chain_id)
        web3 = create_http_web3(anvil.json_rpc_url)
    elif network.name == "localhost":
        web3 = create_http_web3(LOCALHOST_RPC_URL)
    else:
        web3 = create_http_web3(config.get_rpc_url(network.name))

    try:
        if network.chain_id is not None:
            chain_id = web3.eth.chain_id
            assert chain_id == network.chain_id, f"Network {network.name} should be chain {network.chain_id}, node says {chain_id}"
        yield web3
    finally:
        if anvil is not None:
            anvil.close()
