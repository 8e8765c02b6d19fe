"""Anvil development node.

Spawn a fresh `Anvil <https://book.getfoundry.sh/anvil/>`__ node for
deployments and tests that want a real JSON-RPC node instead of the
in-process chain.

Example:

.. code-block:: python

    launch = launch_anvil()
    try:
        web3 = create_http_web3(launch.json_rpc_url)
        ...
    finally:
        launch.close()
"""

import logging
import time
from dataclasses import dataclass, field
from shutil import which
from subprocess import DEVNULL, PIPE

import psutil
from web3 import Web3

from fund_me.utils import find_free_port, is_localhost_port_listening, shutdown_hard

logger = logging.getLogger(__name__)

#: Anvil default chain id
ANVIL_CHAIN_ID = 31337


class AnvilLaunchError(Exception):
    """Anvil did not come up."""


@dataclass
class AnvilLaunch:
    """A running Anvil process."""

    #: Localhost port Anvil listens on
    port: int

    #: Where to connect
    json_rpc_url: str

    #: Anvil process
    process: psutil.Popen

    #: Command line used, for diagnostics
    cmd: list[str] = field(default_factory=list)

    def close(self, log_level: int | None = None, block=True, block_timeout=30) -> tuple[bytes, bytes]:
        """Kill Anvil.

        :param log_level:
            Replay Anvil output to logs at this level

        :return:
            Anvil stdout, stderr
        """
        stdout, stderr = shutdown_hard(
            self.process,
            log_level=log_level,
            block=block,
            block_timeout=block_timeout,
            check_port=self.port,
        )
        logger.info("Anvil at %s shut down", self.json_rpc_url)
        return stdout, stderr


def is_anvil(web3: Web3) -> bool:
    """Are we connected to Anvil."""
    return "anvil" in web3.client_version.lower()


def launch_anvil(
    port: int | None = None,
    chain_id: int = ANVIL_CHAIN_ID,
    accounts: int = 10,
    balance_eth: int = 10_000,
    gas_limit: int | None = None,
    block_time: int = 0,
    launch_wait_seconds: float = 20.0,
    attempts: int = 3,
) -> AnvilLaunch:
    """Start a new Anvil node on localhost.

    :param port:
        Port to listen, random free port if not given

    :param chain_id:
        Chain id Anvil reports

    :param accounts:
        Number of unlocked dev accounts

    :param balance_eth:
        Starting ETH balance of each dev account

    :param gas_limit:
        Block gas limit override

    :param block_time:
        Seconds between blocks, 0 mines on every transaction

    :param launch_wait_seconds:
        How long to wait for the JSON-RPC port on each attempt

    :param attempts:
        Start attempts before giving up

    :raise AnvilLaunchError:
        Anvil did not start
    """
    anvil = which("anvil")
    assert anvil is not None, "No anvil command in path, install Foundry"

    last_output = b""
    for attempt in range(1, attempts + 1):
        listen_port = port or find_free_port()
        cmd = [
            anvil,
            "--port",
            str(listen_port),
            "--chain-id",
            str(chain_id),
            "--accounts",
            str(accounts),
            "--balance",
            str(balance_eth),
            "--silent",
        ]
        if gas_limit:
            cmd += ["--gas-limit", str(gas_limit)]
        if block_time:
            cmd += ["--block-time", str(block_time)]

        logger.info("Launching Anvil, attempt %d/%d: %s", attempt, attempts, " ".join(cmd))
        process = psutil.Popen(cmd, stdin=DEVNULL, stdout=PIPE, stderr=PIPE)
        json_rpc_url = f"http://127.0.0.1:{listen_port}"

        deadline = time.time() + launch_wait_seconds
        while time.time() < deadline:
            if process.poll() is not None:
                break
            if is_localhost_port_listening(listen_port, "127.0.0.1"):
                logger.info("Anvil up at %s", json_rpc_url)
                return AnvilLaunch(port=listen_port, json_rpc_url=json_rpc_url, process=process, cmd=cmd)
            time.sleep(0.1)

        stdout, stderr = shutdown_hard(process, log_level=logging.WARNING, block=False)
        last_output = stdout + stderr

    raise AnvilLaunchError(f"Could not start Anvil after {attempts} attempts, last output:\n{last_output.decode('utf-8', errors='replace')}")
