"""Deploy against a real Anvil node.

Needs ``anvil`` from Foundry in ``PATH``.
"""

import logging
import shutil

import pytest
from flaky import flaky
from web3 import Web3

from fund_me.config import FundMeConfig
from fund_me.deploy import DeploymentEnvironment, DeploymentNotFound, open_deployment_environment, run_deploy_scripts
from fund_me.networks import get_network
from fund_me.provider.anvil import ANVIL_CHAIN_ID, AnvilLaunch, is_anvil, launch_anvil
from fund_me.provider.connection import create_http_web3
from fund_me.testing import expect_revert

pytestmark = pytest.mark.skipif(shutil.which("anvil") is None, reason="anvil not installed")


@pytest.fixture()
def anvil() -> AnvilLaunch:
    launch = launch_anvil()
    try:
        yield launch
    finally:
        launch.close(log_level=logging.ERROR)


@pytest.fixture()
def anvil_web3(anvil: AnvilLaunch) -> Web3:
    return create_http_web3(anvil.json_rpc_url)


@flaky(max_runs=3, min_passes=1)
def test_launch_anvil(anvil_web3: Web3):
    assert is_anvil(anvil_web3)
    assert anvil_web3.eth.chain_id == ANVIL_CHAIN_ID
    assert len(anvil_web3.eth.accounts) == 10


@flaky(max_runs=3, min_passes=1)
def test_deploy_records_persist(anvil_web3: Web3, tmp_path):
    """Anvil node standing in for a long running ``localhost`` node."""
    config = FundMeConfig(network="localhost", deployments_dir=tmp_path)
    network = get_network("localhost")

    env = DeploymentEnvironment(anvil_web3, network, config)
    with pytest.raises(DeploymentNotFound):
        env.get_contract("FundMe")

    records = run_deploy_scripts(env, ["all"])
    assert (tmp_path / "localhost" / "FundMe.json").exists()
    assert (tmp_path / "localhost" / "MockV3Aggregator.json").exists()

    # Next run on the same node picks up the records and reuses the contracts
    second_env = DeploymentEnvironment(anvil_web3, network, config)
    block_number = anvil_web3.eth.block_number
    second = run_deploy_scripts(second_env, ["all"])
    assert second["FundMe"].address == records["FundMe"].address
    assert anvil_web3.eth.block_number == block_number


@flaky(max_runs=3, min_passes=1)
def test_fixture_and_revert_on_anvil(anvil_web3: Web3, tmp_path):
    env = DeploymentEnvironment(anvil_web3, get_network("anvil"), FundMeConfig(deployments_dir=tmp_path))
    env.fixture(["all"])
    deployer = env.get_named_account("deployer")
    fund_me = env.get_contract("FundMe")

    with expect_revert("Not enough ETH!"):
        fund_me.functions.fund().transact({"from": deployer})

    env.execute("FundMe", "fund", from_=deployer, value=Web3.to_wei(0.2, "ether"))
    env.fixture(["all"])
    assert anvil_web3.eth.get_balance(fund_me.address) == 0


@flaky(max_runs=3, min_passes=1)
def test_spawned_anvil_deploys_every_run(tmp_path):
    """Each run gets a new Anvil node, so contracts are deployed again and no records are written."""
    config = FundMeConfig(network="anvil", deployments_dir=tmp_path)
    for _ in range(2):
        with open_deployment_environment(config) as env:
            fund_me = env.get_contract("FundMe")
            assert len(env.web3.eth.get_code(fund_me.address)) > 0
            env.execute("FundMe", "fund", from_=env.get_named_account("deployer"), value=Web3.to_wei(0.1, "ether"))
            assert env.web3.eth.get_balance(fund_me.address) == Web3.to_wei(0.1, "ether")
    assert not (tmp_path / "anvil").exists()
