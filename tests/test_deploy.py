"""Deploy scripts, deployment records and fixtures."""

import pytest
from web3 import Web3

from fund_me.abi import compile_contract
from fund_me.config import FundMeConfig
from fund_me.deploy import DeploymentEnvironment, DeploymentNotFound, DeploymentRecord, DeploymentRegistry, deploy_contract, get_deploy_scripts, run_deploy_scripts
from fund_me.gas_report import DEPLOYMENT_METHOD, GasReporter
from fund_me.networks import DECIMALS, INITIAL_ANSWER, get_network
from fund_me.provider.connection import create_tester_web3


@pytest.fixture()
def bare_env(web3, config) -> DeploymentEnvironment:
    """Environment where nothing is deployed yet."""
    return DeploymentEnvironment(web3, get_network("tester"), config, gas_reporter=GasReporter())


def test_deploy_script_order():
    assert [s.name for s in get_deploy_scripts()] == ["deploy_mocks", "deploy_fund_me"]
    assert [s.name for s in get_deploy_scripts(["all"])] == ["deploy_mocks", "deploy_fund_me"]
    assert [s.name for s in get_deploy_scripts(["mocks"])] == ["deploy_mocks"]
    assert [s.name for s in get_deploy_scripts(["fundme"])] == ["deploy_fund_me"]
    assert get_deploy_scripts(["nothing"]) == []


def test_deploy_all(web3: Web3, bare_env: DeploymentEnvironment):
    records = run_deploy_scripts(bare_env, ["all"])
    assert set(records) == {"MockV3Aggregator", "FundMe"}

    mock = records["MockV3Aggregator"]
    assert mock.args == [DECIMALS, INITIAL_ANSWER]
    assert records["FundMe"].args == [mock.address]
    assert records["FundMe"].deployer == web3.eth.accounts[0]
    assert records["FundMe"].bytecode_hash == compile_contract("FundMe").bytecode_hash
    assert len(web3.eth.get_code(records["FundMe"].address)) > 0

    usage = bare_env.gas_reporter.usage[("FundMe", DEPLOYMENT_METHOD)]
    assert usage.samples == [records["FundMe"].gas_used]


def test_fund_me_needs_mock_first(bare_env: DeploymentEnvironment):
    with pytest.raises(DeploymentNotFound):
        run_deploy_scripts(bare_env, ["fundme"])


def test_redeploy_reuses_existing(web3: Web3, bare_env: DeploymentEnvironment):
    first = run_deploy_scripts(bare_env, ["all"])
    block_number = web3.eth.block_number

    second = run_deploy_scripts(bare_env, ["all"])
    assert second["FundMe"].address == first["FundMe"].address
    assert web3.eth.block_number == block_number


def test_changed_args_redeploy(web3: Web3, bare_env: DeploymentEnvironment):
    deployer = bare_env.get_named_account("deployer")
    first = deploy_contract(bare_env, "MockV3Aggregator", from_=deployer, args=[DECIMALS, INITIAL_ANSWER])
    second = deploy_contract(bare_env, "MockV3Aggregator", from_=deployer, args=[DECIMALS, 3000_00000000], log=False)
    assert second.address != first.address
    assert bare_env.deployments.get("MockV3Aggregator") == second


def test_in_process_chain_does_not_persist(bare_env: DeploymentEnvironment, config: FundMeConfig):
    run_deploy_scripts(bare_env, ["all"])
    assert bare_env.deployments.folder is None
    assert not config.deployments_dir.exists()


def test_registry_persistence(tmp_path):
    record = DeploymentRecord(
        name="FundMe",
        address="0x5FbDB2315678afecb367f032d93F642f64180aa3",
        abi=[{"type": "function", "name": "fund", "inputs": [], "outputs": [], "stateMutability": "payable"}],
        transaction_hash="0x" + "ab" * 32,
        deployer="0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266",
        args=["0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"],
        bytecode_hash="0x" + "cd" * 32,
        block_number=2,
        gas_used=421_537,
    )

    registry = DeploymentRegistry("localhost", tmp_path)
    registry.save(record)
    assert (tmp_path / "localhost" / "FundMe.json").exists()

    # A later run reads the record back
    reloaded = DeploymentRegistry("localhost", tmp_path)
    assert reloaded.get("FundMe") == record
    assert reloaded.get_or_none("MockV3Aggregator") is None

    reloaded.restore({})
    assert not (tmp_path / "localhost" / "FundMe.json").exists()
    with pytest.raises(DeploymentNotFound):
        reloaded.get("FundMe")


def test_fixture_restores_state(web3: Web3, env: DeploymentEnvironment, fund_me, deployer):
    """Second fixture call reverts the chain to the state after the first one."""
    addresses = {name: r.address for name, r in env.deployments.records.items()}
    block_number = web3.eth.block_number

    env.execute("FundMe", "fund", from_=deployer, value=Web3.to_wei(1, "ether"))
    deploy_contract(env, "MockV3Aggregator", from_=deployer, args=[DECIMALS, 1], log=False)
    assert web3.eth.get_balance(fund_me.address) == Web3.to_wei(1, "ether")

    records = env.fixture(["all"])
    assert {name: r.address for name, r in records.items()} == addresses
    assert env.deployments.get("MockV3Aggregator").args == [DECIMALS, INITIAL_ANSWER]
    assert web3.eth.block_number == block_number
    assert web3.eth.get_balance(fund_me.address) == 0
    assert fund_me.functions.getAddressToAmountFunded(deployer).call() == 0

    # Fixture can be applied again after a revert
    env.execute("FundMe", "fund", from_=deployer, value=Web3.to_wei(1, "ether"))
    env.fixture(["all"])
    assert web3.eth.get_balance(fund_me.address) == 0


def test_fixture_only_on_development_chain(web3: Web3, config: FundMeConfig):
    env = DeploymentEnvironment(web3, get_network("sepolia"), config, deployments=DeploymentRegistry("sepolia"), signers=[])
    with pytest.raises(AssertionError):
        env.fixture(["all"])


def test_named_accounts(web3: Web3, env: DeploymentEnvironment):
    assert env.get_named_accounts() == {"deployer": web3.eth.accounts[0]}
    with pytest.raises(KeyError):
        env.get_named_account("treasury")


def test_record_without_code_is_not_a_deployment(tmp_path):
    """Records written against a node that has since been reset must not be used."""
    config = FundMeConfig(deployments_dir=tmp_path)
    localhost = get_network("localhost")

    first_chain = create_tester_web3()
    first_env = DeploymentEnvironment(first_chain, localhost, config, deployments=DeploymentRegistry("localhost", tmp_path))
    records = run_deploy_scripts(first_env, ["all"])
    assert (tmp_path / "localhost" / "FundMe.json").exists()

    # Same records, fresh chain
    second_chain = create_tester_web3()
    second_env = DeploymentEnvironment(second_chain, localhost, config, deployments=DeploymentRegistry("localhost", tmp_path))
    assert second_env.deployments.get("FundMe").address == records["FundMe"].address

    with pytest.raises(DeploymentNotFound):
        second_env.get_contract("FundMe")

    deployer = second_env.get_named_account("deployer")
    with pytest.raises(DeploymentNotFound):
        second_env.execute("FundMe", "fund", from_=deployer, value=Web3.to_wei(0.1, "ether"))
    assert second_chain.eth.get_balance(records["FundMe"].address) == 0


def test_spawned_anvil_does_not_persist(web3: Web3, config: FundMeConfig):
    env = DeploymentEnvironment(web3, get_network("anvil"), config)
    assert env.deployments.folder is None


def test_execute_records_gas_price(env: DeploymentEnvironment, deployer):
    reporter = GasReporter()
    env.gas_reporter = reporter
    result = env.execute("FundMe", "fund", from_=deployer, value=Web3.to_wei(0.2, "ether"))
    assert reporter.last_gas_price_wei == result.effective_gas_price
    assert reporter.usage[("FundMe", "fund")].samples == [result.gas_used]
