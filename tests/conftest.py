"""Shared fixtures.

Every test gets a fresh in-process chain with the ``all`` deploy scripts run.
Gas usage of the whole session is written to the gas report at exit,
see ``REPORT_GAS`` and ``GAS_REPORT_FILE``.
"""

import logging

import pytest
from web3 import Web3
from web3.contract import Contract

from fund_me.config import FundMeConfig
from fund_me.deploy import DeploymentEnvironment
from fund_me.gas_report import GasReporter, write_gas_report
from fund_me.networks import get_network
from fund_me.provider.connection import create_tester_web3

logger = logging.getLogger(__name__)


@pytest.fixture(scope="session")
def gas_reporter() -> GasReporter:
    reporter = GasReporter()
    yield reporter
    config = FundMeConfig.from_env()
    # Priced with the gas price the session transactions paid
    write_gas_report(reporter, config.gas_reporter, gas_price_wei=reporter.last_gas_price_wei)


@pytest.fixture()
def web3() -> Web3:
    return create_tester_web3()


@pytest.fixture()
def config(tmp_path) -> FundMeConfig:
    return FundMeConfig(deployments_dir=tmp_path / "deployments")


@pytest.fixture()
def env(web3, config, gas_reporter) -> DeploymentEnvironment:
    env = DeploymentEnvironment(web3, get_network("tester"), config, gas_reporter=gas_reporter)
    env.fixture(["all"])
    return env


@pytest.fixture()
def deployer(env) -> str:
    return env.get_named_account("deployer")


@pytest.fixture()
def fund_me(env) -> Contract:
    return env.get_contract("FundMe")


@pytest.fixture()
def mock_v3_aggregator(env) -> Contract:
    return env.get_contract("MockV3Aggregator")
