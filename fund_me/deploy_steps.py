"""Deploy scripts for the FundMe contract.

Run in this order:

1. ``deploy_mocks``, tags ``all`` and ``mocks``: mock ETH/USD feed on development chains

2. ``deploy_fund_me``, tags ``all`` and ``fundme``: FundMe wired to the price feed
"""

import logging

from fund_me.deploy import DeploymentEnvironment, deploy_contract, deploy_script
from fund_me.networks import DECIMALS, INITIAL_ANSWER, MOCK_PRICE_FEED, NETWORK_CONFIG, resolve_price_feed_address

logger = logging.getLogger(__name__)


@deploy_script("all", "mocks")
def deploy_mocks(env: DeploymentEnvironment):
    if not env.network.is_development:
        logger.info("Live network %s, no mocks needed", env.network.name)
        return

    env.log("Local network detected, deploying mocks...")
    deployer = env.get_named_account("deployer")
    deploy_contract(env, MOCK_PRICE_FEED, from_=deployer, args=[DECIMALS, INITIAL_ANSWER])
    env.log("Mocks deployed!")
    env.log("-" * 58)


@deploy_script("all", "fundme")
def deploy_fund_me(env: DeploymentEnvironment):
    deployer = env.get_named_account("deployer")
    chain_id = env.chain_id
    env.log("Chain id %d", chain_id)

    if not env.network.is_development:
        env.log("Network configuration %s", NETWORK_CONFIG.get(chain_id))

    price_feed = resolve_price_feed_address(env.network.name, chain_id, env.deployments)
    deploy_contract(env, "FundMe", from_=deployer, args=[price_feed])
    env.log("-" * 58)
