"""Contract deployment, deployment records, deploy scripts and fixtures.

- :py:func:`deploy_contract` compiles, deploys and records a bundled contract

- :py:class:`DeploymentRegistry` keeps the records of one network,
  on disk under ``deployments/<network>/`` unless the chain is in-process

- Deploy scripts are functions registered with :py:func:`deploy_script`
  and selected by tags, see :py:mod:`fund_me.deploy_steps`

- :py:meth:`DeploymentEnvironment.fixture` runs tagged deploy scripts once
  and snapshots the chain, so later callers get the same clean state back

Example:

.. code-block:: python

    env = DeploymentEnvironment(web3, get_network("tester"), FundMeConfig())
    env.fixture(["all"])
    fund_me = env.get_contract("FundMe")
    result = env.execute("FundMe", "fund", from_=env.get_named_account("deployer"), value=Web3.to_wei(0.2, "ether"))
"""

import json
import logging
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator

from eth_typing import ChecksumAddress
from web3 import Web3
from web3.contract import Contract

from fund_me.abi import compile_contract, get_contract, get_deployed_contract
from fund_me.config import FundMeConfig
from fund_me.gas_report import GasReporter
from fund_me.hotwallet import HotWallet, Signer, get_signer_address, transact_with_signer
from fund_me.networks import NetworkInfo, get_network
from fund_me.provider.connection import connect_network
from fund_me.trace import TransactionResult, assert_transaction_success_with_explanation
from fund_me.utils import wait_other_writers

logger = logging.getLogger(__name__)


class DeploymentNotFound(KeyError):
    """No deployment record for a contract on this network."""


@dataclass(slots=True)
class DeploymentRecord:
    """A contract we have deployed."""

    #: Deployment name, same as the contract name
    name: str

    #: Where it lives
    address: ChecksumAddress

    #: ABI at deployment time
    abi: list[dict]

    #: Creation transaction
    transaction_hash: str

    #: Who deployed it
    deployer: ChecksumAddress

    #: Constructor arguments
    args: list[Any]

    #: Keccak of the creation bytecode, see :py:attr:`fund_me.abi.CompiledContract.bytecode_hash`
    bytecode_hash: str

    #: Block of the creation transaction
    block_number: int

    #: Gas used by the creation transaction
    gas_used: int

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2)

    @classmethod
    def from_json(cls, text: str) -> "DeploymentRecord":
        return cls(**json.loads(text))


class DeploymentRegistry:
    """Deployment records of one network.

    Records are kept in memory. When ``root`` is given they are also
    written to ``<root>/<network>/<name>.json`` and read back lazily,
    so a later script run can find what an earlier one deployed.
    """

    def __init__(self, network_name: str, root: Path | None = None):
        self.network_name = network_name
        self.folder = (root / network_name) if root is not None else None
        self.records: dict[str, DeploymentRecord] = {}

    def __repr__(self):
        return f"<DeploymentRegistry {self.network_name} {self.folder or 'in-memory'}>"

    def _get_record_path(self, name: str) -> Path:
        assert self.folder is not None
        return self.folder / f"{name}.json"

    def get_or_none(self, name: str) -> DeploymentRecord | None:
        if name in self.records:
            return self.records[name]

        if self.folder is not None:
            path = self._get_record_path(name)
            if path.exists():
                record = DeploymentRecord.from_json(path.read_text())
                self.records[name] = record
                return record

        return None

    def get(self, name: str) -> DeploymentRecord:
        """Get a deployment record.

        :raise DeploymentNotFound:
            Not deployed on this network
        """
        record = self.get_or_none(name)
        if record is None:
            raise DeploymentNotFound(f"No deployment found for: {name} on network {self.network_name}")
        return record

    def save(self, record: DeploymentRecord):
        self.records[record.name] = record
        if self.folder is not None:
            path = self._get_record_path(record.name).resolve()
            with wait_other_writers(path):
                path.write_text(record.to_json())
            logger.debug("Wrote deployment record %s", path)

    def copy_records(self) -> dict[str, DeploymentRecord]:
        """Take a copy of the in-memory records, for fixtures."""
        return dict(self.records)

    def restore(self, records: dict[str, DeploymentRecord]):
        """Replace all records, removing record files not in ``records``."""
        if self.folder is not None and self.folder.exists():
            for path in self.folder.glob("*.json"):
                if path.stem not in records:
                    path.unlink()

        self.records = {}
        for record in records.values():
            self.save(record)

    def get_contract(self, web3: Web3, name: str) -> Contract:
        """Contract proxy for a deployed contract, using the recorded ABI.

        :raise DeploymentNotFound:
            No record, or the record points to an address without code,
            e.g. it was written against a node that has since been reset
        """
        record = self.get(name)
        if len(web3.eth.get_code(record.address)) == 0:
            raise DeploymentNotFound(f"Deployment record for {name} on network {self.network_name} points to {record.address}, but there is no code there")
        return get_deployed_contract(web3, record.abi, record.address)


def load_signers(web3: Web3, network: NetworkInfo, config: FundMeConfig) -> list[Signer]:
    """Accounts that can send transactions on the network.

    - Development chains: the node's unlocked accounts

    - Live networks: a hot wallet from ``PRIVATE_KEY``
    """
    if network.is_development:
        return list(web3.eth.accounts)
    return [HotWallet.from_private_key(config.private_key)]


class DeploymentEnvironment:
    """Everything a deploy script needs.

    Bundles the connection, network, configuration, deployment records,
    signers and the optional gas reporter.
    """

    def __init__(
        self,
        web3: Web3,
        network: NetworkInfo,
        config: FundMeConfig,
        deployments: DeploymentRegistry | None = None,
        signers: list[Signer] | None = None,
        gas_reporter: GasReporter | None = None,
    ):
        self.web3 = web3
        self.network = network
        self.config = config

        if deployments is None:
            root = config.deployments_dir.resolve() if network.persists_deployments else None
            deployments = DeploymentRegistry(network.name, root)
        self.deployments = deployments

        if signers is None:
            signers = load_signers(web3, network, config)
        self.signers = signers

        self.gas_reporter = gas_reporter

        #: Fixture tags → (chain snapshot id, deployment records)
        self.fixtures: dict[tuple[str, ...], tuple[Any, dict[str, DeploymentRecord]]] = {}

    def __repr__(self):
        return f"<DeploymentEnvironment {self.network.name}>"

    @property
    def chain_id(self) -> int:
        return self.web3.eth.chain_id

    def log(self, msg: str, *args):
        """Deploy script log output."""
        logger.info(msg, *args)

    def get_named_accounts(self) -> dict[str, Signer]:
        """Map configured account names to signers."""
        return {name: self.signers[index] for name, index in self.config.named_accounts.items()}

    def get_named_account(self, name: str) -> Signer:
        index = self.config.named_accounts[name]
        assert index < len(self.signers), f"Named account {name} is signer #{index}, but we have only {len(self.signers)} signers"
        return self.signers[index]

    def get_contract(self, name: str) -> Contract:
        """Proxy for a contract deployed on this network.

        :raise DeploymentNotFound:
            Not deployed
        """
        return self.deployments.get_contract(self.web3, name)

    def execute(
        self,
        contract_name: str,
        method: str,
        *args,
        from_: Signer,
        value: int = 0,
        confirmations: int = 1,
    ) -> TransactionResult:
        """Send a state changing call to a deployed contract and wait for it.

        :param contract_name:
            Deployment name

        :param method:
            Contract function name

        :param from_:
            Sender

        :param value:
            Wei sent along

        :raise TransactionAssertionError:
            The transaction was mined but reverted
        """
        contract = self.get_contract(contract_name)
        func = getattr(contract.functions, method)(*args)
        tx_hash = transact_with_signer(func, from_, value=value)
        result = assert_transaction_success_with_explanation(self.web3, tx_hash, confirmations=confirmations)
        if self.gas_reporter is not None:
            self.gas_reporter.record(contract_name, method, result.gas_used, gas_price_wei=result.effective_gas_price)
        return result

    def fixture(self, tags: Iterable[str] | None = None) -> dict[str, DeploymentRecord]:
        """Get a clean deployment for the tags.

        The first call runs the tagged deploy scripts and snapshots the chain.
        Later calls with the same tags revert the chain to the snapshot
        and restore the matching deployment records.

        :return:
            Deployment records after the fixture
        """
        assert self.network.is_development, f"Fixtures need a development chain, {self.network.name} is not one"

        key = tuple(sorted(tags or []))
        if key in self.fixtures:
            snapshot_id, records = self.fixtures[key]
            self.web3.testing.revert(snapshot_id)
            self.deployments.restore(records)
            logger.info("Fixture %s restored from snapshot %s", key, snapshot_id)
        else:
            run_deploy_scripts(self, key)
            records = self.deployments.copy_records()

        # Anvil drops a snapshot once reverted to
        self.fixtures[key] = (self.web3.testing.snapshot(), records)
        return dict(records)


def deploy_contract(
    env: DeploymentEnvironment,
    name: str,
    from_: Signer,
    args: list | None = None,
    log: bool = True,
) -> DeploymentRecord:
    """Deploy a bundled contract and record it.

    If the network already has a record with the same bytecode and
    constructor arguments, and there is code at the recorded address,
    the existing deployment is reused.

    :param name:
        Contract name, see :py:data:`fund_me.abi.CONTRACT_SOURCES`

    :param from_:
        Deployer

    :param args:
        Constructor arguments

    :param log:
        Log progress

    :raise TransactionAssertionError:
        Deployment transaction reverted
    """
    web3 = env.web3
    args = list(args or [])
    compiled = compile_contract(name)

    existing = env.deployments.get_or_none(name)
    if existing is not None and existing.bytecode_hash == compiled.bytecode_hash and existing.args == args:
        if len(web3.eth.get_code(existing.address)) > 0:
            if log:
                env.log("reusing %s at %s", name, existing.address)
            return existing

    factory = get_contract(web3, name)
    tx_hash = transact_with_signer(factory.constructor(*args), from_)
    if log:
        env.log("deploying %s (tx: %s)...", name, tx_hash.hex())

    result = assert_transaction_success_with_explanation(web3, tx_hash, confirmations=env.network.block_confirmations)
    assert result.contract_address, f"Deployment {tx_hash.hex()} did not create a contract"

    record = DeploymentRecord(
        name=name,
        address=result.contract_address,
        abi=compiled.abi,
        transaction_hash=Web3.to_hex(result.tx_hash),
        deployer=get_signer_address(from_),
        args=args,
        bytecode_hash=compiled.bytecode_hash,
        block_number=result.block_number,
        gas_used=result.gas_used,
    )
    env.deployments.save(record)

    if env.gas_reporter is not None:
        env.gas_reporter.record_deployment(name, result.gas_used, gas_price_wei=result.effective_gas_price)

    if log:
        env.log("deployed %s at %s with %d gas", name, record.address, record.gas_used)

    return record


@dataclass(slots=True, frozen=True)
class DeployScript:
    """A registered deploy step."""

    name: str
    func: Callable[[DeploymentEnvironment], None]
    tags: frozenset[str]


#: Registered deploy scripts, in run order
DEPLOY_SCRIPTS: list[DeployScript] = []


def deploy_script(*tags: str):
    """Register a function as a deploy script.

    Scripts run in registration order.

    Example:

    .. code-block:: python

        @deploy_script("all", "mocks")
        def deploy_mocks(env: DeploymentEnvironment):
            ...
    """

    def decorator(func: Callable[[DeploymentEnvironment], None]):
        DEPLOY_SCRIPTS.append(DeployScript(func.__name__, func, frozenset(tags)))
        return func

    return decorator


def get_deploy_scripts(tags: Iterable[str] | None = None) -> list[DeployScript]:
    """Deploy scripts having any of the tags, all scripts if no tags."""
    # Registers the scripts
    import fund_me.deploy_steps  # noqa: F401

    wanted = set(tags or [])
    if not wanted:
        return list(DEPLOY_SCRIPTS)
    return [script for script in DEPLOY_SCRIPTS if script.tags & wanted]


def run_deploy_scripts(env: DeploymentEnvironment, tags: Iterable[str] | None = None) -> dict[str, DeploymentRecord]:
    """Run deploy scripts selected by tags.

    :return:
        All deployment records of the network after the run
    """
    scripts = get_deploy_scripts(tags)
    logger.info("Running %d deploy scripts on %s: %s", len(scripts), env.network.name, ", ".join(s.name for s in scripts))
    for script in scripts:
        script.func(env)
    return env.deployments.copy_records()


@contextmanager
def open_deployment_environment(
    config: FundMeConfig,
    gas_reporter: GasReporter | None = None,
) -> Iterator[DeploymentEnvironment]:
    """Connect to the configured network and set up a deployment environment.

    Used by the command line scripts.

    On the in-process ``tester`` network and on an Anvil node we spawn
    nothing survives between runs, so the ``all`` deploy scripts are run first.
    """
    network = get_network(config.network)
    with connect_network(network, config) as web3:
        env = DeploymentEnvironment(web3, network, config, gas_reporter=gas_reporter)
        if not network.persists_deployments:
            run_deploy_scripts(env, ["all"])
        yield env
