"""Compile the bundled contracts and create Web3 contract proxies.

Contract sources live in ``fund_me/contracts`` and are compiled in-process
with the Vyper compiler. Compilation results are cached for the lifetime
of the Python process.

Example:

.. code-block:: python

    from fund_me.abi import get_contract, get_deployed_contract

    FundMe = get_contract(web3, "FundMe")
    fund_me = get_deployed_contract(web3, "FundMe", address)
    assert fund_me.functions.getOwner().call() == deployer
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from eth_typing import HexAddress, HexStr
from web3 import Web3
from web3.contract import Contract
from vyper import compile_code

logger = logging.getLogger(__name__)

#: Where contract sources are
CONTRACTS_ROOT = Path(__file__).parent / "contracts"

#: Contract name → source file relative to :py:data:`CONTRACTS_ROOT`
CONTRACT_SOURCES: dict[str, str] = {
    "FundMe": "FundMe.vy",
    "MockV3Aggregator": "test/MockV3Aggregator.vy",
}


class ContractNotFound(KeyError):
    """We do not have source for a contract name."""


@dataclass(slots=True, frozen=True)
class CompiledContract:
    """Vyper compiler output we need for deployment."""

    #: Contract name
    name: str

    #: Contract ABI as JSON-decoded list
    abi: list[dict]

    #: Creation bytecode, ``0x`` prefixed
    bytecode: HexStr

    #: Where the source came from
    source_path: Path

    @property
    def bytecode_hash(self) -> str:
        """Keccak of the creation bytecode.

        Used to tell if a recorded deployment is still up to date.
        """
        return Web3.keccak(hexstr=self.bytecode).hex()


def get_contract_source_path(name: str) -> Path:
    """Resolve contract name to its source file.

    :raise ContractNotFound:
        Unknown contract
    """
    try:
        return CONTRACTS_ROOT / CONTRACT_SOURCES[name]
    except KeyError as e:
        raise ContractNotFound(f"No source for contract {name}, we have {', '.join(CONTRACT_SOURCES)}") from e


@lru_cache(maxsize=None)
def compile_contract(name: str) -> CompiledContract:
    """Compile a bundled contract.

    :param name:
        Contract name, e.g. ``FundMe``

    :return:
        ABI and creation bytecode
    """
    path = get_contract_source_path(name)
    assert path.exists(), f"Contract source missing: {path}"

    logger.info("Compiling %s from %s", name, path.name)
    output = compile_code(path.read_text(), output_formats=["abi", "bytecode"])

    bytecode = output["bytecode"]
    if not bytecode.startswith("0x"):
        bytecode = "0x" + bytecode

    return CompiledContract(
        name=name,
        abi=output["abi"],
        bytecode=HexStr(bytecode),
        source_path=path,
    )


def get_abi_by_name(name: str) -> list[dict]:
    """Get the ABI of a bundled contract."""
    return compile_contract(name).abi


def get_contract(web3: Web3, name: str) -> type[Contract]:
    """Get a contract factory that can deploy ``name``.

    :return:
        Web3 contract class with ABI and bytecode
    """
    compiled = compile_contract(name)
    return web3.eth.contract(abi=compiled.abi, bytecode=compiled.bytecode)


def get_deployed_contract(
    web3: Web3,
    name_or_abi: str | list[dict],
    address: HexAddress | str,
) -> Contract:
    """Get a proxy for a contract already on chain.

    :param name_or_abi:
        Bundled contract name, or a raw ABI e.g. from a deployment record

    :param address:
        Contract address
    """
    assert address, "Contract address missing"

    if isinstance(name_or_abi, str):
        abi = get_abi_by_name(name_or_abi)
    else:
        abi = name_or_abi

    return web3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
