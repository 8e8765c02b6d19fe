"""Wait for transactions and explain failures.

Every transaction the harness sends goes through :py:func:`wait_transaction`:
one blocking call that returns when the transaction is included and has
the requested number of confirmations, giving back the receipt fields
the tests and scripts use.
"""

import logging
import time
from dataclasses import dataclass

from eth_tester.exceptions import TransactionFailed
from eth_typing import ChecksumAddress
from hexbytes import HexBytes
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted

logger = logging.getLogger(__name__)

#: Exceptions a reverting call or transaction raises.
#:
#: JSON-RPC nodes give :py:class:`ContractLogicError`,
#: the in-process eth-tester chain gives :py:class:`TransactionFailed`.
REVERT_EXCEPTIONS = (ContractLogicError, TransactionFailed)

#: Receipt wait timeout, seconds
DEFAULT_TIMEOUT = 120.0


class TransactionAssertionError(AssertionError):
    """A mined transaction has failed status."""

    def __init__(self, message: str, revert_reason: str = "", result: "TransactionResult | None" = None):
        super().__init__(message)
        self.revert_reason = revert_reason
        self.result = result


@dataclass(slots=True, frozen=True)
class TransactionResult:
    """What we learned about an included transaction."""

    #: Transaction hash
    tx_hash: HexBytes

    #: Receipt status, 1 success, 0 reverted
    status: int

    #: Block the transaction was included in
    block_number: int

    #: Gas units consumed
    gas_used: int

    #: Wei paid per gas unit
    effective_gas_price: int

    #: Address of the created contract, for deployments
    contract_address: ChecksumAddress | None = None

    @property
    def success(self) -> bool:
        return self.status == 1

    @property
    def gas_cost(self) -> int:
        """Wei the sender paid for gas."""
        return self.gas_used * self.effective_gas_price


def wait_transaction(
    web3: Web3,
    tx_hash: HexBytes | str,
    confirmations: int = 1,
    timeout: float = DEFAULT_TIMEOUT,
    poll_latency: float = 0.5,
) -> TransactionResult:
    """Block until a transaction is included and confirmed.

    Does not check the status, see :py:func:`assert_transaction_success_with_explanation`.

    :param tx_hash:
        Transaction to wait for

    :param confirmations:
        Number of blocks, including the inclusion block, to wait for

    :param timeout:
        Seconds until we give up

    :raise web3.exceptions.TimeExhausted:
        The transaction was not included or confirmed in time
    """
    assert confirmations >= 1, f"Need at least one confirmation, got {confirmations}"

    tx_hash = HexBytes(tx_hash)
    started = time.time()
    receipt = web3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout, poll_latency=poll_latency)

    if confirmations > 1:
        target_block = receipt["blockNumber"] + confirmations - 1
        logger.info("Waiting %d confirmations for %s, until block %d", confirmations, tx_hash.hex(), target_block)
        while web3.eth.block_number < target_block:
            if time.time() - started > timeout:
                raise TimeExhausted(f"Transaction {tx_hash.hex()} did not get {confirmations} confirmations in {timeout} seconds")
            time.sleep(poll_latency)

    effective_gas_price = receipt.get("effectiveGasPrice")
    if effective_gas_price is None:
        # Pre-London nodes
        effective_gas_price = web3.eth.get_transaction(tx_hash)["gasPrice"]

    return TransactionResult(
        tx_hash=tx_hash,
        status=receipt["status"],
        block_number=receipt["blockNumber"],
        gas_used=receipt["gasUsed"],
        effective_gas_price=effective_gas_price,
        contract_address=receipt.get("contractAddress"),
    )


def fetch_revert_reason(web3: Web3, tx_hash: HexBytes | str) -> str:
    """Replay a failed transaction as a call to get its revert reason.

    The call runs against the state of the previous block,
    so transactions earlier in the same block are not seen.

    :return:
        Revert reason, or empty string if the replay did not revert
    """
    tx = web3.eth.get_transaction(tx_hash)
    replay = {
        "from": tx["from"],
        "to": tx["to"],
        "value": tx["value"],
        "data": tx["input"],
        "gas": tx["gas"],
    }
    try:
        web3.eth.call(replay, tx["blockNumber"] - 1)
    except REVERT_EXCEPTIONS as e:
        return str(e)
    return ""


def assert_transaction_success_with_explanation(
    web3: Web3,
    tx_hash: HexBytes | str,
    RaisedException=TransactionAssertionError,
    confirmations: int = 1,
    timeout: float = DEFAULT_TIMEOUT,
) -> TransactionResult:
    """Wait for a transaction and fail with its revert reason if it reverted.

    Example:

    .. code-block:: python

        tx_hash = fund_me.functions.withdraw().transact({"from": deployer})
        result = assert_transaction_success_with_explanation(web3, tx_hash)
        logger.info("Withdraw cost %d wei", result.gas_cost)

    :param RaisedException:
        Exception class raised on failure

    :raise TransactionAssertionError:
        Transaction was included but reverted

    :return:
        Receipt data
    """
    result = wait_transaction(web3, tx_hash, confirmations=confirmations, timeout=timeout)
    if not result.success:
        reason = fetch_revert_reason(web3, result.tx_hash)
        message = f"Transaction {result.tx_hash.hex()} failed in block {result.block_number}: {reason or 'no revert reason'}"
        if RaisedException is TransactionAssertionError:
            raise TransactionAssertionError(message, revert_reason=reason, result=result)
        raise RaisedException(message)
    return result
