"""Private key signer with local nonce tracking.

Used on live networks where the node does not hold our keys.
On development chains we use the node's unlocked accounts instead,
see :py:func:`transact_with_signer`.
"""

import logging
from typing import TypeAlias

from eth_account import Account
from eth_account.datastructures import SignedTransaction
from eth_account.signers.local import LocalAccount
from eth_typing import ChecksumAddress
from hexbytes import HexBytes
from web3 import Web3
from web3.contract.contract import ContractConstructor, ContractFunction

logger = logging.getLogger(__name__)


class HotWallet:
    """A private key account that signs transactions locally.

    - Nonces are allocated locally, so several transactions can be
      broadcast before the first one is mined

    - Call :py:meth:`sync_nonce` once before the first transaction

    Example:

    .. code-block:: python

        wallet = HotWallet.from_private_key(os.environ["PRIVATE_KEY"])
        wallet.sync_nonce(web3)
        tx_hash = wallet.transact_and_broadcast_with_contract(fund_me.functions.fund(), value=10**17)
    """

    def __init__(self, account: LocalAccount):
        assert isinstance(account, LocalAccount), f"Got {type(account)}"
        self.account = account
        self.current_nonce: int | None = None

    def __repr__(self):
        return f"<HotWallet {self.address}>"

    @property
    def address(self) -> ChecksumAddress:
        return self.account.address

    @property
    def private_key(self) -> HexBytes:
        return HexBytes(self.account.key)

    def sync_nonce(self, web3: Web3):
        """Read the next nonce from the chain."""
        self.current_nonce = web3.eth.get_transaction_count(self.address)
        logger.info("Synced nonce for %s to %d", self.address, self.current_nonce)

    def allocate_nonce(self) -> int:
        """Get the nonce for the next transaction and advance the counter."""
        assert self.current_nonce is not None, "Call sync_nonce() first"
        nonce = self.current_nonce
        self.current_nonce += 1
        return nonce

    def sign_transaction_with_new_nonce(self, tx: dict) -> SignedTransaction:
        """Fill the nonce and sign.

        :param tx:
            Transaction dict without nonce
        """
        assert "nonce" not in tx, f"Transaction already has a nonce: {tx}"
        tx = dict(tx, nonce=self.allocate_nonce())
        return self.account.sign_transaction(tx)

    def transact_and_broadcast_with_contract(
        self,
        func: ContractFunction | ContractConstructor,
        value: int = 0,
        gas_limit: int | None = None,
    ) -> HexBytes:
        """Build, sign and broadcast a contract call or deployment.

        :param func:
            Bound contract function, or contract constructor

        :param value:
            Wei to send along

        :param gas_limit:
            Skip gas estimation and use this limit

        :return:
            Transaction hash
        """
        web3 = func.w3
        if self.current_nonce is None:
            self.sync_nonce(web3)

        tx_params = {"from": self.address, "value": value, "chainId": web3.eth.chain_id}
        if gas_limit is not None:
            tx_params["gas"] = gas_limit

        tx = func.build_transaction(tx_params)
        tx.pop("nonce", None)
        signed = self.sign_transaction_with_new_nonce(tx)
        tx_hash = web3.eth.send_raw_transaction(signed.raw_transaction)
        logger.info("Broadcast %s from %s, nonce %d", tx_hash.hex(), self.address, self.current_nonce - 1)
        return tx_hash

    @staticmethod
    def from_private_key(key: str) -> "HotWallet":
        """Create a wallet from a ``0x`` prefixed hex private key."""
        assert key.startswith("0x"), "Private key must be 0x prefixed"
        return HotWallet(Account.from_key(key))


#: Someone who can send transactions.
#:
#: - An unlocked node account address on development chains
#: - A :py:class:`HotWallet` on live networks
Signer: TypeAlias = str | HotWallet


def get_signer_address(signer: Signer) -> ChecksumAddress:
    if isinstance(signer, HotWallet):
        return signer.address
    return Web3.to_checksum_address(signer)


def transact_with_signer(
    func: ContractFunction | ContractConstructor,
    signer: Signer,
    value: int = 0,
    gas_limit: int | None = None,
) -> HexBytes:
    """Send a contract call or deployment as ``signer``.

    :return:
        Transaction hash
    """
    if isinstance(signer, HotWallet):
        return signer.transact_and_broadcast_with_contract(func, value=value, gas_limit=gas_limit)

    tx_params = {"from": signer, "value": value}
    if gas_limit is not None:
        tx_params["gas"] = gas_limit
    return func.transact(tx_params)
