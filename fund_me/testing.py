"""Test helpers."""

from contextlib import contextmanager

from fund_me.trace import REVERT_EXCEPTIONS, TransactionAssertionError


class RevertNotRaised(AssertionError):
    """A call we expected to revert went through."""


@contextmanager
def expect_revert(message: str | None = None):
    """Assert the block reverts, optionally with a reason containing ``message``.

    Works with both reverting calls and transactions,
    on the in-process chain and on JSON-RPC nodes.

    Example:

    .. code-block:: python

        with expect_revert("Not enough ETH!"):
            fund_me.functions.fund().transact({"from": deployer, "value": 0})
    """
    try:
        yield
    except (*REVERT_EXCEPTIONS, TransactionAssertionError) as e:
        if message is not None:
            assert message in str(e), f"Expected revert reason {message!r}, got: {e}"
        return

    raise RevertNotRaised(f"Expected revert{f' with {message!r}' if message else ''}, but nothing reverted")
