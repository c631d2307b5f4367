"""Bounded wait for a broadcast transaction to be mined"""
import asyncio
import logging
import time

from moment_editions.exceptions import ChainUnavailableError, TransactionIndeterminateError
from moment_editions.models.edition import TxReceipt
from moment_editions.services.chain import ChainGateway

logger = logging.getLogger(__name__)

async def wait_for_receipt(gateway: ChainGateway, tx_hash: str, timeout: float,
                           poll_interval: float = 2.0) -> TxReceipt:
    """
    Poll the gateway until the transaction has a receipt.

    Args:
        gateway: Chain gateway the transaction was sent through
        tx_hash: Hash of the broadcast transaction
        timeout: Seconds to wait before giving up
        poll_interval: Seconds between receipt lookups

    Returns:
        The receipt, which may report a revert

    Raises:
        TransactionIndeterminateError: No receipt appeared within the timeout.
            The transaction may still be mined later.
    """
    deadline = time.monotonic() + timeout
    while True:
        try:
            receipt = await gateway.get_receipt(tx_hash)
            if receipt is not None:
                logger.info(f"Transaction {tx_hash} mined with status {receipt.status.value}")
                return receipt
        except ChainUnavailableError as e:
            logger.warning(f"Receipt lookup for {tx_hash} failed, will retry: {e}")

        remaining = deadline - time.monotonic()
        if remaining <= 0:
            logger.warning(f"No receipt for {tx_hash} after {timeout}s")
            raise TransactionIndeterminateError(tx_hash)
        await asyncio.sleep(min(poll_interval, remaining))
