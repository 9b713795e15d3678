# SPDX-License-Identifier: AGPL-3.0

import time

from eth_utils import to_checksum_address
from web3.exceptions import TransactionNotFound

from .constants import GET_TRANSACTION_RECEIPT
from .context import RpcContext
from .exceptions import ConfirmationTimeout, TransactionFailed
from .logs import debug
from .result import RpcResult
from .utils import beautify, format_time


def wait_for_tx(
    ctx: RpcContext,
    tx_hash: str,
    timeout: float | None = None,
    interval: float | None = None,
):
    """
    Block until `tx_hash` is mined or `timeout` seconds have elapsed.

    The node is asked for the receipt every `interval` seconds. A receipt that
    is not there yet is not an error; any other failure is raised as is.

    Once mined, the transaction and its block are added to the context, the
    receipt is recorded as the eth_getTransactionReceipt result, and a
    created contract address is captured.

    Returns the receipt, or raises:
      - TransactionFailed if the receipt status is 0
      - ConfirmationTimeout if the deadline passes first
    """
    timeout = ctx.timeout if timeout is None else timeout
    interval = ctx.poll_interval if interval is None else interval

    start = time.monotonic()
    deadline = start + timeout

    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise ConfirmationTimeout(tx_hash, timeout)

        time.sleep(min(interval, remaining))

        try:
            receipt = ctx.node.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            continue

        if receipt is None:
            # some clients answer null instead of raising
            continue

        break

    block_number = receipt["blockNumber"]
    debug(
        f"{tx_hash} mined in block {block_number} "
        f"after {format_time(time.monotonic() - start)}"
    )

    ctx.add_mined(tx_hash, block_number)
    ctx.record(RpcResult.ok(GET_TRANSACTION_RECEIPT, beautify(receipt)))

    if contract_address := receipt.get("contractAddress"):
        ctx.contract_address = to_checksum_address(contract_address)

    if receipt["status"] == 0:
        raise TransactionFailed(f"transaction {tx_hash} failed")

    return receipt
