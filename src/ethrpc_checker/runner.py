# SPDX-License-Identifier: AGPL-3.0

import traceback
from collections.abc import Callable

from . import probes as p
from .constants import (
    CALL,
    ESTIMATE_GAS,
    GET_BALANCE,
    GET_BLOCK_BY_HASH,
    GET_BLOCK_BY_NUMBER,
    GET_BLOCK_NUMBER,
    GET_BLOCK_RECEIPTS,
    GET_BLOCK_TRANSACTION_COUNT_BY_HASH,
    GET_CHAIN_ID,
    GET_CODE,
    GET_FILTER_CHANGES,
    GET_FILTER_LOGS,
    GET_GAS_PRICE,
    GET_LOGS,
    GET_MAX_PRIORITY_FEE_PER_GAS,
    GET_STORAGE_AT,
    GET_TRANSACTION_BY_BLOCK_HASH_AND_INDEX,
    GET_TRANSACTION_BY_BLOCK_NUMBER_AND_INDEX,
    GET_TRANSACTION_BY_HASH,
    GET_TRANSACTION_COUNT,
    GET_TRANSACTION_COUNT_BY_HASH,
    GET_TRANSACTION_RECEIPT,
    NEW_BLOCK_FILTER,
    NEW_FILTER,
    SEND_RAW_TRANSACTION,
    UNINSTALL_FILTER,
)
from .context import Probe, RpcContext
from .logs import debug, error
from .result import RpcResult

# order matters: later probes build on the transactions, contract and
# filters established by earlier ones
PROBES: list[tuple[str, Probe]] = [
    (SEND_RAW_TRANSACTION, p.send_transfer),
    (GET_BLOCK_NUMBER, p.get_block_number),
    (GET_GAS_PRICE, p.get_gas_price),
    (GET_MAX_PRIORITY_FEE_PER_GAS, p.get_max_priority_fee),
    (GET_CHAIN_ID, p.get_chain_id),
    (GET_BALANCE, p.get_balance),
    (GET_TRANSACTION_COUNT, p.get_transaction_count),
    (GET_BLOCK_BY_HASH, p.get_block_by_hash),
    (GET_BLOCK_BY_NUMBER, p.get_block_by_number),
    (GET_BLOCK_RECEIPTS, p.get_block_receipts),
    (GET_TRANSACTION_BY_HASH, p.get_transaction_by_hash),
    (GET_TRANSACTION_BY_BLOCK_HASH_AND_INDEX, p.get_transaction_by_block_hash_and_index),
    (
        GET_TRANSACTION_BY_BLOCK_NUMBER_AND_INDEX,
        p.get_transaction_by_block_number_and_index,
    ),
    (GET_TRANSACTION_RECEIPT, p.get_transaction_receipt),
    (GET_TRANSACTION_COUNT_BY_HASH, p.get_transaction_count_by_hash),
    (GET_BLOCK_TRANSACTION_COUNT_BY_HASH, p.get_block_transaction_count_by_hash),
    (SEND_RAW_TRANSACTION, p.deploy_contract),
    (SEND_RAW_TRANSACTION, p.transfer_token),
    (GET_CODE, p.get_code),
    (GET_STORAGE_AT, p.get_storage_at),
    (NEW_FILTER, p.new_filter),
    (GET_FILTER_LOGS, p.get_filter_logs),
    (NEW_BLOCK_FILTER, p.new_block_filter),
    (GET_FILTER_CHANGES, p.get_filter_changes),
    (UNINSTALL_FILTER, p.uninstall_filter),
    (GET_LOGS, p.get_logs),
    (ESTIMATE_GAS, p.estimate_gas),
    (CALL, p.call),
]


def run_probe(ctx: RpcContext, method: str, probe: Probe) -> RpcResult:
    try:
        return probe(ctx)
    except Exception as err:
        message = str(err) or type(err).__name__
        error(f"{method} ({probe.__name__}): {message}")
        debug(traceback.format_exc())

        # cached as well, so dependents see the failure instead of retrying
        failed = RpcResult.failed(method, message)
        ctx.record(failed)
        return failed


def merge_failure(earlier: RpcResult, failed: RpcResult, action: str) -> RpcResult:
    """Fold the failure of a later action into the row already reported for its method."""
    message = f"{action}: {failed.error}"
    if earlier.is_error:
        message = f"{earlier.error}; {message}"
    return RpcResult.failed(failed.method, message)


def run_probes(
    ctx: RpcContext,
    probes: list[tuple[str, Probe]] = PROBES,
    on_probe: Callable[[str], None] | None = None,
) -> list[RpcResult]:
    """
    Run `probes` in order against the node behind `ctx`.

    Each probe yields exactly one result; a failing probe does not stop the
    run. The returned list has one result per method name, in first-seen
    order, followed by results that probes recorded for methods they used as
    prerequisites (e.g. the receipts fetched while waiting for a transaction).

    When several steps share a method name (the transaction-sending actions
    all report eth_sendRawTransaction), a failure in a later step turns that
    method's row into an error naming the failing action.
    """
    results: list[RpcResult] = []
    positions: dict[str, int] = {}

    for method, probe in probes:
        if on_probe is not None:
            on_probe(method)

        result = run_probe(ctx, method, probe)

        if method not in positions:
            positions[method] = len(results)
            results.append(result)
            continue

        # a cached result is the one already reported
        if result.is_error and result is not ctx.already_tested(method):
            index = positions[method]
            results[index] = merge_failure(results[index], result, probe.__name__)

    for result in ctx.completed:
        if result.method not in positions:
            positions[result.method] = len(results)
            results.append(result)

    return results
