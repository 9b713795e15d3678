# SPDX-License-Identifier: AGPL-3.0

"""
One probe per JSON-RPC method.

A probe takes the shared RpcContext, talks to the node, and returns the
RpcResult for its method. A probe that cannot produce a verdict raises; the
runner turns the exception into an error result. Probes decorated with
`memoized` run at most once per context, so they can be called freely as
prerequisites of other probes.
"""

import time
from typing import Any

from eth_account import Account as EthAccount

from .constants import (
    CALL,
    CONTRACT_GAS_LIMIT,
    ESTIMATE_GAS,
    FEE_CAP_MARGIN,
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
    TRANSFER_EVENT,
    TRANSFER_GAS_LIMIT,
    TRANSFER_VALUE,
    UNINSTALL_FILTER,
)
from .context import Account, RpcContext, memoized
from .exceptions import InvariantViolation, MissingPrerequisite
from .logs import debug
from .poller import wait_for_tx
from .result import RpcResult
from .utils import beautify, hexify, is_zero_bytes, storage_slot_key, structurally_equal

NO_TRANSACTIONS = "no transactions"
NO_BLOCKS_WITH_TRANSACTIONS = "no blocks with transactions"
NO_CONTRACT = "no contract address, must be deployed first"


def scalar_result(method: str, value: Any, rendered: Any, zero_warning: str) -> RpcResult:
    # a zero value is suspicious, not wrong
    warnings = [] if value else [zero_warning]
    return RpcResult.from_checks(method, rendered, warnings)


def require_contract(ctx: RpcContext) -> str:
    if not ctx.contract_address:
        raise MissingPrerequisite(NO_CONTRACT)
    return ctx.contract_address


def first_processed_transaction(ctx: RpcContext) -> str:
    if not ctx.processed_transactions:
        raise MissingPrerequisite(NO_TRANSACTIONS)
    return ctx.processed_transactions[0]


def first_block_with_tx(ctx: RpcContext) -> int:
    if not ctx.blocks_with_tx:
        raise MissingPrerequisite(NO_BLOCKS_WITH_TRANSACTIONS)
    return ctx.blocks_with_tx[0]


def require_success(result: RpcResult) -> RpcResult:
    if result.is_error:
        raise MissingPrerequisite(f"{result.method} failed: {result.error}")
    return result


#
# Read-only scalar probes
#


@memoized(GET_BLOCK_NUMBER)
def get_block_number(ctx: RpcContext) -> RpcResult:
    block_number = ctx.node.block_number()
    return scalar_result(
        GET_BLOCK_NUMBER, block_number, block_number, "blockNumber is zero"
    )


@memoized(GET_GAS_PRICE)
def get_gas_price(ctx: RpcContext) -> RpcResult:
    ctx.gas_price = ctx.node.gas_price()
    return scalar_result(
        GET_GAS_PRICE, ctx.gas_price, str(ctx.gas_price), "gasPrice is zero"
    )


@memoized(GET_MAX_PRIORITY_FEE_PER_GAS)
def get_max_priority_fee(ctx: RpcContext) -> RpcResult:
    ctx.max_priority_fee = ctx.node.max_priority_fee()
    return scalar_result(
        GET_MAX_PRIORITY_FEE_PER_GAS,
        ctx.max_priority_fee,
        str(ctx.max_priority_fee),
        "maxPriorityFeePerGas is zero",
    )


@memoized(GET_CHAIN_ID)
def get_chain_id(ctx: RpcContext) -> RpcResult:
    ctx.chain_id = ctx.node.chain_id()
    return scalar_result(GET_CHAIN_ID, ctx.chain_id, str(ctx.chain_id), "chainId is zero")


def balance_result(balance: int) -> RpcResult:
    return scalar_result(GET_BALANCE, balance, str(balance), "balance is zero")


def nonce_result(nonce: int) -> RpcResult:
    return scalar_result(GET_TRANSACTION_COUNT, nonce, nonce, "nonce is zero")


@memoized(GET_BALANCE)
def get_balance(ctx: RpcContext) -> RpcResult:
    return balance_result(ctx.node.get_balance(ctx.account.address))


@memoized(GET_TRANSACTION_COUNT)
def get_transaction_count(ctx: RpcContext) -> RpcResult:
    return nonce_result(ctx.node.get_transaction_count(ctx.account.address))


@memoized(GET_CODE)
def get_code(ctx: RpcContext) -> RpcResult:
    contract_address = require_contract(ctx)
    code = ctx.node.get_code(contract_address)
    return scalar_result(GET_CODE, len(code), hexify(code), "code is empty")


@memoized(GET_STORAGE_AT)
def get_storage_at(ctx: RpcContext) -> RpcResult:
    contract_address = require_contract(ctx)

    # balance of the funded account in the token's balances mapping
    key = storage_slot_key(ctx.account.address, ctx.storage_slot)
    storage = ctx.node.get_storage_at(contract_address, int.from_bytes(key, "big"))

    warnings = []
    if is_zero_bytes(storage):
        warnings.append("storage is zero bytes, should try another slot")

    return RpcResult.from_checks(GET_STORAGE_AT, hexify(storage), warnings)


#
# Cross-check probes
#


def head_block(ctx: RpcContext):
    head = ctx.node.block_number()
    return ctx.node.get_block(head)


@memoized(GET_BLOCK_BY_NUMBER)
def get_block_by_number(ctx: RpcContext) -> RpcResult:
    return RpcResult.ok(GET_BLOCK_BY_NUMBER, beautify(head_block(ctx)))


@memoized(GET_BLOCK_BY_HASH)
def get_block_by_hash(ctx: RpcContext) -> RpcResult:
    by_number = head_block(ctx)
    by_hash = ctx.node.get_block(by_number["hash"])

    if not structurally_equal(by_number, by_hash):
        raise InvariantViolation(
            "implementation error: blockByNumber and blockByHash return different blocks"
        )

    return RpcResult.ok(GET_BLOCK_BY_HASH, beautify(by_hash))


#
# Transaction-sending actions
#
# These are not memoized: each call sends a new transaction. Each records the
# eth_sendRawTransaction result once everything it checks has succeeded (the
# first recorded one stays authoritative).
#


def fee_params(ctx: RpcContext) -> tuple[int, int, int]:
    """Return (chain id, max priority fee, gas price), fetched at most once per run."""
    require_success(get_chain_id(ctx))
    require_success(get_max_priority_fee(ctx))
    require_success(get_gas_price(ctx))
    return ctx.chain_id, ctx.max_priority_fee, ctx.gas_price


def fetch_nonce(ctx: RpcContext) -> int:
    # the pending nonce moves with every transaction, always ask the node
    nonce = ctx.node.get_transaction_count(ctx.account.address)
    ctx.record(nonce_result(nonce))
    return nonce


def fetch_balance(ctx: RpcContext) -> int:
    balance = ctx.node.get_balance(ctx.account.address)
    ctx.record(balance_result(balance))
    return balance


def send_transaction(ctx: RpcContext, tx: dict) -> str:
    """Fill in fee-market fields, sign `tx` with the funded account and submit it."""
    chain_id, max_priority_fee, gas_price = fee_params(ctx)

    tx = {
        "type": 2,
        "chainId": chain_id,
        "nonce": fetch_nonce(ctx),
        "maxPriorityFeePerGas": max_priority_fee,
        "maxFeePerGas": gas_price + FEE_CAP_MARGIN,
        "value": 0,
        "data": b"",
        "accessList": [],
        **tx,
    }

    signed = EthAccount.sign_transaction(tx, ctx.account.key)
    tx_hash = hexify(signed.hash)

    debug(f"-> {SEND_RAW_TRANSACTION} {tx_hash} (nonce {tx['nonce']})")
    returned = ctx.node.send_raw_transaction(signed.raw_transaction)

    if returned is not None and hexify(returned).lower() != tx_hash.lower():
        raise InvariantViolation(
            f"node returned tx hash {hexify(returned)}, expected {tx_hash}"
        )

    return tx_hash


def send_transfer(ctx: RpcContext) -> RpcResult:
    """Send 1 wei to a fresh account and check the sender's balance went down."""
    recipient = Account.create().address
    value = TRANSFER_VALUE

    balance_before = fetch_balance(ctx)
    if balance_before < value:
        raise InvariantViolation(
            f"insufficient balance: {ctx.account.address} holds {balance_before} wei"
        )

    tx_hash = send_transaction(
        ctx, {"to": recipient, "value": value, "gas": TRANSFER_GAS_LIMIT}
    )
    wait_for_tx(ctx, tx_hash)

    # a lower bound: the gas fee is paid on top of the value
    balance_after = ctx.node.get_balance(ctx.account.address)
    if balance_before - balance_after < value:
        raise InvariantViolation(
            "balance mismatch, maybe the transaction was not mined or implementation is incorrect"
        )

    return ctx.record(RpcResult.ok(SEND_RAW_TRANSACTION, tx_hash))


def deploy_contract(ctx: RpcContext) -> RpcResult:
    if ctx.contract is None:
        raise MissingPrerequisite("no contract artifact configured, see --contract")

    tx_hash = send_transaction(
        ctx, {"data": ctx.contract.bytecode, "gas": CONTRACT_GAS_LIMIT}
    )
    receipt = wait_for_tx(ctx, tx_hash)

    if not receipt.get("contractAddress") or not ctx.contract_address:
        raise InvariantViolation("contract address is empty, failed to deploy")

    debug(f"{ctx.contract.name} deployed at {ctx.contract_address}")
    return ctx.record(RpcResult.ok(SEND_RAW_TRANSACTION, tx_hash))


def transfer_token(ctx: RpcContext) -> RpcResult:
    contract_address = require_contract(ctx)
    recipient = Account.create().address

    data = ctx.contract.encode_call("transfer", recipient, TRANSFER_VALUE)
    tx_hash = send_transaction(
        ctx, {"to": contract_address, "data": data, "gas": CONTRACT_GAS_LIMIT}
    )
    wait_for_tx(ctx, tx_hash)

    return ctx.record(RpcResult.ok(SEND_RAW_TRANSACTION, tx_hash))


def force_token_transfer(ctx: RpcContext) -> None:
    # guarantees at least one Transfer log for the log probes
    try:
        transfer_token(ctx)
    except Exception as err:
        raise MissingPrerequisite(
            f"transfer ERC20 must be succeeded before checking filter logs: {err}"
        ) from err


#
# History probes
#


def block_with_tx(ctx: RpcContext):
    return ctx.node.get_block(first_block_with_tx(ctx))


@memoized(GET_BLOCK_RECEIPTS)
def get_block_receipts(ctx: RpcContext) -> RpcResult:
    receipts = ctx.node.get_block_receipts(first_block_with_tx(ctx))
    return RpcResult.ok(GET_BLOCK_RECEIPTS, beautify(receipts))


@memoized(GET_TRANSACTION_BY_HASH)
def get_transaction_by_hash(ctx: RpcContext) -> RpcResult:
    tx = ctx.node.get_transaction(first_processed_transaction(ctx))
    return RpcResult.ok(GET_TRANSACTION_BY_HASH, beautify(tx))


@memoized(GET_TRANSACTION_BY_BLOCK_HASH_AND_INDEX)
def get_transaction_by_block_hash_and_index(ctx: RpcContext) -> RpcResult:
    block = block_with_tx(ctx)
    if not block["transactions"]:
        raise InvariantViolation("no transactions in the block")

    tx = ctx.node.get_transaction_by_block(block["hash"], 0)
    return RpcResult.ok(GET_TRANSACTION_BY_BLOCK_HASH_AND_INDEX, beautify(tx))


@memoized(GET_TRANSACTION_BY_BLOCK_NUMBER_AND_INDEX)
def get_transaction_by_block_number_and_index(ctx: RpcContext) -> RpcResult:
    block_number = first_block_with_tx(ctx)
    tx = ctx.node.request(
        GET_TRANSACTION_BY_BLOCK_NUMBER_AND_INDEX, hex(block_number), "0x0"
    )
    if tx is None:
        raise InvariantViolation(f"no transaction at index 0 of block {block_number}")

    return RpcResult.ok(GET_TRANSACTION_BY_BLOCK_NUMBER_AND_INDEX, beautify(tx))


@memoized(GET_TRANSACTION_RECEIPT)
def get_transaction_receipt(ctx: RpcContext) -> RpcResult:
    # normally already recorded by the confirmation poller
    receipt = ctx.node.get_transaction_receipt(first_processed_transaction(ctx))
    return RpcResult.ok(GET_TRANSACTION_RECEIPT, beautify(receipt))


def as_int(value: int | str) -> int:
    return int(value, 16) if isinstance(value, str) else int(value)


@memoized(GET_TRANSACTION_COUNT_BY_HASH)
def get_transaction_count_by_hash(ctx: RpcContext) -> RpcResult:
    # non-standard method, takes a block hash
    block = block_with_tx(ctx)
    count = ctx.node.request(GET_TRANSACTION_COUNT_BY_HASH, hexify(block["hash"]))
    return RpcResult.ok(GET_TRANSACTION_COUNT_BY_HASH, as_int(count))


@memoized(GET_BLOCK_TRANSACTION_COUNT_BY_HASH)
def get_block_transaction_count_by_hash(ctx: RpcContext) -> RpcResult:
    block = block_with_tx(ctx)
    count = ctx.node.get_block_transaction_count(block["hash"])
    return RpcResult.ok(GET_BLOCK_TRANSACTION_COUNT_BY_HASH, as_int(count))


#
# Filter lifecycle probes
#


@memoized(NEW_FILTER)
def new_filter(ctx: RpcContext) -> RpcResult:
    contract_address = require_contract(ctx)
    from_block = max(first_block_with_tx(ctx) - 1, 0)

    # kept on the context so eth_getLogs can replay the same query
    query = {
        "fromBlock": hex(from_block),
        "toBlock": "latest",
        "address": [contract_address],
        "topics": [[ctx.contract.event_topic(TRANSFER_EVENT)]],
    }
    filter_id = ctx.node.request(NEW_FILTER, query)

    ctx.filter_id = filter_id
    ctx.filter_query = query
    return RpcResult.ok(NEW_FILTER, filter_id)


@memoized(GET_FILTER_LOGS)
def get_filter_logs(ctx: RpcContext) -> RpcResult:
    if not ctx.filter_id:
        raise MissingPrerequisite("no filter id, must create a filter first")

    force_token_transfer(ctx)

    logs = ctx.node.request(GET_FILTER_LOGS, ctx.filter_id) or []
    warnings = [] if logs else ["no logs"]
    return RpcResult.from_checks(GET_FILTER_LOGS, beautify(logs), warnings)


@memoized(NEW_BLOCK_FILTER)
def new_block_filter(ctx: RpcContext) -> RpcResult:
    ctx.block_filter_id = ctx.node.request(NEW_BLOCK_FILTER)
    return RpcResult.ok(NEW_BLOCK_FILTER, ctx.block_filter_id)


@memoized(GET_FILTER_CHANGES)
def get_filter_changes(ctx: RpcContext) -> RpcResult:
    if not ctx.block_filter_id:
        raise MissingPrerequisite(
            "no block filter id, must create a block filter first"
        )

    # give the network time to produce a block
    time.sleep(ctx.filter_wait)

    changes = ctx.node.request(GET_FILTER_CHANGES, ctx.block_filter_id) or []
    warnings = [] if changes else ["no new blocks"]
    return RpcResult.from_checks(GET_FILTER_CHANGES, beautify(changes), warnings)


@memoized(UNINSTALL_FILTER)
def uninstall_filter(ctx: RpcContext) -> RpcResult:
    if not ctx.filter_id:
        raise MissingPrerequisite("no filter id, must create a filter first")

    if not ctx.node.request(UNINSTALL_FILTER, ctx.filter_id):
        raise InvariantViolation("uninstall filter failed")

    # the filter is gone, a second uninstall must report failure
    if ctx.node.request(UNINSTALL_FILTER, ctx.filter_id):
        raise InvariantViolation(
            "uninstall filter should be failed because it was already uninstalled"
        )

    return RpcResult.ok(UNINSTALL_FILTER, ctx.filter_id)


@memoized(GET_LOGS)
def get_logs(ctx: RpcContext) -> RpcResult:
    try:
        require_success(new_filter(ctx))
    except Exception as err:
        raise MissingPrerequisite(f"failed to create a filter: {err}") from err

    force_token_transfer(ctx)

    logs = ctx.node.get_logs(ctx.filter_query)
    warnings = [] if logs else ["no logs"]
    return RpcResult.from_checks(GET_LOGS, beautify(logs), warnings)


#
# Call-type probes
#


@memoized(ESTIMATE_GAS)
def estimate_gas(ctx: RpcContext) -> RpcResult:
    contract_address = require_contract(ctx)
    data = ctx.contract.encode_call("transfer", ctx.account.address, TRANSFER_VALUE)

    gas = ctx.node.estimate_gas(
        {"from": ctx.account.address, "to": contract_address, "data": hexify(data)}
    )
    return RpcResult.ok(ESTIMATE_GAS, gas)


@memoized(CALL)
def call(ctx: RpcContext) -> RpcResult:
    contract_address = require_contract(ctx)
    data = ctx.contract.encode_call("balanceOf", ctx.account.address)

    returned = ctx.node.call({"to": contract_address, "data": hexify(data)})
    return RpcResult.ok(CALL, hexify(returned))
