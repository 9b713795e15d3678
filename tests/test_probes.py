import pytest
from test_fixtures import TRANSFER_TOPIC, StubNode, mk_ctx

from ethrpc_checker.constants import (
    GET_BALANCE,
    GET_TRANSACTION_COUNT,
    SEND_RAW_TRANSACTION,
)
from ethrpc_checker.exceptions import InvariantViolation, MissingPrerequisite
from ethrpc_checker.probes import (
    call,
    deploy_contract,
    estimate_gas,
    get_balance,
    get_block_by_hash,
    get_block_by_number,
    get_block_number,
    get_block_receipts,
    get_code,
    get_filter_changes,
    get_filter_logs,
    get_gas_price,
    get_logs,
    get_max_priority_fee,
    get_storage_at,
    get_transaction_by_block_hash_and_index,
    get_transaction_by_block_number_and_index,
    get_transaction_by_hash,
    get_transaction_count_by_hash,
    new_block_filter,
    new_filter,
    send_transfer,
    transfer_token,
    uninstall_filter,
)
from ethrpc_checker.result import Status


@pytest.fixture
def deployed(ctx):
    send_transfer(ctx)
    deploy_contract(ctx)
    return ctx


#
# scalar probes
#


def test_zero_gas_price_warns(account):
    ctx = mk_ctx(StubNode(gas_price=0, max_priority_fee=0), account)

    result = get_gas_price(ctx)

    assert result.status == Status.WARNING
    assert result.warnings == ("gasPrice is zero",)
    assert result.value == "0"
    assert ctx.gas_price == 0


def test_nonzero_gas_price(ctx):
    result = get_gas_price(ctx)

    assert result.status == Status.OK
    assert result.value == str(2 * 10**9)
    assert result.warnings == ()


def test_block_number_zero_warns(ctx):
    result = get_block_number(ctx)

    assert result.status == Status.WARNING
    assert result.value == 0
    assert "blockNumber is zero" in result.warnings


def test_zero_priority_fee_warns(account):
    ctx = mk_ctx(StubNode(max_priority_fee=0), account)
    assert get_max_priority_fee(ctx).warnings == ("maxPriorityFeePerGas is zero",)


def test_zero_balance_warns(account):
    ctx = mk_ctx(StubNode(balance=0), account)

    result = get_balance(ctx)
    assert result.status == Status.WARNING
    assert result.value == "0"


#
# cross-check probes
#


def test_block_by_hash_matches_block_by_number(ctx):
    assert get_block_by_hash(ctx).status == Status.OK
    assert get_block_by_number(ctx).status == Status.OK


def test_block_divergence_is_an_error(account):
    ctx = mk_ctx(StubNode(divergent_blocks=True), account)

    with pytest.raises(InvariantViolation, match="different blocks"):
        get_block_by_hash(ctx)


#
# transaction-sending actions
#


def test_transfer(ctx, node):
    balance_before = node.balance

    result = send_transfer(ctx)

    assert result.method == SEND_RAW_TRANSACTION
    assert result.status == Status.OK
    assert result.value == ctx.processed_transactions[0]
    assert node.balance < balance_before

    # prerequisites recorded on the way
    assert ctx.already_tested(GET_BALANCE).value == str(balance_before)
    assert ctx.already_tested(GET_TRANSACTION_COUNT) is not None


def test_transfer_balance_unchanged(account):
    ctx = mk_ctx(StubNode(burn_balance=False), account)

    with pytest.raises(InvariantViolation, match="balance mismatch"):
        send_transfer(ctx)

    # the send itself is not recorded as a success
    assert ctx.already_tested(SEND_RAW_TRANSACTION) is None


def test_transfer_insufficient_balance(account):
    node = StubNode(balance=0)
    ctx = mk_ctx(node, account)

    with pytest.raises(InvariantViolation, match="insufficient balance"):
        send_transfer(ctx)

    assert node.calls["eth_sendRawTransaction"] == 0


def test_transfer_fee_market_fields(ctx, node):
    captured = []
    send = node.send_raw_transaction

    def capture(raw_tx):
        captured.append(raw_tx)
        return send(raw_tx)

    node.send_raw_transaction = capture
    send_transfer(ctx)

    # type 2 envelope
    assert captured[0][0] == 2

    tx = node.transactions[ctx.processed_transactions[0]]
    assert tx["gas"] == 21_000
    assert tx["value"] == 1


def test_deploy_without_artifact(account):
    ctx = mk_ctx(StubNode(), account, contract=None)

    with pytest.raises(MissingPrerequisite):
        deploy_contract(ctx)


def test_deploy(ctx, node, erc20):
    deploy_contract(ctx)

    assert ctx.contract_address in node.code
    assert node.code[ctx.contract_address] == erc20.bytecode

    tx = node.transactions[ctx.processed_transactions[0]]
    assert tx["to"] is None
    assert tx["gas"] == 10_000_000


def test_token_transfer_requires_contract(ctx):
    with pytest.raises(MissingPrerequisite, match="must be deployed first"):
        transfer_token(ctx)


def test_token_transfer(deployed, erc20):
    transfer_token(deployed)

    tx = deployed.node.transactions[deployed.processed_transactions[-1]]
    assert tx["to"] == deployed.contract_address
    assert tx["data"][:4] == erc20.selector("transfer")


#
# history probes
#


def test_history_probes_without_transactions(ctx):
    with pytest.raises(MissingPrerequisite, match="no transactions"):
        get_transaction_by_hash(ctx)

    with pytest.raises(MissingPrerequisite, match="no blocks with transactions"):
        get_block_receipts(ctx)

    with pytest.raises(MissingPrerequisite, match="no blocks with transactions"):
        get_transaction_by_block_number_and_index(ctx)


def test_history_probes(ctx):
    send_transfer(ctx)
    tx_hash = ctx.processed_transactions[0]

    for probe in [
        get_transaction_by_hash,
        get_transaction_by_block_hash_and_index,
        get_transaction_by_block_number_and_index,
        get_block_receipts,
    ]:
        result = probe(ctx)
        assert result.status == Status.OK, probe.__name__
        assert tx_hash in result.value, probe.__name__

    assert get_transaction_count_by_hash(ctx).value == 1


#
# contract probes
#


def test_code_and_storage(deployed):
    code = get_code(deployed)
    assert code.status == Status.OK
    assert code.value == "0x6080604052"

    storage = get_storage_at(deployed)
    assert storage.status == Status.OK


def test_storage_zero_warns(deployed):
    deployed.node.get_storage_at = lambda address, position: bytes(32)

    result = get_storage_at(deployed)
    assert result.status == Status.WARNING
    assert result.warnings == ("storage is zero bytes, should try another slot",)


def test_estimate_gas_and_call(deployed):
    assert estimate_gas(deployed).value == 51_234
    assert call(deployed).value == "0x" + (10**6).to_bytes(32, "big").hex()


#
# filters
#


def test_new_filter_query(deployed):
    new_filter(deployed)

    query = deployed.filter_query
    assert deployed.filter_id is not None
    assert query["address"] == [deployed.contract_address]
    assert query["topics"] == [[TRANSFER_TOPIC]]

    # one block before the first block with a transaction
    assert int(query["fromBlock"], 16) == deployed.blocks_with_tx[0] - 1


def test_filter_logs_forces_token_transfer(deployed):
    new_filter(deployed)
    sent_before = deployed.node.calls["eth_sendRawTransaction"]

    result = get_filter_logs(deployed)

    assert result.status == Status.OK
    assert deployed.node.calls["eth_sendRawTransaction"] == sent_before + 1
    assert TRANSFER_TOPIC in result.value


def test_filter_logs_without_filter(deployed):
    with pytest.raises(MissingPrerequisite, match="no filter id"):
        get_filter_logs(deployed)


def test_filter_logs_without_contract(ctx):
    ctx.filter_id = "0x1"

    with pytest.raises(MissingPrerequisite, match="transfer ERC20 must be succeeded"):
        get_filter_logs(ctx)


def test_get_logs_without_contract(ctx):
    with pytest.raises(MissingPrerequisite, match="failed to create a filter"):
        get_logs(ctx)


def test_get_logs(deployed):
    result = get_logs(deployed)

    assert result.status == Status.OK
    assert deployed.contract_address in result.value


def test_filter_changes(ctx):
    with pytest.raises(MissingPrerequisite, match="block filter"):
        get_filter_changes(ctx)

    new_block_filter(ctx)
    assert get_filter_changes(ctx).status == Status.OK


def test_no_new_blocks_warns(account):
    ctx = mk_ctx(StubNode(new_blocks=False), account)
    new_block_filter(ctx)

    result = get_filter_changes(ctx)
    assert result.status == Status.WARNING
    assert result.warnings == ("no new blocks",)


def test_uninstall_filter(deployed):
    new_filter(deployed)

    result = uninstall_filter(deployed)

    assert result.status == Status.OK
    assert deployed.node.calls["eth_uninstallFilter"] == 2


def test_uninstall_filter_twice_succeeds(account, erc20):
    ctx = mk_ctx(StubNode(uninstall_always_succeeds=True), account, erc20)
    ctx.filter_id = ctx.node.request("eth_newFilter", {})

    with pytest.raises(InvariantViolation, match="already uninstalled"):
        uninstall_filter(ctx)


def test_uninstall_unknown_filter(ctx):
    ctx.filter_id = "0xdead"

    with pytest.raises(InvariantViolation, match="uninstall filter failed"):
        uninstall_filter(ctx)
