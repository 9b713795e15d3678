from ethrpc_checker.constants import GET_BALANCE, GET_GAS_PRICE
from ethrpc_checker.context import Account, memoized
from ethrpc_checker.probes import get_block_number, get_gas_price, send_transfer
from ethrpc_checker.result import RpcResult, Status


def test_account_from_key(account):
    assert account.address == "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
    assert account.key.startswith("0x")

    # the key never shows up in logs
    assert account.key not in repr(account)


def test_account_create():
    a, b = Account.create(), Account.create()
    assert a.address != b.address


def test_record_keeps_first_result(ctx):
    first = RpcResult.ok(GET_BALANCE, "1")
    second = RpcResult.failed(GET_BALANCE, "boom")

    assert ctx.record(first) is first
    assert ctx.record(second) is first
    assert ctx.already_tested(GET_BALANCE) is first
    assert len(ctx.completed) == 1


def test_already_tested_unknown_method(ctx):
    assert ctx.already_tested(GET_GAS_PRICE) is None


def test_add_mined(ctx):
    ctx.add_mined("0x01", 7)
    ctx.add_mined("0x02", 8)

    assert ctx.processed_transactions == ["0x01", "0x02"]
    assert ctx.blocks_with_tx == [7, 8]


def test_memoized_probe_hits_node_once(ctx, node):
    first = get_gas_price(ctx)
    second = get_gas_price(ctx)

    assert second is first
    assert node.calls["eth_gasPrice"] == 1
    assert ctx.gas_price == node.gas_price()


def test_memoized_returns_preexisting_result(ctx, node):
    cached = RpcResult.ok("eth_blockNumber", 123)
    ctx.record(cached)

    assert get_block_number(ctx) is cached
    assert node.calls["eth_blockNumber"] == 0


def test_memoized_sets_method():
    @memoized("eth_custom")
    def probe(ctx):
        return RpcResult.ok("eth_custom", 1)

    assert probe.method == "eth_custom"
    assert probe.__name__ == "probe"


def test_chain_parameters_fetched_once(ctx, node):
    # each transfer needs chain id, tip and gas price
    send_transfer(ctx)
    send_transfer(ctx)

    assert node.calls["eth_chainId"] == 1
    assert node.calls["eth_maxPriorityFeePerGas"] == 1
    assert node.calls["eth_gasPrice"] == 1

    # the nonce is fetched fresh for every transaction
    assert node.calls["eth_getTransactionCount"] == 2
    assert node.calls["eth_sendRawTransaction"] == 2

    # only the first send is kept
    sends = [r for r in ctx.completed if r.method == "eth_sendRawTransaction"]
    assert len(sends) == 1
    assert sends[0].status == Status.OK
