# SPDX-License-Identifier: AGPL-3.0

import functools
from collections.abc import Callable
from dataclasses import dataclass, field

from eth_account import Account as EthAccount

from .constants import DEFAULT_BALANCE_SLOT, POLL_INTERVAL
from .contract import ContractInfo
from .logs import debug_once
from .result import RpcResult
from .utils import hexify

Probe = Callable[["RpcContext"], RpcResult]


@dataclass(frozen=True)
class Account:
    address: str
    key: str = field(repr=False)

    @staticmethod
    def from_key(private_key: str) -> "Account":
        acct = EthAccount.from_key(private_key)
        return Account(address=acct.address, key=hexify(acct.key))

    @staticmethod
    def create() -> "Account":
        # throwaway account, used once as a transfer recipient
        acct = EthAccount.create()
        return Account(address=acct.address, key=hexify(acct.key))


@dataclass
class RpcContext:
    """
    State shared by every probe of a run.

    Probes read the facts established by earlier probes (mined transactions,
    blocks including them, the deployed contract, installed filters) and add
    their own. `completed` is the memoization cache: the first result recorded
    for a method is the one every later lookup gets.
    """

    node: object  # NodeClient or anything with the same methods
    account: Account
    timeout: float
    filter_wait: float = 3.0
    poll_interval: float = POLL_INTERVAL
    contract: ContractInfo | None = None
    storage_slot: int = DEFAULT_BALANCE_SLOT

    # chain parameters, fetched at most once
    chain_id: int | None = None
    gas_price: int | None = None
    max_priority_fee: int | None = None

    processed_transactions: list[str] = field(default_factory=list)
    blocks_with_tx: list[int] = field(default_factory=list)
    contract_address: str | None = None

    filter_id: str | None = None
    filter_query: dict | None = None
    block_filter_id: str | None = None

    completed: list[RpcResult] = field(default_factory=list)

    def already_tested(self, method: str) -> RpcResult | None:
        for result in self.completed:
            if result.method == method:
                return result
        return None

    def record(self, result: RpcResult) -> RpcResult:
        """Cache a result unless one is already cached for its method.

        Returns the authoritative result for the method.
        """
        if (existing := self.already_tested(result.method)) is not None:
            debug_once(f"{result.method} already recorded, keeping the first result")
            return existing

        self.completed.append(result)
        return result

    def add_mined(self, tx_hash: str, block_number: int) -> None:
        self.processed_transactions.append(tx_hash)
        self.blocks_with_tx.append(block_number)


def memoized(method: str) -> Callable[[Probe], Probe]:
    """
    Make a probe return the cached result for `method` if there is one, and
    record its own result otherwise.

    Dependent probes call prerequisite probes directly; the cache guarantees
    that each method hits the node at most once per run.
    """

    def decorator(probe: Probe) -> Probe:
        @functools.wraps(probe)
        def wrapper(ctx: RpcContext) -> RpcResult:
            if (result := ctx.already_tested(method)) is not None:
                return result
            return ctx.record(probe(ctx))

        wrapper.method = method
        return wrapper

    return decorator
