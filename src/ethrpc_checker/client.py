# SPDX-License-Identifier: AGPL-3.0

from typing import Any

from web3 import HTTPProvider, Web3
from web3.types import RPCEndpoint

from .constants import GET_BLOCK_RECEIPTS
from .logs import debug


class NodeClient:
    """
    Thin wrapper around a Web3 instance.

    Probes only talk to the node through these methods, which keeps the set of
    capabilities they rely on explicit: read chain state, submit a signed
    transaction, and issue an arbitrary RPC by name with positional params.
    """

    def __init__(self, w3: Web3):
        self.w3 = w3

    @classmethod
    def connect(cls, endpoint: str, request_timeout: float = 10.0) -> "NodeClient":
        provider = HTTPProvider(endpoint, request_kwargs={"timeout": request_timeout})
        w3 = Web3(provider)
        if not w3.is_connected():
            raise ConnectionError(f"failed to connect to {endpoint}")
        debug(f"Connected to {endpoint}")
        return cls(w3)

    #
    # chain parameters
    #

    def block_number(self) -> int:
        return self.w3.eth.block_number

    def gas_price(self) -> int:
        return self.w3.eth.gas_price

    def max_priority_fee(self) -> int:
        return self.w3.eth.max_priority_fee

    def chain_id(self) -> int:
        return self.w3.eth.chain_id

    #
    # accounts
    #

    def get_balance(self, address: str, block: str | int = "latest") -> int:
        return self.w3.eth.get_balance(address, block)

    def get_transaction_count(self, address: str, block: str | int = "pending") -> int:
        return self.w3.eth.get_transaction_count(address, block)

    def get_code(self, address: str) -> bytes:
        return self.w3.eth.get_code(address)

    def get_storage_at(self, address: str, position: int) -> bytes:
        return self.w3.eth.get_storage_at(address, position)

    #
    # blocks and transactions
    #

    def get_block(self, block_id: Any, full_transactions: bool = False):
        return self.w3.eth.get_block(block_id, full_transactions)

    def get_block_receipts(self, block_number: int) -> list:
        return self.request(GET_BLOCK_RECEIPTS, hex(block_number))

    def get_block_transaction_count(self, block_id: Any) -> int:
        return self.w3.eth.get_block_transaction_count(block_id)

    def get_transaction(self, tx_hash: Any):
        return self.w3.eth.get_transaction(tx_hash)

    def get_transaction_by_block(self, block_id: Any, index: int):
        return self.w3.eth.get_transaction_by_block(block_id, index)

    def get_transaction_receipt(self, tx_hash: Any):
        # raises web3.exceptions.TransactionNotFound until the tx is mined
        return self.w3.eth.get_transaction_receipt(tx_hash)

    def send_raw_transaction(self, raw_tx: bytes):
        return self.w3.eth.send_raw_transaction(raw_tx)

    #
    # execution and logs
    #

    def estimate_gas(self, tx: dict) -> int:
        return self.w3.eth.estimate_gas(tx)

    def call(self, tx: dict) -> bytes:
        return self.w3.eth.call(tx)

    def get_logs(self, filter_params: dict) -> list:
        return self.w3.eth.get_logs(filter_params)

    #
    # anything else
    #

    def request(self, method: str, *params: Any) -> Any:
        """Issue a JSON-RPC request by name; errors in the response are raised."""
        debug(f"-> {method} {list(params)}")
        return self.w3.manager.request_blocking(RPCEndpoint(method), list(params))
