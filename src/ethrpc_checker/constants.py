# SPDX-License-Identifier: AGPL-3.0

#
# JSON-RPC methods under test
#

SEND_RAW_TRANSACTION = "eth_sendRawTransaction"
GET_BLOCK_NUMBER = "eth_blockNumber"
GET_GAS_PRICE = "eth_gasPrice"
GET_MAX_PRIORITY_FEE_PER_GAS = "eth_maxPriorityFeePerGas"
GET_CHAIN_ID = "eth_chainId"
GET_BALANCE = "eth_getBalance"
GET_BLOCK_BY_HASH = "eth_getBlockByHash"
GET_BLOCK_BY_NUMBER = "eth_getBlockByNumber"
GET_BLOCK_RECEIPTS = "eth_getBlockReceipts"
GET_TRANSACTION_BY_HASH = "eth_getTransactionByHash"
GET_TRANSACTION_BY_BLOCK_HASH_AND_INDEX = "eth_getTransactionByBlockHashAndIndex"
GET_TRANSACTION_BY_BLOCK_NUMBER_AND_INDEX = "eth_getTransactionByBlockNumberAndIndex"
GET_TRANSACTION_RECEIPT = "eth_getTransactionReceipt"
GET_TRANSACTION_COUNT = "eth_getTransactionCount"
GET_TRANSACTION_COUNT_BY_HASH = "eth_getTransactionCountByHash"
GET_BLOCK_TRANSACTION_COUNT_BY_HASH = "eth_getBlockTransactionCountByHash"
GET_CODE = "eth_getCode"
GET_STORAGE_AT = "eth_getStorageAt"
NEW_FILTER = "eth_newFilter"
GET_FILTER_LOGS = "eth_getFilterLogs"
NEW_BLOCK_FILTER = "eth_newBlockFilter"
GET_FILTER_CHANGES = "eth_getFilterChanges"
UNINSTALL_FILTER = "eth_uninstallFilter"
GET_LOGS = "eth_getLogs"
ESTIMATE_GAS = "eth_estimateGas"
CALL = "eth_call"

#
# Transactions
#

# fixed gas limit for a plain value transfer
TRANSFER_GAS_LIMIT = 21_000

# generous ceiling for contract creation and contract calls
CONTRACT_GAS_LIMIT = 10_000_000

# added on top of the suggested gas price to get maxFeePerGas
FEE_CAP_MARGIN = 10**9  # 1 gwei

# amount moved by the transfer probes (wei, or token units)
TRANSFER_VALUE = 1

# confirmation poller cadence, in seconds
POLL_INTERVAL = 0.5

#
# Contract
#

TRANSFER_EVENT = "Transfer"

# slot of the balances mapping in the reference token contract
DEFAULT_BALANCE_SLOT = 4
