"""Minimal ABI of the Pyth price contract used by the EVM listener and pusher."""

_PRICE_STRUCT = {
    "components": [
        {"internalType": "int64", "name": "price", "type": "int64"},
        {"internalType": "uint64", "name": "conf", "type": "uint64"},
        {"internalType": "int32", "name": "expo", "type": "int32"},
        {"internalType": "uint256", "name": "publishTime", "type": "uint256"},
    ],
    "internalType": "struct PythStructs.Price",
    "name": "price",
    "type": "tuple",
}

PYTH_ABI: list[dict] = [
    {
        "inputs": [{"internalType": "bytes32", "name": "id", "type": "bytes32"}],
        "name": "getPriceUnsafe",
        "outputs": [_PRICE_STRUCT],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "bytes32", "name": "id", "type": "bytes32"}],
        "name": "priceFeedExists",
        "outputs": [{"internalType": "bool", "name": "", "type": "bool"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "bytes[]", "name": "updateData", "type": "bytes[]"}
        ],
        "name": "getUpdateFee",
        "outputs": [{"internalType": "uint256", "name": "feeAmount", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
    {
        "inputs": [
            {"internalType": "bytes[]", "name": "updateData", "type": "bytes[]"},
            {"internalType": "bytes32[]", "name": "priceIds", "type": "bytes32[]"},
            {"internalType": "uint64[]", "name": "publishTimes", "type": "uint64[]"},
        ],
        "name": "updatePriceFeedsIfNecessary",
        "outputs": [],
        "stateMutability": "payable",
        "type": "function",
    },
    {"inputs": [], "name": "NoFreshUpdate", "type": "error"},
    {"inputs": [], "name": "PriceFeedNotFound", "type": "error"},
    {"inputs": [], "name": "InsufficientFee", "type": "error"},
]

# 4-byte selector of the NoFreshUpdate() custom error.
NO_FRESH_UPDATE_SELECTOR = "0xde2c57fa"
