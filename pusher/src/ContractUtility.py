"""ContractUtility: Web3 initialization and Pyth contract binding."""

from __future__ import annotations

import os

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract import Contract
from web3.middleware import SignAndSendRawMiddlewareBuilder

from .pyth_abi import PYTH_ABI


class ContractUtility:
    """Utility for Web3 connection and contract binding.

    :ivar endpoint: RPC URL of the target chain.
    :ivar w3: Configured Web3 instance.
    :ivar account: Signing account, or None for read-only use.
    """

    def __init__(self, endpoint: str | None = None, private_key: str | None = None) -> None:
        """Initialize the contract utility.

        :param endpoint: RPC URL. Falls back to the RPC_URL env var.
        :param private_key: Hex private key used to sign transactions.
        :raises ValueError: If no RPC URL is available.
        """
        self.endpoint = endpoint or os.environ.get("RPC_URL")
        if not self.endpoint:
            raise ValueError("No RPC endpoint configured")

        self.w3 = Web3(Web3.HTTPProvider(self.endpoint))
        self.account: LocalAccount | None = None
        if private_key:
            self.account = Account.from_key(private_key)
            self.w3.middleware_onion.add(
                SignAndSendRawMiddlewareBuilder.build(self.account)
            )
            self.w3.eth.default_account = self.account.address

    def get_pyth_contract(self, address: str) -> Contract:
        """Bind the Pyth price contract at the given address.

        :param address: Contract address (any case).
        :returns: web3 Contract instance.
        """
        return self.w3.eth.contract(
            address=Web3.to_checksum_address(address), abi=PYTH_ABI
        )
