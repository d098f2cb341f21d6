from abc import ABC, abstractmethod
from typing import Any, List

from web3 import Web3


class ChainGateway(ABC):
    """
    Read-only chain access. Every method is async; implementations run the
    blocking web3 calls off the event loop.
    """

    @abstractmethod
    def web3(self, chain: str) -> Web3:
        raise NotImplementedError

    @abstractmethod
    async def call(self, chain: str, address: str, abi: List[dict], fn_name: str, *args: Any) -> Any:
        """
        contract(address, abi).functions.<fn_name>(*args).call()
        """
        raise NotImplementedError

    @abstractmethod
    async def get_native_balance(self, chain: str, owner: str) -> int:
        raise NotImplementedError

    @abstractmethod
    async def get_erc20_balance(self, chain: str, token: str, owner: str) -> int:
        raise NotImplementedError

    @abstractmethod
    async def get_decimals(self, chain: str, token: str) -> int:
        raise NotImplementedError

    @abstractmethod
    async def get_allowance(self, chain: str, token: str, owner: str, spender: str) -> int:
        raise NotImplementedError

    @abstractmethod
    async def get_gas_price(self, chain: str) -> int:
        raise NotImplementedError
