# copytrade/adapters/external/chain/chain_reader.py

import asyncio
import logging
from typing import Any, Dict, List

from web3 import Web3

from ....core.domain.chains import get_chain_profile
from ....core.gateways.chain_gateway import ChainGateway
from ....core.services.abi_codec import ABI_ERC20


class Web3ChainReader(ChainGateway):
    """
    One Web3 HTTP provider per chain. Calls are blocking in web3, so each
    one runs in a worker thread.
    """

    def __init__(self, rpc_urls: Dict[str, str], timeout_sec: float = 10.0, logger: logging.Logger | None = None):
        self._rpc_urls = {k.upper(): v for k, v in rpc_urls.items()}
        self._timeout = timeout_sec
        self._w3: Dict[str, Web3] = {}
        self._decimals: Dict[tuple, int] = {}
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def web3(self, chain: str) -> Web3:
        key = get_chain_profile(chain).name.upper()
        w3 = self._w3.get(key)
        if w3 is None:
            url = self._rpc_urls.get(key)
            if not url:
                raise ValueError(f"No RPC url configured for {chain}")
            w3 = Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": self._timeout}))
            self._w3[key] = w3
        return w3

    async def call(self, chain: str, address: str, abi: List[dict], fn_name: str, *args: Any) -> Any:
        w3 = self.web3(chain)
        contract = w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
        fn = getattr(contract.functions, fn_name)(*args)
        return await asyncio.to_thread(fn.call)

    async def get_native_balance(self, chain: str, owner: str) -> int:
        w3 = self.web3(chain)
        return int(await asyncio.to_thread(w3.eth.get_balance, Web3.to_checksum_address(owner)))

    async def get_erc20_balance(self, chain: str, token: str, owner: str) -> int:
        return int(await self.call(chain, token, ABI_ERC20, "balanceOf", Web3.to_checksum_address(owner)))

    async def get_decimals(self, chain: str, token: str) -> int:
        key = (chain.upper(), token.lower())
        if key not in self._decimals:
            self._decimals[key] = int(await self.call(chain, token, ABI_ERC20, "decimals"))
        return self._decimals[key]

    async def get_allowance(self, chain: str, token: str, owner: str, spender: str) -> int:
        return int(await self.call(
            chain, token, ABI_ERC20, "allowance",
            Web3.to_checksum_address(owner), Web3.to_checksum_address(spender),
        ))

    async def get_gas_price(self, chain: str) -> int:
        w3 = self.web3(chain)
        return int(await asyncio.to_thread(lambda: w3.eth.gas_price))
