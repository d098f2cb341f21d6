from abc import ABC, abstractmethod
from typing import Dict


class SignerGateway(ABC):
    """
    External custody. Receives an unsigned tx descriptor:

        {to, data, value, chain_id, gas, gas_price}

    signs it for `trader_id` and broadcasts it. Returns the tx hash.
    """

    @abstractmethod
    async def sign_and_submit(self, trader_id: str, tx: Dict) -> str:
        raise NotImplementedError
