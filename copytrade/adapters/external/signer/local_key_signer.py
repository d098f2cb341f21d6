# copytrade/adapters/external/signer/local_key_signer.py

import asyncio
import logging
import weakref
from typing import Dict

from eth_account import Account
from web3 import Web3

from ....core.domain.chains import CHAIN_PROFILES
from ....core.gateways.chain_gateway import ChainGateway
from ....core.gateways.signer_gateway import SignerGateway
from ....core.services.utils import to_json_safe


class LocalKeySigner(SignerGateway):
    """
    Signs with private keys held in process memory ({trader_id: key}).
    Meant for dev / single-operator deployments; production plugs an
    external custody service behind the same SignerGateway.
    """

    def __init__(self, keys: Dict[str, str], chain: ChainGateway, logger: logging.Logger | None = None):
        self._accounts = {tid: Account.from_key(pk) for tid, pk in keys.items()}
        self._chain = chain
        # per-trader nonce locks; entries vanish once no submit holds one
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    def _account(self, trader_id: str):
        acct = self._accounts.get(trader_id)
        if acct is None:
            raise KeyError(f"No signing key for trader {trader_id}")
        return acct

    @staticmethod
    def _chain_name(chain_id: int) -> str:
        for name, profile in CHAIN_PROFILES.items():
            if profile.chain_id == int(chain_id):
                return name
        raise ValueError(f"Unknown chain id {chain_id}")

    def _sign_and_send(self, w3: Web3, acct, tx: Dict) -> str:
        base_tx = {
            "from": acct.address,
            "to": Web3.to_checksum_address(tx["to"]),
            "data": tx["data"],
            "value": int(tx.get("value") or 0),
            "gas": int(tx["gas"]),
            "gasPrice": int(tx.get("gas_price") or w3.eth.gas_price),
            "nonce": w3.eth.get_transaction_count(acct.address, "pending"),
            "chainId": int(tx["chain_id"]),
        }
        signed = acct.sign_transaction(base_tx)
        txh = w3.eth.send_raw_transaction(signed.raw_transaction)
        return to_json_safe(txh)

    async def sign_and_submit(self, trader_id: str, tx: Dict) -> str:
        acct = self._account(trader_id)
        w3 = self._chain.web3(self._chain_name(tx["chain_id"]))
        lock = self._locks.get(trader_id)
        if lock is None:
            lock = self._locks[trader_id] = asyncio.Lock()
        async with lock:
            tx_hash = await asyncio.to_thread(self._sign_and_send, w3, acct, tx)
        self._logger.info("Broadcast %s for %s to %s", tx_hash, trader_id, tx["to"])
        return tx_hash
