"""
Calldata for the unsigned transactions the core hands to the signer.
Encoding goes through a provider-less web3 contract object, so a TxPlan can
be built without touching an RPC endpoint.
"""

from typing import Any, Sequence

from web3 import Web3

MAX_UINT256 = 2 ** 256 - 1

# no provider: only used for ABI encoding
_OFFLINE_W3 = Web3()

ABI_ERC20 = [
    {"name":"decimals","outputs":[{"type":"uint8"}],"inputs":[],"stateMutability":"view","type":"function"},
    {"name":"symbol","outputs":[{"type":"string"}],"inputs":[],"stateMutability":"view","type":"function"},
    {"name":"balanceOf","outputs":[{"type":"uint256"}],"inputs":[{"type":"address","name":"owner"}],"stateMutability":"view","type":"function"},
    {"name":"allowance","outputs":[{"type":"uint256"}],"inputs":[{"type":"address","name":"owner"},{"type":"address","name":"spender"}],"stateMutability":"view","type":"function"},
    {"name":"approve","outputs":[{"type":"bool"}],"inputs":[{"type":"address","name":"spender"},{"type":"uint256","name":"amount"}],"stateMutability":"nonpayable","type":"function"},
]


def encode_call(abi: Sequence[dict], fn_name: str, args: Sequence[Any]) -> str:
    """
    0x-prefixed calldata for `fn_name(*args)`; struct params are passed as
    tuples and addresses must be checksummed.
    """
    contract = _OFFLINE_W3.eth.contract(abi=list(abi))
    return contract.encode_abi(fn_name, args=list(args))


def checksum(addr: str) -> str:
    return Web3.to_checksum_address(addr)


def build_approve_calldata(spender: str, amount: int = MAX_UINT256) -> str:
    return encode_call(ABI_ERC20, "approve", [checksum(spender), int(amount)])
