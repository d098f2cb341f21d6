"""
Static per-chain facts the execution core relies on.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List


@dataclass(frozen=True)
class StableToken:
    symbol: str
    address: str
    decimals: int


@dataclass(frozen=True)
class ChainProfile:
    name: str
    chain_id: int
    native_symbol: str
    min_gas_balance: Decimal          # in native units (BNB / ETH)
    quote_symbol: str                 # stable used to pay for buys
    stables: List[StableToken] = field(default_factory=list)

    @property
    def quote_token(self) -> StableToken:
        for st in self.stables:
            if st.symbol == self.quote_symbol:
                return st
        return self.stables[0]


CHAIN_PROFILES: Dict[str, ChainProfile] = {
    "BSC": ChainProfile(
        name="BSC",
        chain_id=56,
        native_symbol="BNB",
        min_gas_balance=Decimal("0.01"),
        quote_symbol="USDT",
        stables=[
            StableToken("USDT", "0x55d398326f99059fF775485246999027B3197955", 18),
            StableToken("BUSD", "0xe9e7CEA3DedcA5984780Bafc599bD69ADd087D56", 18),
            StableToken("USDC", "0x8AC76a51cc950d9822D68b83fE1Ad97B32Cd580d", 18),
        ],
    ),
    "Base": ChainProfile(
        name="Base",
        chain_id=8453,
        native_symbol="ETH",
        min_gas_balance=Decimal("0.005"),
        quote_symbol="USDC",
        stables=[
            StableToken("USDC", "0x833589fCD6eDb6E08f4c7C32D4f71b54bdA02913", 6),
        ],
    ),
}


def get_chain_profile(chain: str) -> ChainProfile:
    from ..services.exceptions import UnsupportedChainError

    profile = CHAIN_PROFILES.get(chain)
    if profile is None and chain:
        profile = next((p for k, p in CHAIN_PROFILES.items() if k.upper() == chain.upper()), None)
    if profile is None:
        raise UnsupportedChainError(chain)
    return profile
