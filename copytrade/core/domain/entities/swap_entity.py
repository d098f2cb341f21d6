from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class SwapRequest(BaseModel):
    """
    Input of the route aggregator. `amount_in` is already in base units of
    `token_in`.
    """
    chain: str
    token_in: str                 # address
    token_out: str                # address
    amount_in: int = Field(..., gt=0)
    slippage_bps: int = Field(..., ge=0, le=10_000)
    trader: str                   # wallet address, receives the output
    token_symbol: Optional[str] = None
    amount_in_usd: Optional[float] = None

    is_four_meme: bool = False
    four_meme_liquidity_added: bool = False


class ApprovalTx(BaseModel):
    to: str
    data: str
    value: int = 0
    spender: str
    gas: int = 90_000


class RouteQuote(BaseModel):
    """
    What a venue returns before the aggregator wraps it into a TxPlan.
    """
    dex: str
    router: str
    spender: Optional[str] = None     # None: no ERC-20 approval needed
    calldata: str
    value: int = 0
    gas: int = 300_000
    amount_in: int
    amount_out: int
    amount_out_min: int
    path: List[str] = Field(default_factory=list)
    pool: Optional[str] = None
    extra: Dict[str, Any] = Field(default_factory=dict)


class TxPlan(BaseModel):
    """
    Ephemeral unsigned transaction plan handed to the signer.
    """
    chain: str
    chain_id: int
    dex: str
    router: str
    calldata: str
    value: int = 0
    gas: int
    gas_price: Optional[int] = None
    amount_in: int
    amount_out: int
    amount_out_min: int
    token_out: str
    needs_approval: bool = False
    approval_tx: Optional[ApprovalTx] = None
    path: List[str] = Field(default_factory=list)
    pool: Optional[str] = None
