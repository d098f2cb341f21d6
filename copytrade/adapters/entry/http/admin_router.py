from dataclasses import asdict
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from motor.motor_asyncio import AsyncIOMotorDatabase
from pydantic import BaseModel, ValidationError

from .deps import get_db, get_supervisor
from ...external.database.signal_repository_mongodb import SignalRepositoryMongoDB
from ....core.domain.entities.signal_entity import SignalEntity

router = APIRouter(prefix="/admin", tags=["admin"])

# =========================
# Entry monitors
# =========================

class MonitorOutDTO(BaseModel):
    signal_id: str
    token_symbol: str
    chain: str
    entry_min: float
    entry_max: float
    strategy_count: int
    state: str
    last_price: Optional[float] = None
    distance: Optional[str] = None
    ticks: int = 0
    started_at: Optional[str] = None
    running_sec: Optional[int] = None

class MonitorStatusDTO(BaseModel):
    active_count: int
    monitors: List[MonitorOutDTO]

@router.get("/monitors", response_model=MonitorStatusDTO)
async def list_monitors(sup=Depends(get_supervisor)):
    """
    Signals currently watched by the entry-price scheduler.
    """
    return await sup.scheduler.get_monitor_status()

@router.delete("/monitors/{signal_id}")
async def stop_monitor(signal_id: str, sup=Depends(get_supervisor)):
    stopped = await sup.scheduler.stop_monitoring(signal_id)
    if not stopped:
        raise HTTPException(status_code=404, detail=f"No active monitor for {signal_id}")
    return {"signal_id": signal_id, "stopped": True}

# =========================
# Batches
# =========================

@router.get("/batches/{batch_id}")
async def get_batch(batch_id: str, sup=Depends(get_supervisor)) -> Dict:
    status = await sup.batch_executor.get_batch_status(batch_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Batch not found")
    return status

# =========================
# Strategies
# =========================

@router.post("/strategies/{strategy_id}/unpause")
async def unpause_strategy(strategy_id: str, sup=Depends(get_supervisor)):
    """
    Clear a circuit-breaker pause before it expires.
    """
    if not await sup.risk_gate.unpause(strategy_id):
        raise HTTPException(status_code=404, detail=f"Strategy {strategy_id} not paused or not found")
    return {"strategy_id": strategy_id, "paused": False}

# =========================
# Signal intake
# =========================

class IntakeOutDTO(BaseModel):
    signal_id: str
    accepted: bool
    monitoring: bool
    approved: List[str]
    reason: Optional[str] = None

@router.post("/signals/{signal_id}/process", response_model=IntakeOutDTO)
async def process_signal(
    signal_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    sup=Depends(get_supervisor),
):
    """
    Run intake (type check, coarse risk pass, start monitoring) for a stored signal.
    """
    row = await SignalRepositoryMongoDB(db).get(signal_id)
    if not row:
        raise HTTPException(status_code=404, detail="Signal not found")
    try:
        signal = SignalEntity(**row)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=f"Malformed signal: {exc}")
    result = await sup.intake.execute(signal)
    return asdict(result)
