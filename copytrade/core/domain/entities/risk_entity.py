from typing import List

from pydantic import BaseModel, Field

from ..enums.strategy_enums import RiskLevel


class RiskFinding(BaseModel):
    level: RiskLevel
    reason: str


class RiskResult(BaseModel):
    passed: bool
    risks: List[RiskFinding] = Field(default_factory=list)

    @property
    def reasons(self) -> List[str]:
        return [r.reason for r in self.risks]

    @property
    def blocking_reason(self) -> str:
        for r in self.risks:
            if r.level in (RiskLevel.CRITICAL, RiskLevel.INFO):
                return r.reason
        return "; ".join(self.reasons)
