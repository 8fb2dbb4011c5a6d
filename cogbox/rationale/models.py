from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, Field

Direction = Literal["above", "below", "always"]


class BulletRule(BaseModel):
    name: str
    source: str = Field(..., description="Feature name or raw channel name")
    direction: Direction
    threshold: Optional[float] = None
    template: str = Field(..., description="str.format template; receives value, threshold, source")

    def fires(self, value: float) -> bool:
        if self.direction == "always":
            return True
        if self.direction == "above":
            return value > self.threshold
        return value < self.threshold


class StateRules(BaseModel):
    headline: str = Field(..., min_length=1)
    rules: List[BulletRule] = Field(default_factory=list)


class Rationale(BaseModel):
    state: str
    headline: str
    bullet_points: List[str]
    triggered: List[str] = Field(default_factory=list)


# state label -> rules, evaluated in declared order
RuleTable = Dict[str, StateRules]
