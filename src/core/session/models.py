from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from src.core.allocation.models import Constraints, Portfolio
from src.core.allocation.regime import AllocatorVersion

SaveStatus = Literal["IDLE", "SAVING", "SAVED", "ERROR", "INVALID"]
SessionLifecycleState = Literal["ABSENT", "CREATING", "READY", "RELOADING", "REPLACED"]
SessionMode = Literal["protocol", "simulation"]
RunDecisionType = Literal["allocation", "simulation"]
DraftField = Literal[
    "portfolio",
    "constraints",
    "inflow",
    "risk_posture",
    "sector_sentiment",
    "regime",
]
RiskPosture = Literal["conservative", "neutral", "aggressive"]

DECISION_TYPE = "treasury_batch_allocation"


class _CamelRecord(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class AllocationPolicy(_CamelRecord):
    id: str = Field(description="Generated policy identifier.", examples=["policy_2026-01-05T10:00:00Z"])
    name: str = Field(description="Operator-facing policy name.", examples=["Balanced v2"])
    created_at: str = Field(description="ISO-8601 creation time.", examples=["2026-01-05T10:00:00Z"])
    updated_at: str = Field(description="ISO-8601 last update time.", examples=["2026-01-05T10:00:00Z"])
    decision_type: str = Field(default=DECISION_TYPE, examples=[DECISION_TYPE])
    allocator_version: AllocatorVersion = Field(default="default", examples=["v2"])
    constraints: Constraints = Field(default_factory=Constraints)
    regime: Dict[str, Any] = Field(default_factory=dict, examples=[{"mission": "risk_adjusted_return"}])


class SavedPortfolio(_CamelRecord):
    id: str = Field(description="Generated library identifier.", examples=["portfolio_2026-01-05T10:00:00Z"])
    name: str = Field(examples=["Core treasury"])
    updated_at: str = Field(examples=["2026-01-05T10:00:00Z"])
    portfolio: Portfolio = Field(default_factory=Portfolio)


class AbPolicySnapshot(_CamelRecord):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    name: str
    allocator_version: AllocatorVersion
    constraints: Constraints
    regime: Dict[str, Any]


class AbResult(_CamelRecord):
    """Frozen record of one two-policy comparison against a shared weights baseline."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    run_id: str = Field(examples=["ab_2026-01-05T10:00:00Z"])
    created_at: str = Field(examples=["2026-01-05T10:00:00Z"])
    portfolio_snapshot: Portfolio
    inflow_snapshot: Optional[float] = None
    current_weights_snapshot: Dict[str, float] = Field(
        description="Current weights captured once at the start of the comparison."
    )
    policy_a: AbPolicySnapshot
    policy_b: AbPolicySnapshot
    output_a: Dict[str, Any] = Field(description="Decision record produced for policy A.")
    output_b: Dict[str, Any] = Field(description="Decision record produced for policy B.")


class ScenarioTime(BaseModel):
    now: Optional[str] = Field(default=None, examples=["2026-01-05T00:00:00+00:00"])
    decision_window_start: Optional[str] = Field(default=None)
    decision_window_end: Optional[str] = Field(default=None)


class FieldSaveState(BaseModel):
    status: SaveStatus = Field(default="IDLE")
    touched: bool = Field(default=False, description="True when the operator changed the value.")
    error_message: Optional[str] = Field(default=None)


class SessionSnapshot(BaseModel):
    session_id: Optional[str] = Field(default=None, examples=["scn_123"])
    lifecycle: SessionLifecycleState = Field(default="ABSENT")
    mode: SessionMode = Field(default="protocol")
    run_decision_type: RunDecisionType = Field(default="allocation")
    allocator_version: AllocatorVersion = Field(default="default")
    scenario: Dict[str, Any] = Field(default_factory=dict)
    time: ScenarioTime = Field(default_factory=ScenarioTime)
    portfolio: Optional[Portfolio] = None
    constraints: Optional[Constraints] = None
    inflow: Optional[float] = None
    risk_posture: Optional[str] = None
    sector_sentiment: Optional[Dict[str, float]] = None
    regime: Optional[Dict[str, Any]] = None
    outgoing_regime: Dict[str, Any] = Field(default_factory=dict)
    ticks: List[Dict[str, Any]] = Field(default_factory=list)
    save_states: Dict[str, FieldSaveState] = Field(default_factory=dict)
    selected_policy_id: Optional[str] = None
    selected_portfolio_id: Optional[str] = None
    message: Optional[str] = None
    weights_warning: Optional[str] = None
