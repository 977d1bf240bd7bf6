from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, Field

from src.core.allocation.models import AllocationDiff, Portfolio
from src.core.allocation.regime import AllocatorVersion
from src.core.imports.models import ImportPreviewResult
from src.core.session.models import RiskPosture, SessionMode, SessionSnapshot


class CreateSessionRequest(BaseModel):
    mode: Optional[SessionMode] = Field(
        default=None,
        description="Optional scenario mode sent to the decision service on creation.",
        examples=["simulation"],
    )


class LoadSessionRequest(BaseModel):
    session_id: str = Field(description="Existing decision-service scenario id.", examples=["scn_123"])


class ModeRequest(BaseModel):
    mode: SessionMode = Field(examples=["simulation"])


class DecisionRunResponse(BaseModel):
    tick: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Decision record produced by the run; synthesised when the service sent no id.",
    )
    allocation: Optional[AllocationDiff] = Field(
        default=None, description="Current-versus-target rows for the new decision."
    )
    session: SessionSnapshot


class AssetRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "example": {
                "id": "BTC",
                "name": "Bitcoin",
                "current_weight": 0.4,
                "expected_return": 0.2,
                "volatility": 0.5,
                "risk_class": "large_cap_crypto",
                "role": "core",
            }
        },
        "extra": "allow",
    }

    id: str = Field(description="Asset identifier, unique within the portfolio.")
    name: str = Field(description="Human-readable asset name.")
    current_weight: float = Field(default=0.0)
    expected_return: float = Field(default=0.0)
    volatility: float = Field(default=0.0)
    risk_class: Optional[str] = Field(default=None)
    role: Optional[str] = Field(default=None)


class ConstraintEditRequest(BaseModel):
    field: str = Field(examples=["max_asset_weight"])
    value: float = Field(examples=[0.5])


class InflowRequest(BaseModel):
    amount: Optional[float] = Field(description="Capital inflow in USD; null clears it.", examples=[25000])


class RiskPostureRequest(BaseModel):
    risk_posture: RiskPosture = Field(examples=["neutral"])


class SectorSentimentRequest(BaseModel):
    sector_sentiment: Union[str, Dict[str, Any]] = Field(
        description="Sector to sentiment score, as an object or JSON text.",
        examples=[{"defi": 0.2, "layer1": -0.1}],
    )


class RegimeFieldRequest(BaseModel):
    value: Any = Field(description="Raw operator input for the regime field.", examples=["high"])


class AllocatorVersionRequest(BaseModel):
    allocator_version: AllocatorVersion = Field(examples=["v2"])


class ImportPreviewRequest(BaseModel):
    connector_id: str = Field(examples=["csv_v1"])
    payload: Dict[str, Any] = Field(
        description="Connector input, e.g. csv_text or json_text.",
        examples=[{"csv_text": "symbol,value_usd\nBTC,60000\nETH,40000"}],
    )


class ImportApplyRequest(BaseModel):
    preview: ImportPreviewResult


class NamedSaveRequest(BaseModel):
    name: Optional[str] = Field(default=None, examples=["Balanced v2"])


class ComparisonRequest(BaseModel):
    policy_a_id: str = Field(examples=["policy_2026-01-05T10:00:00.000Z"])
    policy_b_id: str = Field(examples=["policy_2026-01-06T10:00:00.000Z"])


class SimulationRunRequest(BaseModel):
    policy_a_id: Optional[str] = Field(
        default=None, description="Saved policy for track A; the live drafts when omitted."
    )
    policy_b_id: Optional[str] = Field(default=None)
    tick_count: int = Field(default=12, ge=1, examples=[12])
    seed: int = Field(default=42, examples=[42])
    persistence: float = Field(default=0.8, ge=0, le=1, examples=[0.8])
    risk_class_regimes: Dict[str, Any] = Field(default_factory=dict)


class TimeAdvanceRequest(BaseModel):
    days: int = Field(default=0, ge=0)
    hours: int = Field(default=0, ge=0)
    minutes: int = Field(default=0, ge=0)


class TimeSetRequest(BaseModel):
    sim_now: str = Field(examples=["2026-02-01T00:00:00Z"])


class PerformanceRequest(BaseModel):
    plan_id: str = Field(examples=["plan_001"])
    period_start: str = Field(examples=["2026-01-01T00:00:00Z"])
    period_end: str = Field(examples=["2026-01-31T00:00:00Z"])
    realized_portfolio_return: Optional[float] = Field(default=None, examples=[0.012])
    realized_returns_by_asset: Optional[Dict[str, float]] = Field(default=None)
    notes: Optional[str] = Field(default=None)


class PortfolioReplaceRequest(BaseModel):
    portfolio: Portfolio
