from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

AssetRole = Literal["core", "satellite", "defensive", "liquidity", "carry", "speculative"]

ASSET_ROLES: tuple[str, ...] = (
    "core",
    "satellite",
    "defensive",
    "liquidity",
    "carry",
    "speculative",
)

RISK_CLASSES: tuple[str, ...] = (
    "stablecoin",
    "large_cap_crypto",
    "defi_bluechip",
    "large_cap_equity_core",
    "defensive_equity",
    "growth_high_beta_equity",
    "high_risk",
    "equity_fund",
    "fixed_income",
    "commodities",
    "real_estate",
    "cash_equivalent",
    "speculative",
    "traditional_asset",
    "alternative",
    "balanced_fund",
    "emerging_market",
    "frontier_market",
    "esoteric",
    "unclassified",
    "wealth_management",
    "fund_of_funds",
    "index_fund",
)


class Asset(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str = Field(description="Asset identifier, unique within a portfolio.", examples=["BTC"])
    name: str = Field(description="Human-readable asset name.", examples=["Bitcoin"])
    current_weight: float = Field(
        default=0.0,
        description="Current portfolio weight as a fraction (0.00-1.00).",
        examples=[0.4],
    )
    expected_return: float = Field(
        default=0.0,
        description="Expected return assumption used by the allocator.",
        examples=[0.2],
    )
    volatility: float = Field(
        default=0.0,
        description="Volatility assumption used by the allocator.",
        examples=[0.5],
    )
    risk_class: Optional[str] = Field(
        default=None,
        description="Risk classification tag from the closed risk-class enumeration.",
        examples=["large_cap_crypto"],
    )
    role: Optional[AssetRole] = Field(
        default=None,
        description="Why the asset is held, independent of its risk class.",
        examples=["core"],
    )

    @field_validator("risk_class")
    @classmethod
    def _validate_risk_class(cls, value: Optional[str]) -> Optional[str]:
        if value is None or value == "":
            return None
        if value not in RISK_CLASSES:
            raise ValueError(f"risk_class '{value}' is not a known risk class")
        return value


class Portfolio(BaseModel):
    model_config = ConfigDict(extra="allow")

    assets: list[Asset] = Field(
        default_factory=list,
        description="Ordered portfolio assets.",
    )
    total_value: Optional[float] = Field(
        default=None,
        description="Optional total portfolio value in USD.",
        examples=[100000.0],
    )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class Constraints(BaseModel):
    model_config = ConfigDict(extra="allow")

    min_asset_weight: Optional[float] = Field(
        default=None,
        description="Minimum weight per asset. Absent means unconstrained.",
        examples=[0.05],
    )
    max_asset_weight: Optional[float] = Field(
        default=None,
        description="Maximum weight per asset. Absent means unconstrained.",
        examples=[0.6],
    )
    max_concentration: Optional[float] = Field(
        default=None,
        description="Maximum combined concentration. Absent means unconstrained.",
        examples=[0.7],
    )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class AllocationRow(BaseModel):
    id: str = Field(description="Asset identifier.", examples=["BTC"])
    cur: Optional[float] = Field(
        description="Current (or prior) weight; null when no baseline is available.",
        examples=[0.4],
    )
    tgt: float = Field(description="Target weight.", examples=[0.5])
    delta: Optional[float] = Field(
        description="Target minus current; null when no baseline is available.",
        examples=[0.1],
    )


class AllocationDiff(BaseModel):
    rows: list[AllocationRow] = Field(
        default_factory=list,
        description="Per-asset rows sorted by asset identifier.",
    )
    turnover: float = Field(
        description="One-way turnover: half the sum of absolute deltas.",
        examples=[0.1],
    )
