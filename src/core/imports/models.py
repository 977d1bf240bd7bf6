from typing import Any, Literal, Optional, Protocol

from pydantic import BaseModel, Field

ConnectorId = Literal["csv_v1", "json_v1"]
ImportWarningCode = Literal["MISSING_VALUES", "EQUAL_WEIGHT_FALLBACK", "NON_USD_UNSUPPORTED"]


class ImportedRawPosition(BaseModel):
    symbol: str = Field(description="Upper-cased symbol, at most 32 characters.", examples=["ETH"])
    name: Optional[str] = Field(default=None, examples=["Ethereum"])
    quantity: Optional[float] = Field(default=None, examples=[2.0])
    price_usd: Optional[float] = Field(default=None, examples=[2000.0])
    value_usd: Optional[float] = Field(
        default=None,
        description="Position value in USD; derived from quantity and price when absent.",
        examples=[4000.0],
    )
    currency: Optional[str] = Field(default=None, examples=["USD"])
    role: Optional[str] = Field(default=None, examples=["core"])
    meta: dict[str, Any] = Field(default_factory=dict)


class ImportWarning(BaseModel):
    code: ImportWarningCode = Field(examples=["EQUAL_WEIGHT_FALLBACK"])
    detail: Optional[str] = Field(default=None)


class ProposedAsset(BaseModel):
    id: str = Field(examples=["ETH"])
    name: str = Field(examples=["Ethereum"])
    risk_class: str = Field(examples=["large_cap_crypto"])
    role: str = Field(default="satellite", examples=["core"])
    current_weight: float = Field(examples=[0.8])
    expected_return: float = Field(examples=[0.2])
    volatility: float = Field(examples=[0.5])
    source_value_usd: Optional[float] = Field(
        default=None,
        description="USD value the weight was derived from; null for unpriced or non-USD rows.",
    )


class ImportPreviewResult(BaseModel):
    ok: bool = Field(description="False when nothing usable could be parsed.")
    summary: str = Field(examples=["Parsed 2 position(s) from CSV."])
    warnings: list[ImportWarning] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    raw_positions: list[ImportedRawPosition] = Field(default_factory=list)
    proposed_assets: list[ProposedAsset] = Field(default_factory=list)


class ImportConnector(Protocol):
    id: str
    version: str
    display_name: str

    def preview(self, payload: dict[str, Any]) -> ImportPreviewResult: ...
