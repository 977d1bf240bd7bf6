from typing import Any, Mapping, Optional

RISK_CLASS_PRIORS: dict[str, dict[str, float]] = {
    "Stablecoin": {"expected_return": 0.04, "volatility": 0.03},
    "Large Cap Equity (Core)": {"expected_return": 0.08, "volatility": 0.165},
    "Defensive Equity": {"expected_return": 0.055, "volatility": 0.115},
    "Growth / High Beta Equity": {"expected_return": 0.11, "volatility": 0.25},
    "Wealth Management": {"expected_return": 0.1, "volatility": 0.15},
    "Fund Of Funds": {"expected_return": 0.12, "volatility": 0.25},
    "Defi Bluechip": {"expected_return": 0.18, "volatility": 0.35},
    "Large Cap Crypto": {"expected_return": 0.2, "volatility": 0.5},
    "(none)": {"expected_return": 0.1, "volatility": 0.3},
}

RISK_CLASS_ALIASES: dict[str, str] = {
    "stablecoin": "Stablecoin",
    "stable coin": "Stablecoin",
    "cash equivalent": "Stablecoin",
    "stable cash": "Stablecoin",
    "large cap equity core": "Large Cap Equity (Core)",
    "large cap equity (core)": "Large Cap Equity (Core)",
    "large cap equity": "Large Cap Equity (Core)",
    "core equity": "Large Cap Equity (Core)",
    "defensive equity": "Defensive Equity",
    "growth high beta equity": "Growth / High Beta Equity",
    "high beta equity": "Growth / High Beta Equity",
    "growth equity": "Growth / High Beta Equity",
    "wealth management": "Wealth Management",
    "fund of funds": "Fund Of Funds",
    "defi bluechip": "Defi Bluechip",
    "large cap crypto": "Large Cap Crypto",
    "none": "(none)",
    "(none)": "(none)",
    "unclassified": "(none)",
}

STABLECOIN_SYMBOLS = frozenset({"USDC", "USDT", "DAI", "USDP", "TUSD", "BUSD"})
LARGE_CAP_CRYPTO_SYMBOLS = frozenset({"BTC", "ETH", "SOL", "BNB", "ADA", "AVAX", "XRP", "DOGE"})
LARGE_CAP_EQUITY_SYMBOLS = frozenset(
    {"SPY", "IVV", "VOO", "AAPL", "MSFT", "AMZN", "GOOGL", "GOOG", "META", "NVDA"}
)

# Keyword rules applied in order to "<symbol> <name> <meta hint>"; first match wins.
_KEYWORD_RULES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("large_cap_equity_core", ("large_cap_equity_core", "large cap equity core")),
    ("defensive_equity", ("defensive_equity", "defensive equity")),
    ("growth_high_beta_equity", ("growth_high_beta_equity", "growth high beta equity")),
    ("fund_of_funds", ("fund of funds",)),
    ("wealth_management", ("wealth",)),
    ("defi_bluechip", ("defi", "finance", "swap", "dex")),
)

_SP500_MARKERS = ("s&p 500", "sp 500", "s&p500", "large cap equity")
_DEFENSIVE_MARKERS = ("health", "healthcare", "staples", "utility", "utilities", "defensive")
_GROWTH_MARKERS = ("growth", "momentum", "high beta", "nasdaq", "technology", "tech")


def _normalize_risk_class_key(value: Optional[str]) -> str:
    raw = str(value or "").strip()
    if not raw:
        return "(none)"
    lowered = " ".join(raw.lower().replace("_", " ").split())
    return RISK_CLASS_ALIASES.get(lowered, raw)


def apply_priors(risk_class: Optional[str]) -> dict[str, float]:
    """Expected return and volatility assumptions for a risk class (fallback: unclassified)."""
    key = _normalize_risk_class_key(risk_class)
    return dict(RISK_CLASS_PRIORS.get(key, RISK_CLASS_PRIORS["(none)"]))


def infer_risk_class(
    symbol: Optional[str], name: Optional[str] = None, meta: Optional[Mapping[str, Any]] = None
) -> str:
    sym = str(symbol or "").strip().upper()
    if sym in STABLECOIN_SYMBOLS:
        return "stablecoin"

    hint = str(meta.get("risk_class") or "").lower() if isinstance(meta, Mapping) else ""
    combined = f"{sym.lower()} {str(name or '').strip().lower()} {hint}"

    for risk_class, keywords in _KEYWORD_RULES:
        if any(keyword in combined for keyword in keywords):
            return risk_class

    if sym in LARGE_CAP_CRYPTO_SYMBOLS or "crypto" in combined or "blockchain" in combined:
        return "large_cap_crypto"
    if sym in LARGE_CAP_EQUITY_SYMBOLS:
        return "large_cap_equity_core"
    if any(marker in combined for marker in _SP500_MARKERS) or (
        "s&p" in combined and "index" in combined
    ):
        return "large_cap_equity_core"
    if any(marker in combined for marker in _DEFENSIVE_MARKERS):
        return "defensive_equity"
    if any(marker in combined for marker in _GROWTH_MARKERS):
        return "growth_high_beta_equity"
    return "unclassified"
