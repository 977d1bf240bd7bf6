from src.core.imports.models import (
    ImportConnector,
    ImportedRawPosition,
    ImportPreviewResult,
    ImportWarning,
    ProposedAsset,
)
from src.core.imports.preview import build_preview_from_raw, normalize_role, reclassify_preview_asset
from src.core.imports.registry import get_connector, list_connectors
from src.core.imports.risk_class_priors import apply_priors, infer_risk_class

__all__ = [
    "ImportConnector",
    "ImportPreviewResult",
    "ImportWarning",
    "ImportedRawPosition",
    "ProposedAsset",
    "apply_priors",
    "build_preview_from_raw",
    "get_connector",
    "infer_risk_class",
    "list_connectors",
    "normalize_role",
    "reclassify_preview_asset",
]
