from src.core.allocation.constraints import (
    CONSTRAINT_DEFAULTS,
    apply_constraint_defaults,
    constraints_validation_error,
    normalize_constraints_after_edit,
)
from src.core.allocation.diff import (
    current_weights,
    diff,
    diff_against_prior,
    extract_prior_weights,
    extract_target_weights,
    weight_delta_l1,
)
from src.core.allocation.models import (
    ASSET_ROLES,
    RISK_CLASSES,
    AllocationDiff,
    AllocationRow,
    Asset,
    Constraints,
    Portfolio,
)
from src.core.allocation.portfolio_editing import (
    WEIGHTS_SUM_TOLERANCE,
    add_asset,
    load_allocation_into_portfolio,
    remove_asset,
    update_asset,
    weights_sum_warning,
)

__all__ = [
    "ASSET_ROLES",
    "AllocationDiff",
    "AllocationRow",
    "Asset",
    "CONSTRAINT_DEFAULTS",
    "Constraints",
    "Portfolio",
    "RISK_CLASSES",
    "WEIGHTS_SUM_TOLERANCE",
    "add_asset",
    "apply_constraint_defaults",
    "constraints_validation_error",
    "current_weights",
    "diff",
    "diff_against_prior",
    "extract_prior_weights",
    "extract_target_weights",
    "load_allocation_into_portfolio",
    "normalize_constraints_after_edit",
    "remove_asset",
    "update_asset",
    "weight_delta_l1",
    "weights_sum_warning",
]
