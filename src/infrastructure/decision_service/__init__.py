from src.infrastructure.decision_service.http import HttpDecisionService, parse_scenario_id

__all__ = [
    "HttpDecisionService",
    "parse_scenario_id",
]
