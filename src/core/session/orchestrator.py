"""
Session orchestration.

The orchestrator owns the session identifier and everything scoped to it: the editable drafts,
their autosave schedulers, the reconciled tick list and the scenario clock. Operator libraries
(saved policies, saved portfolios) outlive sessions and are reached through repositories.

All methods run on one asyncio loop. Draft edits are synchronous but must be called from inside
that loop because they (re)start autosave timers.
"""

import asyncio
import json
import logging
import math
from functools import partial
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import ValidationError

from src.core.allocation.constraints import (
    CONSTRAINT_DEFAULTS,
    CONSTRAINT_FIELDS,
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
)
from src.core.allocation.models import (
    ASSET_ROLES,
    RISK_CLASSES,
    AllocationDiff,
    Asset,
    Constraints,
    Portfolio,
)
from src.core.allocation.policy_impact import (
    build_policy_impact_details,
    resolve_allocator_version,
    resolve_analyzer_version,
    resolve_policy_ref,
)
from src.core.allocation.portfolio_editing import (
    add_asset,
    load_allocation_into_portfolio,
    remove_asset,
    update_asset,
    weights_sum_warning,
)
from src.core.allocation.regime import (
    ALLOCATOR_VERSIONS,
    AllocatorVersion,
    apply_defaults_preserve_existing,
    outgoing_regime_keys,
    parse_regime_input,
    pick_outgoing_regime,
    regime_defaults,
)
from src.core.common.errors import (
    DecisionServiceError,
    DraftValidationError,
    LibraryItemNotFoundError,
    SessionInvalidatedError,
    SessionNotReadyError,
    TickNotFoundError,
)
from src.core.imports.models import ImportPreviewResult
from src.core.imports.registry import get_connector
from src.core.session.autosave import AutosaveScheduler
from src.core.session.comparison import (
    allocator_for_run,
    run_policy_comparison,
    simulation_policy_snapshot,
)
from src.core.session.drafts import ScopedDraft
from src.core.session.lifecycle import SessionLifecycle
from src.core.session.models import (
    DECISION_TYPE,
    AbResult,
    AllocationPolicy,
    DraftField,
    RiskPosture,
    SavedPortfolio,
    ScenarioTime,
    SessionMode,
    SessionSnapshot,
)
from src.core.session.repository import DecisionService, LibraryRepository, SelectionRepository
from src.core.session.ticks import (
    UI_CONTEXT_KEY,
    Tick,
    TickReconciler,
    build_export_payload,
    tick_from_decision_response,
    utc_now_iso,
)

logger = logging.getLogger(__name__)

RISK_POSTURES: tuple[str, ...] = ("conservative", "neutral", "aggressive")
SIMULATION_MODE = "simulation"


def _scenario_is_simulation(scenario: Mapping[str, Any]) -> bool:
    return scenario.get("mode") == SIMULATION_MODE


def _asset_from_scenario(raw: Any) -> Optional[Asset]:
    """Coerce one server asset into the editor model, or None when it cannot be kept."""
    if not isinstance(raw, Mapping):
        return None
    data = dict(raw)
    asset_id = data.get("id")
    if not isinstance(asset_id, str) or not asset_id.strip():
        return None
    if not isinstance(data.get("name"), str) or not data["name"].strip():
        data["name"] = asset_id
    if data.get("risk_class") not in RISK_CLASSES:
        data["risk_class"] = None
    if data.get("role") not in ASSET_ROLES:
        data["role"] = None
    try:
        return Asset.model_validate(data)
    except ValidationError:
        return None


def _portfolio_from_scenario(scenario: Mapping[str, Any]) -> Portfolio:
    raw = scenario.get("portfolio")
    if not isinstance(raw, Mapping):
        return Portfolio()
    raw_assets = raw.get("assets")
    assets: List[Asset] = []
    for item in raw_assets if isinstance(raw_assets, list) else []:
        asset = _asset_from_scenario(item)
        if asset is None:
            logger.warning(
                "session.asset_skipped",
                extra={"extra_fields": {"asset": item if isinstance(item, Mapping) else None}},
            )
            continue
        assets.append(asset)
    data = dict(raw)
    data["assets"] = assets
    try:
        return Portfolio.model_validate(data)
    except ValidationError:
        return Portfolio(assets=assets)


def _constraints_from_scenario(scenario: Mapping[str, Any]) -> Constraints:
    raw = scenario.get("constraints")
    if not isinstance(raw, Mapping):
        return Constraints()
    try:
        return Constraints.model_validate(dict(raw))
    except ValidationError as exc:
        logger.warning(
            "session.constraints_invalid",
            extra={"extra_fields": {"error_count": exc.error_count()}},
        )
    kept = {}
    for key in CONSTRAINT_FIELDS:
        value = raw.get(key)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if math.isfinite(value):
            kept[key] = float(value)
    return Constraints(**kept)


def _inflow_from_scenario(scenario: Mapping[str, Any]) -> Optional[float]:
    value = scenario.get("capital_inflow_amount")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def _sector_sentiment_from_value(value: Any) -> Dict[str, float]:
    if not isinstance(value, Mapping):
        raise DraftValidationError(
            "Sector sentiment must be a JSON object of sector to number.",
            field="sector_sentiment",
        )
    parsed: Dict[str, float] = {}
    for key, raw in value.items():
        if isinstance(raw, bool) or not isinstance(raw, (int, float)) or not math.isfinite(raw):
            raise DraftValidationError(
                f"Sector sentiment '{key}' must be a finite number.", field="sector_sentiment"
            )
        parsed[str(key)] = float(raw)
    return parsed


class SessionOrchestrator:
    def __init__(
        self,
        *,
        service: DecisionService,
        policies: LibraryRepository[AllocationPolicy],
        portfolios: LibraryRepository[SavedPortfolio],
        selections: SelectionRepository,
    ) -> None:
        self._service = service
        self._policies = policies
        self._portfolios = portfolios
        self._selections = selections

        self.lifecycle = SessionLifecycle()
        self.session_id: Optional[str] = None
        self.mode: SessionMode = "protocol"
        self.allocator_version: AllocatorVersion = "default"
        self.scenario: Dict[str, Any] = {}
        self.time = ScenarioTime()
        self.sim_state: Any = None
        self.sim_result: Any = None
        self.reconciler = TickReconciler()
        self.ab_results: List[AbResult] = []
        self.policy_name_draft = ""
        self.message: Optional[str] = None

        self.portfolio: ScopedDraft[Portfolio] = ScopedDraft("portfolio")
        self.constraints: ScopedDraft[Constraints] = ScopedDraft("constraints")
        self.inflow: ScopedDraft[float] = ScopedDraft("inflow")
        self.risk_posture: ScopedDraft[str] = ScopedDraft("risk_posture")
        self.sector_sentiment: ScopedDraft[Dict[str, float]] = ScopedDraft("sector_sentiment")
        self.regime: ScopedDraft[Dict[str, Any]] = ScopedDraft("regime")

        self.autosave: Dict[str, AutosaveScheduler] = {
            "portfolio": self._scheduler(
                self.portfolio,
                lambda sid, value: self._service.put_portfolio(sid, value.to_payload()),
            ),
            "constraints": self._scheduler(
                self.constraints,
                lambda sid, value: self._service.put_constraints(sid, value.to_payload()),
                validate=constraints_validation_error,
            ),
            "inflow": self._scheduler(
                self.inflow, lambda sid, value: self._service.put_inflow(sid, float(value))
            ),
            "risk_posture": self._scheduler(self.risk_posture, self._service.put_risk_posture),
            "sector_sentiment": self._scheduler(
                self.sector_sentiment, self._service.put_sector_sentiment
            ),
            "regime": self._scheduler(
                self.regime,
                lambda sid, value: self._service.put_regime(
                    sid, pick_outgoing_regime(self.allocator_version, value)
                ),
            ),
        }
        self._reload_lock = asyncio.Lock()
        self._create_in_flight = False

    def _scheduler(
        self,
        draft: ScopedDraft[Any],
        commit: Callable[[str, Any], Any],
        *,
        validate: Optional[Callable[[Any], Optional[str]]] = None,
    ) -> AutosaveScheduler:
        return AutosaveScheduler(
            draft=draft,
            commit=commit,
            session_id=lambda: self.session_id,
            validate=validate,
            on_saved=self._on_field_saved,
            on_error=self._on_field_error,
        )

    # ------------------------------------------------------------------ session lifecycle

    @property
    def ticks(self) -> List[Tick]:
        return self.reconciler.ticks

    @property
    def weights_warning(self) -> Optional[str]:
        return weights_sum_warning(self.portfolio.value)

    def _require_session(self) -> str:
        if not self.session_id:
            raise SessionNotReadyError("SESSION_NOT_READY")
        return self.session_id

    def _cancel_autosave(self) -> None:
        for scheduler in self.autosave.values():
            scheduler.cancel()

    @property
    def creating(self) -> bool:
        return self._create_in_flight or self.lifecycle.creating

    def _retire_current_session(self) -> None:
        if self.lifecycle.state in ("READY", "RELOADING"):
            self.lifecycle.apply("REPLACED", session_id=self.session_id)
        self._cancel_autosave()
        self.session_id = None

    async def create_session(self, config: Optional[Dict[str, Any]] = None) -> Optional[str]:
        """Create a fresh remote scenario and make it the live session.

        Returns None without calling the service when a creation is already in flight. The
        current session stays live until the service has returned the new identifier; a failed
        creation leaves it untouched.
        """
        if self.creating:
            logger.info(
                "session.create_skipped",
                extra={"extra_fields": {"reason": "CREATE_IN_FLIGHT"}},
            )
            return None

        previous_id = self.session_id
        if previous_id is None:
            self.lifecycle.apply("CREATE_REQUESTED")
        self._create_in_flight = True
        try:
            new_id = await self._service.create_scenario(config or {})
        except DecisionServiceError as exc:
            if previous_id is None:
                self.lifecycle.apply("CREATE_FAILED")
            self.message = str(exc)
            logger.warning(
                "session.create_failed",
                extra={"extra_fields": {"session_id": previous_id, "error": str(exc)}},
            )
            raise
        finally:
            self._create_in_flight = False

        if previous_id is not None:
            self._retire_current_session()
            self.lifecycle.apply("CREATE_REQUESTED", session_id=new_id)
        self._adopt_session(new_id)
        self.lifecycle.apply("CREATED", session_id=new_id)
        await self.reload(force=True)
        return new_id

    def _adopt_session(self, session_id: str) -> None:
        self._cancel_autosave()
        changed = session_id != self.session_id
        self.session_id = session_id
        if changed:
            self.reconciler.reset()
            self.scenario = {}
            self.time = ScenarioTime()
            self.sim_state = None
            self.sim_result = None

    async def load_session(self, session_id: str) -> None:
        """Adopt an existing remote scenario, replacing the live one."""
        if self.creating:
            raise SessionNotReadyError("SESSION_CREATION_IN_PROGRESS")
        scenario, ticks, scenario_time = await asyncio.gather(
            self._service.get_scenario(session_id),
            self._service.get_ticks(session_id),
            self._service.get_scenario_time(session_id),
        )
        if session_id != self.session_id:
            self._retire_current_session()
        self._adopt_session(session_id)
        self._apply_scenario(scenario, force=True)
        self.reconciler.apply_server_ticks(ticks)
        self._apply_time(scenario_time)
        self.lifecycle.apply("LOADED", session_id=session_id)

    async def reload(self, *, force: bool = False) -> None:
        """Refresh scenario, ticks and time; a failed part keeps its last-known-good state.

        Touched drafts keep their pending edits unless ``force`` is set.
        """
        session_id = self._require_session()
        if self.lifecycle.state not in ("READY", "RELOADING"):
            raise SessionNotReadyError("SESSION_NOT_READY")
        async with self._reload_lock:
            self.lifecycle.apply("RELOAD_STARTED", session_id=session_id)
            failure: Optional[DecisionServiceError] = None
            for name, fetch, apply in (
                ("scenario", self._service.get_scenario, partial(self._apply_scenario, force=force)),
                ("ticks", self._service.get_ticks, self.reconciler.apply_server_ticks),
                ("time", self._service.get_scenario_time, self._apply_time),
            ):
                try:
                    payload = await fetch(session_id)
                except DecisionServiceError as exc:
                    logger.warning(
                        "session.reload_failed",
                        extra={
                            "extra_fields": {
                                "session_id": session_id,
                                "part": name,
                                "error": str(exc),
                            }
                        },
                    )
                    failure = failure or exc
                    if isinstance(exc, SessionInvalidatedError):
                        break
                    continue
                if session_id != self.session_id:
                    return
                try:
                    apply(payload)
                except ValidationError as exc:
                    logger.warning(
                        "session.reload_part_invalid",
                        extra={
                            "extra_fields": {
                                "session_id": session_id,
                                "part": name,
                                "error_count": exc.error_count(),
                            }
                        },
                    )
                    failure = failure or DecisionServiceError(
                        f"Decision service returned an unusable {name} payload."
                    )

            if session_id != self.session_id:
                return
            if failure is None:
                self.lifecycle.apply("RELOADED", session_id=session_id)
                return
            self.lifecycle.apply("RELOAD_FAILED", session_id=session_id)
            self.message = str(failure)
            if isinstance(failure, SessionInvalidatedError):
                raise failure

    def _apply_scenario(self, scenario: Any, *, force: bool = False) -> None:
        fetched = dict(scenario) if isinstance(scenario, Mapping) else {}
        last_tick = fetched.get("last_tick") or self.scenario.get("last_tick")
        self.scenario = fetched
        if last_tick:
            self.scenario["last_tick"] = last_tick

        self.portfolio.load(_portfolio_from_scenario(fetched), force=force)
        self.constraints.load(_constraints_from_scenario(fetched), force=force)
        self.inflow.load(_inflow_from_scenario(fetched), force=force)

        posture = fetched.get("risk_posture")
        if posture in RISK_POSTURES:
            self.risk_posture.load(posture, force=force)
        sentiment = fetched.get("sector_sentiment")
        if isinstance(sentiment, Mapping):
            try:
                self.sector_sentiment.load(_sector_sentiment_from_value(sentiment), force=force)
            except DraftValidationError:
                logger.warning(
                    "session.sector_sentiment_ignored",
                    extra={"extra_fields": {"session_id": self.session_id}},
                )
        regime = fetched.get("regime")
        if isinstance(regime, Mapping):
            # Local-only keys never reach the service, so the fetched regime cannot carry them.
            outgoing = outgoing_regime_keys(self.allocator_version)
            local_only = {
                key: value
                for key, value in (self.regime.value or {}).items()
                if key not in outgoing
            }
            self.regime.load(
                apply_defaults_preserve_existing(self.allocator_version, {**local_only, **regime}),
                force=force,
            )
        elif self.regime.value is None:
            self.regime.complete(regime_defaults(self.allocator_version))

    def _apply_time(self, payload: Any) -> None:
        data = payload if isinstance(payload, Mapping) else {}

        def _text(key: str) -> Optional[str]:
            value = data.get(key)
            return value if isinstance(value, str) and value else None

        self.time = ScenarioTime(
            now=_text("now"),
            decision_window_start=_text("decision_window_start"),
            decision_window_end=_text("decision_window_end"),
        )

    async def switch_mode(self, mode: SessionMode) -> None:
        """Change mode; simulation always ends on a simulation-tagged scenario."""
        if mode not in ("protocol", SIMULATION_MODE):
            raise DraftValidationError(f"Unknown session mode '{mode}'.", field="mode")
        if mode == "protocol":
            self.mode = "protocol"
            if self.session_id:
                await self.reload()
            return

        if self.session_id and _scenario_is_simulation(self.scenario):
            self.mode = SIMULATION_MODE
            return

        portfolio = self.portfolio.value
        constraints = self.constraints.value
        new_id = await self.create_session({"mode": SIMULATION_MODE})
        if new_id is None:
            raise SessionNotReadyError("SESSION_CREATION_IN_PROGRESS")
        self.mode = SIMULATION_MODE
        if portfolio is not None:
            await self._service.put_portfolio(new_id, portfolio.to_payload())
        if constraints is not None:
            await self._service.put_constraints(new_id, constraints.to_payload())
        await self.reload()

    async def close(self) -> None:
        for scheduler in self.autosave.values():
            scheduler.close()

    async def _on_field_saved(self, field: str) -> None:
        try:
            await self.reload()
        except DecisionServiceError as exc:
            self.message = str(exc)
        except SessionNotReadyError:
            return

    def _on_field_error(self, field: str, exc: DecisionServiceError) -> None:
        self.message = f"Failed to save {field}: {exc}"

    # ------------------------------------------------------------------ decisions

    def _execution_context(self) -> Dict[str, Any]:
        selected_portfolio_id = self.selected_portfolio_id
        if selected_portfolio_id:
            saved = self._portfolios.get(item_id=selected_portfolio_id)
            portfolio_label = saved.name if saved and saved.name else selected_portfolio_id
        else:
            portfolio_label = "(current)"

        selected_policy_id = self.selected_policy_id
        if selected_policy_id:
            policy = self._policies.get(item_id=selected_policy_id)
            policy_label = policy.name if policy and policy.name else selected_policy_id
        else:
            policy_label = self.policy_name_draft.strip() or "(unsaved)"

        return {
            "portfolioLabel": portfolio_label,
            "policyLabel": policy_label,
            "portfolioId": selected_portfolio_id,
            "policyId": selected_policy_id,
            "decisionType": self.run_decision_type,
        }

    @property
    def run_decision_type(self) -> str:
        return "simulation" if self.mode == SIMULATION_MODE else "allocation"

    async def run_decision(self) -> Optional[Tick]:
        """Run one remote decision tick for the live session and fold it into the tick list."""
        session_id = self._require_session()
        selected_policy = (
            self._policies.get(item_id=self.selected_policy_id)
            if self.selected_policy_id
            else None
        )
        allocator = allocator_for_run(
            selected_policy.allocator_version if selected_policy else self.allocator_version
        )
        policy_name = (
            (selected_policy.name if selected_policy else self.policy_name_draft) or ""
        ).strip() or None

        await self._service.put_allocator_version(session_id, allocator)
        response = await self._service.run_tick(
            session_id,
            {
                "decision_type": self.run_decision_type,
                "allocator_version": allocator,
                "policy_id": selected_policy.id if selected_policy else self.selected_policy_id,
                "policy_name": policy_name,
            },
        )

        tick = tick_from_decision_response(response)
        if tick is not None:
            tick[UI_CONTEXT_KEY] = self._execution_context()
            self.scenario["last_tick"] = tick
            self.reconciler.add_local(tick)
        self.reconciler.clear_hidden()
        await self.reload()
        return tick

    async def run_policy_comparison(self, policy_a_id: str, policy_b_id: str) -> AbResult:
        policy_a = self._get_policy(policy_a_id)
        policy_b = self._get_policy(policy_b_id)
        self._selections.set_selection("policy_a", policy_a.id)
        self._selections.set_selection("policy_b", policy_b.id)
        if self.portfolio.value is None:
            raise SessionNotReadyError("PORTFOLIO_MISSING")

        result = await run_policy_comparison(
            self._service,
            policy_a=policy_a,
            policy_b=policy_b,
            portfolio=self.portfolio.value,
            inflow=self.inflow.value,
            decision_type=self.run_decision_type,
        )
        self.ab_results.insert(0, result)
        self.message = "A/B comparison complete"
        return result

    def get_comparison(self, run_id: str) -> AbResult:
        for result in self.ab_results:
            if result.run_id == run_id:
                return result
        raise LibraryItemNotFoundError("COMPARISON_NOT_FOUND")

    def comparison_rows(self, run_id: str) -> Dict[str, AllocationDiff]:
        result = self.get_comparison(run_id)
        return {
            "a": diff(result.current_weights_snapshot, extract_target_weights(result.output_a)),
            "b": diff(result.current_weights_snapshot, extract_target_weights(result.output_b)),
        }

    # ------------------------------------------------------------------ ticks

    def get_tick(self, tick_id: str) -> Tick:
        tick = self.reconciler.get(tick_id)
        if tick is None:
            raise TickNotFoundError("TICK_NOT_FOUND")
        return tick

    def hide_tick(self, tick_id: str) -> List[Tick]:
        self.get_tick(tick_id)
        return self.reconciler.hide(tick_id)

    @property
    def latest_tick(self) -> Optional[Tick]:
        last_tick = self.scenario.get("last_tick")
        if isinstance(last_tick, Mapping):
            return dict(last_tick)
        ticks = self.reconciler.ticks
        return ticks[0] if ticks else None

    def allocation_for_tick(self, tick_id: str) -> AllocationDiff:
        tick = self.get_tick(tick_id)
        return diff(current_weights(self.portfolio.value), extract_target_weights(tick))

    def latest_allocation(self) -> Optional[AllocationDiff]:
        tick = self.latest_tick
        if tick is None:
            return None
        return diff(current_weights(self.portfolio.value), extract_target_weights(tick))

    def tick_details(self, tick_id: str) -> Dict[str, Any]:
        tick = self.get_tick(tick_id)
        version = resolve_allocator_version(tick)
        policy_snapshot = tick.get("policy_snapshot")
        regime = policy_snapshot.get("regime") if isinstance(policy_snapshot, Mapping) else None
        knobs = dict(regime) if isinstance(regime, Mapping) else {}
        if isinstance(policy_snapshot, Mapping) and "risk_posture" in policy_snapshot:
            knobs.setdefault("risk_posture", policy_snapshot["risk_posture"])
        effects = tick.get("policy_effects")
        sensitivity = tick.get("policy_sensitivity")
        return {
            "tick_id": tick_id,
            "allocator_version": version.model_dump(),
            "analyzer_version": resolve_analyzer_version(tick),
            "policy": resolve_policy_ref(tick).model_dump(),
            "target_weights": extract_target_weights(tick),
            "against_current": self.allocation_for_tick(tick_id).model_dump(),
            "against_prior": diff_against_prior(
                extract_prior_weights(tick), extract_target_weights(tick)
            ).model_dump(),
            "policy_impact": build_policy_impact_details(
                version=None if version.missing else version.value,
                effects=effects if isinstance(effects, Mapping) else None,
                sensitivity=sensitivity if isinstance(sensitivity, Mapping) else None,
                policy_snapshot=knobs,
            ).model_dump(),
        }

    def export_tick(self, tick_id: str) -> Dict[str, Any]:
        return build_export_payload(self.get_tick(tick_id))

    def load_allocation_into_portfolio(self, tick_id: str) -> Optional[str]:
        """Copy a decision's target weights into the portfolio draft as current weights."""
        tick = self.get_tick(tick_id)
        target = extract_target_weights(tick)
        if target is None:
            self.message = "Selected decision has no target weights."
            raise DraftValidationError(self.message, field="target_weights")
        portfolio, warning = load_allocation_into_portfolio(self.portfolio.value, target)
        self.portfolio.edit(portfolio)
        self.message = warning or "Loaded target weights into portfolio."
        return warning

    # ------------------------------------------------------------------ draft edits

    def _edit_portfolio(self, portfolio: Portfolio) -> Portfolio:
        self.portfolio.edit(portfolio)
        self.message = None
        return portfolio

    def add_asset(self, payload: Mapping[str, Any]) -> Portfolio:
        try:
            portfolio = add_asset(self.portfolio.value, payload)
        except DraftValidationError as exc:
            self.message = str(exc)
            raise
        return self._edit_portfolio(portfolio)

    def update_asset(self, asset_id: str, patch: Mapping[str, Any]) -> Portfolio:
        try:
            portfolio = update_asset(self.portfolio.value, asset_id, patch)
        except DraftValidationError as exc:
            self.message = str(exc)
            raise
        return self._edit_portfolio(portfolio)

    def remove_asset(self, asset_id: str) -> Portfolio:
        return self._edit_portfolio(remove_asset(self.portfolio.value, asset_id))

    def replace_portfolio(self, portfolio: Portfolio) -> Portfolio:
        return self._edit_portfolio(portfolio.model_copy(deep=True))

    def clear_portfolio(self) -> Portfolio:
        self._set_selected_portfolio(None)
        return self._edit_portfolio(Portfolio())

    def set_constraint(self, field: str, value: Any) -> Constraints:
        if field not in CONSTRAINT_FIELDS:
            raise DraftValidationError(f"Unknown constraint '{field}'.", field=field)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise DraftValidationError(f"{field} must be a finite number.", field=field)
        constraints = normalize_constraints_after_edit(self.constraints.value, field, float(value))
        self.constraints.edit(constraints)
        return constraints

    def set_inflow(self, amount: Optional[float]) -> None:
        if amount is not None and (
            isinstance(amount, bool)
            or not isinstance(amount, (int, float))
            or not math.isfinite(amount)
        ):
            raise DraftValidationError("Inflow must be a finite number.", field="inflow")
        self.inflow.edit(None if amount is None else float(amount))

    def set_risk_posture(self, posture: RiskPosture) -> None:
        if posture not in RISK_POSTURES:
            raise DraftValidationError(
                f"Risk posture must be one of: {', '.join(RISK_POSTURES)}.", field="risk_posture"
            )
        self.risk_posture.edit(posture)

    def set_sector_sentiment(self, raw: Any) -> Dict[str, float]:
        value = raw
        if isinstance(raw, str):
            try:
                value = json.loads(raw)
            except json.JSONDecodeError as exc:
                raise DraftValidationError(
                    "Sector sentiment must be valid JSON.", field="sector_sentiment"
                ) from exc
        sentiment = _sector_sentiment_from_value(value)
        self.sector_sentiment.edit(sentiment)
        return sentiment

    def set_regime_field(self, key: str, raw: Any) -> Dict[str, Any]:
        value = parse_regime_input(self.allocator_version, key, raw)
        regime = {**(self.regime.value or {}), key: value}
        self.regime.edit(regime)
        return regime

    def reset_regime_to_version_defaults(self) -> Dict[str, Any]:
        regime = regime_defaults(self.allocator_version)
        self.regime.edit(regime)
        return regime

    def set_allocator_version(self, version: AllocatorVersion) -> None:
        if version not in ALLOCATOR_VERSIONS:
            raise DraftValidationError(
                f"Unknown allocator version '{version}'.", field="allocator_version"
            )
        self.allocator_version = version
        self.regime.complete(apply_defaults_preserve_existing(version, self.regime.value))

    @property
    def outgoing_regime(self) -> Dict[str, Any]:
        return pick_outgoing_regime(self.allocator_version, self.regime.value)

    async def save_now(self, field: DraftField) -> None:
        await self._scheduler_for(field).save_now()

    async def flush(self, field: Optional[DraftField] = None) -> None:
        schedulers = [self._scheduler_for(field)] if field else list(self.autosave.values())
        for scheduler in schedulers:
            await scheduler.flush()

    def _scheduler_for(self, field: str) -> AutosaveScheduler:
        scheduler = self.autosave.get(field)
        if scheduler is None:
            raise DraftValidationError(f"Unknown draft field '{field}'.", field=field)
        return scheduler

    # ------------------------------------------------------------------ libraries

    @property
    def selected_policy_id(self) -> Optional[str]:
        return self._selections.get_selection("policy")

    @property
    def selected_portfolio_id(self) -> Optional[str]:
        return self._selections.get_selection("portfolio")

    def _set_selected_portfolio(self, item_id: Optional[str]) -> None:
        self._selections.set_selection("portfolio", item_id)

    def _get_policy(self, policy_id: str) -> AllocationPolicy:
        policy = self._policies.get(item_id=policy_id)
        if policy is None:
            raise LibraryItemNotFoundError("POLICY_NOT_FOUND")
        return policy

    def list_policies(self) -> List[AllocationPolicy]:
        return self._policies.list()

    def save_policy(self, name: Optional[str] = None) -> AllocationPolicy:
        if name is not None:
            self.policy_name_draft = name
        now = utc_now_iso()
        selected_id = self.selected_policy_id
        existing = self._policies.get(item_id=selected_id) if selected_id else None
        policy = AllocationPolicy(
            id=selected_id or f"policy_{now}",
            name=self.policy_name_draft.strip() or "Unsaved Policy",
            created_at=existing.created_at if existing else now,
            updated_at=now,
            decision_type=DECISION_TYPE,
            allocator_version=self.allocator_version,
            constraints=(self.constraints.value or Constraints()).model_copy(deep=True),
            regime=dict(self.regime.value or {}),
        )
        self._policies.put(policy)
        self._selections.set_selection("policy", policy.id)
        self.message = f"Saved policy '{policy.name}'."
        return policy

    def select_policy(self, policy_id: str) -> AllocationPolicy:
        policy = self._get_policy(policy_id)
        self._selections.set_selection("policy", policy.id)
        self.constraints.load(apply_constraint_defaults(policy.constraints), force=True)
        self.regime.load(dict(policy.regime), force=True)
        self.allocator_version = policy.allocator_version
        self.policy_name_draft = policy.name
        return policy

    def new_policy(self) -> None:
        self._selections.set_selection("policy", None)
        self.policy_name_draft = ""
        self.allocator_version = "default"
        self.constraints.load(CONSTRAINT_DEFAULTS.model_copy(), force=True)
        self.regime.load(
            apply_defaults_preserve_existing(self.allocator_version, self.regime.value),
            force=True,
        )

    def delete_policy(self, policy_id: str) -> None:
        if not self._policies.delete(item_id=policy_id):
            raise LibraryItemNotFoundError("POLICY_NOT_FOUND")
        for name in ("policy", "policy_a", "policy_b"):
            if self._selections.get_selection(name) == policy_id:
                self._selections.set_selection(name, None)

    def list_saved_portfolios(self) -> List[SavedPortfolio]:
        return self._portfolios.list()

    def save_portfolio_to_library(self, name: Optional[str] = None) -> SavedPortfolio:
        now = utc_now_iso()
        selected_id = self.selected_portfolio_id
        existing = self._portfolios.get(item_id=selected_id) if selected_id else None
        record = SavedPortfolio(
            id=existing.id if existing else f"portfolio_{now}",
            name=(name or "").strip() or (existing.name if existing else "") or "Untitled Portfolio",
            updated_at=now,
            portfolio=(self.portfolio.value or Portfolio()).model_copy(deep=True),
        )
        self._portfolios.put(record)
        self._set_selected_portfolio(record.id)
        self.message = f"Saved portfolio '{record.name}'."
        return record

    def load_saved_portfolio(self, portfolio_id: str) -> Portfolio:
        record = self._portfolios.get(item_id=portfolio_id)
        if record is None:
            raise LibraryItemNotFoundError("SAVED_PORTFOLIO_NOT_FOUND")
        self._set_selected_portfolio(record.id)
        return self._edit_portfolio(record.portfolio.model_copy(deep=True))

    def delete_saved_portfolio(self, portfolio_id: str) -> None:
        if not self._portfolios.delete(item_id=portfolio_id):
            raise LibraryItemNotFoundError("SAVED_PORTFOLIO_NOT_FOUND")
        if self.selected_portfolio_id == portfolio_id:
            self._set_selected_portfolio(None)

    # ------------------------------------------------------------------ simulation and time

    def _simulation_policy(self, policy_id: Optional[str]) -> Dict[str, Any]:
        risk_posture = self.risk_posture.value
        if policy_id:
            policy = self._get_policy(policy_id)
            return simulation_policy_snapshot(
                policy_id=policy.id,
                name=policy.name,
                allocator_version=policy.allocator_version,
                constraints=policy.constraints,
                regime=policy.regime,
                risk_posture=risk_posture,
            )
        return simulation_policy_snapshot(
            policy_id=self.selected_policy_id,
            name=self.policy_name_draft or "(unsaved)",
            allocator_version=self.allocator_version,
            constraints=self.constraints.value,
            regime=self.regime.value,
            risk_posture=risk_posture,
        )

    async def run_simulation(
        self,
        *,
        policy_a_id: Optional[str] = None,
        policy_b_id: Optional[str] = None,
        tick_count: int = 12,
        seed: int = 42,
        persistence: float = 0.8,
        risk_class_regimes: Optional[Dict[str, Any]] = None,
    ) -> Any:
        session_id = self._require_session()
        if self.portfolio.value is None:
            self.message = "Portfolio missing."
            raise SessionNotReadyError("PORTFOLIO_MISSING")
        self._selections.set_selection("policy_a", policy_a_id)
        self._selections.set_selection("policy_b", policy_b_id)

        payload: Dict[str, Any] = {
            "decision_type": "simulation",
            "portfolio_snapshot": self.portfolio.value.to_payload(),
            "policy_a_snapshot": self._simulation_policy(policy_a_id),
        }
        if policy_b_id:
            payload["policy_b_snapshot"] = self._simulation_policy(policy_b_id)
        payload["simulation_config"] = {
            "tick_count": tick_count,
            "seed": seed,
            "persistence": persistence,
            "risk_class_regimes": risk_class_regimes or {},
        }
        self.sim_result = await self._service.sim_run(session_id, payload)
        self.message = "Simulation complete."
        return self.sim_result

    async def step_simulation(self, body: Optional[Dict[str, Any]] = None) -> Any:
        result = await self._service.sim_step(self._require_session(), body or {})
        await self.reload()
        return result

    async def reset_simulation(self, body: Optional[Dict[str, Any]] = None) -> Any:
        result = await self._service.sim_reset(self._require_session(), body or {})
        self.sim_result = None
        await self.reload()
        return result

    async def load_sim_state(self) -> Any:
        self.sim_state = await self._service.get_sim_state(self._require_session())
        return self.sim_state

    async def score_trace(self, year: Optional[int] = None) -> Any:
        return await self._service.get_score_trace(self._require_session(), year)

    async def advance_time(self, *, days: int = 0, hours: int = 0, minutes: int = 0) -> ScenarioTime:
        session_id = self._require_session()
        await self._service.advance_time(
            session_id, {"days": days, "hours": hours, "minutes": minutes}
        )
        self._apply_time(await self._service.get_scenario_time(session_id))
        return self.time

    async def set_time(self, sim_now: str) -> ScenarioTime:
        session_id = self._require_session()
        await self._service.set_time(session_id, sim_now)
        self._apply_time(await self._service.get_scenario_time(session_id))
        return self.time

    async def record_performance(
        self,
        *,
        plan_id: str,
        period_start: str,
        period_end: str,
        realized_portfolio_return: Optional[float] = None,
        realized_returns_by_asset: Optional[Dict[str, float]] = None,
        notes: Optional[str] = None,
    ) -> Any:
        session_id = self._require_session()
        payload: Dict[str, Any] = {
            "plan_id": plan_id,
            "period_start": period_start,
            "period_end": period_end,
        }
        if notes:
            payload["notes"] = notes
        if realized_portfolio_return is not None:
            payload["realized_portfolio_return"] = realized_portfolio_return
        if realized_returns_by_asset:
            payload["realized_returns_by_asset"] = realized_returns_by_asset
        result = await self._service.post_performance(session_id, payload)
        self.message = "Performance recorded."
        await self.reload()
        return result

    # ------------------------------------------------------------------ import

    def preview_import(self, connector_id: str, payload: Dict[str, Any]) -> ImportPreviewResult:
        connector = get_connector(connector_id)
        if connector is None:
            raise LibraryItemNotFoundError("IMPORT_CONNECTOR_NOT_FOUND")
        return connector.preview(payload)

    def apply_import(self, preview: ImportPreviewResult) -> Portfolio:
        if not preview.ok or not preview.proposed_assets:
            raise DraftValidationError("Import preview has no assets to apply.", field="import")
        try:
            assets = [
                Asset.model_validate(asset.model_dump(exclude={"source_value_usd"}))
                for asset in preview.proposed_assets
            ]
        except ValidationError as exc:
            raise DraftValidationError(str(exc), field="import") from exc
        self._set_selected_portfolio(None)
        portfolio = self._edit_portfolio(Portfolio(assets=assets))
        self.message = "Portfolio imported into editor"
        return portfolio

    # ------------------------------------------------------------------ snapshot

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            session_id=self.session_id,
            lifecycle=self.lifecycle.state,
            mode=self.mode,
            run_decision_type=self.run_decision_type,
            allocator_version=self.allocator_version,
            scenario=self.scenario,
            time=self.time,
            portfolio=self.portfolio.value,
            constraints=self.constraints.value,
            inflow=self.inflow.value,
            risk_posture=self.risk_posture.value,
            sector_sentiment=self.sector_sentiment.value,
            regime=self.regime.value,
            outgoing_regime=self.outgoing_regime,
            ticks=self.reconciler.ticks,
            save_states={field: scheduler.state() for field, scheduler in self.autosave.items()},
            selected_policy_id=self.selected_policy_id,
            selected_portfolio_id=self.selected_portfolio_id,
            message=self.message,
            weights_warning=self.weights_warning,
        )
