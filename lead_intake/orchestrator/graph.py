from __future__ import annotations

from contextlib import nullcontext
from dataclasses import asdict, dataclass, field, is_dataclass
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

from langgraph.graph import END, StateGraph

from lead_intake.orchestrator.stages import ErrorKind, SubmissionStage
from lead_intake.orchestrator.state import SubmissionState
from lead_intake.schemas.tracking import TrackingData
from lead_intake.services.cooldown import DEFAULT_COOLDOWN_MINUTES, CooldownTracker
from lead_intake.services.duplicate_guard import DuplicateGuard
from lead_intake.services.lead import LeadService

logger = logging.getLogger(__name__)

SUBMISSION_FAILED_MESSAGE = "Failed to submit your inquiry. Please try again."


@dataclass
class LeadSubmissionResult:
    ok: bool
    lead_id: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    remaining_seconds: Optional[int] = None
    field_errors: Dict[str, str] = field(default_factory=dict)
    matched_fields: List[str] = field(default_factory=list)
    stages: List[str] = field(default_factory=list)


class LeadSubmissionPipeline:
    """LangGraph state machine running one lead submission attempt.

    Steps run in a fixed order: cooldown, field validation, duplicate check,
    remote create, then recording. Every path ends in a
    ``LeadSubmissionResult``; nothing is raised to the caller.
    """

    def __init__(
        self,
        lead_service: LeadService,
        duplicate_guard: DuplicateGuard,
        cooldown: CooldownTracker,
        cooldown_minutes: float = DEFAULT_COOLDOWN_MINUTES,
        tracking_source: Optional[Callable[[], TrackingData]] = None,
        utm_source: Optional[Callable[[], Dict[str, str]]] = None,
        lock: Optional[threading.Lock] = None,
    ) -> None:
        self._lead_service = lead_service
        self._duplicate_guard = duplicate_guard
        self._cooldown = cooldown
        self._cooldown_minutes = cooldown_minutes
        self._tracking_source = tracking_source
        self._utm_source = utm_source
        self._lock = lock
        self._graph = self._build_graph().compile()

    def _build_graph(self) -> StateGraph[SubmissionState]:
        graph: StateGraph[SubmissionState] = StateGraph(SubmissionState)

        graph.add_node("cooldown_check", self._cooldown_node)
        graph.add_node("field_validation", self._validation_node)
        graph.add_node("duplicate_check", self._duplicate_node)
        graph.add_node("submit", self._submit_node)
        graph.add_node("record", self._record_node)

        graph.set_entry_point("cooldown_check")

        graph.add_conditional_edges(
            "cooldown_check",
            self._stage_router,
            {
                SubmissionStage.FIELD_VALIDATION: "field_validation",
                SubmissionStage.REJECTED: END,
            },
        )
        graph.add_conditional_edges(
            "field_validation",
            self._stage_router,
            {
                SubmissionStage.DUPLICATE_CHECK: "duplicate_check",
                SubmissionStage.REJECTED: END,
            },
        )
        graph.add_conditional_edges(
            "duplicate_check",
            self._stage_router,
            {
                SubmissionStage.SUBMIT: "submit",
                SubmissionStage.REJECTED: END,
            },
        )
        graph.add_conditional_edges(
            "submit",
            self._stage_router,
            {
                SubmissionStage.RECORD: "record",
                SubmissionStage.REJECTED: END,
            },
        )
        graph.add_edge("record", END)

        return graph

    def _stage_router(self, state: SubmissionState) -> SubmissionStage:
        return state.stage

    def _cooldown_node(self, state: SubmissionState) -> Dict[str, Any]:
        history = [*state.history, SubmissionStage.COOLDOWN_CHECK.value]
        status = self._cooldown.check_cooldown(self._cooldown_minutes)
        if status.in_cooldown:
            return {
                "stage": SubmissionStage.REJECTED,
                "error_kind": ErrorKind.COOLDOWN,
                "message": status.message,
                "remaining_seconds": status.remaining_seconds,
                "history": history,
            }
        return {"stage": SubmissionStage.FIELD_VALIDATION, "history": history}

    def _validation_node(self, state: SubmissionState) -> Dict[str, Any]:
        history = [*state.history, SubmissionStage.FIELD_VALIDATION.value]
        validation = self._lead_service.validate(state.form)
        if not validation.valid:
            return {
                "stage": SubmissionStage.REJECTED,
                "error_kind": ErrorKind.VALIDATION,
                "message": validation.summary,
                "field_errors": validation.field_errors,
                "history": history,
            }
        return {
            "stage": SubmissionStage.DUPLICATE_CHECK,
            "lead": validation.lead.model_dump(),
            "history": history,
        }

    def _duplicate_node(self, state: SubmissionState) -> Dict[str, Any]:
        history = [*state.history, SubmissionStage.DUPLICATE_CHECK.value]
        result = self._duplicate_guard.check_duplicate(state.lead["mobile"], state.lead["email"])
        if not result.success:
            logger.info("Duplicate check incomplete (%s); continuing with submission", result.error)
        if result.exists:
            return {
                "stage": SubmissionStage.REJECTED,
                "error_kind": ErrorKind.DUPLICATE,
                "message": result.message,
                "matched_fields": result.matched_fields,
                "history": history,
            }
        return {"stage": SubmissionStage.SUBMIT, "history": history}

    def _submit_node(self, state: SubmissionState) -> Dict[str, Any]:
        history = [*state.history, SubmissionStage.SUBMIT.value]
        try:
            lead = self._lead_service.parse(state.lead)
            tracking = TrackingData.model_validate(state.tracking) if state.tracking else self._collect_tracking()
            utm_params = state.utm_params or self._collect_utm()
            payload = self._lead_service.build_lead_payload(lead, tracking, utm_params)
            lead_id = self._lead_service.create_lead(payload)
        except Exception:
            logger.exception("Lead submission failed")
            return {
                "stage": SubmissionStage.REJECTED,
                "error_kind": ErrorKind.SUBMISSION,
                "message": SUBMISSION_FAILED_MESSAGE,
                "history": history,
            }
        logger.info("Lead created", extra={"lead_id": lead_id, "source": lead.source})
        return {"stage": SubmissionStage.RECORD, "lead_id": lead_id, "history": history}

    def _record_node(self, state: SubmissionState) -> Dict[str, Any]:
        history = [*state.history, SubmissionStage.RECORD.value]
        recorded = self._duplicate_guard.record_submission(state.lead["mobile"], state.lead["email"])
        if recorded.warning:
            logger.warning("Lead %s recorded with warning: %s", state.lead_id, recorded.warning)
        if not self._cooldown.mark_submitted():
            logger.warning("Could not update cooldown marker after lead %s", state.lead_id)
        return {"stage": SubmissionStage.DONE, "history": [*history, SubmissionStage.DONE.value]}

    def _collect_tracking(self) -> TrackingData:
        if self._tracking_source is None:
            return TrackingData()
        return self._tracking_source()

    def _collect_utm(self) -> Dict[str, str]:
        if self._utm_source is None:
            return {}
        return self._utm_source()

    def submit(self, form: Dict[str, Any], tracking: Optional[TrackingData] = None) -> LeadSubmissionResult:
        state = SubmissionState(
            form=dict(form),
            tracking=tracking.model_dump() if tracking is not None else {},
            history=[SubmissionStage.INIT.value],
        )
        with self._lock if self._lock is not None else nullcontext():
            final_state = self.run(state)
        return self._to_result(final_state)

    def run(self, state: SubmissionState) -> SubmissionState:
        payload = asdict(state) if is_dataclass(state) else state
        result = self._graph.invoke(payload)
        if isinstance(result, SubmissionState):
            return result
        if isinstance(result, dict):
            stage_value = result.get("stage", SubmissionStage.INIT)
            if not isinstance(stage_value, SubmissionStage):
                stage_value = SubmissionStage(stage_value)
            error_kind = result.get("error_kind")
            if error_kind is not None and not isinstance(error_kind, ErrorKind):
                error_kind = ErrorKind.from_label(error_kind)
            return SubmissionState(
                stage=stage_value,
                form=dict(result.get("form", {})),
                tracking=dict(result.get("tracking", {})),
                utm_params=dict(result.get("utm_params", {})),
                lead=dict(result.get("lead", {})),
                error_kind=error_kind,
                message=result.get("message"),
                remaining_seconds=result.get("remaining_seconds"),
                field_errors=dict(result.get("field_errors", {})),
                matched_fields=list(result.get("matched_fields", [])),
                lead_id=result.get("lead_id"),
                history=list(result.get("history", [])),
            )
        raise TypeError(f"Unsupported state result from graph: {type(result)!r}")

    @staticmethod
    def _to_result(state: SubmissionState) -> LeadSubmissionResult:
        if state.stage == SubmissionStage.DONE and state.lead_id:
            return LeadSubmissionResult(ok=True, lead_id=state.lead_id, stages=list(state.history))
        return LeadSubmissionResult(
            ok=False,
            error_kind=state.error_kind or ErrorKind.SUBMISSION,
            message=state.message or SUBMISSION_FAILED_MESSAGE,
            remaining_seconds=state.remaining_seconds,
            field_errors=dict(state.field_errors),
            matched_fields=list(state.matched_fields),
            stages=list(state.history),
        )
