from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from lead_intake.orchestrator.stages import ErrorKind, SubmissionStage


@dataclass
class SubmissionState:
    stage: SubmissionStage = SubmissionStage.INIT
    form: Dict[str, Any] = field(default_factory=dict)
    tracking: Dict[str, Any] = field(default_factory=dict)
    utm_params: Dict[str, str] = field(default_factory=dict)
    lead: Dict[str, Any] = field(default_factory=dict)
    error_kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    remaining_seconds: Optional[int] = None
    field_errors: Dict[str, str] = field(default_factory=dict)
    matched_fields: List[str] = field(default_factory=list)
    lead_id: Optional[str] = None
    history: List[str] = field(default_factory=list)

