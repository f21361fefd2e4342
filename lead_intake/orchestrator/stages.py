from __future__ import annotations

from enum import Enum


class SubmissionStage(str, Enum):
    INIT = "INIT"
    COOLDOWN_CHECK = "COOLDOWN_CHECK"
    FIELD_VALIDATION = "FIELD_VALIDATION"
    DUPLICATE_CHECK = "DUPLICATE_CHECK"
    SUBMIT = "SUBMIT"
    RECORD = "RECORD"
    DONE = "DONE"
    REJECTED = "REJECTED"


class ErrorKind(str, Enum):
    COOLDOWN = "cooldown"
    VALIDATION = "validation"
    DUPLICATE = "duplicate"
    SUBMISSION = "submission"

    @classmethod
    def from_label(cls, label: str) -> "ErrorKind":
        try:
            return cls(label)
        except ValueError as exc:
            raise ValueError(f"Unsupported error kind: {label}") from exc
