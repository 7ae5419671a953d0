from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal

from timeclock.models import AttendanceType

RejectionReason = Literal["INVALID_SEQUENCE", "DAILY_LIMIT_REACHED"]

STRICT_DAILY_RECORD_LIMIT = 2


@dataclass(frozen=True)
class CyclePolicyConfig:
    allow_multiple: bool


@dataclass(frozen=True)
class CycleDecision:
    record_type: AttendanceType | None
    rejection: RejectionReason | None = None
    suggestion_overridden: bool = False

    @property
    def accepted(self) -> bool:
        return self.record_type is not None


def _strict_decision(prior_types: Sequence[AttendanceType]) -> CycleDecision:
    if not prior_types:
        return CycleDecision(record_type=AttendanceType.ENTRY)
    if len(prior_types) >= STRICT_DAILY_RECORD_LIMIT:
        return CycleDecision(record_type=None, rejection="DAILY_LIMIT_REACHED")
    if prior_types[0] == AttendanceType.ENTRY:
        return CycleDecision(record_type=AttendanceType.EXIT)
    return CycleDecision(record_type=None, rejection="INVALID_SEQUENCE")


def _flexible_decision(prior_types: Sequence[AttendanceType]) -> CycleDecision:
    if not prior_types:
        return CycleDecision(record_type=AttendanceType.ENTRY)
    return CycleDecision(record_type=AttendanceType(prior_types[-1]).opposite())


def decide_next_type(
    prior_types: Sequence[AttendanceType],
    *,
    config: CyclePolicyConfig,
    suggested_type: AttendanceType | None = None,
) -> CycleDecision:
    """Classify the next check-in of a day.

    ``prior_types`` are the types already recorded today for the employee,
    ascending by time of day. The suggested type is advisory only: the
    recorded history decides, and a disagreeing suggestion is reported back.
    """
    if config.allow_multiple:
        decision = _flexible_decision(prior_types)
    else:
        decision = _strict_decision(prior_types)

    if decision.accepted and suggested_type is not None and suggested_type != decision.record_type:
        return CycleDecision(
            record_type=decision.record_type,
            suggestion_overridden=True,
        )
    return decision
