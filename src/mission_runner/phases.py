"""Status text classification and phase hysteresis."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

from mission_runner.config import TimingConfig
from mission_runner.models import Phase, RunRecord


class Pending(str, Enum):
    NONE = "none"
    DEV_FEEDBACK = "dev_feedback"
    REVIEW_FEEDBACK = "review_feedback"


@dataclass(frozen=True, slots=True)
class StatusRule:
    """One row of the classification table.

    Every group in ``all_of`` must have at least one of its keywords present
    in the lower-cased status for the rule to match.
    """

    name: str
    phase: Phase
    all_of: tuple[tuple[str, ...], ...]
    pending: Pending = Pending.NONE

    def matches(self, text: str) -> bool:
        return all(any(keyword in text for keyword in group) for group in self.all_of)


STATUS_RULES: tuple[StatusRule, ...] = (
    StatusRule(
        name="dev-feedback-pending",
        phase=Phase.PLANNING,
        all_of=(("plan",), ("feedback",), ("dev", "develop")),
        pending=Pending.DEV_FEEDBACK,
    ),
    StatusRule(
        name="review-feedback-pending",
        phase=Phase.DEVELOPMENT,
        all_of=(("develop",), ("review",), ("feedback",)),
        pending=Pending.REVIEW_FEEDBACK,
    ),
    StatusRule(
        name="done",
        phase=Phase.DONE,
        all_of=(("done", "complete", "closed"),),
    ),
    StatusRule(
        name="review",
        phase=Phase.REVIEW,
        all_of=(("review", "qa", "approve"),),
    ),
    StatusRule(
        name="development",
        phase=Phase.DEVELOPMENT,
        all_of=(("develop", "implement", "wip", "active", "progress", "blocked", "build"),),
    ),
    StatusRule(
        name="planning",
        phase=Phase.PLANNING,
        all_of=(("plan", "todo", "ready", "backlog", "inbox"),),
    ),
)

# Label written back to a task source when a pending state is promoted.
PROMOTION_LABELS: dict[Pending, str] = {
    Pending.DEV_FEEDBACK: Phase.DEVELOPMENT.value,
    Pending.REVIEW_FEEDBACK: Phase.REVIEW.value,
}


@dataclass(frozen=True, slots=True)
class StatusClassification:
    phase: Phase
    pending: Pending = Pending.NONE
    rule: str = "default"

    @property
    def dev_feedback_pending(self) -> bool:
        return self.pending is Pending.DEV_FEEDBACK

    @property
    def review_feedback_pending(self) -> bool:
        return self.pending is Pending.REVIEW_FEEDBACK


def classify_status(status: str | None) -> StatusClassification:
    text = (status or "").strip().lower()
    if not text:
        return StatusClassification(phase=Phase.PLANNING)
    for rule in STATUS_RULES:
        if rule.matches(text):
            return StatusClassification(phase=rule.phase, pending=rule.pending, rule=rule.name)
    return StatusClassification(phase=Phase.PLANNING)


@dataclass(frozen=True, slots=True)
class PhaseMemory:
    phase: Phase
    entered_at: int


def build_phase_memory(runs: Iterable[RunRecord]) -> dict[str, PhaseMemory]:
    memory: dict[str, PhaseMemory] = {}
    for run in runs:
        current = memory.get(run.task_id)
        if current is None or run.phase_entered_at > current.entered_at:
            memory[run.task_id] = PhaseMemory(phase=run.phase, entered_at=run.phase_entered_at)
    return memory


@dataclass(frozen=True, slots=True)
class PhaseResolution:
    phase: Phase
    dev_feedback_pending: bool = False
    review_feedback_pending: bool = False
    reason: str = "inferred"


class PhaseResolver:
    def __init__(self, timing: TimingConfig) -> None:
        self.timing = timing

    def feedback_timeout_ms(self, pending: Pending) -> int:
        if pending is Pending.REVIEW_FEEDBACK:
            return self.timing.effective_review_feedback_timeout_ms
        return self.timing.dev_feedback_timeout_ms

    def resolve(
        self,
        status: str | None,
        memory: PhaseMemory | None,
        now: int,
    ) -> PhaseResolution:
        classification = classify_status(status)

        def _result(phase: Phase, reason: str) -> PhaseResolution:
            return PhaseResolution(
                phase=phase,
                dev_feedback_pending=classification.dev_feedback_pending,
                review_feedback_pending=classification.review_feedback_pending,
                reason=reason,
            )

        if memory is None:
            return _result(classification.phase, "inferred")

        if classification.pending is not Pending.NONE:
            origin = classification.phase
            if memory.phase is origin:
                elapsed = now - memory.entered_at
                if elapsed > self.feedback_timeout_ms(classification.pending):
                    return _result(origin.next(), "feedback-timeout")
                return _result(origin, "feedback-hold")
            if memory.phase is origin.next():
                return _result(memory.phase, "feedback-timeout")
            return _result(origin, "status-reset")

        if classification.phase is not memory.phase:
            return _result(classification.phase, "status-reset")

        # Dwell-based advance without a status edit.
        if (
            memory.phase is not Phase.DONE
            and now - memory.entered_at >= self.timing.phase_advance_ms
        ):
            return _result(memory.phase.next(), "dwell-advance")
        return _result(memory.phase, "unchanged")
