"""Quality gate for finished pipeline runs.

Decides whether a task's outcome is good enough to be offered for approval
and produces a :class:`GateReport` listing every check.  The gate is pure:
it never touches the store or the completion service.
"""

from __future__ import annotations

from pydantic import BaseModel

from polyplex.core.task.models import IntegrationResult
from polyplex.utils.exceptions import GateIneligibleError
from polyplex.utils.logging import get_logger

logger = get_logger("engine.qa")


class GateCheck(BaseModel):
    """A single gate check result."""

    name: str
    passed: bool
    detail: str = ""


class GateReport(BaseModel):
    """Aggregated gate verdict composed of individual checks."""

    checks: list[GateCheck] = []
    eligible: bool = True

    @property
    def failed_checks(self) -> list[str]:
        return [check.name for check in self.checks if not check.passed]

    def raise_if_ineligible(self) -> None:
        if not self.eligible:
            raise GateIneligibleError(self.failed_checks)


class QualityGate:
    """Threshold-based eligibility decision.

    Checks performed:

    1. **depth** -- at least ``min_depth`` critique/refine rounds ran.
    2. **average** -- mean artifact score is at least ``min_average_score``.
    3. **artifact_floor** -- the weakest artifact scores at least
       ``min_artifact_score``.

    Parameters
    ----------
    min_depth, max_depth:
        Refinement depth bounds.
    min_average_score:
        Required overall score.
    min_artifact_score:
        Required score for every single artifact.
    integration_bonus, integration_penalty:
        Applied by :meth:`final_score` for compatible / incompatible
        integration verdicts.
    """

    def __init__(
        self,
        min_depth: int = 2,
        max_depth: int = 5,
        min_average_score: int = 90,
        min_artifact_score: int = 80,
        integration_bonus: int = 3,
        integration_penalty: int = 5,
    ) -> None:
        self.min_depth = min_depth
        self.max_depth = max_depth
        self.min_average_score = min_average_score
        self.min_artifact_score = min_artifact_score
        self.integration_bonus = integration_bonus
        self.integration_penalty = integration_penalty

    @classmethod
    def from_settings(cls, settings) -> "QualityGate":
        return cls(
            min_depth=settings.min_depth,
            max_depth=settings.max_depth,
            min_average_score=settings.min_average_score,
            min_artifact_score=settings.min_artifact_score,
            integration_bonus=settings.integration_bonus,
            integration_penalty=settings.integration_penalty,
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def evaluate(self, depth: int, average: float, minimum: int) -> GateReport:
        """Run all checks and return a :class:`GateReport`."""
        checks = [
            self._check_depth(depth),
            self._check_average(average),
            self._check_artifact_floor(minimum),
        ]
        eligible = all(check.passed for check in checks)
        report = GateReport(checks=checks, eligible=eligible)
        logger.debug(
            "gate_evaluated",
            eligible=eligible,
            depth=depth,
            average=average,
            minimum=minimum,
            failed_checks=report.failed_checks,
        )
        return report

    def evaluate_scores(self, depth: int, scores: list[int]) -> GateReport:
        """Convenience wrapper computing average and minimum from *scores*."""
        if not scores:
            return self.evaluate(depth, 0, 0)
        return self.evaluate(depth, sum(scores) / len(scores), min(scores))

    def final_score(self, scores: list[int], integration: IntegrationResult | None) -> int:
        """Overall task score: rounded mean adjusted by the integration verdict.

        A compatible verdict adds the bonus, an incompatible one subtracts
        the penalty, and a skipped integration (``None``) leaves the mean as
        is.  The result is clamped to 0..100.
        """
        if not scores:
            return 0
        score = round(sum(scores) / len(scores))
        if integration is not None:
            if integration.compatible:
                score += self.integration_bonus
            else:
                score -= self.integration_penalty
        return max(0, min(100, score))

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def _check_depth(self, depth: int) -> GateCheck:
        if depth >= self.min_depth:
            return GateCheck(
                name="depth",
                passed=True,
                detail=f"Depth {depth} (minimum: {self.min_depth})",
            )
        return GateCheck(
            name="depth",
            passed=False,
            detail=f"Depth {depth} below minimum {self.min_depth}",
        )

    def _check_average(self, average: float) -> GateCheck:
        passed = average >= self.min_average_score
        return GateCheck(
            name="average",
            passed=passed,
            detail=(
                f"Average score {average:.1f} (minimum: {self.min_average_score})"
                if passed
                else f"Average score {average:.1f} below {self.min_average_score}"
            ),
        )

    def _check_artifact_floor(self, minimum: int) -> GateCheck:
        passed = minimum >= self.min_artifact_score
        return GateCheck(
            name="artifact_floor",
            passed=passed,
            detail=(
                f"Lowest artifact score {minimum} (floor: {self.min_artifact_score})"
                if passed
                else f"An artifact scored {minimum}, below the floor of {self.min_artifact_score}"
            ),
        )
