"""Generation pipeline -- drives one task from requirement to gate verdict.

The :class:`PipelineEngine` takes a ``running`` task and:

1. **Design** -- asks for an architecture listing the artifacts to build.
2. **Implement** -- generates each artifact in priority order.
3. **Critique/Refine** -- scores every artifact, then refines the weak ones
   and re-scores, round after round, until the quality gate is met at or
   beyond the minimum depth or the maximum depth is reached.
4. **Integrate** -- asks whether the artifacts work together.
5. **Finalize** -- computes the overall score and moves the task to
   ``pending_approval`` or ``needs_work`` (auto-approving when configured).

The engine works on a private copy of the task and writes it back after
every step.  If an operator deletes the task or moves it out of
``running`` meanwhile, the run stops quietly at the next write.
"""

from __future__ import annotations

from typing import Protocol

from polyplex.config import Settings
from polyplex.core.llm.client import CompletionGateway
from polyplex.core.llm.prompts.critique import CRITIQUE_USER_TEMPLATE
from polyplex.core.llm.prompts.design import DESIGN_USER_TEMPLATE
from polyplex.core.llm.prompts.implement import IMPLEMENT_USER_TEMPLATE
from polyplex.core.llm.prompts.integrate import INTEGRATE_USER_TEMPLATE
from polyplex.core.llm.prompts.refine import REFINE_USER_TEMPLATE
from polyplex.core.llm.roles import Role
from polyplex.core.task.lifecycle import commit_task
from polyplex.core.task.models import (
    ApprovalReason,
    Architecture,
    Artifact,
    ArtifactSpec,
    Critique,
    StoreSnapshot,
    Task,
    TaskStatus,
)
from polyplex.core.task.wisdom import WisdomMemory, render_wisdom
from polyplex.engine.decoding import (
    decode_architecture,
    decode_critique,
    decode_integration,
    strip_code_fences,
)
from polyplex.engine.qa import GateReport, QualityGate
from polyplex.storage.base import TaskStore
from polyplex.utils.exceptions import (
    MalformedOutputError,
    ProviderError,
    StoreError,
    TaskNotFoundError,
)
from polyplex.utils.logging import get_logger

logger = get_logger("engine.pipeline")

FAILED_CONTENT_PREFIX = "// GENERATION FAILED: "


class GatewaySource(Protocol):
    def get(self, provider: str, model: str | None = None) -> CompletionGateway:
        ...


class _Halted(Exception):
    """The stored task was deleted or is no longer ``running``."""


class _StageFailed(Exception):
    """A stage failed in a way that ends the run with status ``error``."""


def failed_content(reason: str) -> str:
    return f"{FAILED_CONTENT_PREFIX}{reason}"


def _describe_stack(architecture: Architecture) -> str:
    stack = architecture.tech_stack
    parts = [stack.runtime, stack.framework, stack.database, stack.auth, stack.testing, *stack.other]
    return ", ".join(part for part in parts if part) or "unspecified"


def _join(items: list[str]) -> str:
    return ", ".join(items) if items else "none"


class PipelineEngine:
    """Runs the design/implement/critique/integrate pipeline for a task.

    Parameters
    ----------
    store:
        The task store; every step is written back through it.
    gateways:
        Resolves a task's provider/model to a completion gateway.
    settings:
        Thresholds and limits (depth bounds, refine threshold, caps).
    gate:
        Quality gate; built from *settings* when omitted.
    """

    def __init__(
        self,
        store: TaskStore,
        gateways: GatewaySource,
        settings: Settings,
        gate: QualityGate | None = None,
    ) -> None:
        self.store = store
        self.gateways = gateways
        self.settings = settings
        self.gate = gate or QualityGate.from_settings(settings)
        self.logger = get_logger("engine.pipeline")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, task_id: str) -> None:
        """Drive the stored task *task_id* through every stage.

        Stage failures end the task in ``error``; store failures propagate.
        """
        snapshot = await self.store.read()
        task = snapshot.find_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        if task.status != TaskStatus.RUNNING:
            self.logger.warning("pipeline_skipped", task_id=task_id, status=task.status.value)
            return

        wisdom = WisdomMemory(snapshot.wisdom).recent(self.settings.wisdom_window)
        self.logger.info(
            "pipeline_start",
            task_id=task_id,
            provider=task.provider,
            model=task.model,
            wisdom=len(wisdom),
        )

        try:
            try:
                gateway = self.gateways.get(task.provider, task.model)
            except ProviderError as exc:
                raise _StageFailed(f"No usable provider: {exc}") from exc
            await self._design(task, gateway, wisdom)
            await self._implement(task, gateway)
            await self._critique_refine(task, gateway)
            await self._integrate(task, gateway)
            await self._finalize(task)
        except _Halted as halt:
            self.logger.info("pipeline_halted", task_id=task_id, reason=str(halt))
        except _StageFailed as failure:
            await self._fail(task, str(failure))
        except StoreError:
            raise
        except Exception as exc:
            self.logger.error("pipeline_error", task_id=task_id, error=str(exc), exc_info=True)
            await self._fail(task, f"Unexpected error: {exc}")

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    async def _design(self, task: Task, gateway: CompletionGateway, wisdom: list[str]) -> None:
        task.wisdom = wisdom
        task.append_log(
            f"Design: requesting architecture from {task.provider}"
            + (f" with {len(wisdom)} lesson(s) from past rejections" if wisdom else "")
        )
        await self._persist(task)

        user = DESIGN_USER_TEMPLATE.format(requirement=task.prompt, wisdom=render_wisdom(wisdom))
        try:
            raw = await gateway.complete(Role.DESIGN, user)
        except ProviderError as exc:
            raise _StageFailed(f"Design failed: {exc}") from exc

        try:
            architecture = decode_architecture(raw).unwrap(Role.DESIGN.value)
        except MalformedOutputError as exc:
            raise _StageFailed(f"Design output unusable: {exc}") from exc

        task.architecture = architecture
        task.append_log(
            f"Design: '{architecture.project_name or 'untitled'}' with {len(architecture.files)} artifact(s)"
        )
        self.logger.info("pipeline_stage", stage="design", task_id=task.id, artifacts=len(architecture.files))
        await self._persist(task)

    async def _implement(self, task: Task, gateway: CompletionGateway) -> None:
        architecture = task.architecture
        specs = architecture.ordered_files(self.settings.max_artifacts)
        if len(architecture.files) > len(specs):
            task.append_log(
                f"Implement: design lists {len(architecture.files)} artifacts, "
                f"building the first {len(specs)} by priority"
            )
        file_list = "\n".join(f"- {spec.path}: {spec.purpose}" for spec in specs)

        task.artifacts = []
        for spec in specs:
            artifact = await self._implement_one(task, gateway, spec, file_list)
            task.artifacts.append(artifact)
            await self._persist(task)

        failed = sum(1 for artifact in task.artifacts if artifact.failed)
        self.logger.info("pipeline_stage", stage="implement", task_id=task.id, artifacts=len(specs), failed=failed)

    async def _implement_one(
        self,
        task: Task,
        gateway: CompletionGateway,
        spec: ArtifactSpec,
        file_list: str,
    ) -> Artifact:
        architecture = task.architecture
        user = IMPLEMENT_USER_TEMPLATE.format(
            project_name=architecture.project_name,
            description=architecture.description,
            tech_stack=_describe_stack(architecture),
            architecture=architecture.architecture,
            file_list=file_list,
            environment_vars=_join(architecture.environment_vars),
            path=spec.path,
            purpose=spec.purpose,
            exports=_join(spec.exports),
            dependencies=_join(spec.dependencies),
            notes=architecture.implementation_notes or "none",
        )
        try:
            content = strip_code_fences(await gateway.complete(Role.IMPLEMENT, user))
        except ProviderError as exc:
            return self._failed_artifact(task, spec, str(exc))
        if not content.strip():
            return self._failed_artifact(task, spec, "empty response")

        task.append_log(f"Implement: {spec.path} ({len(content)} chars)")
        return Artifact(path=spec.path, purpose=spec.purpose, content=content, depth=1)

    @staticmethod
    def _failed_artifact(task: Task, spec: ArtifactSpec, reason: str) -> Artifact:
        task.append_log(f"Implement: {spec.path} failed: {reason}")
        return Artifact(
            path=spec.path,
            purpose=spec.purpose,
            content=failed_content(reason),
            depth=1,
            error=reason,
        )

    async def _critique_refine(self, task: Task, gateway: CompletionGateway) -> None:
        task.depth = 1
        await self._critique_round(task, gateway)

        while True:
            report = self.gate.evaluate_scores(task.depth, task.scores())
            if task.depth >= self.settings.max_depth:
                task.append_log(f"Refinement stopped at maximum depth {task.depth}")
                break
            if report.eligible:
                task.append_log(f"Quality sufficient at depth {task.depth}")
                break

            task.depth += 1
            weak = [a for a in task.artifacts if (a.score or 0) < self.settings.refine_threshold]
            task.append_log(
                f"Depth {task.depth}: refining {len(weak)} artifact(s) "
                f"below {self.settings.refine_threshold} ({', '.join(report.failed_checks)} not met)"
            )
            for artifact in weak:
                await self._refine(task, gateway, artifact)
                await self._persist(task)
            await self._critique_round(task, gateway)

        await self._persist(task)

    async def _critique_round(self, task: Task, gateway: CompletionGateway) -> None:
        for artifact in task.artifacts:
            await self._critique(task, gateway, artifact)
            await self._persist(task)

        scores = task.scores()
        average = sum(scores) / len(scores) if scores else 0
        task.append_log(
            f"Depth {task.depth}: average {average:.1f}, lowest {min(scores) if scores else 0}"
        )
        self.logger.info(
            "pipeline_stage",
            stage="critique",
            task_id=task.id,
            depth=task.depth,
            average=average,
            minimum=min(scores) if scores else 0,
        )
        await self._persist(task)

    async def _critique(self, task: Task, gateway: CompletionGateway, artifact: Artifact) -> None:
        if artifact.failed:
            artifact.record_critique(
                Critique(
                    score=0,
                    summary="Generation failed; there is nothing to review.",
                    critical=[artifact.error or "empty content"],
                )
            )
            task.append_log(f"Critique d{task.depth}: {artifact.path} -> 0 (generation failed)")
            return

        user = CRITIQUE_USER_TEMPLATE.format(
            project_name=task.architecture.project_name,
            architecture=task.architecture.architecture,
            path=artifact.path,
            purpose=artifact.purpose,
            content=artifact.content,
        )
        try:
            raw = await gateway.complete(Role.CRITIQUE, user)
        except ProviderError as exc:
            self._record_fallback(task, artifact, f"critique call failed: {exc}")
            return

        decoded = decode_critique(raw)
        if not decoded.ok:
            self._record_fallback(task, artifact, f"critique unreadable: {decoded.error}")
            return

        artifact.record_critique(decoded.value)
        task.append_log(f"Critique d{task.depth}: {artifact.path} -> {artifact.score}")

    def _record_fallback(self, task: Task, artifact: Artifact, reason: str) -> None:
        score = self.settings.critique_fallback_score
        artifact.record_critique(Critique(score=score, summary=f"Automatic score: {reason}", major=[reason]))
        task.append_log(f"Critique d{task.depth}: {artifact.path} -> {score} ({reason})")

    async def _refine(self, task: Task, gateway: CompletionGateway, artifact: Artifact) -> None:
        user = REFINE_USER_TEMPLATE.format(
            project_name=task.architecture.project_name,
            architecture=task.architecture.architecture,
            path=artifact.path,
            purpose=artifact.purpose,
            score=artifact.score if artifact.score is not None else 0,
            critique=artifact.critique.render() if artifact.critique else "(no review)",
            content=artifact.content,
        )
        try:
            content = strip_code_fences(await gateway.complete(Role.REFINE, user))
        except ProviderError as exc:
            task.append_log(f"Refine d{task.depth}: {artifact.path} failed, content unchanged: {exc}")
            return
        if not content.strip():
            task.append_log(f"Refine d{task.depth}: {artifact.path} returned nothing, content unchanged")
            return

        artifact.replace_content(content, task.depth, refined=True)
        task.append_log(f"Refine d{task.depth}: {artifact.path} ({len(content)} chars)")

    async def _integrate(self, task: Task, gateway: CompletionGateway) -> None:
        limit = self.settings.integration_snippet_chars
        snippets = "\n\n".join(
            f"### {artifact.path}\n{artifact.content[:limit]}" for artifact in task.artifacts
        )
        user = INTEGRATE_USER_TEMPLATE.format(
            project_name=task.architecture.project_name,
            architecture=task.architecture.architecture,
            snippets=snippets,
        )
        task.integration = None
        try:
            raw = await gateway.complete(Role.INTEGRATE, user)
        except ProviderError as exc:
            task.append_log(f"Integration check skipped: {exc}")
        else:
            decoded = decode_integration(raw)
            if decoded.ok:
                task.integration = decoded.value
                task.append_log(
                    f"Integration: {'compatible' if decoded.value.compatible else 'incompatible'}, "
                    f"{len(decoded.value.issues)} issue(s)"
                )
            else:
                task.append_log(f"Integration check skipped: {decoded.error}")
        await self._persist(task)

    async def _finalize(self, task: Task) -> None:
        scores = task.scores()
        score = self.gate.final_score(scores, task.integration)
        minimum = min(scores) if scores else 0
        report = self.gate.evaluate(task.depth, score, minimum)

        async with self.store.edit() as snapshot:
            current = snapshot.find_task(task.id)
            if current is None:
                self.logger.info("pipeline_outcome_discarded", task_id=task.id, score=score, reason="deleted")
                return
            if current.status != TaskStatus.RUNNING:
                current.append_log(
                    f"Pipeline finished with score {score} after the task moved to "
                    f"{current.status.value}; no transition"
                )
                self.logger.info(
                    "pipeline_outcome_discarded",
                    task_id=task.id,
                    score=score,
                    status=current.status.value,
                )
                return

            task.score = score
            task.status = TaskStatus.PENDING_APPROVAL if report.eligible else TaskStatus.NEEDS_WORK
            task.summary = self._summarize(task, report)
            for check in report.checks:
                task.append_log(f"Gate {check.name}: {'pass' if check.passed else 'fail'} ({check.detail})")
            task.append_log(f"Finished with score {score}: {task.status.value}")
            snapshot.replace_task(task)

            if report.eligible and self._auto_approval_applies(snapshot, score):
                commit_task(snapshot, task, ApprovalReason.AUTO)

        self.logger.info(
            "pipeline_complete",
            task_id=task.id,
            status=task.status.value,
            score=score,
            depth=task.depth,
            failed_checks=report.failed_checks,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _auto_approval_applies(snapshot: StoreSnapshot, score: int) -> bool:
        runtime = snapshot.settings
        if runtime.auto_approve and score >= runtime.auto_approve_threshold:
            return True
        autopilot = snapshot.orchestrator
        return autopilot.enabled and score >= autopilot.auto_approve_threshold

    @staticmethod
    def _summarize(task: Task, report: GateReport) -> str:
        name = task.architecture.project_name if task.architecture else task.prompt
        if report.eligible:
            return f"{name}: score {task.score} at depth {task.depth}, ready for approval"
        failed = "; ".join(check.detail for check in report.checks if not check.passed)
        return f"{name}: score {task.score} at depth {task.depth}, needs work ({failed})"

    async def _persist(self, task: Task) -> None:
        """Write the working copy back, or halt if the stored task moved on."""
        async with self.store.edit() as snapshot:
            current = snapshot.find_task(task.id)
            if current is None:
                raise _Halted("task was deleted")
            if current.status != TaskStatus.RUNNING:
                raise _Halted(f"task is now {current.status.value}")
            snapshot.replace_task(task.model_copy(deep=True))

    async def _fail(self, task: Task, reason: str) -> None:
        task.status = TaskStatus.ERROR
        task.summary = reason
        task.append_log(f"Error: {reason}")
        self.logger.warning("pipeline_failed", task_id=task.id, reason=reason)
        try:
            await self._persist(task)
        except _Halted as halt:
            self.logger.info("pipeline_halted", task_id=task.id, reason=str(halt))
