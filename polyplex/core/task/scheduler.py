"""Autopilot scheduling.

The :class:`AutopilotScheduler` creates tasks unattended on a fixed tick,
keeping at most ``max_active`` tasks in flight until the approved stream
reaches its goal (or forever in infinite mode).  Each autopilot prompt is
the seed prompt plus a cyclic phase theme and the latest lessons from
rejected work.
"""

from __future__ import annotations

import asyncio

from pydantic import BaseModel

from polyplex.config import Settings
from polyplex.core.task.lifecycle import TaskLifecycle, new_task
from polyplex.core.task.models import OrchestratorState, Task, TaskSource, utc_now
from polyplex.core.task.wisdom import WisdomMemory
from polyplex.storage.base import TaskStore
from polyplex.utils.logging import get_logger

logger = get_logger("task.scheduler")

PHASES: tuple[str, ...] = ("decompose", "analyze", "rebuild", "evolve", "verify", "operate")
DEFAULT_SEED_PROMPT = "improve existing code"


class AutopilotConfig(BaseModel):
    """Operator input for :meth:`AutopilotScheduler.start`; clamped on use."""

    seed_prompt: str = ""
    provider: str | None = None
    model: str | None = None
    target_count: int = 3
    infinite: bool = False
    max_active: int = 2
    tick_seconds: float = 8.0
    auto_approve_threshold: int = 93


def synthesize_prompt(seed_prompt: str, total_created: int, wisdom: list[str]) -> str:
    """Build the prompt for the next autopilot task.

    The phase cycles through :data:`PHASES` by the number of tasks created
    so far.
    """
    cycle = total_created + 1
    phase = PHASES[total_created % len(PHASES)]
    lessons = " / ".join(wisdom) if wisdom else "none"
    return (
        f"{seed_prompt}\n\n"
        f"Cycle {cycle}: implement the {phase} phase.\n"
        "Include the minimal working feature, improvement proposals and verification steps.\n"
        f"Past constraints: {lessons}"
    )


class AutopilotScheduler:
    """Owns the autopilot state transitions and its single timer.

    Parameters
    ----------
    store:
        The task store holding :class:`OrchestratorState`.
    lifecycle:
        Used to start pipelines for created tasks.
    settings:
        Service configuration (tick floor, wisdom window).
    """

    def __init__(self, store: TaskStore, lifecycle: TaskLifecycle, settings: Settings) -> None:
        self.store = store
        self.lifecycle = lifecycle
        self.settings = settings
        self._timer: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def state(self) -> OrchestratorState:
        return (await self.store.read()).orchestrator

    async def start(self, config: AutopilotConfig) -> OrchestratorState:
        """Enable the autopilot, (re)arm the timer and tick once."""
        tick_seconds = max(self.settings.autopilot_min_tick_seconds, float(config.tick_seconds))
        async with self.store.edit() as snapshot:
            state = snapshot.orchestrator
            state.enabled = True
            state.seed_prompt = config.seed_prompt.strip() or DEFAULT_SEED_PROMPT
            state.provider = (
                config.provider
                or state.provider
                or snapshot.settings.default_provider
                or self.settings.default_provider
            )
            state.model = config.model or ""
            state.target_count = max(1, config.target_count)
            state.infinite = config.infinite
            state.max_active = max(1, config.max_active)
            state.tick_seconds = tick_seconds
            state.auto_approve_threshold = max(1, min(100, config.auto_approve_threshold))
            state.goal = len(snapshot.stream) + state.target_count
            state.status_message = "started"

        logger.info(
            "autopilot_started",
            goal=state.goal,
            infinite=state.infinite,
            max_active=state.max_active,
            tick_seconds=tick_seconds,
        )
        self._arm(tick_seconds)
        await self._safe_tick()
        return await self.state()

    async def stop(self) -> OrchestratorState:
        """Disable the autopilot; running pipelines are left alone."""
        self._disarm()
        async with self.store.edit() as snapshot:
            snapshot.orchestrator.enabled = False
            snapshot.orchestrator.status_message = "stopped"
            state = snapshot.orchestrator
        logger.info("autopilot_stopped", total_created=state.total_created)
        return state

    async def resume(self) -> bool:
        """Re-arm the timer after a restart if the stored state is enabled."""
        state = await self.state()
        if not state.enabled:
            return False
        self._arm(max(self.settings.autopilot_min_tick_seconds, state.tick_seconds))
        logger.info("autopilot_resumed", goal=state.goal, total_created=state.total_created)
        return True

    async def tick(self) -> Task | None:
        """Run one scheduling step; returns the task created, if any."""
        created: Task | None = None
        goal_reached = False

        async with self.store.edit() as snapshot:
            state = snapshot.orchestrator
            if not state.enabled:
                return None
            state.last_tick_at = utc_now()
            active = snapshot.active_count()

            if not state.infinite and len(snapshot.stream) >= state.goal:
                state.enabled = False
                state.status_message = f"goal reached: {len(snapshot.stream)} approved"
                goal_reached = True
            elif active >= state.max_active:
                state.status_message = f"waiting: {active}/{state.max_active} active"
            else:
                wisdom = WisdomMemory(snapshot.wisdom).recent(self.settings.autopilot_wisdom_window)
                created = new_task(
                    snapshot,
                    self.settings,
                    synthesize_prompt(state.seed_prompt, state.total_created, wisdom),
                    state.provider,
                    state.model or None,
                    source=TaskSource.AUTOPILOT,
                    original_prompt=state.seed_prompt,
                )
                state.total_created += 1
                state.status_message = f"created task {state.total_created}"

        logger.info(
            "autopilot_tick",
            active=active,
            created=created.id if created else None,
            goal_reached=goal_reached,
        )
        if goal_reached:
            self._disarm()
        if created is not None:
            self.lifecycle.start(created.id)
        return created

    async def shutdown(self) -> None:
        """Cancel the timer without touching the stored state."""
        timer = self._timer
        self._disarm()
        if timer is not None and timer is not asyncio.current_task():
            try:
                await timer
            except asyncio.CancelledError:
                pass

    # ------------------------------------------------------------------
    # Timer
    # ------------------------------------------------------------------

    def _arm(self, interval: float) -> None:
        self._disarm()
        self._timer = asyncio.create_task(self._loop(interval), name="autopilot-timer")

    def _disarm(self) -> None:
        timer, self._timer = self._timer, None
        if timer is not None and timer is not asyncio.current_task():
            timer.cancel()

    async def _loop(self, interval: float) -> None:
        current = asyncio.current_task()
        while self._timer is current:
            await asyncio.sleep(interval)
            if self._timer is not current:
                break
            await self._safe_tick()

    async def _safe_tick(self) -> None:
        try:
            await self.tick()
        except Exception as exc:
            logger.error("autopilot_tick_failed", error=str(exc), exc_info=True)
