import inspect
import json
import re

import pytest

from polyplex.config import Settings
from polyplex.core.llm.roles import Role
from polyplex.engine.pipeline import PipelineEngine
from polyplex.storage.memory_store import MemoryStore
from polyplex.utils.exceptions import ProviderError

_PATH_PATTERNS = (
    re.compile(r"Write the file `([^`]+)`"),
    re.compile(r"^File: (\S+)$", re.MULTILINE),
)


def artifact_path(user: str) -> str | None:
    """Artifact path named in an implement/critique/refine request."""
    for pattern in _PATH_PATTERNS:
        match = pattern.search(user)
        if match:
            return match.group(1)
    return None


def design_json(paths, project_name="Counter", priorities=None) -> str:
    priorities = priorities or list(range(1, len(paths) + 1))
    return json.dumps(
        {
            "projectName": project_name,
            "description": "A tiny counter service",
            "techStack": {"runtime": "python", "framework": "fastapi"},
            "architecture": "Single module exposing a counter",
            "files": [
                {"path": path, "purpose": f"purpose of {path}", "priority": priority}
                for path, priority in zip(paths, priorities)
            ],
            "environmentVars": ["PORT"],
        }
    )


def critique_json(score, summary="review") -> str:
    return json.dumps({"score": score, "summary": summary, "major": [], "minor": []})


def scores_by_path(scores: dict):
    """Critique handler answering with a fixed score (or a per-round list) per path."""
    rounds: dict[str, int] = {}

    def handler(user: str) -> str:
        path = artifact_path(user)
        value = scores[path]
        if isinstance(value, list):
            index = rounds.get(path, 0)
            rounds[path] = index + 1
            value = value[min(index, len(value) - 1)]
        return critique_json(value)

    return handler


class ScriptedGateway:
    """Completion gateway answering from per-role scripts.

    A script is a string, an exception instance (raised), or a callable
    receiving the user content (sync or async) returning either of those.
    Roles without a script raise :class:`ProviderError`.
    """

    def __init__(self, **scripts):
        self.scripts = {Role(name): script for name, script in scripts.items()}
        self.calls: list[tuple[Role, str]] = []

    async def complete(self, role: Role, user: str) -> str:
        self.calls.append((role, user))
        script = self.scripts.get(role)
        if script is None:
            raise ProviderError("fake", f"no script for {role.value}")
        result = script(user) if callable(script) else script
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, Exception):
            raise result
        return result

    def calls_for(self, role: Role) -> list[str]:
        return [user for called, user in self.calls if called == role]


class FakeGatewayFactory:
    """Stands in for :class:`GatewayFactory`, handing out one scripted gateway."""

    def __init__(self, gateway: ScriptedGateway, settings: Settings):
        self.gateway = gateway
        self.settings = settings
        self.requested: list[tuple[str, str | None]] = []

    def get(self, provider: str, model: str | None = None) -> ScriptedGateway:
        self.requested.append((provider, model))
        return self.gateway

    def availability(self) -> dict[str, bool]:
        return {"openai": True, "anthropic": False, "gemini": False, "lmstudio": True}


class RecordingEngine:
    """Pipeline engine stub that only records which tasks were started."""

    def __init__(self):
        self.ran: list[str] = []

    async def run(self, task_id: str) -> None:
        self.ran.append(task_id)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        store_path=str(tmp_path / "store.json"),
        default_provider="openai",
        openai_api_key="",
        anthropic_api_key="",
        gemini_api_key="",
        deepseek_api_key="",
        llm_api_key="",
        llm_base_url="",
    )


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def make_engine(store, settings):
    def factory(gateway: ScriptedGateway) -> PipelineEngine:
        return PipelineEngine(store, FakeGatewayFactory(gateway, settings), settings)

    return factory
