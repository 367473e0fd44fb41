"""Completion roles and their fixed system instructions.

Callers name a role; the system prompt, sampling temperature and whether the
provider should be asked for a JSON object are configuration, not arguments.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from polyplex.core.llm.prompts.critique import CRITIQUE_SYSTEM_PROMPT, CRITIQUE_TEMPERATURE
from polyplex.core.llm.prompts.design import DESIGN_SYSTEM_PROMPT, DESIGN_TEMPERATURE
from polyplex.core.llm.prompts.implement import IMPLEMENT_SYSTEM_PROMPT, IMPLEMENT_TEMPERATURE
from polyplex.core.llm.prompts.integrate import INTEGRATE_SYSTEM_PROMPT, INTEGRATE_TEMPERATURE
from polyplex.core.llm.prompts.refine import REFINE_SYSTEM_PROMPT, REFINE_TEMPERATURE


class Role(str, Enum):
    DESIGN = "design"
    IMPLEMENT = "implement"
    CRITIQUE = "critique"
    REFINE = "refine"
    INTEGRATE = "integrate"


@dataclass(frozen=True)
class RoleProfile:
    system: str
    temperature: float
    json_output: bool = False


ROLE_PROFILES: dict[Role, RoleProfile] = {
    Role.DESIGN: RoleProfile(DESIGN_SYSTEM_PROMPT, DESIGN_TEMPERATURE, json_output=True),
    Role.IMPLEMENT: RoleProfile(IMPLEMENT_SYSTEM_PROMPT, IMPLEMENT_TEMPERATURE),
    Role.CRITIQUE: RoleProfile(CRITIQUE_SYSTEM_PROMPT, CRITIQUE_TEMPERATURE, json_output=True),
    Role.REFINE: RoleProfile(REFINE_SYSTEM_PROMPT, REFINE_TEMPERATURE),
    Role.INTEGRATE: RoleProfile(INTEGRATE_SYSTEM_PROMPT, INTEGRATE_TEMPERATURE, json_output=True),
}

JSON_INSTRUCTION: str = (
    "\n\nIMPORTANT: Respond ONLY with valid JSON. "
    "Do not include markdown code fences or any other text."
)
