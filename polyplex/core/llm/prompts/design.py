"""Prompt templates for the design stage.

Consumed by :class:`~polyplex.engine.pipeline.PipelineEngine` to turn a
natural-language requirement into a project architecture with an enumerated
list of artifacts to implement.
"""

DESIGN_TEMPERATURE: float = 0.4

DESIGN_SYSTEM_PROMPT: str = """You are a senior software architect.
Given a requirement, design a small but complete project that satisfies it.

Return JSON with these fields:
- project_name: str
- description: str (one paragraph)
- tech_stack: {runtime, framework, database, auth, testing, other: list[str]}
- architecture: str (how the pieces fit together)
- data_models: list of {name, fields: {field: type}, relations: list[str]}
- api_endpoints: list of {method, path, auth: bool, description}
- files: list of {path, purpose, exports: list[str], dependencies: list[str], priority: int}
  (priority 1 is implemented first; list every file the project needs)
- environment_vars: list[str]
- implementation_notes: str
"""

DESIGN_USER_TEMPLATE: str = (
    "Requirement:\n{requirement}\n\n"
    "Lessons from previously rejected work (must be respected):\n{wisdom}"
)
