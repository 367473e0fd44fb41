"""Prompt templates for the critique role.

The critic scores one artifact at a time on a 0-100 scale and lists concrete
defects by severity so the refine role can act on them.
"""

CRITIQUE_TEMPERATURE: float = 0.1

CRITIQUE_SYSTEM_PROMPT: str = """You are a strict code reviewer.
Review the given file against its stated purpose and the project design.
Score it from 0 to 100, where 90+ means production ready.

Return JSON: {"score": 0-100, "summary": "...", "critical": [...], "major": [...],
"minor": [...], "security": [...], "missing": [...]}
"""

CRITIQUE_USER_TEMPLATE: str = (
    "Project: {project_name}\n"
    "Architecture:\n{architecture}\n\n"
    "File: {path}\n"
    "Purpose: {purpose}\n\n"
    "Content:\n{content}"
)
