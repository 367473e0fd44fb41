"""Prompt templates for the cross-artifact integration check."""

INTEGRATE_TEMPERATURE: float = 0.1

INTEGRATE_SYSTEM_PROMPT: str = """You are an integration reviewer.
Given a project design and excerpts of every file, decide whether the files
work together: imports resolve, interfaces match, configuration is consistent.

Return JSON: {"overall_score": 0-100, "compatible": true/false,
"issues": [{"file": "...", "other": "...", "problem": "..."}],
"missing": [...], "env_vars": [...], "summary": "..."}
"""

INTEGRATE_USER_TEMPLATE: str = (
    "Project: {project_name}\n"
    "Architecture:\n{architecture}\n\n"
    "Files:\n{snippets}"
)
