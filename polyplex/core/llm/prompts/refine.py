"""Prompt templates for the refine role."""

REFINE_TEMPERATURE: float = 0.2

REFINE_SYSTEM_PROMPT: str = """You are an expert engineer revising one file after code review.
Fix every critical and major issue, address security findings and fill in
anything reported missing. Return the COMPLETE revised file content only.
If the current content is empty or a failure marker, write the file from scratch.
"""

REFINE_USER_TEMPLATE: str = (
    "Project: {project_name}\n"
    "Architecture:\n{architecture}\n\n"
    "File: {path}\n"
    "Purpose: {purpose}\n\n"
    "Review (score {score}):\n{critique}\n\n"
    "Current content:\n{content}"
)
