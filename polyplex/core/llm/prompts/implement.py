"""Prompt templates for the per-artifact implementation stage."""

IMPLEMENT_TEMPERATURE: float = 0.2

IMPLEMENT_SYSTEM_PROMPT: str = """You are an expert engineer implementing one file of a larger project.
Write the COMPLETE content of the requested file only.
No placeholders, no TODO stubs, no explanations outside the file.
Return the file content as plain text (a single fenced block is tolerated).
"""

IMPLEMENT_USER_TEMPLATE: str = (
    "Project: {project_name}\n"
    "Description: {description}\n"
    "Tech stack: {tech_stack}\n"
    "Architecture:\n{architecture}\n\n"
    "All files in the project:\n{file_list}\n\n"
    "Environment variables: {environment_vars}\n\n"
    "Write the file `{path}`.\n"
    "Purpose: {purpose}\n"
    "Must export: {exports}\n"
    "Depends on: {dependencies}\n"
    "Implementation notes: {notes}"
)
