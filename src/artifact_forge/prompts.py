"""Prompt composition: output-discipline preambles and retry feedback."""

from __future__ import annotations

from collections.abc import Sequence

SKILL_SEPARATOR = "\n\n## Skill\n\n"

OUTPUT_DISCIPLINE = """\
## CRITICAL OUTPUT RULES

You are running in a pipeline that captures your stdout. You MUST:

1. Output the requested content DIRECTLY - no tool calls, no file writes
2. Start your response IMMEDIATELY with the content
   (no preamble like "Here's..." or "I've created...")
3. End your response with the content (no postamble like "Let me know..." or summaries)
4. Do NOT wrap output in markdown code fences unless explicitly requested
5. Do NOT describe what you're outputting - just output it

If asked to create HTML: Start with <!DOCTYPE html> and end with </html>
If asked to create markdown: Start with # and output only markdown
If asked to create JSON: Start with { or [ and output only valid JSON

NEVER say "I've created...", "Here's the...", "The file includes...", etc.
NEVER ask for permission or confirmation.
NEVER use Write, Edit, or Bash tools - they are disabled.

Your entire response will be captured and saved as a file. Output ONLY the file content.
"""

OUTPUT_DISCIPLINE_WITH_READ = """\
## CRITICAL: TWO-PHASE OUTPUT RULES

You are running in a pipeline. You have access to the Read tool for viewing referenced files.

### PHASE 1 - MANDATORY: Read Referenced Files
BEFORE generating any output, you MUST use the Read tool to view ALL referenced files.
- Read each image or document mentioned in the task
- This step is REQUIRED - do not skip it

### PHASE 2 - Generate Output
After reading all files, output the requested content:
1. Start your FINAL output with the content (e.g., <!DOCTYPE html>)
2. End with the content (no postamble)
3. Do NOT wrap output in markdown code fences
4. Do NOT describe what you're outputting

NEVER use Write, Edit, or Bash tools - only Read is available.
Your final response will be captured and saved as a file.
"""

APPEND_SYSTEM_PROMPT = (
    "Output ONLY the requested content. No preamble, no postamble, no explanations. "
    "Start immediately with the content."
)
APPEND_SYSTEM_PROMPT_WITH_READ = (
    "IMPORTANT: First use the Read tool to view all referenced files, "
    "then output the requested content."
)


def compose_system_context(role: str, skill: str) -> str:
    """Join a role description and a skill description into one system context."""

    role = role.strip()
    skill = skill.strip()
    if not skill:
        return role
    return f"{role}{SKILL_SEPARATOR}{skill}"


def output_discipline(*, allow_file_read: bool) -> str:
    return OUTPUT_DISCIPLINE_WITH_READ if allow_file_read else OUTPUT_DISCIPLINE


def append_system_prompt(*, allow_file_read: bool) -> str:
    return APPEND_SYSTEM_PROMPT_WITH_READ if allow_file_read else APPEND_SYSTEM_PROMPT


def compose_prompt(system_context: str, user_prompt: str, *, allow_file_read: bool) -> str:
    """Build the stdin payload: system context plus preamble, then the task."""

    discipline = output_discipline(allow_file_read=allow_file_read)
    context = f"{system_context}\n\n{discipline}" if system_context else discipline
    return f"## Context\n{context}\n\n## Task\n{user_prompt}"


def build_feedback_prompt(user_prompt: str, errors: Sequence[str]) -> str:
    """Prefix a retry prompt with the previous attempt's concrete errors."""

    if not errors:
        return user_prompt
    joined = ". ".join(error.rstrip(".") for error in errors)
    return (
        f"IMPORTANT: Your previous response was invalid. Errors: {joined}.\n"
        "\n"
        "You MUST output ONLY the requested content. No explanations, no summaries.\n"
        "\n"
        f"{user_prompt}"
    )
