"""Prompt templates shared by the elicitation loop and the documentation phase."""

from __future__ import annotations

import json
from typing import Any, Mapping

JSON_RESPONSE_INSTRUCTION = (
    "You MUST ONLY respond with a single valid JSON object. "
    "Never include explanatory text, markdown fences, or natural language outside the JSON."
)

QUESTION_SCHEMA_EXAMPLE = """{
  "key": "unique_question_identifier",
  "question": "Specific technical question",
  "type": "list" | "multiple" | "text",
  "options": ["Relevant choices"],
  "satisfied": false,
  "documents": [],
  "dependencies": {
    "question_key": ["prerequisite_key1", "prerequisite_key2"]
  }
}"""

QUESTION_FLOW = (
    "project_features (first question, text input describing the core features)",
    "project_type (based on features, e.g. API, Web App, Mobile Backend)",
    "core_requirements (multiple choice based on project_type)",
    "cloud_provider (based on requirements)",
    "deployment_model (based on provider and requirements)",
    "database_service (based on provider and features)",
    "auth_service (based on provider and features)",
    "additional_services (based on all previous answers)",
)

CRITICAL_RULES = (
    "ONLY output a SINGLE valid JSON object",
    "NO text before or after the JSON",
    "Never repeat already answered questions",
    "Track dependencies between questions in the dependencies object",
    "Use snake_case for all keys",
    "Ensure all required fields are present",
    "Options must be relevant to previous answers and the chosen provider",
    "Set satisfied: true only when all core services are selected",
)

CONTINUE_INSTRUCTION = "Continue with the next question."
PROJECT_NAME_QUESTION = "What is the name of your project?"
SUBSECTION_FAILURE_NOTE = "Content generation failed for this section."


def render_system_prompt() -> str:
    """Return the fixed instruction that opens every elicitation transcript."""
    flow = "\n".join(f"{index}. {step}" for index, step in enumerate(QUESTION_FLOW, start=1))
    rules = "\n".join(f"{index}. {rule}" for index, rule in enumerate(CRITICAL_RULES, start=1))
    return (
        "## Core Objective\n"
        "You are a project specification engine. "
        f"{JSON_RESPONSE_INSTRUCTION}\n\n"
        "## Response Structure\n"
        f"Always respond with a SINGLE JSON object in this exact format:\n{QUESTION_SCHEMA_EXAMPLE}\n\n"
        "Questions of type list or multiple MUST provide a non-empty options array; "
        "text questions use an empty array.\n\n"
        f"## Question Flow\n{flow}\n\n"
        f"## Critical Rules\n{rules}\n\n"
        "## Required Fields\n"
        "key (snake_case string), question (string), type (list | multiple | text), "
        "options (array), satisfied (boolean), documents (array), dependencies (object)."
    )


def render_project_name_notice() -> str:
    return f"{CONTINUE_INSTRUCTION} Note that project_name is already answered."


def render_repeat_notice(key: str) -> str:
    return f"{key} was already answered. Please ask a different question."


def render_context_summary(summary: Mapping[str, Any]) -> str:
    return json.dumps(summary, ensure_ascii=False)


def render_subsection_prompt(section: str, subsection: str, context: Mapping[str, Any]) -> str:
    """Build the one-shot instruction for a single documentation subsection."""
    payload = json.dumps(context, indent=2, ensure_ascii=False)
    return (
        "You are AI Consilium, a technical documentation expert. "
        f"Generate detailed markdown documentation for the {subsection} subsection of the {section} section.\n"
        f"Focus ONLY on the {subsection} aspect - do not try to document everything.\n"
        "Use the following context to generate comprehensive documentation with proper sections, "
        "diagrams, and explanations.\n\n"
        f"Context:\n{payload}\n\n"
        "Requirements:\n"
        "1. Use proper markdown formatting with headers, lists, and code blocks\n"
        "2. Include relevant mermaid diagrams where applicable\n"
        "3. Add cross-references to related sections\n"
        "4. Provide detailed explanations, best practices and examples where appropriate\n"
        f"5. Focus ONLY on {subsection} - other aspects will be covered in their own sections\n\n"
        "Respond with markdown content for this section."
    )


__all__ = [
    "CONTINUE_INSTRUCTION",
    "JSON_RESPONSE_INSTRUCTION",
    "PROJECT_NAME_QUESTION",
    "SUBSECTION_FAILURE_NOTE",
    "render_context_summary",
    "render_project_name_notice",
    "render_repeat_notice",
    "render_subsection_prompt",
    "render_system_prompt",
]
