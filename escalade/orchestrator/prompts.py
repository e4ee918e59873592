"""System prompts and prompt builders for the pipeline stages."""
from __future__ import annotations

from typing import Sequence

ANSWER_SYSTEM_PROMPT = "Answer the user prompt accurately and concisely using the provided context."

VERIFIER_SYSTEM_PROMPT = (
    "You are a strict verifier. Your job is to approve or reject answers. "
    "You must be conservative and reject if unsure."
)

REVISION_SYSTEM_PROMPT = (
    "You are revising a previous answer that was rejected. "
    "Correct errors, remove unsupported claims, and strictly adhere to the provided context. "
    "Do not explain your reasoning or mention reviewers."
)

PLAN_PROMPT = """You are a planning model.

Your task is NOT to answer the user directly.

Your task is to:
- Understand the user's intent
- Break the task into a clear, minimal plan
- Identify uncertainties or missing information
- Propose a strategy that another model can execute

Rules:
- Do NOT solve the task
- Do NOT include explanations or prose
- Be concise and structured
- Assume a reviewer will validate your output

Return the plan in the following format ONLY:

PLAN:
- Step 1: ...
- Step 2: ...
- Step 3: ...

ASSUMPTIONS:
- ...

RISKS:
- ...

ESCALATION_NEEDED:
- true | false"""


def numbered_context(context: Sequence[str]) -> str:
    return "\n".join(f"[{i}] {chunk}" for i, chunk in enumerate(context, start=1))


def answer_prompt(prompt: str, context: Sequence[str]) -> str:
    if not context:
        return prompt
    return f"CONTEXT:\n{numbered_context(context)}\n\nQUESTION:\n{prompt}"


def verifier_prompt(prompt: str, response: str, context: Sequence[str]) -> str:
    return f"""USER PROMPT:
{prompt}

MODEL RESPONSE:
{response}

REFERENCE CONTEXT:
{numbered_context(context)}

TASK:
1. Is the response correct?
2. Is it fully supported by the reference context?
3. Does it avoid speculation or fabrication?

Respond ONLY with valid JSON in the following format:
{{
  "approved": boolean,
  "confidence": number,
  "notes": string
}}"""


def revision_prompt(
    original_prompt: str,
    previous_response: str,
    context: Sequence[str],
    reviewer_notes: str | None = None,
) -> str:
    feedback = f"REVIEWER FEEDBACK:\n{reviewer_notes}\n\n" if reviewer_notes else ""
    return f"""ORIGINAL QUESTION:
{original_prompt}

PREVIOUS (REJECTED) RESPONSE:
{previous_response}

{feedback}REFERENCE CONTEXT:
{numbered_context(context)}

TASK:
Rewrite the response so that it is:
- Factually correct
- Fully supported by the reference context
- Clear and concise
- Free of speculation

Return ONLY the revised answer text."""
