"""AI-assisted OKR drafting."""
from __future__ import annotations

from typing import Any

from .ai_client import AIClient
from .errors import AIServiceError

SUGGEST_SYSTEM_PROMPT = (
    "You help teams write OKRs. Answer with a JSON object of the form "
    '{"suggestions": [{"objective": str, "key_results": [str, ...], "rationale": str}]}. '
    "Objectives are qualitative and inspiring; key results are measurable."
)

ENHANCE_SYSTEM_PROMPT = (
    "You improve OKR wording. Return only the rewritten text: clear, specific, and no longer "
    "than the original plus twenty words."
)

ENHANCE_KINDS = ("objective_title", "objective_description", "initiative", "activity", "key_result")


def _clean_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def suggest_okrs(
    ai_client: AIClient,
    *,
    company_name: str,
    department: str | None,
    context: str | None,
    count: int,
    existing_titles: list[str],
) -> list[dict[str, Any]]:
    prompt_lines = [
        f"Company: {company_name}",
        f"Department: {department or 'company-wide'}",
        f"Number of suggestions: {count}",
    ]
    if context:
        prompt_lines.append(f"Context: {context}")
    if existing_titles:
        prompt_lines.append("Existing objectives (avoid duplicates): " + "; ".join(existing_titles[:20]))
    data = ai_client.complete_json(SUGGEST_SYSTEM_PROMPT, "\n".join(prompt_lines), temperature=0.7)

    raw = data.get("suggestions") if isinstance(data, dict) else None
    if not isinstance(raw, list):
        raise AIServiceError("AI backend returned malformed suggestions")
    out: list[dict[str, Any]] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        objective = _clean_str(item.get("objective"))
        raw_krs = item.get("key_results")
        if not isinstance(raw_krs, list):
            continue
        krs = [k.strip() for k in raw_krs if isinstance(k, str) and k.strip()]
        if not objective or not krs:
            continue
        out.append({"objective": objective, "key_results": krs, "rationale": _clean_str(item.get("rationale"))})
    if not out:
        raise AIServiceError("AI backend returned malformed suggestions")
    return out[:count]


def enhance_text(ai_client: AIClient, text: str, kind: str) -> str:
    return ai_client.complete(ENHANCE_SYSTEM_PROMPT, f"Kind: {kind}\nText: {text}", temperature=0.3, max_tokens=300)
