from __future__ import annotations

from typing import Any, List

from ..kernel.contracts import ValidationContext
from .base import ContentType, as_object

TEXT_FORMATS = ("plaintext", "markdown")


def validate_text(payload: Any, _context: ValidationContext) -> List[str]:
    p = as_object(payload)
    if p is None:
        return ["Payload must be an object"]

    issues: List[str] = []
    if not isinstance(p.get("content"), str):
        issues.append("content must be a string")
    if "format" in p and p["format"] not in TEXT_FORMATS:
        issues.append(f"format must be one of: {', '.join(TEXT_FORMATS)}")
    return issues


text = ContentType(
    type_id="text",
    validator=validate_text,
    description="Plain or markdown text",
)
