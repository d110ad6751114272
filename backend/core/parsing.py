from __future__ import annotations

import json
import re
from typing import Any

from backend.core.errors import ParseFailureError

_FENCE = re.compile(r"```(?:json)?\n?", re.IGNORECASE)


def parse_structured_text(text: str | None) -> dict[str, Any]:
    """Extract the JSON object embedded in a model reply.

    Code fences are removed and the text is narrowed to the span between the
    first ``{`` and the last ``}`` so that prose around the object is ignored.
    """

    if not text or not text.strip():
        raise ParseFailureError("empty response from the backend")

    cleaned = _FENCE.sub("", text).strip()
    first = cleaned.find("{")
    last = cleaned.rfind("}")
    if first != -1 and last != -1 and last > first:
        cleaned = cleaned[first : last + 1]

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ParseFailureError(f"could not read JSON from the response: {exc.msg}", raw=text) from exc
    if not isinstance(data, dict):
        raise ParseFailureError("response JSON is not an object", raw=text)
    return data
