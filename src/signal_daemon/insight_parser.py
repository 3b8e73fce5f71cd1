"""Extraction and validation of the model's insights JSON."""

import json
import re
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

_FENCED_BLOCK = re.compile(r"```(?:json|JSON)?[ \t]*\n?([\s\S]*?)\n?```")


class InsightParseError(ValueError):
    """Model output could not be turned into an insights payload."""


class ResponseInsight(BaseModel):
    """One insight as the model returns it, referencing articles by id."""

    model_config = ConfigDict(populate_by_name=True)

    text: str
    article_ids: List[Any] = Field(default_factory=list, alias="articleIds")


class ResponseAction(BaseModel):
    model_config = ConfigDict(extra="allow")

    action: str
    impact: Optional[str] = None


class RecommendedAction(BaseModel):
    model_config = ConfigDict(extra="allow")

    action: str
    rationale: Optional[str] = None
    category: Optional[str] = None


class ResponseTheme(BaseModel):
    name: str
    icon: Optional[str] = None
    insights: List[ResponseInsight] = Field(default_factory=list)
    actions: List[ResponseAction] = Field(default_factory=list)


class InsightsResponse(BaseModel):
    """Expected shape of the model's reply."""

    model_config = ConfigDict(populate_by_name=True)

    recommended_actions: List[RecommendedAction] = Field(
        default_factory=list, alias="recommendedActions"
    )
    themes: List[ResponseTheme] = Field(min_length=1)


def _first_brace_span(text: str) -> Optional[str]:
    """Return the first balanced {...} span, ignoring braces inside strings.

    Falls back to first "{" through last "}" when the braces never balance.
    """
    start = text.find("{")
    if start == -1:
        return None

    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return text[start : index + 1]

    end = text.rfind("}")
    return text[start : end + 1] if end > start else None


def extract_json_payload(text: str) -> str:
    """Pull the JSON document out of a free-text model reply.

    Looks for a fenced code block first, then the first top-level brace span.

    Raises:
        InsightParseError: If the reply is empty or contains no JSON object
    """
    if not text or not text.strip():
        raise InsightParseError("Empty model response")

    match = _FENCED_BLOCK.search(text)
    if match and "{" in match.group(1):
        return match.group(1).strip()

    span = _first_brace_span(text)
    if span is None:
        raise InsightParseError("No JSON object found in model response")
    return span


def parse_insights_response(text: str) -> InsightsResponse:
    """Parse and validate the model's reply.

    Raises:
        InsightParseError: On missing JSON, invalid JSON or a schema mismatch
    """
    payload = extract_json_payload(text)

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise InsightParseError(f"Invalid JSON in model response: {e}") from e

    if not isinstance(data, dict):
        raise InsightParseError(
            f"Expected a JSON object, got {type(data).__name__}"
        )

    try:
        return InsightsResponse.model_validate(data)
    except ValidationError as e:
        first_error = e.errors()[0]
        location = " -> ".join(str(loc) for loc in first_error["loc"])
        raise InsightParseError(
            f"Model response does not match schema at {location}: {first_error['msg']}"
        ) from e
