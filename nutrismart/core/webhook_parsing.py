"""Webhook Response Parsing - lenient decoding of workflow responses.

The nutrition/AI workflow answers in several shapes depending on how the
flow was built:
    - a JSON object or array returned directly
    - an array like [{"output": "..."}] whose output string holds the payload
    - free text with a ```json fenced block, optionally preceded by prose

All functions are pure: same input always produces same output, no side effects.
"""

import json
import re
from typing import Any, Optional

from pydantic import ValidationError

from .models import ActivePlan, ChefReply, Recipe


_FENCED_JSON = re.compile(r"```(?:json)?\s*\n(.*?)\n?```", re.DOTALL)


def _loads(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        return None


def unwrap_output(text: str) -> str:
    """Return the payload text, unwrapping an {"output": ...} envelope.

    Args:
        text: Raw response body

    Returns:
        The output string if the body is an envelope, else the body itself
    """
    data = _loads(text)
    if isinstance(data, list) and data and isinstance(data[0], dict):
        output = data[0].get("output")
        if isinstance(output, str):
            return output
    if isinstance(data, dict) and isinstance(data.get("output"), str):
        return data["output"]
    return text


def split_fenced_json(text: str) -> tuple[str, Optional[Any]]:
    """Split prose from the first fenced JSON block.

    Returns:
        Tuple of (text before the block, parsed JSON or None)
    """
    match = _FENCED_JSON.search(text)
    if match is None:
        return text.strip(), None
    parsed = _loads(match.group(1))
    if parsed is None:
        return text.strip(), None
    return text[: match.start()].strip(), parsed


def parse_json_payload(text: str) -> Any:
    """Find the JSON payload in a response, whatever its wrapping.

    Raises:
        ValueError: If no JSON payload can be found
    """
    payload = unwrap_output(text)
    if payload == text:
        data = _loads(text)
        if data is not None:
            return data

    _, fenced = split_fenced_json(payload)
    if fenced is not None:
        return fenced
    direct = _loads(payload.strip())
    if direct is not None:
        return direct
    raise ValueError("Response does not contain a JSON payload")


def parse_plan_response(text: str) -> ActivePlan:
    """Decode a generated meal plan.

    Raises:
        ValueError: If the response has no JSON or it is not a valid plan
    """
    payload = parse_json_payload(text)
    if not isinstance(payload, dict):
        raise ValueError("Unexpected plan response format")
    try:
        return ActivePlan.model_validate(payload)
    except ValidationError as e:
        raise ValueError(f"Generated plan is invalid: {e.error_count()} errors") from e


def _as_recipe(data: Any) -> Optional[Recipe]:
    if not isinstance(data, dict):
        return None
    try:
        return Recipe.model_validate(data)
    except ValidationError:
        return None


def parse_chef_response(text: str) -> ChefReply:
    """Decode a chef reply into prose and, when present, a structured recipe.

    Never raises: anything that is not a recipe is returned as text.
    """
    recipe = _as_recipe(_loads(text))
    if recipe is not None:
        return ChefReply(recipe=recipe)

    payload = unwrap_output(text)
    prose, fenced = split_fenced_json(payload)
    recipe = _as_recipe(fenced)
    if recipe is not None:
        return ChefReply(text=prose, recipe=recipe)
    return ChefReply(text=payload.strip())
