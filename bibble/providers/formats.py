"""Tool and schema conversion for provider wire formats."""

import json
import logging
from typing import Any, Dict, List, Optional, Set

from bibble.types.models import ToolDefinition

logger = logging.getLogger(__name__)

# Fields Gemini's function declaration schema does not accept
GEMINI_UNSUPPORTED_SCHEMA_FIELDS: Set[str] = {
    "$schema",
    "additionalProperties",
    "$id",
    "$ref",
    "definitions",
    "$defs",
}


def clean_schema(schema: Any, unsupported: Optional[Set[str]] = None) -> Any:
    """Recursively remove unsupported fields from a JSON schema.

    Required entries that point at missing properties are dropped as well.

    Args:
        schema: The schema (or any nested value of it)
        unsupported: Field names to strip; Gemini's list by default

    Returns:
        A cleaned copy
    """
    unsupported = GEMINI_UNSUPPORTED_SCHEMA_FIELDS if unsupported is None else unsupported

    if isinstance(schema, list):
        return [clean_schema(item, unsupported) for item in schema]
    if not isinstance(schema, dict):
        return schema

    cleaned: Dict[str, Any] = {}
    for key, value in schema.items():
        if key in unsupported:
            continue
        if key == "properties" and isinstance(value, dict):
            cleaned[key] = {name: clean_schema(prop, unsupported) for name, prop in value.items()}
        else:
            cleaned[key] = clean_schema(value, unsupported)

    if "properties" in cleaned and "required" in cleaned:
        properties = cleaned["properties"]
        required = [name for name in cleaned["required"] if name in properties]
        missing = set(cleaned["required"]) - set(required)
        if missing:
            logger.warning("Required properties not found in schema", extra={
                "missing": sorted(missing)
            })
        if required:
            cleaned["required"] = required
        else:
            del cleaned["required"]

    return cleaned


def _object_schema(tool: ToolDefinition) -> Dict[str, Any]:
    schema = dict(tool.parameter_schema or {})
    schema.setdefault("type", "object")
    schema.setdefault("properties", {})
    return schema


def to_openai_tools(tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
    """Convert tool definitions to OpenAI function format."""
    return [
        {
            "type": "function",
            "function": {
                "name": tool.name,
                "description": tool.description,
                "parameters": _object_schema(tool),
            },
        }
        for tool in tools
    ]


def to_anthropic_tools(tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
    """Convert tool definitions to Anthropic's tool format."""
    return [
        {
            "name": tool.name,
            "description": tool.description,
            "input_schema": _object_schema(tool),
        }
        for tool in tools
    ]


def to_gemini_declarations(tools: List[ToolDefinition]) -> List[Dict[str, Any]]:
    """Convert tool definitions to Gemini function declarations.

    Tools without parameters get no ``parameters`` entry at all.
    """
    declarations = []
    for tool in tools:
        declaration: Dict[str, Any] = {
            "name": tool.name,
            "description": tool.description,
        }
        schema = clean_schema(_object_schema(tool))
        if schema.get("properties"):
            declaration["parameters"] = schema
        declarations.append(declaration)
    return declarations


def parse_tool_arguments(raw: Optional[str], tool_name: str = "") -> Dict[str, Any]:
    """Parse accumulated tool-call arguments into one mapping.

    Empty input gives an empty mapping. When several JSON objects were
    concatenated, only the first is used. Anything that is not a JSON
    object gives an empty mapping and a warning.
    """
    if raw is None or not raw.strip():
        return {}

    text = raw.strip()
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        try:
            value, end = json.JSONDecoder().raw_decode(text)
            logger.warning("Tool arguments contained trailing data", extra={
                "tool_name": tool_name,
                "ignored_chars": len(text) - end
            })
        except json.JSONDecodeError as e:
            logger.warning("Malformed tool arguments, using empty arguments", extra={
                "tool_name": tool_name,
                "error": str(e)
            })
            return {}

    if not isinstance(value, dict):
        logger.warning("Tool arguments are not an object, using empty arguments", extra={
            "tool_name": tool_name,
            "type": type(value).__name__
        })
        return {}
    return value
