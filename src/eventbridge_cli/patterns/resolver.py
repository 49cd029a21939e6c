"""Resolve event-pattern / event-body specifiers into JSON strings.

Supported specifiers:

- a literal string, returned unchanged;
- ``file://<path>``, the file contents verbatim;
- ``template://<path>/<FunctionName>`` (or the older ``sam://`` prefix), the
  ``Pattern`` of the function's EventBridge event-source binding in a SAM /
  CloudFormation template, serialised as compact JSON.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import structlog
import yaml

from eventbridge_cli.errors import (
    PatternNotFoundError,
    ResolutionError,
    TemplateFormatError,
)

logger = structlog.get_logger()

FILE_PREFIX = "file://"
TEMPLATE_PREFIXES = ("template://", "sam://")

# SAM event-source types that carry an EventBridge pattern
EVENT_RULE_TYPES = ("EventBridgeRule", "CloudWatchEvent")


class _TemplateLoader(yaml.SafeLoader):
    """SafeLoader that tolerates CloudFormation intrinsic tags (!Ref, !Sub...)."""


def _construct_intrinsic(
    loader: yaml.SafeLoader, tag_suffix: str, node: yaml.Node
) -> Any:
    if isinstance(node, yaml.ScalarNode):
        value: Any = loader.construct_scalar(node)
    elif isinstance(node, yaml.SequenceNode):
        value = loader.construct_sequence(node, deep=True)
    else:
        value = loader.construct_mapping(node, deep=True)  # type: ignore[arg-type]
    return {tag_suffix: value}


_TemplateLoader.add_multi_constructor("!", _construct_intrinsic)


def resolve_pattern(specifier: str) -> str:
    """Turn a specifier into a JSON string; see the module docstring."""
    if specifier.startswith(FILE_PREFIX):
        return read_file(specifier.removeprefix(FILE_PREFIX))
    for prefix in TEMPLATE_PREFIXES:
        if specifier.startswith(prefix):
            return pattern_from_template(specifier.removeprefix(prefix))
    return specifier


def read_file(path: str | Path) -> str:
    p = Path(path)
    try:
        return p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ResolutionError(f"Unable to read {p}: {exc}") from exc


def split_template_reference(reference: str) -> tuple[Path, str]:
    """Split ``<path>/<FunctionName>`` into the template path and function."""
    template, sep, function = reference.rpartition("/")
    if not sep or not template or not function:
        msg = (
            f"Template reference '{reference}' must look like "
            "'<template path>/<FunctionName>'"
        )
        raise ResolutionError(msg)
    return Path(template), function


def pattern_from_template(reference: str) -> str:
    """Extract a function's EventBridge rule pattern from a SAM template."""
    template_path, function = split_template_reference(reference)
    template = load_template(template_path)

    resources = template.get("Resources") or {}
    resource = resources.get(function) if isinstance(resources, dict) else None
    if not isinstance(resource, dict):
        msg = f"Function '{function}' not found in {template_path}"
        raise PatternNotFoundError(msg)

    events = (resource.get("Properties") or {}).get("Events") or {}
    if not isinstance(events, dict):
        raise TemplateFormatError(f"Events of '{function}' must be a mapping")
    for event_name, event in events.items():
        if not isinstance(event, dict) or event.get("Type") not in EVENT_RULE_TYPES:
            continue
        pattern = (event.get("Properties") or {}).get("Pattern")
        if pattern is None:
            continue
        logger.debug(
            "pattern.resolved_from_template",
            template=str(template_path),
            function=function,
            event=event_name,
        )
        return json.dumps(stringify_keys(pattern), separators=(",", ":"))

    msg = f"Function '{function}' has no EventBridge rule event in {template_path}"
    raise PatternNotFoundError(msg)


def load_template(path: Path) -> dict[str, Any]:
    text = read_file(path)
    try:
        data = yaml.load(text, Loader=_TemplateLoader)  # noqa: S506
    except yaml.YAMLError as exc:
        raise TemplateFormatError(f"Failed to parse template {path}: {exc}") from exc
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping at top level in {path}, got {type(data).__name__}"
        raise TemplateFormatError(msg)
    return data


def stringify_keys(value: Any) -> Any:
    """Recursively convert mapping keys to strings so the value is JSON-safe.

    YAML allows non-string keys (``1: x``, ``true: y``); JSON does not.
    """
    if isinstance(value, dict):
        return {_key_to_str(k): stringify_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [stringify_keys(item) for item in value]
    return value


def _key_to_str(key: Any) -> str:
    if isinstance(key, str):
        return key
    if isinstance(key, bool):
        return "true" if key else "false"
    if key is None:
        return "null"
    return str(key)
