r"""Probe config loading: built-in defaults, a YAML file, then CLI options.

String values in the file may reference the environment as ``${VAR}`` or
``${VAR:-fallback}``; a ``}`` inside the fallback is written ``\}`` so a
literal event pattern can be supplied as a default.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import ValidationError

from eventbridge_cli.config.defaults import drop_unset, load_defaults, merge_configs
from eventbridge_cli.config.models import ProbeConfig
from eventbridge_cli.errors import ConfigurationError

_ENV_REF = re.compile(r"\$\{(?P<name>[^}:]+)(?::-(?P<fallback>(?:[^}\\]|\\.)*))?}")


def _expand_env(text: str) -> str:
    def _lookup(ref: re.Match[str]) -> str:
        name = ref.group("name")
        if name in os.environ:
            return os.environ[name]
        fallback = ref.group("fallback")
        if fallback is None:
            msg = f"Probe config references ${{{name}}} but {name} is unset"
            raise ValueError(msg)
        return fallback.replace("\\}", "}")

    return _ENV_REF.sub(_lookup, text)


def resolve_env_vars(data: Any) -> Any:
    """Expand environment references in every string of a parsed document."""
    if isinstance(data, dict):
        return {key: resolve_env_vars(value) for key, value in data.items()}
    if isinstance(data, list):
        return [resolve_env_vars(value) for value in data]
    if isinstance(data, str):
        return _expand_env(data)
    return data


def load_yaml(path: str | Path) -> dict[str, Any]:
    """Read a probe config file; an empty file is an empty mapping."""
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Probe config file not found: {p}")
    try:
        data = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        where = ""
        mark = getattr(exc, "problem_mark", None)
        if mark is not None:
            where = f" (line {mark.line + 1}, column {mark.column + 1})"
        raise ValueError(f"{p} is not valid YAML{where}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        kind = type(data).__name__
        raise TypeError(f"{p} must hold a mapping of probe settings, not a {kind}")
    return cast(dict[str, Any], resolve_env_vars(data))


def load_probe_config(
    path: str | Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> ProbeConfig:
    """Build a ProbeConfig from defaults, an optional YAML file and overrides.

    ``overrides`` typically come from CLI options; ``None`` values are
    treated as "not given" and never replace a value from the file.
    """
    base = load_defaults("probe")
    try:
        if path is not None:
            base = merge_configs(base, load_yaml(path))
    except (OSError, ValueError, TypeError) as exc:
        raise ConfigurationError(str(exc)) from exc
    if overrides:
        base = merge_configs(base, drop_unset(overrides))
    try:
        return ProbeConfig.model_validate(base)
    except ValidationError as exc:
        source = path or "built-in defaults"
        msg = f"Invalid probe config ({source}):\n{exc}"
        raise ConfigurationError(msg) from exc
