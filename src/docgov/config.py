from __future__ import annotations

import json
import os
import re
from datetime import date, datetime, time
from importlib import import_module
from pathlib import Path
from typing import Mapping, TypeAlias
import tomllib

from pydantic import ValidationError

from docgov.exceptions import ConfigError
from docgov.schema import DateStrategyDTO, GovernanceConfigDTO

DEFAULT_CONFIG_NAME = "docgov.toml"
STALE_DAYS_ENV = "DOCGOV_STALE_DAYS"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]


def _load_yaml_module(*, importer=import_module):
    try:
        module = importer("yaml")
    except ImportError as exc:
        raise RuntimeError(
            "PyYAML is required to read YAML governance configuration; install docgov with its dependencies."
        ) from exc
    return module


yaml = _load_yaml_module()


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError:
        return {}
    try:
        data = tomllib.loads(raw)
    except tomllib.TOMLDecodeError:
        return {}
    return data if isinstance(data, dict) else {}


def load_config(root: Path | None = None, config_path: Path | None = None) -> TomlTable:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    return _load_toml(config_path)


def governance_defaults(
    root: Path | None = None, config_path: Path | None = None
) -> TomlTable:
    data = load_config(root=root, config_path=config_path)
    section = data.get("governance", {})
    return section if isinstance(section, dict) else {}


def merge_payload(payload: TomlTable, defaults: TomlTable) -> TomlTable:
    merged = dict(defaults)
    for key, value in payload.items():
        if value is None:
            continue
        merged[key] = value
    return merged


def _yaml_loader():
    class Loader(yaml.SafeLoader):
        pass

    # "on"/"off"/"yes" stay strings; SafeLoader's own table is left untouched.
    Loader.yaml_implicit_resolvers = {
        key: [(tag, regexp) for tag, regexp in values if tag != "tag:yaml.org,2002:bool"]
        for key, values in yaml.SafeLoader.yaml_implicit_resolvers.items()
    }
    return Loader


def _read_rules_payload(path: Path) -> object:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigError("governance configuration not found", source=path) from exc
    except (OSError, UnicodeError) as exc:
        raise ConfigError(f"governance configuration unreadable: {exc}", source=path) from exc
    if path.suffix.lower() in {".yaml", ".yml"}:
        try:
            return yaml.load(raw, Loader=_yaml_loader()) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"invalid YAML: {exc}", source=path) from exc
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid JSON: {exc}", source=path) from exc


def governance_config_from_mapping(
    payload: object, *, source: Path | str | None = None
) -> GovernanceConfigDTO:
    if not isinstance(payload, Mapping):
        raise ConfigError("governance configuration root must be a mapping", source=source)
    try:
        config = GovernanceConfigDTO.model_validate(dict(payload))
    except ValidationError as exc:
        raise ConfigError(f"invalid governance configuration: {exc}", source=source) from exc
    _check_patterns(config, source=source)
    return config


def _compile_pattern(pattern: str, group: int, *, source: Path | str | None) -> re.Pattern[str]:
    try:
        compiled = re.compile(pattern, re.MULTILINE)
    except re.error as exc:
        raise ConfigError(f"invalid pattern {pattern!r}: {exc}", source=source) from exc
    if group > compiled.groups:
        raise ConfigError(f"pattern {pattern!r} has no group {group}", source=source)
    return compiled


def _check_patterns(config: GovernanceConfigDTO, *, source: Path | str | None) -> None:
    strategies: list[DateStrategyDTO] = []
    if config.staleness is not None:
        if config.staleness.default_strategy is not None:
            strategies.append(config.staleness.default_strategy)
        strategies.extend(
            target.strategy
            for target in config.staleness.targets
            if not isinstance(target, str) and target.strategy is not None
        )
    for strategy in strategies:
        if strategy.kind != "regex":
            continue
        if not strategy.pattern:
            raise ConfigError("regex date strategy requires a pattern", source=source)
        _compile_pattern(strategy.pattern, strategy.group, source=source)
    for artifact in config.generated_artifacts:
        if artifact.timestamp_regex is not None:
            _compile_pattern(artifact.timestamp_regex, artifact.timestamp_group, source=source)


def load_governance_config(path: Path) -> GovernanceConfigDTO:
    return governance_config_from_mapping(_read_rules_payload(path), source=path)


def parse_stale_days(raw: object) -> int | None:
    """Validate a staleness override; ``None`` and blank mean "not set"."""
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise ConfigError(f"stale days must be a positive integer (got {raw!r})")
    if isinstance(raw, int):
        value = raw
    else:
        text = str(raw).strip()
        if not text:
            return None
        if not (text.isascii() and text.isdigit()):
            raise ConfigError(f"stale days must be a positive integer (got {text!r})")
        value = int(text)
    if value <= 0:
        raise ConfigError(f"stale days must be a positive integer (got {value})")
    return value


def stale_days_from_env(environ: Mapping[str, str] | None = None) -> int | None:
    env = os.environ if environ is None else environ
    return parse_stale_days(env.get(STALE_DAYS_ENV))
