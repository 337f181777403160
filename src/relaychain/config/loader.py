# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/relaychain/config/loader.py

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar

import pydantic
import yaml

from relaychain.errors import ValidationError
from .models import ProvisionRequest, Settings, TeardownRequest

log = logging.getLogger("relaychain")

M = TypeVar("M", bound=pydantic.BaseModel)


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _find_secrets_file(request_path: Path) -> Path | None:
    """
    Locate a secrets file using this priority:

    1. RELAYCHAIN_SECRETS_FILE environment variable (explicit override)
    2. secrets.yaml in the same directory as the request file
    """
    env = os.environ.get("RELAYCHAIN_SECRETS_FILE")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("RELAYCHAIN_SECRETS_FILE=%s does not exist, skipping", env)
        return None

    p = request_path.parent / "secrets.yaml"
    if p.is_file():
        return p

    return None


def _load_document(path: Path) -> Any:
    """Load a YAML or JSON file, expanding ${ENV_VAR} references."""
    raw = os.path.expandvars(path.read_text())
    if path.suffix == ".json":
        return json.loads(raw)
    return yaml.safe_load(raw) or {}


def validate(model: Type[M], data: Any) -> M:
    """Validate untrusted input, surfacing failures as ValidationError."""
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(f"invalid {model.__name__}: {exc}") from exc


def _load_request(model: Type[M], path: str | Path) -> M:
    path = Path(path)
    data = _load_document(path)

    secrets_path = _find_secrets_file(path)
    if secrets_path and isinstance(data, dict):
        log.debug("Merging secrets from %s", secrets_path)
        secrets = _load_document(secrets_path)
        if isinstance(secrets, dict):
            _deep_merge(data, secrets)
    else:
        log.debug("No secrets file merged")

    return validate(model, data)


def load_provision_request(path: str | Path) -> ProvisionRequest:
    """
    Load and validate a provisioning request.

    Credentials may be kept out of the request itself, either through
    ``${ENV_VAR}`` placeholders or a ``secrets.yaml`` next to the request
    (or at ``RELAYCHAIN_SECRETS_FILE``) whose structure mirrors it. List
    items are not merged element-wise; a secrets file that sets ``nodes``
    replaces the whole list.
    """
    return _load_request(ProvisionRequest, path)


def load_teardown_request(path: str | Path) -> TeardownRequest:
    return _load_request(TeardownRequest, path)


def load_settings(path: Optional[str | Path] = None, overrides: Optional[Dict[str, Any]] = None) -> Settings:
    data: Dict[str, Any] = {}
    if path is not None:
        doc = _load_document(Path(path))
        if not isinstance(doc, dict):
            raise ValidationError(f"settings file {path} must contain a mapping")
        data.update(doc)
    if overrides:
        _deep_merge(data, {k: v for k, v in overrides.items() if v is not None})
    return validate(Settings, data)
