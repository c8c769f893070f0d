"""Load converter configs from Python references."""

from __future__ import annotations

from dataclasses import replace
import importlib
import importlib.util
from pathlib import Path
from types import ModuleType
from typing import Any

from alphagif.config.schema import (
    ConversionOptions,
    ConverterConfig,
    DEFAULT_COLOR_KEY,
    DecoderConfig,
    EncoderConfig,
)


def _load_module(module_ref: str) -> ModuleType:
    path_candidate = Path(module_ref).expanduser()
    if path_candidate.exists():
        module_name = f"_alphagif_cfg_{path_candidate.stem}"
        spec = importlib.util.spec_from_file_location(module_name, path_candidate)
        if spec is None or spec.loader is None:
            raise RuntimeError(f"Could not load module from path: {path_candidate}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module
    return importlib.import_module(module_ref)


def _resolve_attr(obj: Any, attr_path: str) -> Any:
    value = obj
    for part in attr_path.split("."):
        value = getattr(value, part)
    return value


def load_object(reference: str) -> Any:
    """Load object by `module_or_path:attribute` reference."""

    if ":" not in reference:
        raise ValueError("Config reference must be in form 'module_or_path:attribute'.")
    module_ref, attr = reference.rsplit(":", maxsplit=1)
    module = _load_module(module_ref)
    return _resolve_attr(module, attr)


def load_converter_config(config_ref: str | None) -> ConverterConfig:
    """Load a ConverterConfig from reference or create a default."""

    if config_ref is None:
        return ConverterConfig()

    loaded = load_object(config_ref)
    if isinstance(loaded, dict):
        return converter_config_from_dict(loaded)
    if not isinstance(loaded, ConverterConfig):
        type_name = type(loaded).__name__
        raise TypeError(
            f"Config reference must resolve to ConverterConfig, got {type_name}."
        )
    return loaded


def override_options(options: ConversionOptions, **overrides: Any) -> ConversionOptions:
    """Return ``options`` with every non-None override applied."""

    changes = {key: value for key, value in overrides.items() if value is not None}
    if not changes:
        return options
    return replace(options, **changes)


def converter_config_from_dict(payload: dict[str, Any]) -> ConverterConfig:
    """Reconstruct a ConverterConfig from a plain dictionary."""

    options = payload.get("options", {})
    decoder = payload.get("decoder", {})
    encoder = payload.get("encoder", {})
    return ConverterConfig(
        options=ConversionOptions(**options),
        decoder=DecoderConfig(**decoder),
        encoder=EncoderConfig(**encoder),
        color_key=tuple(payload.get("color_key", DEFAULT_COLOR_KEY)),
        log_level=str(payload.get("log_level", "INFO")),
    )
