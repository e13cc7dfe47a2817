"""Loading of the process-wide media configuration."""

import json
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from pydantic import ValidationError

from .exceptions import ConfigurationError
from .models import MediaConfig

CONFIG_ENV_VAR = "MEDIA_PIPELINE_CONFIG"

DEFAULT_MEDIA_SETTINGS: Dict[str, Any] = {
    "store": {"path": "media"},
    "baseUrl": "http://localhost:3000/media",
    "sizes": [
        {"id": "thumb", "width": 200, "height": 200, "fit": "cover"},
        {"id": "large", "width": 1200, "height": 1200, "fit": "inside"},
    ],
}

# environment variable -> key inside the "media" section
ENV_OVERRIDES = {
    "MEDIA_STORE_PATH": "store.path",
    "MEDIA_BASE_URL": "baseUrl",
    "MEDIA_DERIVATIVE_WORKERS": "derivativeWorkers",
    "MEDIA_PIPELINE_BASE_DIR": "baseDir",
}


def load_config(
    path: Optional[Union[str, Path]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> MediaConfig:
    """
    Build the media configuration from a JSON file and the environment.

    Args:
        path: JSON config file; falls back to $MEDIA_PIPELINE_CONFIG, then to
            built-in defaults
        environ: Environment mapping (defaults to os.environ)

    Returns:
        Immutable MediaConfig

    Raises:
        ConfigurationError: If the file cannot be read or a value is invalid
    """
    environ = os.environ if environ is None else environ
    path = path or environ.get(CONFIG_ENV_VAR)

    if path:
        media = _read_media_section(Path(path))
    else:
        media = json.loads(json.dumps(DEFAULT_MEDIA_SETTINGS))

    for env_name, dotted in ENV_OVERRIDES.items():
        if environ.get(env_name):
            _set_dotted(media, dotted, environ[env_name])

    return config_from_mapping(media)


def config_from_mapping(media: Mapping[str, Any]) -> MediaConfig:
    """Translate a ``media`` section (camelCase keys) into a MediaConfig."""
    store = media.get("store") or {}
    fields = {
        "store_path": store.get("path", ""),
        "base_dir": media.get("baseDir", "."),
        "base_url": media.get("baseUrl", ""),
        "sizes": media.get("sizes", []),
        "derivative_workers": media.get("derivativeWorkers", 1),
        "jpeg_quality": media.get("jpegQuality", 90),
        "exiftool_path": media.get("exiftoolPath"),
    }
    try:
        return MediaConfig(**fields)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid media configuration: {exc}") from exc


def _read_media_section(path: Path) -> Dict[str, Any]:
    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        raise ConfigurationError(f"Cannot read config file {path}: {exc}") from exc

    media = document.get("media") if isinstance(document, dict) else None
    if not isinstance(media, dict):
        raise ConfigurationError(f"Config file {path} has no 'media' section")
    return media


def _set_dotted(target: Dict[str, Any], dotted: str, value: Any) -> None:
    *parents, leaf = dotted.split(".")
    for key in parents:
        target = target.setdefault(key, {})
    target[leaf] = value
