import copy
import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, MutableMapping, Optional, Tuple


class ConfigError(ValueError):
    """Raised when configuration values cannot be used."""


ENV_FILE_CANDIDATES: Tuple[Path, ...] = (
    Path.cwd() / ".env",
)

# Checked in order; the first non-empty one is the provider key
API_KEY_ENV_VARS: Tuple[str, ...] = (
    "GEOCODER_API_KEY",
    "GEOCODE_API_KEY",
    "GOOGLE_MAPS_API_KEY",
    "OPENCAGE_API_KEY",
    "LOCATIONIQ_API_KEY",
)

TRUE_VALUES = {"1", "true", "yes", "on"}

DEFAULT_CONFIG: Dict[str, Any] = {
    "paths": {
        "src_root": "assets/photos",
        "out_root": None,
        "cache_file": None,
    },
    "categories": ["me", "photography"],
    "renditions": {
        "thumb_width": 400,
        "full_width": 1600,
        "thumb_quality": 80,
        "full_quality": 90,
        "format": "webp",
        "on_error": "skip",
    },
    "geocoding": {
        "provider": "nominatim",
        "api_key": None,
        "user_agent": "photo-manifest/1.0",
        "delay_ms": 1000,
        "timeout_seconds": 10,
        "disabled": False,
        "force_recalc": False,
        "skip_gps_categories": [],
    },
    "pipeline": {
        "workers": 1,
    },
    "logging": {
        "level": "INFO",
        "log_dir": "logs",
    },
}


def _expand_string(value: str, variables: Dict[str, str]) -> str:
    # 1) Expand environment variables like ${VAR}
    expanded = os.path.expandvars(value)
    # 2) Expand {var} placeholders using provided variables
    try:
        expanded = expanded.format(**variables)
    except (KeyError, IndexError, ValueError):
        # Braces that are not placeholders stay as written
        pass
    return expanded


def _expand_obj(obj: Any, variables: Dict[str, str]) -> Any:
    if isinstance(obj, str):
        return _expand_string(obj, variables)
    if isinstance(obj, list):
        return [_expand_obj(i, variables) for i in obj]
    if isinstance(obj, dict):
        return {k: _expand_obj(v, variables) for k, v in obj.items()}
    return obj


def _deep_merge(base: Dict[str, Any], overrides: Mapping[str, Any]) -> Dict[str, Any]:
    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _load_env_files(env: MutableMapping[str, str], candidates: Iterable[Path]) -> None:
    """Read KEY=VALUE lines from .env files; existing variables win."""
    for path in candidates:
        if not path.is_file():
            continue
        try:
            with path.open("r", encoding="utf-8") as handle:
                for line in handle:
                    stripped = line.strip()
                    if not stripped or stripped.startswith("#"):
                        continue
                    if "=" not in stripped:
                        continue
                    key, value = stripped.split("=", 1)
                    key = key.strip()
                    value = value.strip().strip('"').strip("'")
                    if key and key not in env:
                        env[key] = value
        except OSError:
            continue


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in TRUE_VALUES


def parse_list(value: Any) -> List[str]:
    """Split a comma separated string (or pass a list through) into clean names."""
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple)) else str(value).split(",")
    return [str(item).strip() for item in items if str(item).strip()]


def _parse_int(name: str, value: Any, minimum: int = 0) -> int:
    try:
        number = int(str(value).strip())
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    if number < minimum:
        raise ConfigError(f"{name} must be >= {minimum}, got {number}")
    return number


def _apply_environment(config: Dict[str, Any], env: Mapping[str, str]) -> None:
    paths = config["paths"]
    renditions = config["renditions"]
    geocoding = config["geocoding"]

    if env.get("SRC_BASE_DIR"):
        paths["src_root"] = env["SRC_BASE_DIR"]
    if env.get("OUT_BASE_DIR"):
        paths["out_root"] = env["OUT_BASE_DIR"]
    if env.get("PHOTO_CATEGORIES"):
        config["categories"] = parse_list(env["PHOTO_CATEGORIES"])

    for env_name, key in (
        ("THUMB_WIDTH", "thumb_width"),
        ("FULL_WIDTH", "full_width"),
        ("THUMB_QUALITY", "thumb_quality"),
        ("FULL_QUALITY", "full_quality"),
    ):
        if env.get(env_name):
            renditions[key] = env[env_name]
    if env.get("RENDITION_FORMAT"):
        renditions["format"] = env["RENDITION_FORMAT"]
    if env.get("RENDITION_ERRORS"):
        renditions["on_error"] = env["RENDITION_ERRORS"]

    if env.get("GEOCODER_PROVIDER"):
        geocoding["provider"] = env["GEOCODER_PROVIDER"]
    for name in API_KEY_ENV_VARS:
        if env.get(name):
            geocoding["api_key"] = env[name]
            break
    if env.get("GEOCODER_USER_AGENT"):
        geocoding["user_agent"] = env["GEOCODER_USER_AGENT"]
    if env.get("GEOCODE_DELAY_MS"):
        geocoding["delay_ms"] = env["GEOCODE_DELAY_MS"]
    if parse_bool(env.get("DISABLE_GEOCODING")) or parse_bool(env.get("CI")):
        geocoding["disabled"] = True
    if parse_bool(env.get("FORCE_RECALC_LOCATIONS")):
        geocoding["force_recalc"] = True
    if env.get("SKIP_GPS_FOLDERS"):
        geocoding["skip_gps_categories"] = parse_list(env["SKIP_GPS_FOLDERS"])

    if env.get("PIPELINE_WORKERS"):
        config["pipeline"]["workers"] = env["PIPELINE_WORKERS"]

    # LOG_LEVEL takes precedence, then DEBUG (boolean)
    if env.get("LOG_LEVEL"):
        config["logging"]["level"] = env["LOG_LEVEL"]
    elif parse_bool(env.get("DEBUG")):
        config["logging"]["level"] = "DEBUG"
    if "LOG_DIR" in env:
        config["logging"]["log_dir"] = env["LOG_DIR"] or None


def _normalize_config(config: Dict[str, Any]) -> Dict[str, Any]:
    paths = config["paths"]
    if not paths.get("src_root"):
        raise ConfigError("paths.src_root must be set")
    if not paths.get("out_root"):
        paths["out_root"] = paths["src_root"]
    if not paths.get("cache_file"):
        paths["cache_file"] = os.path.join(paths["out_root"], "geocode-cache.json")

    config["categories"] = parse_list(config.get("categories"))

    renditions = config["renditions"]
    renditions["thumb_width"] = _parse_int("thumb_width", renditions["thumb_width"], 1)
    renditions["full_width"] = _parse_int("full_width", renditions["full_width"], 1)
    for key in ("thumb_quality", "full_quality"):
        renditions[key] = _parse_int(key, renditions[key], 1)
        if renditions[key] > 100:
            raise ConfigError(f"{key} must be <= 100, got {renditions[key]}")
    renditions["format"] = str(renditions["format"]).lower().lstrip(".")
    if renditions["format"] == "jpg":
        renditions["format"] = "jpeg"
    if renditions["format"] not in ("webp", "jpeg", "png"):
        raise ConfigError(f"Unsupported rendition format: {renditions['format']}")
    renditions["on_error"] = str(renditions["on_error"]).lower()
    if renditions["on_error"] not in ("skip", "abort"):
        raise ConfigError(f"renditions.on_error must be 'skip' or 'abort', got {renditions['on_error']!r}")

    geocoding = config["geocoding"]
    geocoding["delay_ms"] = _parse_int("delay_ms", geocoding["delay_ms"], 0)
    geocoding["disabled"] = parse_bool(geocoding.get("disabled"))
    geocoding["force_recalc"] = parse_bool(geocoding.get("force_recalc"))
    geocoding["skip_gps_categories"] = parse_list(geocoding.get("skip_gps_categories"))
    provider = geocoding.get("provider")
    geocoding["provider"] = str(provider).strip().lower() if provider else "none"

    config["pipeline"]["workers"] = _parse_int("workers", config["pipeline"]["workers"], 1)
    return config


def load_config(
    path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    env_files: Iterable[Path] = ENV_FILE_CANDIDATES,
) -> Dict[str, Any]:
    """Build the run configuration.

    Priority (lowest to highest): defaults, JSON config file, .env files,
    environment variables. CLI flags are applied afterwards by pipeline.py.
    """
    config = copy.deepcopy(DEFAULT_CONFIG)
    env: Dict[str, str] = dict(os.environ if environ is None else environ)
    _load_env_files(env, env_files)

    if path:
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Failed to parse config {config_path}: {e}")
        if not isinstance(raw, dict):
            raise ConfigError(f"Config {config_path} must contain a JSON object")
        variables = {"cwd": os.getcwd(), "config_dir": str(config_path.resolve().parent)}
        _deep_merge(config, _expand_obj(raw, variables))

    _apply_environment(config, env)
    return _normalize_config(config)
