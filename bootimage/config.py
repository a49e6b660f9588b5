"""Configuration loading and validation for bootimage."""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any
import yaml

from .errors import ConfigError

CONFIG_FILENAME = "bootimage.yaml"

DEFAULT_RUN_COMMAND = ["qemu-system-x86_64", "-drive", "format=raw,file={}"]
DEFAULT_TEST_TIMEOUT = 60.0


@dataclass
class BootimageConfig:
    output: Path | None = None
    minimum_image_size: int | None = None  # bytes
    package_filepath: Path | None = None
    run_command: list[str] = field(default_factory=lambda: list(DEFAULT_RUN_COMMAND))
    test_timeout: float = DEFAULT_TEST_TIMEOUT  # seconds
    test_jobs: int | None = None  # None: one worker per target, capped at CPU count

    def run_args(self, image_path: Path) -> list[str]:
        """Expand `{}` in the run command to the image path."""
        return [arg.replace("{}", str(image_path)) for arg in self.run_command]


def _as_path(key: str, value: Any, base_dir: Path) -> Path:
    if not isinstance(value, str):
        raise ConfigError(f"`{key}` must be a path string, got {value!r}")
    path = Path(value)
    return path if path.is_absolute() else base_dir / path


def _as_int(key: str, value: Any, minimum: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigError(f"`{key}` must be an integer, got {value!r}")
    if value < minimum:
        raise ConfigError(f"`{key}` must be at least {minimum}, got {value}")
    return value


def parse_config(data: dict[str, Any] | None, base_dir: Path) -> BootimageConfig:
    """Validate a raw YAML mapping and build a BootimageConfig."""
    config = BootimageConfig()
    if data is None:
        return config
    if not isinstance(data, dict):
        raise ConfigError(f"Configuration must be a mapping, got {type(data).__name__}")

    known = {f.name for f in fields(BootimageConfig)}
    unknown = set(data) - known
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

    if data.get("output") is not None:
        config.output = _as_path("output", data["output"], base_dir)
    if data.get("package_filepath") is not None:
        config.package_filepath = _as_path("package_filepath", data["package_filepath"], base_dir)
    if data.get("minimum_image_size") is not None:
        config.minimum_image_size = _as_int("minimum_image_size", data["minimum_image_size"], 0)
    if data.get("test_jobs") is not None:
        config.test_jobs = _as_int("test_jobs", data["test_jobs"], 1)

    if "run_command" in data:
        command = data["run_command"]
        if (
            not isinstance(command, list)
            or not command
            or not all(isinstance(arg, str) for arg in command)
        ):
            raise ConfigError("`run_command` must be a non-empty list of strings")
        config.run_command = list(command)

    if data.get("test_timeout") is not None:
        timeout = data["test_timeout"]
        if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
            raise ConfigError(f"`test_timeout` must be a positive number, got {timeout!r}")
        config.test_timeout = float(timeout)

    return config


def load_config(config_path: Path) -> BootimageConfig:
    """Load configuration from a YAML file; a missing file yields defaults."""
    config_path = Path(config_path)
    if not config_path.exists():
        return BootimageConfig()
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise ConfigError(f"Could not read {config_path}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
    return parse_config(data, config_path.parent)
