"""
YAML loading helpers and a Pydantic Settings source for user-level settings.

Supports XDG Base Directory specification with hierarchical config merging.
"""

from pathlib import Path
from typing import Any, Dict, Tuple, Type, List
import yaml

from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from .xdg import APP_NAME, get_user_config_path, get_xdg_config_dirs
from ..logging_config import get_logger

logger = get_logger(__name__)


def load_yaml_file(path: Path) -> Any:
    """
    Parse a YAML file with the safe loader.

    Args:
        path: File to read

    Returns:
        Parsed document (None for an empty file)

    Raises:
        OSError: File cannot be read
        yaml.YAMLError: File is not valid YAML
    """
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def deep_merge(base: Dict, update: Dict) -> Dict:
    """
    Deep merge update dict into base dict.

    Args:
        base: Base dictionary to merge into
        update: Update dictionary to merge from

    Returns:
        Base dictionary with updates applied
    """
    for key, value in update.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def get_config_paths(app_name: str = APP_NAME) -> List[Path]:
    """
    Get user settings file paths following XDG Base Directory spec.

    Returns paths in precedence order (highest first):
    1. Working directory override (./modeflow.yaml)
    2. User config (~/.config/modeflow/config.yaml)
    3. System configs ($XDG_CONFIG_DIRS/modeflow/config.yaml)

    Args:
        app_name: Application name for config directory

    Returns:
        List of config file paths that exist, in precedence order
    """
    paths = []

    local_config = Path.cwd() / f"{app_name}.yaml"
    if local_config.exists():
        paths.append(local_config)

    user_config = get_user_config_path()
    if user_config.exists():
        paths.append(user_config)

    for config_dir in get_xdg_config_dirs():
        system_config = config_dir / app_name / "config.yaml"
        if system_config.exists():
            paths.append(system_config)

    return paths


class XDGYamlSettingsSource(PydanticBaseSettingsSource):
    """
    Settings source that loads from XDG-compliant YAML locations.

    Later (higher precedence) files override earlier ones with deep merging
    for nested dicts. Unreadable files are logged and skipped; user settings
    are optional.
    """

    def __init__(self, settings_cls: Type[BaseSettings], app_name: str = APP_NAME):
        super().__init__(settings_cls)
        self.app_name = app_name
        self._merged_data: Dict[str, Any] = {}

        # System first so that user and local files win
        for config_path in reversed(get_config_paths(app_name)):
            try:
                data = load_yaml_file(config_path) or {}
            except (OSError, yaml.YAMLError) as e:
                logger.warning(f"Failed to load {config_path}: {e}")
                continue
            if not isinstance(data, dict):
                logger.warning(f"Ignoring {config_path}: top level is not a mapping")
                continue
            deep_merge(self._merged_data, data)

    def get_field_value(self, field: Any, field_name: str) -> Tuple[Any, str, bool]:
        """
        Get field value from merged YAML data.

        Returns:
            Tuple of (value, field_key, value_is_complex)
        """
        field_value = self._merged_data.get(field_name)
        return field_value, field_name, False

    def prepare_field_value(
        self, field_name: str, field: Any, value: Any, value_is_complex: bool
    ) -> Any:
        return value

    def __call__(self) -> Dict[str, Any]:
        """Return all settings from merged YAML."""
        return self._merged_data
