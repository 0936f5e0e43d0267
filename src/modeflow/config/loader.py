"""
Project configuration loading and the explicit configuration context.

Components receive a ``ConfigContext`` instead of reaching for a global. The
only memoization is ``ConfigCache`` at the process boundary (the CLI), and it
is invalidated explicitly.
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import yaml
from pydantic import ValidationError

from .patterns import load_subphase_patterns
from .schema import ModeConfig, ModeflowSettings, ProjectConfig
from .subphase_models import SubphasePatternLibrary
from .yaml_source import load_yaml_file
from ..errors import (
    ConfigNotFoundError,
    ConfigValidationError,
    DeprecatedModeError,
    UnknownModeError,
)
from ..logging_config import get_logger
from ..session.lookup import find_project_dir, get_config_path

logger = get_logger(__name__)

REFERENCE_PATTERN = re.compile(r"^\$\{([A-Za-z0-9_.]+)\}$")


def format_pydantic_errors(error: ValidationError) -> str:
    """Render every validation issue as ``path: message``, one per line."""
    lines = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "(root)"
        lines.append(f"  {location}: {item['msg']}")
    return "\n".join(lines)


def load_project_config(config_path: Path) -> ProjectConfig:
    """
    Load and validate a project mode configuration file.

    Args:
        config_path: Path to ``.modeflow/modeflow.yaml``

    Returns:
        Validated project configuration

    Raises:
        ConfigNotFoundError: File does not exist
        ConfigValidationError: File is not valid YAML or fails the schema
    """
    if not config_path.exists():
        raise ConfigNotFoundError(
            f"Mode configuration not found at {config_path}\n"
            "Run: modeflow setup"
        )

    try:
        data = load_yaml_file(config_path)
    except yaml.YAMLError as e:
        raise ConfigValidationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigValidationError(
            f"Invalid mode configuration in {config_path}: expected a mapping at top level"
        )

    try:
        return ProjectConfig.model_validate(data)
    except ValidationError as e:
        raise ConfigValidationError(
            f"Invalid mode configuration in {config_path}:\n{format_pydantic_errors(e)}"
        ) from e


@dataclass
class ConfigContext:
    """Everything a command needs to know about the project's configuration."""

    project_root: Path
    settings: ModeflowSettings
    project: ProjectConfig
    patterns: SubphasePatternLibrary

    @classmethod
    def load(
        cls,
        project_root: Optional[Path] = None,
        settings: Optional[ModeflowSettings] = None,
    ) -> "ConfigContext":
        """
        Build a context for a project.

        Args:
            project_root: Project root (discovered from cwd when omitted)
            settings: Runtime settings (loaded from the environment when omitted)

        Raises:
            ConfigurationError: Project, config or pattern library unavailable
        """
        settings = settings or ModeflowSettings()
        if project_root is None:
            project_root = settings.project_dir or find_project_dir()
        project_root = Path(project_root).resolve()

        project = load_project_config(get_config_path(project_root))
        patterns = load_subphase_patterns(project_root)
        return cls(
            project_root=project_root,
            settings=settings,
            project=project,
            patterns=patterns,
        )

    @property
    def config_path(self) -> Path:
        return get_config_path(self.project_root)

    @property
    def spec_dir(self) -> Path:
        return self.project_root / self.project.spec_path

    def resolve_mode(self, mode: str) -> Tuple[str, ModeConfig]:
        """
        Resolve a mode name or alias to its canonical name and config.

        Raises:
            UnknownModeError: No mode or alias matches
            DeprecatedModeError: Mode is deprecated
        """
        canonical = self.project.resolve_mode_alias(mode)
        mode_config = self.project.modes.get(canonical)
        if mode_config is None:
            raise UnknownModeError(mode, sorted(self.project.modes))
        if mode_config.deprecated:
            raise DeprecatedModeError(canonical, mode_config.redirect_to)
        return canonical, mode_config

    def resolve_reference(self, value: str) -> str:
        """
        Resolve a ``${config.key}`` reference against the project config.

        Plain values pass through. Unresolvable references are returned
        verbatim.
        """
        match = REFERENCE_PATTERN.match(value)
        if not match:
            return value
        resolved = self.project.lookup(match.group(1))
        if resolved is None or isinstance(resolved, (dict, list)):
            logger.warning(f"Unresolvable config reference {value}; leaving as-is")
            return value
        return str(resolved)


class ConfigCache:
    """Memoizes contexts by config path until ``clear()`` is called."""

    def __init__(self):
        self._contexts: Dict[Path, ConfigContext] = {}

    def get(
        self,
        project_root: Optional[Path] = None,
        settings: Optional[ModeflowSettings] = None,
    ) -> ConfigContext:
        settings = settings or ModeflowSettings()
        if project_root is None:
            project_root = settings.project_dir or find_project_dir()
        key = get_config_path(Path(project_root).resolve())

        context = self._contexts.get(key)
        if context is None:
            context = ConfigContext.load(project_root, settings)
            self._contexts[key] = context
        return context

    def clear(self) -> None:
        self._contexts.clear()

    def __len__(self) -> int:
        return len(self._contexts)


_cache = ConfigCache()


def get_config_context(
    project_root: Optional[Path] = None,
    settings: Optional[ModeflowSettings] = None,
) -> ConfigContext:
    """Process-level cached ``ConfigContext.load``."""
    return _cache.get(project_root, settings)


def clear_config_cache() -> None:
    _cache.clear()


def describe_context(ctx: ConfigContext) -> Dict[str, Any]:
    """Summary used by ``modeflow status --verbose``."""
    return {
        "project_root": str(ctx.project_root),
        "config_path": str(ctx.config_path),
        "modes": sorted(ctx.project.modes),
        "subphase_patterns": ctx.patterns.names,
    }
