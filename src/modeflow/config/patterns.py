"""
Subphase pattern library loading.

Two tiers, merged per pattern name:

1. Packaged defaults (``modeflow/data/subphase-patterns.yaml``)
2. Project overrides (``.modeflow/subphase-patterns.yaml``)
"""

from pathlib import Path
from typing import Optional
import yaml
from pydantic import ValidationError

from .subphase_models import SubphasePatternLibrary
from .yaml_source import load_yaml_file
from ..errors import ConfigurationError
from ..logging_config import get_logger
from ..session.lookup import get_project_patterns_path

logger = get_logger(__name__)


def get_packaged_patterns_path() -> Path:
    """Path to the subphase patterns shipped with the package."""
    return Path(__file__).parent.parent / "data" / "subphase-patterns.yaml"


def parse_pattern_library(path: Path) -> SubphasePatternLibrary:
    """
    Parse and validate a subphase pattern file.

    Raises:
        OSError: File cannot be read
        yaml.YAMLError: Invalid YAML
        ValidationError: Document does not match the pattern schema
    """
    data = load_yaml_file(path)
    return SubphasePatternLibrary.model_validate(data)


def load_subphase_patterns(project_root: Optional[Path] = None) -> SubphasePatternLibrary:
    """
    Load the pattern library with project overrides applied.

    Args:
        project_root: Project whose overlay should be applied (optional)

    Returns:
        Merged pattern library

    Raises:
        ConfigurationError: The packaged defaults are unreadable or invalid
    """
    packaged_path = get_packaged_patterns_path()
    try:
        library = parse_pattern_library(packaged_path)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        raise ConfigurationError(
            f"Packaged subphase patterns are invalid ({packaged_path}): {e}"
        ) from e

    if project_root is None:
        return library

    overlay_path = get_project_patterns_path(project_root)
    if not overlay_path.exists():
        return library

    try:
        overlay = parse_pattern_library(overlay_path)
    except (OSError, yaml.YAMLError, ValidationError) as e:
        logger.warning(f"Ignoring project subphase patterns at {overlay_path}: {e}")
        return library

    logger.debug(
        f"Applied {len(overlay.subphase_patterns)} project subphase pattern(s) "
        f"from {overlay_path}"
    )
    return library.merged_with(overlay)
