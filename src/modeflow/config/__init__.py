"""
Modeflow configuration module.
"""

# XDG helpers
from .xdg import (
    get_xdg_config_home,
    get_modeflow_config_dir,
    get_user_config_path,
    get_default_tasks_root,
)

# Schemas
from .schema import (
    STOP_CONDITION_TYPES,
    ModeConfig,
    ModeflowSettings,
    ProjectConfig,
    ProjectProfile,
    ReviewsConfig,
)
from .subphase_models import (
    AgentStepConfig,
    SubphasePattern,
    SubphasePatternDefinition,
    SubphasePatternLibrary,
)

# Loading
from .patterns import load_subphase_patterns
from .loader import (
    ConfigCache,
    ConfigContext,
    clear_config_cache,
    get_config_context,
    load_project_config,
)

__all__ = [
    # XDG
    "get_xdg_config_home",
    "get_modeflow_config_dir",
    "get_user_config_path",
    "get_default_tasks_root",
    # Schemas
    "STOP_CONDITION_TYPES",
    "ModeConfig",
    "ModeflowSettings",
    "ProjectConfig",
    "ProjectProfile",
    "ReviewsConfig",
    "AgentStepConfig",
    "SubphasePattern",
    "SubphasePatternDefinition",
    "SubphasePatternLibrary",
    # Loading
    "load_subphase_patterns",
    "ConfigCache",
    "ConfigContext",
    "clear_config_cache",
    "get_config_context",
    "load_project_config",
]
