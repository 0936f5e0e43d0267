"""
Configuration schema for Modeflow.

Two layers:

* ``ModeflowSettings`` - runtime settings for the local machine, loaded from
  init args, ``MODEFLOW_*`` environment variables, ``.env`` and the XDG YAML
  files.
* ``ProjectConfig`` - the project's mode configuration document
  (``.modeflow/modeflow.yaml``): project profile, review settings and the
  ``modes`` table.
"""

from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Type, get_args
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .yaml_source import XDGYamlSettingsSource
from .xdg import get_default_tasks_root


# Closed vocabulary. Adding a kind means updating this Literal AND the
# evaluator's check table in modeflow.gates.evaluator.
StopConditionKind = Literal[
    "tasks_complete",
    "committed",
    "pushed",
    "verification",
    "tests_pass",
    "feature_tests_added",
    "verification_plan_executed",
]

STOP_CONDITION_TYPES: tuple = get_args(StopConditionKind)

# Template global_conditions use a "changes_" prefix for the git checks
GLOBAL_CONDITION_PREFIX = "changes_"

DEFAULT_TASK_RULES = [
    "Tasks are pre-created by modeflow enter. Do NOT create new tasks.",
    "List the tasks FIRST to discover their dependency chains.",
    "Mark tasks in_progress/completed as you work; never bulk-complete.",
    "Follow the dependency chain - blocked tasks cannot start until dependencies complete.",
]


# ==============================================================================
# PROJECT CONFIG MODELS
# ==============================================================================


class ModeConfig(BaseModel):
    """Configuration of a single workflow mode."""

    template: str
    stop_conditions: List[StopConditionKind] = Field(default_factory=list)
    issue_handling: Optional[Literal["required", "none"]] = None
    issue_label: Optional[str] = None
    intent_keywords: List[str] = Field(default_factory=list)
    aliases: List[str] = Field(default_factory=list)
    workflow_prefix: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    deprecated: bool = False
    redirect_to: Optional[str] = None


class ProjectProfile(BaseModel):
    """Project commands and git conventions."""

    name: Optional[str] = None
    build_command: Optional[str] = None
    test_command: Optional[str] = None
    typecheck_command: Optional[str] = None
    diff_base: str = "origin/main"
    test_file_pattern: str = "test_*.py,*_test.py"

    @property
    def test_file_globs(self) -> List[str]:
        return [p.strip() for p in self.test_file_pattern.split(",") if p.strip()]


class ReviewsConfig(BaseModel):
    """Code and spec review settings."""

    spec_review: bool = False
    # None means "enabled when a reviewer is configured"
    code_review: Optional[bool] = None
    code_reviewer: Optional[str] = None
    spec_reviewer: Optional[str] = None


class ProvidersConfig(BaseModel):
    """Agent provider settings referenced by ``${providers.*}``."""

    default: Optional[str] = None
    available: List[str] = Field(default_factory=list)
    judge_provider: Optional[str] = None
    judge_model: Optional[str] = None


class ProjectConfig(BaseModel):
    """
    Project mode configuration (``.modeflow/modeflow.yaml``).

    The ``modes`` table is the core section: mode name → template and
    stop conditions.
    """

    project: ProjectProfile = Field(default_factory=ProjectProfile)

    spec_path: str = "planning/specs"
    research_path: str = "planning/research"
    session_retention_days: int = Field(default=7, ge=0)
    non_code_paths: List[str] = Field(
        default_factory=lambda: [".claude", ".modeflow", "planning"]
    )

    reviews: ReviewsConfig = Field(default_factory=ReviewsConfig)
    providers: ProvidersConfig = Field(default_factory=ProvidersConfig)
    verify_command: Optional[str] = None

    global_rules: List[str] = Field(default_factory=list)
    task_rules: List[str] = Field(default_factory=lambda: list(DEFAULT_TASK_RULES))

    modes: Dict[str, ModeConfig] = Field(default_factory=dict)

    def resolve_mode_alias(self, mode: str) -> str:
        """
        Resolve a mode alias to its canonical mode name.

        Canonical names win over aliases. Unknown names are returned unchanged
        so the caller can reject them.
        """
        if mode in self.modes:
            return mode
        for canonical, mode_config in self.modes.items():
            if mode in mode_config.aliases:
                return canonical
        return mode

    @property
    def verification_required(self) -> bool:
        """True when a verify mechanism is configured and code review is on."""
        if self.reviews.code_review is False:
            return False
        reviewer = self.reviews.code_reviewer
        return reviewer in ("codex", "gemini") or bool(self.verify_command)

    def lookup(self, dotted_key: str) -> Any:
        """
        Look up a dotted key (``providers.default``) in the config.

        Returns:
            The value, or None when any segment is missing
        """
        node: Any = self.model_dump()
        for part in dotted_key.split("."):
            if not isinstance(node, dict) or part not in node:
                return None
            node = node[part]
        return node


# ==============================================================================
# RUNTIME SETTINGS
# ==============================================================================


class ModeflowSettings(BaseSettings):
    """
    Runtime settings for the local machine.

    Configuration precedence (highest to lowest):
    1. Explicit init arguments
    2. Environment variables (MODEFLOW_*)
    3. .env file
    4. YAML config files (./modeflow.yaml > user > system)
    5. Field defaults
    """

    model_config = SettingsConfigDict(
        env_prefix="MODEFLOW_",
        env_nested_delimiter="__",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"
    # Current session id (hosts usually export it per session)
    session_id: Optional[str] = None
    # Explicit project root; otherwise discovered from the working directory
    project_dir: Optional[Path] = None
    # Root of the host's native task tracker
    tasks_root: Path = Field(default_factory=get_default_tasks_root)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        """
        Customize settings sources to include YAML config files.

        Precedence order (highest to lowest):
        1. init_settings - Explicit arguments
        2. env_settings - Environment variables
        3. dotenv_settings - .env file
        4. XDGYamlSettingsSource - YAML config files
        5. file_secret_settings - Secrets directory
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            XDGYamlSettingsSource(settings_cls),
            file_secret_settings,
        )

    def tasks_dir(self, session_id: str) -> Path:
        """Native task directory for a session."""
        return Path(self.tasks_root).expanduser() / session_id
