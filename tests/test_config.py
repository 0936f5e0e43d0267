"""
Tests for configuration loading: settings, project config, patterns and context.
"""

import pytest

from modeflow.config import (
    ConfigCache,
    ConfigContext,
    ModeflowSettings,
    ProjectConfig,
    load_project_config,
    load_subphase_patterns,
)
from modeflow.config.schema import STOP_CONDITION_TYPES, ModeConfig
from modeflow.config.yaml_source import deep_merge
from modeflow.errors import (
    ConfigNotFoundError,
    ConfigurationError,
    ConfigValidationError,
    DeprecatedModeError,
    UnknownModeError,
    UnknownSubphasePatternError,
)
from modeflow.gates.evaluator import CHECKS
from modeflow.session.lookup import get_config_path, get_project_patterns_path

from conftest import write_file


@pytest.mark.unit
class TestModeConfig:
    """Test the mode schema."""

    def test_minimal_mode(self):
        """Test a mode needs only a template."""
        mode = ModeConfig(template="planning.md")

        assert mode.stop_conditions == []
        assert mode.aliases == []
        assert mode.deprecated is False

    def test_unknown_stop_condition_rejected(self):
        """Test an unknown stop condition kind is a hard error."""
        with pytest.raises(ValueError):
            ModeConfig(template="planning.md", stop_conditions=["tasks_complete", "deployed"])

    def test_all_known_stop_conditions_accepted(self):
        """Test every kind in the vocabulary validates."""
        mode = ModeConfig(template="x.md", stop_conditions=list(STOP_CONDITION_TYPES))
        assert mode.stop_conditions == list(STOP_CONDITION_TYPES)

    def test_vocabulary_matches_check_table(self):
        """Test the schema vocabulary and evaluator check table never drift."""
        assert set(STOP_CONDITION_TYPES) == set(CHECKS)


@pytest.mark.unit
class TestProjectConfig:
    """Test the project configuration document."""

    def test_defaults(self):
        """Test project config defaults."""
        config = ProjectConfig()

        assert config.spec_path == "planning/specs"
        assert config.session_retention_days == 7
        assert config.project.diff_base == "origin/main"
        assert config.project.test_file_globs == ["test_*.py", "*_test.py"]
        assert ".modeflow" in config.non_code_paths

    def test_alias_resolution(self):
        """Test aliases resolve and canonical names win."""
        config = ProjectConfig(
            modes={
                "planning": ModeConfig(template="p.md", aliases=["plan", "implementation"]),
                "implementation": ModeConfig(template="i.md", aliases=["impl"]),
            }
        )

        assert config.resolve_mode_alias("plan") == "planning"
        assert config.resolve_mode_alias("impl") == "implementation"
        assert config.resolve_mode_alias("implementation") == "implementation"
        assert config.resolve_mode_alias("unknown") == "unknown"

    def test_verification_required(self):
        """Test verification is required only with a verifier and review enabled."""
        assert ProjectConfig().verification_required is False
        assert ProjectConfig(verify_command="make verify").verification_required is True
        assert ProjectConfig(reviews={"code_reviewer": "codex"}).verification_required is True
        assert ProjectConfig(
            reviews={"code_reviewer": "codex", "code_review": False}
        ).verification_required is False

    def test_lookup_dotted_key(self):
        """Test dotted lookups into the config."""
        config = ProjectConfig(providers={"default": "gemini"})

        assert config.lookup("providers.default") == "gemini"
        assert config.lookup("providers.missing") is None
        assert config.lookup("nope.deeper") is None


@pytest.mark.unit
class TestLoadProjectConfig:
    """Test reading .modeflow/modeflow.yaml."""

    def test_load(self, project):
        """Test loading the fixture project."""
        config = load_project_config(get_config_path(project))

        assert set(config.modes) == {"planning", "implementation", "debug", "old-planning"}
        assert config.modes["implementation"].stop_conditions == ["tasks_complete", "committed"]

    def test_missing_file(self, tmp_path):
        """Test a missing config tells the operator to run setup."""
        with pytest.raises(ConfigNotFoundError, match="modeflow setup"):
            load_project_config(tmp_path / "modeflow.yaml")

    def test_non_mapping(self, tmp_path):
        """Test a non-mapping document is rejected."""
        path = write_file(tmp_path / "modeflow.yaml", "- just\n- a list\n")
        with pytest.raises(ConfigValidationError, match="expected a mapping"):
            load_project_config(path)

    def test_invalid_yaml(self, tmp_path):
        """Test broken YAML is a validation error."""
        path = write_file(tmp_path / "modeflow.yaml", "modes: [unclosed\n")
        with pytest.raises(ConfigValidationError, match="Invalid YAML"):
            load_project_config(path)

    def test_schema_errors_listed(self, tmp_path):
        """Test every schema problem is reported with its path."""
        path = write_file(
            tmp_path / "modeflow.yaml",
            """\
            modes:
              planning:
                stop_conditions: [tasks_complete]
              impl:
                template: i.md
                stop_conditions: [shipped]
            """,
        )
        with pytest.raises(ConfigValidationError) as exc_info:
            load_project_config(path)

        message = str(exc_info.value)
        assert "modes.planning.template" in message
        assert "modes.impl.stop_conditions.0" in message


@pytest.mark.unit
class TestSubphasePatterns:
    """Test the two-tier pattern library."""

    def test_packaged_patterns(self):
        """Test packaged patterns load."""
        library = load_subphase_patterns()

        assert "impl-test-verify" in library.names
        steps = library.get_steps("impl-test-review")
        assert [step.id_suffix for step in steps] == ["impl", "test", "review"]
        assert steps[2].agent.gate is True

    def test_unknown_pattern(self):
        """Test unknown names raise with the available names."""
        library = load_subphase_patterns()
        with pytest.raises(UnknownSubphasePatternError) as exc_info:
            library.get_steps("nope")
        assert "impl-test-verify" in exc_info.value.available

    def test_project_overlay_replaces_by_name(self, project):
        """Test a project pattern overrides the packaged one of the same name."""
        write_file(
            get_project_patterns_path(project),
            """\
            subphase_patterns:
              impl-verify:
                description: "Single step"
                steps:
                  - id_suffix: build
                    title_template: "{phase_label}: BUILD"
                    todo_template: "Build {phase_name}"
                    active_form: "Building"
            """,
        )
        library = load_subphase_patterns(project)

        assert [s.id_suffix for s in library.get_steps("impl-verify")] == ["build"]
        assert "impl-test-verify" in library.names

    def test_malformed_overlay_ignored(self, project, caplog):
        """Test a malformed project overlay is ignored with a warning."""
        write_file(get_project_patterns_path(project), "subphase_patterns:\n  broken:\n    steps: []\n")

        library = load_subphase_patterns(project)

        assert "broken" not in library.names
        assert "Ignoring project subphase patterns" in caplog.text


@pytest.mark.unit
class TestSettings:
    """Test runtime settings precedence."""

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        """Test MODEFLOW_* env vars win over the user YAML file."""
        write_file(tmp_path / "xdg" / "home" / "modeflow" / "config.yaml", "log_level: DEBUG\nsession_id: from-yaml\n")
        monkeypatch.setenv("MODEFLOW_SESSION_ID", "from-env")

        settings = ModeflowSettings()

        assert settings.session_id == "from-env"
        assert settings.log_level == "DEBUG"

    def test_local_yaml_overrides_user(self, tmp_path):
        """Test ./modeflow.yaml wins over the user config."""
        write_file(tmp_path / "xdg" / "home" / "modeflow" / "config.yaml", "log_level: DEBUG\n")
        write_file(tmp_path / "cwd" / "modeflow.yaml", "log_level: ERROR\n")

        assert ModeflowSettings().log_level == "ERROR"

    def test_tasks_dir(self, tmp_path):
        """Test the per-session task directory."""
        settings = ModeflowSettings(tasks_root=tmp_path)
        assert settings.tasks_dir("abc") == tmp_path / "abc"

    def test_deep_merge(self):
        """Test nested dicts merge recursively."""
        merged = deep_merge({"a": {"b": 1, "c": 2}}, {"a": {"c": 3}, "d": 4})
        assert merged == {"a": {"b": 1, "c": 3}, "d": 4}


@pytest.mark.unit
class TestConfigContext:
    """Test the explicit configuration context."""

    def test_resolve_mode_by_alias(self, ctx):
        """Test aliases resolve to canonical modes."""
        canonical, mode = ctx.resolve_mode("impl")

        assert canonical == "implementation"
        assert mode.template == "implementation.md"

    def test_unknown_mode(self, ctx):
        """Test unknown modes list what is available."""
        with pytest.raises(UnknownModeError, match="Available modes"):
            ctx.resolve_mode("deploy")

    def test_deprecated_mode(self, ctx):
        """Test deprecated modes name their replacement."""
        with pytest.raises(DeprecatedModeError) as exc_info:
            ctx.resolve_mode("old-planning")
        assert exc_info.value.redirect_to == "planning"

    def test_resolve_reference(self, ctx, caplog):
        """Test ${config.key} references resolve against the project config."""
        assert ctx.resolve_reference("${providers.default}") == "codex"
        assert ctx.resolve_reference("gemini") == "gemini"
        assert ctx.resolve_reference("${providers.nothing}") == "${providers.nothing}"
        assert "Unresolvable config reference" in caplog.text

    def test_spec_dir(self, ctx, project):
        """Test the spec directory comes from spec_path."""
        assert ctx.spec_dir == project / "planning" / "specs"

    def test_load_discovers_project_from_env(self, project, settings, monkeypatch):
        """Test MODEFLOW_PROJECT_DIR points the context at a project."""
        monkeypatch.setenv("MODEFLOW_PROJECT_DIR", str(project))
        ctx = ConfigContext.load(settings=settings)
        assert ctx.project_root == project.resolve()

    def test_load_outside_project(self, tmp_path, settings):
        """Test loading outside a project is a configuration error."""
        with pytest.raises(ConfigurationError):
            ConfigContext.load(settings=settings)


@pytest.mark.unit
class TestConfigCache:
    """Test the process-boundary cache."""

    def test_memoizes_until_cleared(self, project, settings):
        """Test contexts are reused until clear() is called."""
        cache = ConfigCache()

        first = cache.get(project, settings)
        second = cache.get(project, settings)
        assert first is second
        assert len(cache) == 1

        cache.clear()
        assert len(cache) == 0
        assert cache.get(project, settings) is not first

    def test_keyed_by_config_path(self, project, tmp_path, settings):
        """Test two projects get separate contexts."""
        other = tmp_path / "other"
        write_file(other / ".modeflow" / "modeflow.yaml", "modes: {}\n")
        cache = ConfigCache()

        assert cache.get(project, settings) is not cache.get(other, settings)
        assert len(cache) == 2
