"""
Tests for template phase validation.
"""

import pytest

from modeflow.errors import PhaseValidationError
from modeflow.validation import (
    PhaseDefinition,
    format_validation_errors,
    phase_number,
    validate_phases,
    validate_phases_or_raise,
)


def simple_phases():
    return [
        {"id": "p0", "name": "Setup", "task_config": {"title": "Setup"}},
        {"id": "p1", "name": "Build", "task_config": {"title": "Build", "depends_on": ["p0"]}},
        {"id": "p2", "name": "Implement", "container": True, "subphase_pattern": "impl-test-verify"},
        {"id": "p2-review", "name": "Review", "task_config": {"title": "Review"}},
        {"id": "p3.1", "name": "Ship", "task_config": {"title": "Ship", "labels": ["release"]}},
    ]


@pytest.mark.unit
class TestPhaseIds:
    """Test phase id conventions."""

    @pytest.mark.parametrize("phase_id", ["p0", "p12", "p2.1", "p3-review", "p1-code-review"])
    def test_valid_ids(self, phase_id):
        """Test accepted id shapes."""
        phase = PhaseDefinition(id=phase_id, name="Phase")
        assert phase.id == phase_id

    @pytest.mark.parametrize("phase_id", ["P1", "phase1", "p", "p1.a", "p1-", "p1-Review"])
    def test_invalid_ids(self, phase_id):
        """Test rejected id shapes."""
        result = validate_phases([{"id": phase_id, "name": "Phase"}])
        assert not result.valid
        assert result.errors[0].field == "id"

    def test_phase_number(self):
        """Test the numeric part of ids."""
        assert phase_number("p2") == 2
        assert phase_number("p2.1") == 2
        assert phase_number("p10-review") == 10
        assert phase_number("x") is None


@pytest.mark.unit
class TestValidatePhases:
    """Test structural and semantic validation."""

    def test_valid_phases(self):
        """Test a valid list yields typed phases that round-trip."""
        raw = simple_phases()
        result = validate_phases(raw, "templates/impl.md")

        assert result.valid
        assert [p.id for p in result.phases] == ["p0", "p1", "p2", "p2-review", "p3.1"]
        assert result.phases[1].depends_on == ["p0"]
        assert result.phases[2].container is True

        again = validate_phases(
            [p.model_dump(exclude_defaults=True) for p in result.phases]
        )
        assert again.valid
        assert again.phases == result.phases

    def test_inline_subphase_pattern(self):
        """Test an inline pattern parses into steps."""
        result = validate_phases(
            [
                {
                    "id": "p1",
                    "name": "Work",
                    "container": True,
                    "subphase_pattern": [
                        {
                            "id_suffix": "impl",
                            "title_template": "{phase_label}: IMPL",
                            "todo_template": "Implement",
                            "active_form": "Implementing",
                        }
                    ],
                }
            ]
        )

        assert result.valid
        assert result.phases[0].subphase_pattern[0].id_suffix == "impl"

    def test_dangling_dependency(self):
        """Test a depends_on naming a missing phase is rejected with phase and field."""
        raw = simple_phases()
        raw[1]["task_config"]["depends_on"] = ["p0", "p9"]

        result = validate_phases(raw, "impl.md")

        assert not result.valid
        assert len(result.errors) == 1
        issue = result.errors[0]
        assert issue.phase_id == "p1"
        assert issue.field == "depends_on"
        assert issue.template_path == "impl.md"
        assert "p9" in issue.message

    def test_second_container_rejected(self):
        """Test a second container is rejected even when everything else is valid."""
        raw = simple_phases()
        raw[3]["container"] = True

        result = validate_phases(raw)

        assert not result.valid
        assert [issue.field for issue in result.errors] == ["container"]
        assert "p2, p2-review" in result.errors[0].message

    def test_duplicate_ids(self):
        """Test duplicate ids are reported."""
        raw = simple_phases()
        raw[4]["id"] = "p0"

        result = validate_phases(raw)

        assert not result.valid
        assert any(issue.message == "Duplicate phase ID: p0" for issue in result.errors)

    def test_all_errors_collected(self):
        """Test problems in several phases are reported together."""
        raw = [
            {"id": "p0"},
            {"id": "bad", "name": "Bad"},
            {"id": "p1", "name": "One", "task_config": {"title": "One", "depends_on": ["p7"]}},
        ]

        result = validate_phases(raw)

        fields = [issue.field for issue in result.errors]
        assert "name" in fields
        assert "id" in fields
        assert "depends_on" in fields
        assert result.phases == []

    def test_never_raises_for_bad_data(self):
        """Test non-mapping phases become errors, not exceptions."""
        result = validate_phases(["p0", 42])
        assert not result.valid
        assert len(result.errors) == 2


@pytest.mark.unit
class TestFormatting:
    """Test human-readable rendering."""

    def test_valid(self):
        """Test the message for a valid result."""
        assert format_validation_errors(validate_phases(simple_phases())) == "All phases valid"

    def test_invalid(self):
        """Test every issue is listed with its location."""
        raw = simple_phases()
        raw[1]["task_config"]["depends_on"] = ["p9"]

        text = format_validation_errors(validate_phases(raw, "impl.md"))

        assert text.startswith("Phase validation failed:")
        assert "  - Phase p1 depends on non-existent phase: p9" in text
        assert "    (phase: p1, field: depends_on, file: impl.md)" in text

    def test_or_raise(self):
        """Test the raising wrapper carries the full result."""
        raw = simple_phases()
        raw[0]["container"] = True

        with pytest.raises(PhaseValidationError) as exc_info:
            validate_phases_or_raise(raw)

        assert not exc_info.value.result.valid
        assert "Multiple container phases" in str(exc_info.value)

    def test_or_raise_returns_phases(self):
        """Test the raising wrapper returns typed phases when valid."""
        phases = validate_phases_or_raise(simple_phases())
        assert len(phases) == 5
