"""
Template and spec document parsing.
"""

from .frontmatter import parse_frontmatter, read_frontmatter, split_frontmatter
from .spec import SpecReport, check_spec_phases, find_spec_file, load_spec, validate_spec_file
from .template import load_template, phase_titles, resolve_template_path

__all__ = [
    "parse_frontmatter",
    "read_frontmatter",
    "split_frontmatter",
    "SpecReport",
    "check_spec_phases",
    "find_spec_file",
    "load_spec",
    "validate_spec_file",
    "load_template",
    "phase_titles",
    "resolve_template_path",
]
