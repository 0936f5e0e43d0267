"""
Template documents.
"""

from pathlib import Path
from typing import List
from pydantic import ValidationError

from .frontmatter import read_frontmatter
from ..errors import DocumentParseError, TemplateNotFoundError
from ..session.lookup import get_templates_dir
from ..validation.models import TemplateDocument


def resolve_template_path(template: str, project_root: Path) -> Path:
    """
    Resolve a template reference to an existing file.

    Lookup order:
    1. Absolute path
    2. ``<project>/.modeflow/templates/<template>``
    3. ``<project>/<template>``

    Raises:
        TemplateNotFoundError: No candidate exists
    """
    reference = Path(template)
    if reference.is_absolute():
        candidates = [reference]
    else:
        candidates = [get_templates_dir(project_root) / reference, project_root / reference]

    for candidate in candidates:
        if candidate.is_file():
            return candidate

    searched = ", ".join(str(c) for c in candidates)
    raise TemplateNotFoundError(f"Template not found: {template} (searched: {searched})")


def load_template(path: Path) -> TemplateDocument:
    """
    Parse a template document.

    Raises:
        DocumentParseError: Metadata block is malformed
    """
    metadata, body = read_frontmatter(path)
    if metadata.get("phases") is None:
        metadata.pop("phases", None)
    try:
        return TemplateDocument.model_validate({**metadata, "body": body, "path": path})
    except ValidationError as e:
        raise DocumentParseError(f"Invalid template metadata in {path}: {e}") from e


def phase_titles(template: TemplateDocument) -> List[dict]:
    """``{id, title}`` for every phase carrying a ``task_config.title``."""
    titles = []
    for raw in template.phases:
        task_config = raw.get("task_config") if isinstance(raw, dict) else None
        if isinstance(task_config, dict) and task_config.get("title"):
            titles.append({"id": str(raw.get("id")), "title": task_config["title"]})
    return titles

