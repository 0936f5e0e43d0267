"""
Leading metadata blocks of markdown documents.

A document starts with a YAML block fenced by ``---`` lines::

    ---
    id: implementation
    phases: [...]
    ---
    # Prose for the agent
"""

import re
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import yaml

from ..errors import DocumentParseError


FRONTMATTER_PATTERN = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)


def split_frontmatter(content: str) -> Tuple[Optional[str], str]:
    """
    Split a document into its metadata block and body.

    Returns:
        (metadata text or None when absent, remaining body)
    """
    match = FRONTMATTER_PATTERN.match(content)
    if not match:
        return None, content
    return match.group(1), content[match.end():]


def parse_frontmatter(content: str, source: Optional[Path] = None) -> Tuple[Dict[str, Any], str]:
    """
    Parse the metadata block of a document.

    Args:
        content: Full document text
        source: File the text came from, for error messages

    Returns:
        (metadata mapping, body). A document without a block yields ``{}``.

    Raises:
        DocumentParseError: Block is not valid YAML or not a mapping
    """
    block, body = split_frontmatter(content)
    if block is None:
        return {}, body

    where = f" in {source}" if source else ""
    try:
        data = yaml.safe_load(block)
    except yaml.YAMLError as e:
        raise DocumentParseError(f"Invalid YAML metadata{where}: {e}") from e

    if data is None:
        return {}, body
    if not isinstance(data, dict):
        raise DocumentParseError(f"Metadata block{where} must be a mapping")
    return data, body


def read_frontmatter(path: Path) -> Tuple[Dict[str, Any], str]:
    """Read a file and parse its metadata block."""
    content = Path(path).read_text(encoding="utf-8")
    return parse_frontmatter(content, source=path)
