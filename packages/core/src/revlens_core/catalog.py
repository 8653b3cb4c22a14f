"""Guideline and analysis-dimension catalogs.

The text blocks are Markdown files shipped inside the package
(``guidelines/<id>.md`` and ``dimensions/<id>.md``), read once at import and
exposed as read-only mappings. Catalog order is the order of the id tuples
below; the directive composer relies on it for deterministic output.
"""

from __future__ import annotations

from pathlib import Path
from types import MappingProxyType

_CATALOG_DIR = Path(__file__).parent

GUIDELINE_IDS = ("pep8", "googleStyle", "eslint")
DIMENSION_IDS = ("linting", "security", "architecture", "testing", "performance", "documentation")


def _load_blocks(subdir: str, ids: tuple[str, ...]) -> MappingProxyType:
    blocks = {}
    for block_id in ids:
        path = _CATALOG_DIR / subdir / f"{block_id}.md"
        blocks[block_id] = "\n" + path.read_text(encoding="utf-8")
    return MappingProxyType(blocks)


GUIDELINES = _load_blocks("guidelines", GUIDELINE_IDS)
DIMENSIONS = _load_blocks("dimensions", DIMENSION_IDS)

LANGUAGES = MappingProxyType(
    {
        "ts": "TypeScript",
        "tsx": "TypeScript React",
        "js": "JavaScript",
        "jsx": "JavaScript React",
        "py": "Python",
        "java": "Java",
        "cpp": "C++",
        "c": "C",
        "go": "Go",
        "rs": "Rust",
        "rb": "Ruby",
        "php": "PHP",
    }
)


def language_for(file_path: str) -> str:
    """Return the language name for a path's extension, or "Unknown"."""
    name = file_path.rsplit("/", 1)[-1]
    if "." not in name:
        return "Unknown"
    return LANGUAGES.get(name.rsplit(".", 1)[-1].lower(), "Unknown")
