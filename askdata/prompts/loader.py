"""Markdown prompt templates with YAML front matter, rendered through Jinja2."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml
from jinja2 import Environment, FileSystemLoader, TemplateNotFound

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"

_FRONT_MATTER_DELIMITER = "---"


@dataclass(frozen=True)
class PromptEntry:
    content: str
    metadata: dict[str, Any]


def split_front_matter(text: str) -> tuple[dict[str, Any], str]:
    """Return (metadata, body). Text without front matter has empty metadata."""
    if not text.startswith(_FRONT_MATTER_DELIMITER):
        return {}, text
    parts = text.split(_FRONT_MATTER_DELIMITER, 2)
    if len(parts) != 3:
        return {}, text
    return yaml.safe_load(parts[1]) or {}, parts[2].lstrip()


class FrontMatterLoader(FileSystemLoader):
    """Jinja2 loader that hands templates over without their front matter."""

    def get_source(self, environment: Environment, template: str):  # type: ignore[override]
        source, filename, uptodate = super().get_source(environment, template)
        return split_front_matter(source)[1], filename, uptodate


class PromptLoader:
    """Loads templates from the package's templates/ directory (or another root)."""

    def __init__(self, prompts_dir: str | Path | None = None) -> None:
        self.prompts_dir = Path(prompts_dir) if prompts_dir else TEMPLATES_DIR
        self.cache: dict[str, PromptEntry] = {}
        self._env = Environment(
            loader=FrontMatterLoader(str(self.prompts_dir)),
            keep_trailing_newline=False,
        )

    def load(self, prompt_path: str) -> str:
        """
        Args:
            prompt_path: Path relative to the templates root, e.g. "agents/classifier.md"

        Raises:
            FileNotFoundError: If no such template exists
        """
        return self._entry(prompt_path).content

    def render(self, prompt_path: str, **variables: Any) -> str:
        try:
            template = self._env.get_template(prompt_path)
        except TemplateNotFound as exc:
            raise FileNotFoundError(f"Prompt not found: {prompt_path}") from exc
        return template.render(**variables)

    def get_metadata(self, prompt_path: str) -> dict[str, Any]:
        return self._entry(prompt_path).metadata

    def _entry(self, prompt_path: str) -> PromptEntry:
        entry = self.cache.get(prompt_path)
        if entry is None:
            file_path = self.prompts_dir / prompt_path
            if not file_path.is_file():
                raise FileNotFoundError(f"Prompt not found: {file_path}")
            metadata, content = split_front_matter(file_path.read_text(encoding="utf-8"))
            entry = PromptEntry(content=content, metadata=metadata)
            self.cache[prompt_path] = entry
        return entry
