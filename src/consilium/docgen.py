"""Markdown documentation generator driven by the gathered project context."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from .config import ProjectContext
from .errors import ConsiliumError, PersistenceError
from .models.llm_client import CompletionClient
from .models.normalizer import extract_markdown
from .prompts import SUBSECTION_FAILURE_NOTE, render_subsection_prompt
from .structured import Message
from .utils.slug import snake_case

__all__ = ["DOCS_DIRNAME", "ProgressCallback", "SECTIONS", "Section", "SectionGenerator", "placeholder"]

LOGGER = logging.getLogger(__name__)

DOCS_DIRNAME = "docs"


@dataclass(frozen=True, slots=True)
class Section:
    """One output document and the subsections it is assembled from."""

    key: str
    title: str
    subsections: Tuple[str, ...]

    @property
    def filename(self) -> str:
        return f"{self.key}.md"


SECTIONS: Tuple[Section, ...] = (
    Section("navigation", "Project Navigation", ("Overview", "Directory Structure", "Quick Links")),
    Section(
        "infrastructure",
        "Infrastructure Overview",
        ("Cloud Provider", "Deployment Model", "Database", "Architecture Diagram", "Service Dependencies"),
    ),
    Section(
        "architecture",
        "System Architecture",
        ("Components", "Data Flow", "Integrations", "Scalability", "Security"),
    ),
    Section(
        "api",
        "API Documentation",
        ("Endpoints", "Authentication", "Error Handling", "Examples", "Schemas"),
    ),
    Section(
        "security",
        "Security Documentation",
        ("Authentication", "Authorization", "Data Protection", "Compliance", "Best Practices"),
    ),
    Section(
        "operations",
        "Operations Guide",
        ("Deployment", "Monitoring", "Scaling", "Backup", "Disaster Recovery"),
    ),
    Section("cost", "Cost Analysis", ("Components", "Scaling Factors", "Optimization", "Breakdown")),
)

ProgressCallback = Callable[[int, int, str], None]


def placeholder(subsection: str) -> str:
    return f"## {subsection}\n\n{SUBSECTION_FAILURE_NOTE}"


class SectionGenerator:
    """Write one markdown file per catalog section under ``<output_dir>/docs``.

    Subsections are requested one at a time so that a provider failure only
    costs the affected subsection, which is replaced by a placeholder. Failing
    to create the directory or write a file aborts the run.
    """

    def __init__(
        self,
        client: CompletionClient,
        output_dir: Path,
        context: ProjectContext,
        *,
        catalog: Sequence[Section] = SECTIONS,
    ) -> None:
        self._client = client
        self.output_dir = Path(output_dir)
        self._infrastructure = context.model_dump(mode="json")["infrastructure"]
        self._catalog = tuple(catalog)
        self.failed: List[Tuple[str, str]] = []

    @property
    def docs_dir(self) -> Path:
        return self.output_dir / DOCS_DIRNAME

    @property
    def sections(self) -> Tuple[Section, ...]:
        return self._catalog

    def generate(self, progress: Optional[ProgressCallback] = None) -> List[Path]:
        """Generate every section in catalog order and return the written paths.

        ``progress`` is called as ``progress(index, total, label)`` after each
        section is written, with a 1-based ``index``.
        """
        try:
            self.docs_dir.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            raise PersistenceError(
                f"Unable to create documentation directory {self.docs_dir}: {error}",
                path=self.docs_dir,
            ) from error

        written: List[Path] = []
        total = len(self._catalog)
        for index, section in enumerate(self._catalog, start=1):
            written.append(self.generate_section(section))
            if progress is not None:
                progress(index, total, section.title)
        return written

    def generate_section(self, section: Section) -> Path:
        parts = [f"# {section.title}\n\n"]
        for subsection in section.subsections:
            parts.append(self._generate_subsection(section, subsection))
            parts.append("\n\n")

        path = self.docs_dir / section.filename
        try:
            path.write_text("".join(parts), encoding="utf-8")
        except OSError as error:
            raise PersistenceError(f"Unable to write {path}: {error}", path=path) from error
        LOGGER.info("Generated %s", path)
        return path

    def subsection_context(self, section: Section, subsection: str) -> Dict[str, Any]:
        return {
            "section": section.key,
            "subsection": subsection,
            "infrastructure": self._infrastructure,
            "requirements": {snake_case(subsection): True},
        }

    def _generate_subsection(self, section: Section, subsection: str) -> str:
        prompt = render_subsection_prompt(section.key, subsection, self.subsection_context(section, subsection))
        try:
            raw = self._client.complete_raw([Message("system", prompt)])
        except ConsiliumError as error:
            LOGGER.error("Error generating %s subsection %s: %s", section.key, subsection, error)
            self.failed.append((section.key, subsection))
            return placeholder(subsection)
        return extract_markdown(raw)
