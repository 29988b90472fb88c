from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Set, Tuple

from coursecraft.errors import CourseCraftError
from coursecraft.ingest.toc_builder import TOCBuilder
from coursecraft.models.configs import Settings
from coursecraft.models.node import ContentNode, NodeType
from coursecraft.models.section import ParsedNode
from coursecraft.store.sqlite import ContentStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ImportResult:
    """Summarizes what an import run wrote and which files failed."""

    documents_processed: int = 0
    nodes_written: int = 0
    components_written: int = 0
    imported: List[Path] = field(default_factory=list)
    failures: List[Tuple[Path, str]] = field(default_factory=list)

    def merge(self, other: "ImportResult") -> None:
        self.documents_processed += other.documents_processed
        self.nodes_written += other.nodes_written
        self.components_written += other.components_written
        self.imported.extend(other.imported)
        self.failures.extend(other.failures)


class CourseImporter:
    """Parses course Markdown files and persists every node through the store."""

    def __init__(self, parser: TOCBuilder, store: ContentStore, settings: Optional[Settings] = None) -> None:
        self.parser = parser
        self.store = store
        self.settings = settings

    def import_file(self, path: Path) -> ImportResult:
        """Import one file as a single unit of work; errors propagate."""

        root = self.parser.build(path)
        result = ImportResult(documents_processed=1)
        self.store.initialize()
        with self.store.unit_of_work():
            course = self.store.find_root(root.title)
            if course is None:
                course = self.store.create_node(
                    ContentNode(
                        node_type=NodeType.COURSE,
                        title=root.title,
                        display_order=root.display_order,
                        node_number=root.node_number,
                        metadata={"source": path.name},
                    ),
                    root.content,
                )
                result.nodes_written += 1
            else:
                logger.info("Reusing course '%s' (id=%s) for %s", course.title, course.id, path.name)
            assert course.id is not None
            claimed: Set[int] = set()
            for child in root.children:
                self._persist(child, course.id, path, result, claimed)
        result.imported.append(path)
        logger.info(
            "Imported %s: %d nodes, %d components",
            path.name,
            result.nodes_written,
            result.components_written,
        )
        return result

    def import_many(self, paths: Iterable[Path]) -> ImportResult:
        """Import each file independently; one bad file does not stop the rest."""

        summary = ImportResult()
        for path in paths:
            try:
                summary.merge(self.import_file(path))
            except (CourseCraftError, OSError, UnicodeDecodeError, sqlite3.Error) as exc:
                logger.error("Failed to import %s: %s", path, exc)
                summary.documents_processed += 1
                summary.failures.append((path, str(exc)))
        return summary

    def import_directory(self, folder: Optional[Path] = None, pattern: Optional[str] = None) -> ImportResult:
        settings = self.settings or Settings()
        if not settings.import_enabled:
            logger.info("Import disabled by configuration; skipping")
            return ImportResult()
        root = folder or settings.import_folder
        if not root.is_dir():
            raise FileNotFoundError(f"Import folder not found: {root}")
        paths = sorted(path for path in root.glob(pattern or settings.import_pattern) if path.is_file())
        logger.info("Importing %d file(s) from %s", len(paths), root)
        return self.import_many(paths)

    def _persist(
        self,
        parsed: ParsedNode,
        parent_id: int,
        path: Path,
        result: ImportResult,
        claimed: Set[int],
    ) -> None:
        node = self._matching_child(parsed, parent_id, claimed)
        if node is None:
            node = self.store.create_node(
                ContentNode(
                    node_type=parsed.node_type,
                    title=parsed.title,
                    parent_id=parent_id,
                    node_number=parsed.node_number,
                    display_order=parsed.display_order,
                    metadata={"source": path.name},
                ),
                parsed.content,
            )
            result.nodes_written += 1
        elif self.store.latest_content(node.id) != parsed.content:
            node = self.store.update_node(node.id, parsed.content)
            result.nodes_written += 1
        assert node.id is not None
        claimed.add(node.id)

        for component in parsed.components:
            stored = self.store.get_component(node.id, component.component_type)
            if stored is None:
                self.store.create_component(node.id, component.component_type, component.content)
            elif stored.content != component.content:
                assert stored.id is not None
                self.store.update_component(stored.id, component.content)
            else:
                continue
            result.components_written += 1
        for child in parsed.children:
            self._persist(child, node.id, path, result, claimed)

    def _matching_child(self, parsed: ParsedNode, parent_id: int, claimed: Set[int]) -> Optional[ContentNode]:
        """An unclaimed stored child with the same type and title; slides must also share their sequence."""

        for child in self.store.children_of(parent_id):
            if child.id in claimed or child.node_type is not parsed.node_type or child.title != parsed.title:
                continue
            if parsed.node_type is NodeType.SLIDE and child.display_order != parsed.display_order:
                continue
            return child
        return None


__all__ = ["CourseImporter", "ImportResult"]
