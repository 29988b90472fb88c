from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from coursecraft.errors import InvalidNodeError, NodeNotFound, NotFoundError, ParentNotFound
from coursecraft.models.node import (
    ComponentType,
    ContentNode,
    ContentVersion,
    NodeType,
    SlideComponent,
)

logger = logging.getLogger(__name__)

COMPONENT_ORDER_STEP = 10


@dataclass(slots=True)
class SQLiteContentConfig:
    """Configuration for the SQLite-backed hierarchy and version store."""

    db_path: Path
    enable_wal: bool = True


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class ContentStore:
    """Owns course nodes, their append-only versions and slide components.

    Every mutating call runs inside :meth:`unit_of_work`; calls made inside an
    outer unit of work join it and commit (or roll back) with it.
    """

    def __init__(self, config: SQLiteContentConfig) -> None:
        self.config = config
        self._conn: Optional[sqlite3.Connection] = None
        self._depth = 0

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            db_path = self.config.db_path
            if str(db_path) != ":memory:":
                Path(db_path).parent.mkdir(parents=True, exist_ok=True)
            # autocommit mode; transactions are driven explicitly by unit_of_work
            self._conn = sqlite3.connect(str(db_path), isolation_level=None)
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys=ON;")
            if self.config.enable_wal:
                self._conn.execute("PRAGMA journal_mode=WAL;")
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            self._depth = 0

    def initialize(self) -> None:
        """Create tables and indices if they do not exist."""

        self.conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS nodes (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                parent_id INTEGER REFERENCES nodes(id) ON DELETE CASCADE,
                node_type TEXT NOT NULL,
                title TEXT NOT NULL,
                description TEXT,
                node_number TEXT,
                display_order INTEGER NOT NULL DEFAULT 0,
                path TEXT NOT NULL UNIQUE,
                metadata TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_nodes_parent
                ON nodes (parent_id, display_order);

            CREATE TABLE IF NOT EXISTS versions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                node_id INTEGER NOT NULL REFERENCES nodes(id) ON DELETE CASCADE,
                content TEXT NOT NULL,
                format TEXT NOT NULL DEFAULT 'MARKDOWN',
                version_number INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE (node_id, version_number)
            );

            CREATE TABLE IF NOT EXISTS components (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                slide_node_id INTEGER NOT NULL REFERENCES nodes(id) ON DELETE CASCADE,
                component_type TEXT NOT NULL,
                content TEXT NOT NULL,
                display_order INTEGER NOT NULL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_components_slide
                ON components (slide_node_id, display_order);
            """
        )

    # ------------------------------------------------------------------ unit of work
    @contextmanager
    def unit_of_work(self) -> Iterator["ContentStore"]:
        """All-or-nothing scope; nested scopes become savepoints."""

        conn = self.conn
        depth = self._depth
        savepoint = f"uow_{depth}"
        conn.execute("BEGIN IMMEDIATE" if depth == 0 else f"SAVEPOINT {savepoint}")
        self._depth += 1
        try:
            yield self
        except BaseException:
            self._depth = depth
            if depth == 0:
                conn.execute("ROLLBACK")
            else:
                conn.execute(f"ROLLBACK TO {savepoint}")
                conn.execute(f"RELEASE {savepoint}")
            raise
        else:
            self._depth = depth
            conn.execute("COMMIT" if depth == 0 else f"RELEASE {savepoint}")

    # ------------------------------------------------------------------ nodes
    def create_node(self, node: ContentNode, content: str = "") -> ContentNode:
        """Persist ``node`` under its parent and write version 1 when ``content`` is non-blank."""

        with self.unit_of_work():
            parent: Optional[ContentNode] = None
            if node.parent_id is not None:
                parent = self.get_node(node.parent_id)
                if parent is None:
                    raise ParentNotFound(node.parent_id)
                _check_parent(parent, node)

            segment_prefix = f"{node.node_type.value}-"
            ordinal = self._next_ordinal(node.parent_id, segment_prefix)
            segment = f"{segment_prefix}{ordinal}"
            path = f"{parent.path}/{segment}" if parent is not None else segment

            now = _now()
            cursor = self.conn.execute(
                """
                INSERT INTO nodes(parent_id, node_type, title, description, node_number,
                                  display_order, path, metadata, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?);
                """,
                (
                    node.parent_id,
                    node.node_type.value,
                    node.title,
                    node.description,
                    node.node_number,
                    node.display_order,
                    path,
                    json.dumps(node.metadata or {}),
                    now,
                    now,
                ),
            )
            node_id = int(cursor.lastrowid)
            if content and content.strip():
                self._insert_version(node_id, content, 1)
            logger.debug("Created %s '%s' at %s", node.node_type.value, node.title, path)
            return self.require_node(node_id)

    def update_node(self, node_id: int, content: str) -> ContentNode:
        """Append version ``max + 1`` with ``content`` and bump ``updated_at``."""

        with self.unit_of_work():
            self.require_node(node_id)
            self._insert_version(node_id, content or "", self._max_version(node_id) + 1)
            self.conn.execute("UPDATE nodes SET updated_at = ? WHERE id = ?;", (_now(), node_id))
            return self.require_node(node_id)

    def update_metadata(
        self,
        node_id: int,
        *,
        title: Optional[str] = None,
        description: Optional[str] = None,
        node_number: Optional[str] = None,
        display_order: Optional[int] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ContentNode:
        """Change the descriptive fields of a node; type, parent and path never change."""

        assignments: List[str] = []
        params: List[object] = []
        for column, value in (
            ("title", title),
            ("description", description),
            ("node_number", node_number),
            ("display_order", display_order),
        ):
            if value is not None:
                assignments.append(f"{column} = ?")
                params.append(value)
        if metadata is not None:
            assignments.append("metadata = ?")
            params.append(json.dumps(metadata))

        with self.unit_of_work():
            self.require_node(node_id)
            if assignments:
                assignments.append("updated_at = ?")
                params.append(_now())
                self.conn.execute(
                    f"UPDATE nodes SET {', '.join(assignments)} WHERE id = ?;",
                    (*params, node_id),
                )
            return self.require_node(node_id)

    def delete_node(self, node_id: int) -> int:
        """Delete a node with its whole subtree, versions and components; returns nodes removed."""

        with self.unit_of_work():
            self.require_node(node_id)
            ids = [node_id] + [node.id for node in self.descendants(node_id)]
            placeholders = ",".join("?" for _ in ids)
            self.conn.execute(f"DELETE FROM components WHERE slide_node_id IN ({placeholders});", ids)
            self.conn.execute(f"DELETE FROM versions WHERE node_id IN ({placeholders});", ids)
            self.conn.execute(f"DELETE FROM nodes WHERE id IN ({placeholders});", ids)
            logger.debug("Deleted node %s and %d descendants", node_id, len(ids) - 1)
            return len(ids)

    def get_node(self, node_id: int) -> Optional[ContentNode]:
        row = self.conn.execute("SELECT * FROM nodes WHERE id = ?;", (node_id,)).fetchone()
        return _row_to_node(row) if row else None

    def require_node(self, node_id: int) -> ContentNode:
        node = self.get_node(node_id)
        if node is None:
            raise NodeNotFound(node_id)
        return node

    def fetch_by_path(self, path: str) -> Optional[ContentNode]:
        row = self.conn.execute("SELECT * FROM nodes WHERE path = ?;", (path,)).fetchone()
        return _row_to_node(row) if row else None

    def children_of(self, node_id: int) -> List[ContentNode]:
        rows = self.conn.execute(
            "SELECT * FROM nodes WHERE parent_id = ? ORDER BY display_order, id;",
            (node_id,),
        ).fetchall()
        return [_row_to_node(row) for row in rows]

    def roots(self) -> List[ContentNode]:
        rows = self.conn.execute(
            "SELECT * FROM nodes WHERE parent_id IS NULL ORDER BY display_order, id;"
        ).fetchall()
        return [_row_to_node(row) for row in rows]

    def find_root(self, title: str) -> Optional[ContentNode]:
        row = self.conn.execute(
            "SELECT * FROM nodes WHERE parent_id IS NULL AND node_type = ? AND title = ? ORDER BY id LIMIT 1;",
            (NodeType.COURSE.value, title),
        ).fetchone()
        return _row_to_node(row) if row else None

    def ancestors(self, node_id: int) -> List[ContentNode]:
        """Ancestors of a node, root first, excluding the node itself."""

        chain: List[ContentNode] = []
        current = self.require_node(node_id)
        while current.parent_id is not None:
            current = self.require_node(current.parent_id)
            chain.append(current)
        chain.reverse()
        return chain

    def descendants(self, node_id: int) -> List[ContentNode]:
        rows = self.conn.execute(
            """
            WITH RECURSIVE subtree(id) AS (
                SELECT id FROM nodes WHERE parent_id = ?
                UNION ALL
                SELECT n.id FROM nodes n JOIN subtree s ON n.parent_id = s.id
            )
            SELECT n.* FROM nodes n JOIN subtree s ON n.id = s.id
            ORDER BY n.path;
            """,
            (node_id,),
        ).fetchall()
        return [_row_to_node(row) for row in rows]

    def path_prefix_search(self, prefix: str) -> List[ContentNode]:
        rows = self.conn.execute(
            "SELECT * FROM nodes WHERE substr(path, 1, ?) = ? ORDER BY path;",
            (len(prefix), prefix),
        ).fetchall()
        return [_row_to_node(row) for row in rows]

    def iter_nodes(self, node_type: Optional[NodeType] = None) -> List[ContentNode]:
        if node_type is None:
            rows = self.conn.execute("SELECT * FROM nodes ORDER BY path;").fetchall()
        else:
            rows = self.conn.execute(
                "SELECT * FROM nodes WHERE node_type = ? ORDER BY path;",
                (node_type.value,),
            ).fetchall()
        return [_row_to_node(row) for row in rows]

    # ------------------------------------------------------------------ versions
    def latest_version(self, node_id: int) -> Optional[ContentVersion]:
        row = self.conn.execute(
            "SELECT * FROM versions WHERE node_id = ? ORDER BY version_number DESC LIMIT 1;",
            (node_id,),
        ).fetchone()
        return _row_to_version(row) if row else None

    def latest_content(self, node_id: int) -> str:
        version = self.latest_version(node_id)
        return version.content if version else ""

    def list_versions(self, node_id: int) -> List[ContentVersion]:
        rows = self.conn.execute(
            "SELECT * FROM versions WHERE node_id = ? ORDER BY version_number;",
            (node_id,),
        ).fetchall()
        return [_row_to_version(row) for row in rows]

    # ------------------------------------------------------------------ components
    def components_of(self, slide_id: int) -> List[SlideComponent]:
        rows = self.conn.execute(
            "SELECT * FROM components WHERE slide_node_id = ? ORDER BY display_order, id;",
            (slide_id,),
        ).fetchall()
        return [_row_to_component(row) for row in rows]

    def get_component(self, slide_id: int, component_type: ComponentType) -> Optional[SlideComponent]:
        row = self.conn.execute(
            """
            SELECT * FROM components
            WHERE slide_node_id = ? AND component_type = ?
            ORDER BY display_order, id
            LIMIT 1;
            """,
            (slide_id, component_type.value),
        ).fetchone()
        return _row_to_component(row) if row else None

    def create_component(self, slide_id: int, component_type: ComponentType, content: str) -> SlideComponent:
        with self.unit_of_work():
            slide = self.require_node(slide_id)
            if slide.node_type is not NodeType.SLIDE:
                raise InvalidNodeError(f"Node {slide_id} is a {slide.node_type.value}, not a SLIDE")
            row = self.conn.execute(
                "SELECT COALESCE(MAX(display_order), 0) AS max_order FROM components WHERE slide_node_id = ?;",
                (slide_id,),
            ).fetchone()
            now = _now()
            cursor = self.conn.execute(
                """
                INSERT INTO components(slide_node_id, component_type, content, display_order, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                (
                    slide_id,
                    component_type.value,
                    content or "",
                    int(row["max_order"]) + COMPONENT_ORDER_STEP,
                    now,
                    now,
                ),
            )
            return self._require_component(int(cursor.lastrowid))

    def get_or_create_component(
        self,
        slide_id: int,
        component_type: ComponentType,
        default_content: str = "",
    ) -> SlideComponent:
        """Return the slide's component of this type, creating it with ``default_content`` if absent."""

        with self.unit_of_work():
            existing = self.get_component(slide_id, component_type)
            if existing is not None:
                return existing
            return self.create_component(slide_id, component_type, default_content)

    def update_component(self, component_id: int, content: str) -> SlideComponent:
        with self.unit_of_work():
            self._require_component(component_id)
            self.conn.execute(
                "UPDATE components SET content = ?, updated_at = ? WHERE id = ?;",
                (content or "", _now(), component_id),
            )
            return self._require_component(component_id)

    # ------------------------------------------------------------------ helpers
    def _require_component(self, component_id: int) -> SlideComponent:
        row = self.conn.execute("SELECT * FROM components WHERE id = ?;", (component_id,)).fetchone()
        if row is None:
            raise NotFoundError(component_id, f"Component not found: {component_id}")
        return _row_to_component(row)

    def _max_version(self, node_id: int) -> int:
        row = self.conn.execute(
            "SELECT COALESCE(MAX(version_number), 0) AS max_version FROM versions WHERE node_id = ?;",
            (node_id,),
        ).fetchone()
        return int(row["max_version"])

    def _insert_version(self, node_id: int, content: str, version_number: int) -> None:
        self.conn.execute(
            """
            INSERT INTO versions(node_id, content, format, version_number, created_at)
            VALUES (?, ?, 'MARKDOWN', ?, ?);
            """,
            (node_id, content, version_number, _now()),
        )

    def _next_ordinal(self, parent_id: Optional[int], segment_prefix: str) -> int:
        rows = self.conn.execute(
            "SELECT path FROM nodes WHERE parent_id IS ? AND node_type = ?;",
            (parent_id, segment_prefix[:-1]),
        ).fetchall()
        highest = 0
        for row in rows:
            segment = row["path"].rsplit("/", 1)[-1]
            suffix = segment[len(segment_prefix):]
            if segment.startswith(segment_prefix) and suffix.isdigit():
                highest = max(highest, int(suffix))
        return highest + 1


def _check_parent(parent: ContentNode, child: ContentNode) -> None:
    if parent.node_type is NodeType.SLIDE:
        raise InvalidNodeError(f"SLIDE '{parent.title}' cannot hold child nodes")
    if child.node_type is NodeType.SLIDE:
        return
    parent_rank = parent.node_type.heading_rank
    child_rank = child.node_type.heading_rank
    # slides aside, a child sits exactly one heading rank below its parent
    if parent_rank is not None and child_rank is not None and child_rank != parent_rank + 1:
        raise InvalidNodeError(
            f"{child.node_type.value} '{child.title}' cannot be placed under {parent.node_type.value} '{parent.title}'"
        )


def _row_to_node(row: sqlite3.Row) -> ContentNode:
    return ContentNode(
        id=row["id"],
        node_type=NodeType(row["node_type"]),
        parent_id=row["parent_id"],
        title=row["title"],
        description=row["description"],
        node_number=row["node_number"],
        display_order=row["display_order"],
        path=row["path"],
        metadata=json.loads(row["metadata"]) if row["metadata"] else {},
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
    )


def _row_to_version(row: sqlite3.Row) -> ContentVersion:
    return ContentVersion(
        id=row["id"],
        node_id=row["node_id"],
        content=row["content"],
        format=row["format"],
        version_number=row["version_number"],
        created_at=_parse_ts(row["created_at"]),
    )


def _row_to_component(row: sqlite3.Row) -> SlideComponent:
    return SlideComponent(
        id=row["id"],
        slide_node_id=row["slide_node_id"],
        component_type=ComponentType(row["component_type"]),
        content=row["content"],
        display_order=row["display_order"],
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
    )


__all__ = ["COMPONENT_ORDER_STEP", "ContentStore", "SQLiteContentConfig"]
