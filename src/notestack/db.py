"""IndexDB: SQL report views over the metadata index.

Uses DuckDB (in-memory) as a query engine over index records and returns
:mod:`polars` DataFrames.  Nothing here reads note bodies; rebuild or update
the index first, then :meth:`IndexDB.refresh`.

Usage::

    with IndexDB(engine.index) as db:
        df = db.query("SELECT path, title FROM notes WHERE 'python' = ANY(tags)")
        table = db.table_view(zone="notes", filter_tag="python", order_by="title")
        zones = db.zone_summary()

Timestamps are stored as naive UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

import duckdb
import polars as pl

from notestack.zones import Zone

if TYPE_CHECKING:
    from notestack.index import VaultIndex

_COLUMNS = (
    "path",
    "zone",
    "title",
    "tags",
    "links",
    "created",
    "modified",
    "word_count",
    "has_actionables",
    "linked_issues",
)


def _naive_utc(value: datetime) -> datetime:
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _quote(value: str) -> str:
    return value.replace("'", "''")


class IndexDB:
    """In-memory DuckDB database over note metadata."""

    def __init__(self, index: "VaultIndex") -> None:
        self.conn: duckdb.DuckDBPyConnection = duckdb.connect(":memory:")
        self.refresh(index)

    # ------------------------------------------------------------------
    # Build / refresh
    # ------------------------------------------------------------------

    def refresh(self, index: "VaultIndex") -> None:
        """(Re-)populate the table from *index*."""
        self._index = index
        self._create_schema()
        self._load_notes()

    def _create_schema(self) -> None:
        self.conn.execute("""
            CREATE OR REPLACE TABLE notes (
                path            VARCHAR PRIMARY KEY,
                zone            VARCHAR,
                title           VARCHAR,
                tags            VARCHAR[],
                links           VARCHAR[],
                created         TIMESTAMP,
                modified        TIMESTAMP,
                word_count      INTEGER,
                has_actionables BOOLEAN,
                linked_issues   VARCHAR[]
            )
        """)

    def _load_notes(self) -> None:
        layout = self._index.layout
        rows = []
        for record in self._index.load().notes:
            meta = record.meta
            zone = layout.zone_for_path(meta.path)
            rows.append(
                (
                    meta.path,
                    zone.value if zone else None,
                    meta.title,
                    meta.tags,
                    meta.links,
                    _naive_utc(meta.created),
                    _naive_utc(meta.modified),
                    meta.word_count,
                    meta.has_actionables,
                    meta.linked_issues,
                )
            )
        if rows:
            placeholders = ",".join("?" * len(_COLUMNS))
            self.conn.executemany(f"INSERT OR REPLACE INTO notes VALUES ({placeholders})", rows)

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def query(self, sql: str, params: list[Any] | None = None) -> pl.DataFrame:
        """Run a raw SQL query and return a Polars DataFrame."""
        return self.conn.execute(sql, params or []).pl()

    def table_view(
        self,
        *,
        zone: Zone | str | None = None,
        filter_tag: str | None = None,
        columns: list[str] | None = None,
        order_by: str = "modified DESC",
    ) -> pl.DataFrame:
        """Notes as a DataFrame, optionally limited to one zone and/or tag."""
        cols = ", ".join(columns) if columns else "path, zone, title, tags, modified"
        where: list[str] = []
        if zone is not None:
            where.append(f"zone = '{Zone.parse(zone).value}'")
        if filter_tag:
            where.append(f"'{_quote(filter_tag)}' = ANY(tags)")
        clause = f"WHERE {' AND '.join(where)}" if where else ""
        safe_order = order_by.replace(";", "").replace("'", "")
        return self.conn.execute(f"SELECT {cols} FROM notes {clause} ORDER BY {safe_order}, path").pl()

    def tag_counts(self) -> pl.DataFrame:
        """Tag -> note count, most used first."""
        return self.conn.execute(
            """
            SELECT tag, COUNT(*) AS note_count
            FROM (SELECT unnest(tags) AS tag FROM notes)
            GROUP BY tag
            ORDER BY note_count DESC, tag
            """
        ).pl()

    def zone_summary(self) -> pl.DataFrame:
        """Per zone: note count, total words, notes with actionables, last modification."""
        return self.conn.execute(
            """
            SELECT
                zone,
                COUNT(*)                                  AS note_count,
                CAST(SUM(word_count) AS BIGINT)           AS word_count,
                COUNT(*) FILTER (WHERE has_actionables)   AS actionable_notes,
                MAX(modified)                             AS last_modified
            FROM notes
            GROUP BY zone
            ORDER BY zone
            """
        ).pl()

    def activity(self, since: datetime, top_tags: int = 5) -> dict[str, Any]:
        """Notes created or modified at or after *since*, plus the tags they use most."""
        cutoff = _naive_utc(since) if since.tzinfo else since
        created = self.conn.execute(
            "SELECT path FROM notes WHERE created >= ? ORDER BY created DESC, path", [cutoff]
        ).fetchall()
        modified = self.conn.execute(
            "SELECT path FROM notes WHERE modified >= ? ORDER BY modified DESC, path", [cutoff]
        ).fetchall()
        tags = self.conn.execute(
            f"""
            SELECT tag, COUNT(*) AS note_count
            FROM (SELECT unnest(tags) AS tag FROM notes WHERE modified >= ?)
            GROUP BY tag
            ORDER BY note_count DESC, tag
            LIMIT {int(top_tags)}
            """,
            [cutoff],
        ).fetchall()
        return {
            "created": [r[0] for r in created],
            "modified": [r[0] for r in modified],
            "top_tags": [(r[0], r[1]) for r in tags],
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "IndexDB":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
