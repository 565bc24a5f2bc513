"""FTS5 full-text search index for notes.

Encapsulates query building, BM25 ranking with per-column weights,
snippet extraction and index maintenance.
"""
import logging
import sqlite3
from typing import Any, Callable, List, Optional

from sqlalchemy import DateTime, Float, Integer, Text, text
from sqlalchemy.exc import SQLAlchemyError

from noted.exceptions import InvalidParamError, StorageError
from noted.models.db_models import rebuild_fts_index
from noted.models.schema import MAX_ROWID, SearchResult, ensure_timezone_aware
from noted.storage.snippets import TermMatcher, build_snippet, raw_tokens, tokenize

logger = logging.getLogger(__name__)


def build_match_expression(terms: List[str], prefix_last: bool) -> str:
    """Turn query tokens into an FTS5 MATCH expression.

    Tokens are passed unfolded so FTS5 case-folds them with the same
    tokenizer as the index. Every token is quoted so FTS5 operators typed by
    the user are matched as plain words; tokens are joined with implicit AND.
    """
    parts = [f'"{term}"' for term in terms]
    if prefix_last and parts:
        parts[-1] = parts[-1] + "*"
    return " ".join(parts)


class FtsIndex:
    """Ranked full-text queries over the notes FTS5 table.

    Args:
        engine: SQLAlchemy engine used for database access.
        session_factory: Callable returning a context-manager session.
        title_weight: BM25 weight of the title column.
        content_weight: BM25 weight of the content column.
        tags_weight: BM25 weight of the tags column.
        prefix_last_term: Match the final query term as a prefix.
        snippet_length: Maximum characters of source text per snippet.
        highlight_start: Marker inserted before each matched token.
        highlight_end: Marker inserted after each matched token.
    """

    def __init__(
        self,
        engine: Any,
        session_factory: Callable,
        title_weight: float = 2.0,
        content_weight: float = 1.0,
        tags_weight: float = 1.0,
        prefix_last_term: bool = True,
        snippet_length: int = 120,
        highlight_start: str = "<mark>",
        highlight_end: str = "</mark>",
    ) -> None:
        self.engine = engine
        self._session_factory = session_factory
        self.weights = (float(title_weight), float(content_weight), float(tags_weight))
        self.prefix_last_term = prefix_last_term
        self.snippet_length = snippet_length
        self.highlight_start = highlight_start
        self.highlight_end = highlight_end

    # ------------------------------------------------------------------
    # Public query API
    # ------------------------------------------------------------------

    def search(self, query: Optional[str], limit: int) -> List[SearchResult]:
        """Ranked full-text search.

        Args:
            query: Free text; tokenized the same way notes are indexed.
            limit: Maximum number of results (must be >= 1).

        Returns:
            Results sorted by rank descending, then most recently updated.
        """
        if query is None:
            raise InvalidParamError("Search query is required", field="query")
        if limit < 1:
            raise InvalidParamError(
                "Search limit must be at least 1", field="limit", value=limit
            )

        terms = tokenize(query)
        if not terms:
            return []

        limit = min(limit, MAX_ROWID)
        match_expr = build_match_expression(raw_tokens(query), self.prefix_last_term)
        # Weights are validated floats from config, not user input
        weights = ", ".join(f"{w:.6f}" for w in self.weights)
        sql = text(f"""
            SELECT n.id, n.title, n.content, n.updated_at,
                   -bm25(notes_fts, {weights}) AS score
            FROM notes_fts
            JOIN notes n ON n.id = notes_fts.rowid
            WHERE notes_fts MATCH :query
            ORDER BY score DESC, n.updated_at DESC, n.id DESC
            LIMIT :limit
        """).columns(
            id=Integer, title=Text, content=Text, updated_at=DateTime, score=Float
        )

        try:
            with self._session_factory() as session:
                rows = session.execute(
                    sql, {"query": match_expr, "limit": limit}
                ).fetchall()
        except (sqlite3.Error, SQLAlchemyError) as e:
            logger.error(f"FTS5 query failed for '{query}': {e}")
            raise StorageError(
                "Full-text search failed", operation="search", original_error=e
            ) from e

        matcher = TermMatcher(terms, prefix_last=self.prefix_last_term)
        results = [
            SearchResult(
                note_id=row[0],
                rank=max(0.0, float(row[4] or 0.0)),
                snippet=build_snippet(
                    row[1] or "",
                    row[2] or "",
                    matcher,
                    max_length=self.snippet_length,
                    start_marker=self.highlight_start,
                    end_marker=self.highlight_end,
                ),
                updated_at=ensure_timezone_aware(row[3]),
            )
            for row in rows
        ]
        logger.debug(f"FTS5 search '{query}' returned {len(results)} results")
        return results

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def rebuild(self) -> int:
        """Rebuild the FTS5 index from the notes table."""
        return rebuild_fts_index(self.engine)

    def check_integrity(self) -> bool:
        """Run FTS5's integrity check against the notes table."""
        try:
            with self._session_factory() as session:
                session.execute(
                    text("INSERT INTO notes_fts(notes_fts) VALUES('integrity-check')")
                )
            return True
        except (sqlite3.Error, SQLAlchemyError) as e:
            logger.error(f"FTS5 integrity check failed: {e}")
            return False
