"""
Output sinks for pipeline results.

Predictions go to a document sink keyed by review identifier (upsert, so a
re-run overwrites instead of duplicating). Trend summaries go to a tabular
sink whose tables are fully replaced on every run.

File-backed sinks write to a temporary file and swap it in with os.replace,
so readers see either the previous or the new content, never a partial one.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Mapping, Sequence

import pandas as pd

from .exceptions import SinkError
from .utils import ensure_dir

logger = logging.getLogger("review_analytics")


DEFAULT_KEY = "review_id"

Tables = Mapping[str, Sequence[Mapping[str, Any]]]
Columns = Mapping[str, Sequence[str]]


def _atomic_write(path: Path, write) -> None:
    """Write through a temp file in the same directory, then replace `path`."""
    ensure_dir(path.parent)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    os.close(fd)
    tmp_path = Path(tmp_name)
    try:
        write(tmp_path)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


def _to_frame(rows: Sequence[Mapping[str, Any]], columns: Sequence[str] | None) -> pd.DataFrame:
    return pd.DataFrame(list(rows), columns=list(columns) if columns else None)


def _index_documents(documents: Sequence[Mapping[str, Any]], key: str) -> dict[str, dict]:
    indexed = {}
    for i, document in enumerate(documents):
        doc_id = document.get(key)
        if doc_id is None or doc_id == "":
            raise SinkError("Document is missing its key", key=key, index=i)
        indexed[str(doc_id)] = dict(document)
    return indexed


class DocumentSink(ABC):
    """Collection of documents keyed by an identifier."""

    @abstractmethod
    def upsert(self, documents: Sequence[Mapping[str, Any]], key: str = DEFAULT_KEY) -> int:
        """
        Insert or overwrite documents by key, all or nothing.

        Returns:
            Number of documents written
        """

    @abstractmethod
    def get(self, doc_id: str) -> dict[str, Any] | None:
        """Fetch one document, or None."""

    @abstractmethod
    def all_documents(self) -> dict[str, dict[str, Any]]:
        """Every stored document keyed by identifier."""

    def count(self) -> int:
        return len(self.all_documents())


class TabularSink(ABC):
    """Named tables of rows; each write replaces a table completely."""

    @abstractmethod
    def replace_tables(self, tables: Tables, columns: Columns | None = None) -> None:
        """
        Replace every given table; either all of them change or none.

        `columns` fixes the header per table name, so an empty table still
        carries its schema.
        """

    @abstractmethod
    def read_table(self, name: str) -> pd.DataFrame:
        """Current content of a table."""

    def replace_table(
        self,
        name: str,
        rows: Sequence[Mapping[str, Any]],
        columns: Sequence[str] | None = None,
    ) -> None:
        self.replace_tables({name: rows}, {name: columns} if columns else None)


class InMemoryDocumentSink(DocumentSink):
    """Document sink held in a dict; used for tests and dry runs."""

    def __init__(self):
        self._documents: dict[str, dict[str, Any]] = {}

    def upsert(self, documents: Sequence[Mapping[str, Any]], key: str = DEFAULT_KEY) -> int:
        indexed = _index_documents(documents, key)
        merged = dict(self._documents)
        merged.update(indexed)
        self._documents = merged
        return len(indexed)

    def get(self, doc_id: str) -> dict[str, Any] | None:
        document = self._documents.get(str(doc_id))
        return dict(document) if document is not None else None

    def all_documents(self) -> dict[str, dict[str, Any]]:
        return {k: dict(v) for k, v in self._documents.items()}


class JsonDocumentSink(DocumentSink):
    """
    Document collection stored as one JSON object {review_id: document}.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _load(self) -> dict[str, dict[str, Any]]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise SinkError(f"Cannot read document collection: {e}", path=str(self.path)) from e

    def upsert(self, documents: Sequence[Mapping[str, Any]], key: str = DEFAULT_KEY) -> int:
        indexed = _index_documents(documents, key)
        collection = self._load()
        collection.update(indexed)

        def write(tmp_path: Path) -> None:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(collection, f, ensure_ascii=False, indent=2, sort_keys=True)

        try:
            _atomic_write(self.path, write)
        except (OSError, TypeError, ValueError) as e:
            raise SinkError(f"Cannot write document collection: {e}", path=str(self.path)) from e

        logger.info(f"Upserted {len(indexed)} documents into {self.path}")
        return len(indexed)

    def get(self, doc_id: str) -> dict[str, Any] | None:
        return self._load().get(str(doc_id))

    def all_documents(self) -> dict[str, dict[str, Any]]:
        return self._load()


class InMemoryTabularSink(TabularSink):
    """Tabular sink held in memory as DataFrames."""

    def __init__(self):
        self._tables: dict[str, pd.DataFrame] = {}

    def replace_tables(self, tables: Tables, columns: Columns | None = None) -> None:
        columns = columns or {}
        staged = {name: _to_frame(rows, columns.get(name)) for name, rows in tables.items()}
        self._tables.update(staged)

    def read_table(self, name: str) -> pd.DataFrame:
        if name not in self._tables:
            raise SinkError("Unknown table", table=name)
        return self._tables[name].copy()

    @property
    def table_names(self) -> list[str]:
        return sorted(self._tables)


class CsvTabularSink(TabularSink):
    """One CSV file per table in a directory."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _table_path(self, name: str) -> Path:
        return self.directory / f"{name}.csv"

    def replace_tables(self, tables: Tables, columns: Columns | None = None) -> None:
        columns = columns or {}
        staged: list[tuple[Path, Path]] = []
        try:
            ensure_dir(self.directory)
            for name, rows in tables.items():
                fd, tmp_name = tempfile.mkstemp(
                    prefix=f".{name}.", suffix=".csv.tmp", dir=self.directory
                )
                os.close(fd)
                tmp_path = Path(tmp_name)
                staged.append((tmp_path, self._table_path(name)))
                _to_frame(rows, columns.get(name)).to_csv(tmp_path, index=False)
            for tmp_path, target in staged:
                os.replace(tmp_path, target)
        except OSError as e:
            for tmp_path, _ in staged:
                tmp_path.unlink(missing_ok=True)
            raise SinkError(f"Cannot write trend tables: {e}", directory=str(self.directory)) from e

        logger.info(f"Replaced {len(staged)} tables in {self.directory}")

    def read_table(self, name: str) -> pd.DataFrame:
        path = self._table_path(name)
        if not path.exists():
            raise SinkError("Unknown table", table=name, directory=str(self.directory))
        try:
            return pd.read_csv(path)
        except pd.errors.EmptyDataError:
            return pd.DataFrame()
