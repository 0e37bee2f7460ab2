"""
Tests for output sinks.

Tests cover:
- Document upsert semantics
- JSON document collection
- Table replacement
- CSV tables
"""

import json

import pandas as pd
import pytest

from review_analytics.exceptions import SinkError
from review_analytics.sinks import (
    CsvTabularSink,
    InMemoryDocumentSink,
    InMemoryTabularSink,
    JsonDocumentSink,
)


@pytest.fixture(params=["memory", "json"])
def document_sink(request, tmp_path):
    if request.param == "memory":
        return InMemoryDocumentSink()
    return JsonDocumentSink(tmp_path / "out" / "predictions.json")


@pytest.fixture(params=["memory", "csv"])
def tabular_sink(request, tmp_path):
    if request.param == "memory":
        return InMemoryTabularSink()
    return CsvTabularSink(tmp_path / "trends")


class TestDocumentSink:
    """Tests shared by every document sink."""

    def test_upsert_inserts(self, document_sink):
        """Test inserting new documents."""
        written = document_sink.upsert([
            {"review_id": "r1", "sentiment": "positive"},
            {"review_id": "r2", "sentiment": "negative"},
        ])
        assert written == 2
        assert document_sink.count() == 2
        assert document_sink.get("r1")["sentiment"] == "positive"

    def test_upsert_overwrites(self, document_sink):
        """Test re-writing an identifier replaces the document."""
        document_sink.upsert([{"review_id": "r1", "sentiment": "positive"}])
        document_sink.upsert([{"review_id": "r1", "sentiment": "negative"}])
        assert document_sink.count() == 1
        assert document_sink.get("r1")["sentiment"] == "negative"

    def test_get_missing(self, document_sink):
        """Test fetching an unknown identifier."""
        assert document_sink.get("absent") is None

    def test_missing_key_writes_nothing(self, document_sink):
        """Test a document without identifier rejects the whole batch."""
        with pytest.raises(SinkError):
            document_sink.upsert([{"review_id": "r1"}, {"sentiment": "positive"}])
        assert document_sink.count() == 0

    def test_custom_key(self, document_sink):
        """Test upserting by another key."""
        document_sink.upsert([{"sku": "A1", "name": "Tablet"}], key="sku")
        assert document_sink.get("A1")["name"] == "Tablet"


class TestJsonDocumentSink:
    """Tests for the JSON file sink."""

    def test_file_layout(self, tmp_path):
        """Test the collection is one JSON object keyed by identifier."""
        path = tmp_path / "predictions.json"
        JsonDocumentSink(path).upsert([{"review_id": "r1", "sentiment": "positive"}])
        assert json.loads(path.read_text()) == {"r1": {"review_id": "r1", "sentiment": "positive"}}

    def test_persists_across_instances(self, tmp_path):
        """Test a new sink instance sees earlier writes."""
        path = tmp_path / "predictions.json"
        JsonDocumentSink(path).upsert([{"review_id": "r1"}])
        JsonDocumentSink(path).upsert([{"review_id": "r2"}])
        assert set(JsonDocumentSink(path).all_documents()) == {"r1", "r2"}

    def test_no_temp_files_left(self, tmp_path):
        """Test the temporary file is swapped in."""
        JsonDocumentSink(tmp_path / "predictions.json").upsert([{"review_id": "r1"}])
        assert [p.name for p in tmp_path.iterdir()] == ["predictions.json"]

    def test_corrupt_file(self, tmp_path):
        """Test unreadable collection."""
        path = tmp_path / "predictions.json"
        path.write_text("{not json")
        with pytest.raises(SinkError):
            JsonDocumentSink(path).upsert([{"review_id": "r1"}])


class TestTabularSink:
    """Tests shared by every tabular sink."""

    def test_replace_and_read(self, tabular_sink):
        """Test writing and reading a table."""
        tabular_sink.replace_table("trend_by_brand", [
            {"group": "Amazon", "total_reviews": 3},
            {"group": "Acme", "total_reviews": 1},
        ])
        table = tabular_sink.read_table("trend_by_brand")
        assert list(table["group"]) == ["Amazon", "Acme"]
        assert list(table["total_reviews"]) == [3, 1]

    def test_full_replace(self, tabular_sink):
        """Test a second write replaces every row."""
        tabular_sink.replace_table("t", [{"group": "A"}, {"group": "B"}])
        tabular_sink.replace_table("t", [{"group": "C"}])
        assert list(tabular_sink.read_table("t")["group"]) == ["C"]

    def test_replace_tables_leaves_others(self, tabular_sink):
        """Test tables not named in a write are kept."""
        tabular_sink.replace_tables({"a": [{"x": 1}], "b": [{"x": 2}]})
        tabular_sink.replace_tables({"a": [{"x": 3}]})
        assert list(tabular_sink.read_table("b")["x"]) == [2]
        assert list(tabular_sink.read_table("a")["x"]) == [3]

    def test_empty_table(self, tabular_sink):
        """Test writing an empty table."""
        tabular_sink.replace_table("empty", [])
        assert tabular_sink.read_table("empty").empty

    def test_empty_table_keeps_columns(self, tabular_sink):
        """Test an empty table written with a header keeps its columns."""
        tabular_sink.replace_tables({"empty": []}, columns={"empty": ["group", "total_reviews"]})
        frame = tabular_sink.read_table("empty")
        assert frame.empty
        assert list(frame.columns) == ["group", "total_reviews"]

    def test_columns_order_rows(self, tabular_sink):
        """Test the given columns set the column order."""
        tabular_sink.replace_table("t", [{"b": 1, "a": 2}], columns=["a", "b"])
        assert list(tabular_sink.read_table("t").columns) == ["a", "b"]

    def test_unknown_table(self, tabular_sink):
        """Test reading a table never written."""
        with pytest.raises(SinkError):
            tabular_sink.read_table("absent")


class TestCsvTabularSink:
    """Tests for the CSV directory sink."""

    def test_one_file_per_table(self, tmp_path):
        """Test table files."""
        sink = CsvTabularSink(tmp_path / "trends")
        sink.replace_tables({"trend_by_brand": [{"group": "A"}], "trend_by_category": [{"group": "B"}]})
        names = sorted(p.name for p in (tmp_path / "trends").iterdir())
        assert names == ["trend_by_brand.csv", "trend_by_category.csv"]

    def test_readable_with_pandas(self, tmp_path):
        """Test files are plain CSV."""
        CsvTabularSink(tmp_path).replace_table("t", [{"group": "A", "total_reviews": 2}])
        frame = pd.read_csv(tmp_path / "t.csv")
        assert frame.to_dict(orient="records") == [{"group": "A", "total_reviews": 2}]
