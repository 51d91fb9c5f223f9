"""
Unit tests for pathogentrees.metadata module

Tests cover:
1. Metadata TSV reading with NCBI quirks
2. First-non-empty-wins record merging across files
3. New-isolates file discovery and indexing
4. Error handling for malformed files
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from pathogentrees.metadata import (
    MetadataIndex,
    build_metadata_index,
    build_new_isolate_index,
    clean_column_name,
    find_new_isolates_file,
    merge_records,
    read_metadata_table,
)


# ============================================================================
# Fixtures
# ============================================================================

def write_tsv(path: Path, header, rows) -> Path:
    lines = ["\t".join(header)] + ["\t".join(row) for row in rows]
    path.write_text("\n".join(lines) + "\n")
    return path


@pytest.fixture
def metadata_a(tmp_path):
    return write_tsv(
        tmp_path / "PDG000000001.1.metadata.tsv",
        ["#label", "target_acc", "collection_date", "attribute_package"],
        [
            ["Foo", "X2", "2021-06-15", "Pathogen.env"],
            ["Solo", "X3", "", "clinical or host-associated"],
        ],
    )


@pytest.fixture
def metadata_b(tmp_path):
    return write_tsv(
        tmp_path / "PDG000000001.1.exceptions.metadata.tsv",
        ["label", "target_acc", "collection_date", "target_creation_date"],
        [
            ["Bar", "X2", "2020-01-01", "2019-03-03"],
            ["", "X3", "missing", "2018"],
        ],
    )


# ============================================================================
# TSV Reading
# ============================================================================

class TestReadMetadataTable:
    """Test TSV parsing."""

    def test_header_hash_is_stripped(self, metadata_a):
        df = read_metadata_table(metadata_a)
        assert "label" in df.columns
        assert "#label" not in df.columns

    def test_values_stay_strings(self, tmp_path):
        path = write_tsv(tmp_path / "t.tsv", ["target_acc", "collection_date"],
                         [["X1", "NA"], ["X2", "null"], ["X3", "0"]])
        df = read_metadata_table(path)
        assert list(df["collection_date"]) == ["NA", "null", "0"]

    def test_stray_quotes_are_kept(self, tmp_path):
        path = write_tsv(tmp_path / "t.tsv", ["target_acc", "label"], [["X1", '"odd label']])
        df = read_metadata_table(path)
        assert df.loc[0, "label"] == '"odd label'

    def test_values_are_trimmed(self, tmp_path):
        path = write_tsv(tmp_path / "t.tsv", ["target_acc", "label"], [[" X1 ", " Foo  "]])
        df = read_metadata_table(path)
        assert df.loc[0, "target_acc"] == "X1"
        assert df.loc[0, "label"] == "Foo"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_metadata_table(tmp_path / "absent.tsv")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.tsv"
        path.write_text("")
        assert read_metadata_table(path).empty


def test_clean_column_name():
    assert clean_column_name(" #label ") == "label"
    assert clean_column_name("target_acc") == "target_acc"


# ============================================================================
# Merging
# ============================================================================

class TestMergeRecords:
    """Test the first-non-empty-wins reducer."""

    def test_first_value_wins(self):
        merged = merge_records([{"label": "Foo"}, {"label": "Bar"}])
        assert merged == {"label": "Foo"}

    def test_blank_does_not_claim_field(self):
        merged = merge_records([{"host": ""}, {"host": "cow"}, {"host": "pig"}])
        assert merged["host"] == "cow"

    def test_none_reads_as_blank(self):
        merged = merge_records([{"host": None}])
        assert merged["host"] == ""

    def test_first_source_survives_any_number_of_later_sources(self):
        later = [{"label": f"L{i}"} for i in range(10)]
        assert merge_records([{"label": "Foo"}] + later)["label"] == "Foo"

    def test_union_of_fields(self):
        merged = merge_records([{"a": "1"}, {"b": "2"}])
        assert merged == {"a": "1", "b": "2"}


class TestBuildMetadataIndex:
    """Test aggregation across files."""

    def test_first_file_wins_conflicts(self, metadata_a, metadata_b):
        index = build_metadata_index([metadata_a, metadata_b])
        assert index["X2"]["label"] == "Foo"
        assert index["X2"]["collection_date"] == "2021-06-15"

    def test_order_decides_winner(self, metadata_a, metadata_b):
        index = build_metadata_index([metadata_b, metadata_a])
        assert index["X2"]["label"] == "Bar"

    def test_later_file_fills_blanks(self, metadata_a, metadata_b):
        index = build_metadata_index([metadata_a, metadata_b])
        assert index["X2"]["target_creation_date"] == "2019-03-03"
        assert index["X3"]["collection_date"] == "missing"
        assert index["X3"]["label"] == "Solo"

    def test_field_lookup_defaults_to_blank(self, metadata_a):
        index = build_metadata_index([metadata_a])
        assert index.field("X2", "label") == "Foo"
        assert index.field("X2", "nonexistent") == ""
        assert index.field("NOPE", "label") == ""

    def test_blank_accessions_are_skipped(self, tmp_path):
        path = write_tsv(tmp_path / "m.tsv", ["target_acc", "label"], [["", "Ghost"], ["X1", "Real"]])
        index = build_metadata_index([path])
        assert list(index) == ["X1"]

    def test_missing_accession_column(self, tmp_path):
        path = write_tsv(tmp_path / "m.tsv", ["label"], [["Foo"]])
        with pytest.raises(ValueError, match="target_acc"):
            build_metadata_index([path])

    def test_sources(self, metadata_a, metadata_b):
        index = build_metadata_index([metadata_a, metadata_b])
        assert index.sources == [metadata_a, metadata_b]

    def test_quoted_label_survives_indexing(self, tmp_path):
        path = tmp_path / "m.tsv"
        path.write_text('target_acc\tlabel\nX1\t"Cheese, 5" wheel\nX2\tplain\n')
        index = build_metadata_index([path])
        assert index.field("X1", "label") == '"Cheese, 5" wheel'
        assert index.field("X2", "label") == "plain"

    def test_empty_index(self):
        index = MetadataIndex()
        assert len(index) == 0
        assert index.field("X1", "label") == ""


# ============================================================================
# New Isolates
# ============================================================================

class TestNewIsolates:
    """Test new-isolates discovery and indexing."""

    def test_find_first_sorted(self, tmp_path):
        write_tsv(tmp_path / "b.new_isolates.tsv", ["PDS_acc"], [["PDS2"]])
        write_tsv(tmp_path / "a.new_isolates.tsv", ["PDS_acc"], [["PDS1"]])
        assert find_new_isolates_file(tmp_path).name == "a.new_isolates.tsv"

    def test_find_none(self, tmp_path):
        write_tsv(tmp_path / "x.SNP_distances.tsv", ["a"], [["1"]])
        assert find_new_isolates_file(tmp_path) is None

    def test_index_by_tree_accession(self, tmp_path):
        path = write_tsv(
            tmp_path / "r.new_isolates.tsv",
            ["PDS_acc", "target_acc"],
            [["PDS000001.1", "X1"], ["PDS000002.3", "X2"], ["", "X9"]],
        )
        index = build_new_isolate_index(path)
        assert set(index) == {"PDS000001.1", "PDS000002.3"}
        assert index["PDS000002.3"]["target_acc"] == "X2"

    def test_missing_key_column(self, tmp_path):
        path = write_tsv(tmp_path / "r.new_isolates.tsv", ["target_acc"], [["X1"]])
        with pytest.raises(ValueError, match="PDS_acc"):
            build_new_isolate_index(path)

    def test_empty_listing(self, tmp_path):
        path = tmp_path / "r.new_isolates.tsv"
        path.write_text("")
        assert build_new_isolate_index(path) == {}
