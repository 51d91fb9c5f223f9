"""
Unit tests for pathogentrees.phylogenetics module

Tests cover:
1. Reading single-tree Newick files
2. Accession extraction from file and tip names
3. Root height for regular and degenerate trees
4. Tip relabeling and category coloring
"""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from pathogentrees.metadata import MetadataIndex
from pathogentrees.phylogenetics import (
    CLINICAL_COLOR,
    DEFAULT_COLOR,
    ENVIRONMENTAL_COLOR,
    annotate_tree,
    category_color,
    read_tree,
    root_height,
    tip_accession,
    tip_accessions,
    to_branch_color,
    tree_accession,
)


@pytest.fixture
def write_tree(tmp_path):
    def _write(newick: str, name: str = "PDS000001234.5.newick_tree.newick") -> Path:
        path = tmp_path / name
        path.write_text(newick + "\n")
        return path
    return _write


@pytest.fixture
def metadata():
    return MetadataIndex({
        "X1": {"label": "Env isolate", "attribute_package": "environmental/food/other"},
        "X2": {"label": "Clin isolate", "attribute_package": "clinical or host-associated"},
        "X3": {"label": "", "attribute_package": "Pathogen.cl.1.0"},
    })


class TestReadTree:
    """Test Newick input."""

    def test_quoted_tips(self, write_tree):
        tree = read_tree(write_tree("('X1':0.1,'X2':0.2);"))
        assert tip_accessions(tree) == ["X1", "X2"]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_tree(tmp_path / "absent.newick")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "PDS000001234.5.newick_tree.newick"
        path.write_text("")
        with pytest.raises(ValueError, match="No tree"):
            read_tree(path)

    def test_unbalanced_parentheses(self, write_tree):
        with pytest.raises(ValueError, match="Malformed tree"):
            read_tree(write_tree("((X1:0.1,X2:0.2"))


class TestAccessions:
    """Test accession extraction."""

    def test_tree_accession(self):
        assert tree_accession("SNP_trees/PDS000001234.5.newick_tree.newick") == "PDS000001234.5"

    def test_tree_accession_without_suffix(self):
        assert tree_accession("PDS000001234.5.newick") == "PDS000001234.5"

    @pytest.mark.parametrize("name, expected", [
        ("'X1'", "X1"),
        ('"X1"', "X1"),
        ("X1", "X1"),
        (None, ""),
    ])
    def test_tip_accession(self, name, expected):
        assert tip_accession(name) == expected


class TestRootHeight:
    """Test root-to-tip height."""

    def test_longest_path(self, write_tree):
        tree = read_tree(write_tree("(X1:0.1,(X2:0.2,X3:0.3):0.5);"))
        assert root_height(tree) == pytest.approx(0.8)

    def test_zero_branch_lengths(self, write_tree):
        tree = read_tree(write_tree("(X1:0,X2:0);"))
        assert root_height(tree) == 0

    def test_missing_branch_lengths(self, write_tree):
        tree = read_tree(write_tree("(X1,X2);"))
        assert root_height(tree) == 0


class TestCategoryColor:
    """Test isolation-source coloring."""

    @pytest.mark.parametrize("value, expected", [
        ("environmental/food/other", ENVIRONMENTAL_COLOR),
        ("FOOD", ENVIRONMENTAL_COLOR),
        ("clinical or host-associated", CLINICAL_COLOR),
        ("Host", CLINICAL_COLOR),
        ("Pathogen.cl.1.0", DEFAULT_COLOR),
        ("", DEFAULT_COLOR),
        (None, DEFAULT_COLOR),
    ])
    def test_colors(self, value, expected):
        assert category_color(value) == expected

    def test_environmental_takes_precedence(self):
        assert category_color("food from host") == ENVIRONMENTAL_COLOR

    def test_branch_color_channels(self):
        color = to_branch_color(CLINICAL_COLOR)
        assert all(0 <= c <= 255 for c in (color.red, color.green, color.blue))
        assert color.red > color.blue
        assert color.green == color.blue


class TestAnnotateTree:
    """Test tip relabeling."""

    def test_labels_and_colors(self, write_tree, metadata):
        tree = read_tree(write_tree("('X1':0.1,'X2':0.2,'X3':0.3,'X9':0.1);"))
        annotations = annotate_tree(tree, metadata)

        assert [a.accession for a in annotations] == ["X1", "X2", "X3", "X9"]
        assert [a.label for a in annotations] == ["Env isolate", "Clin isolate", "", ""]
        assert annotations[0].rgb == ENVIRONMENTAL_COLOR
        assert annotations[1].rgb == CLINICAL_COLOR
        assert annotations[2].rgb == DEFAULT_COLOR
        assert annotations[3].rgb == DEFAULT_COLOR

    def test_tips_modified_in_place(self, write_tree, metadata):
        tree = read_tree(write_tree("(X1:0.1,X2:0.2);"))
        annotate_tree(tree, metadata)
        tips = tree.get_terminals()
        assert [tip.name for tip in tips] == ["Env isolate", "Clin isolate"]
        assert tips[0].color.to_hex() == to_branch_color(ENVIRONMENTAL_COLOR).to_hex()

    def test_topology_unchanged(self, write_tree, metadata):
        tree = read_tree(write_tree("(X1:0.1,(X2:0.2,X3:0.3):0.5);"))
        before = root_height(tree)
        annotate_tree(tree, metadata)
        assert tree.count_terminals() == 3
        assert root_height(tree) == pytest.approx(before)
