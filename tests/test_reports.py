"""
Unit tests for pathogentrees.visualization and pathogentrees.reports

Tests cover:
1. Tree rendering to EPS with a raster twin
2. Page composer primitives and PDF output
3. Degenerate tree skipping
4. End-to-end report generation
"""

import sys
from pathlib import Path

import matplotlib.pyplot as plt
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from pathogentrees import reports
from pathogentrees.config import get_default_config
from pathogentrees.layout import BoundingBox, ReportError, place, read_eps_bounding_box
from pathogentrees.metadata import MetadataIndex
from pathogentrees.phylogenetics import (
    CLINICAL_COLOR,
    ENVIRONMENTAL_COLOR,
    annotate_tree,
    read_tree,
    to_branch_color,
)
from pathogentrees.reports import (
    ReportComposer,
    add_tree_page,
    generate_report,
    render_tree_images,
    result_url,
)
from pathogentrees.visualization import (
    figure_size,
    label_colors,
    raster_twin,
    render_tree_image,
)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def cfg(tmp_path):
    return get_default_config().update(run_id="PDG000000001.1", output_dir=tmp_path / "out")


@pytest.fixture
def metadata():
    return MetadataIndex({
        "X1": {"label": "Env isolate", "attribute_package": "environmental/food/other"},
        "X2": {"label": "Clin isolate", "attribute_package": "clinical or host-associated"},
        "X3": {"label": "Other isolate", "attribute_package": ""},
    })


@pytest.fixture
def tree_files(tmp_path):
    trees = tmp_path / "SNP_trees"
    trees.mkdir()
    regular = trees / "PDS000000001.1.newick_tree.newick"
    regular.write_text("(X1:0.1,(X2:0.2,X3:0.3):0.5);\n")
    flat = trees / "PDS000000002.1.newick_tree.newick"
    flat.write_text("(X1:0,X2:0);\n")
    return [regular, flat]


# ============================================================================
# Rendering
# ============================================================================

class TestRenderTreeImage:
    """Test tree image output."""

    def test_writes_eps_and_png(self, tmp_path, tree_files, metadata):
        tree = read_tree(tree_files[0])
        annotations = annotate_tree(tree, metadata)
        eps = render_tree_image(tree, annotations, tmp_path / "images" / "PDS000000001.1")

        assert eps.name == "PDS000000001.1.eps"
        assert eps.exists()
        assert raster_twin(eps).exists()
        bbox = read_eps_bounding_box(eps)
        assert bbox.width > 0 and bbox.height > 0

    def test_label_colors_skip_blank_labels(self, tree_files):
        tree = read_tree(tree_files[0])
        annotations = annotate_tree(tree, MetadataIndex({"X1": {"label": "A"}}))
        assert list(label_colors(annotations)) == ["A"]

    def test_shared_label_keeps_branch_colors(self, tmp_path):
        path = tmp_path / "PDS000000009.1.newick_tree.newick"
        path.write_text("(X1:0.1,X2:0.2);\n")
        tree = read_tree(path)
        annotations = annotate_tree(tree, MetadataIndex({
            "X1": {"label": "Same", "attribute_package": "environmental/food/other"},
            "X2": {"label": "Same", "attribute_package": "clinical or host-associated"},
        }))

        assert label_colors(annotations) == {"Same": CLINICAL_COLOR}
        x1, x2 = tree.get_terminals()
        assert x1.color.to_hex() == to_branch_color(ENVIRONMENTAL_COLOR).to_hex()
        assert x2.color.to_hex() == to_branch_color(CLINICAL_COLOR).to_hex()

    def test_figure_size_grows_with_tips(self):
        assert figure_size(4) == (7.0, 4.0)
        assert figure_size(100)[1] > figure_size(20)[1]
        assert figure_size(10000)[1] == 40.0


# ============================================================================
# Page Composer
# ============================================================================

class TestReportComposer:
    """Test PDF page primitives."""

    def test_writes_pdf(self, tmp_path):
        composer = ReportComposer(tmp_path / "r.pdf")
        assert composer.new_page() == 1
        composer.draw_text((306, 720), "Title", align="center", size=32)
        composer.draw_box((36, 432), (540, 576))
        composer.draw_box((72, 468), (108, 504), filled=True, color=(0.9, 0.3, 0.3))
        assert composer.new_page() == 2

        path = composer.write_output()
        assert path.read_bytes().startswith(b"%PDF")
        assert composer.page_count == 2

    def test_drawing_requires_page(self, tmp_path):
        composer = ReportComposer(tmp_path / "r.pdf")
        with pytest.raises(ReportError):
            composer.draw_text((0, 0), "orphan")

    def test_missing_image(self, tmp_path):
        composer = ReportComposer(tmp_path / "r.pdf")
        composer.new_page()
        with pytest.raises(ReportError, match="not found"):
            composer.import_image(tmp_path / "absent.png", BoundingBox(36, 36, 300, 300))
        composer.close()

    def test_pages_are_flushed_as_they_complete(self, tmp_path):
        open_before = len(plt.get_fignums())
        composer = ReportComposer(tmp_path / "r.pdf")
        for page in range(20):
            composer.new_page()
            composer.draw_text((306, 720), f"Page {page + 1}")
            assert len(plt.get_fignums()) <= open_before + 1

        composer.write_output()
        assert len(plt.get_fignums()) == open_before
        assert composer.page_count == 20

    def test_close_discards_incomplete_pdf(self, tmp_path):
        composer = ReportComposer(tmp_path / "r.pdf")
        composer.new_page()
        composer.new_page()
        composer.close()
        assert not (tmp_path / "r.pdf").exists()

    def test_empty_box(self, tmp_path, tree_files, metadata):
        tree = read_tree(tree_files[0])
        eps = render_tree_image(tree, annotate_tree(tree, metadata), tmp_path / "img")
        composer = ReportComposer(tmp_path / "r.pdf")
        composer.new_page()
        with pytest.raises(ReportError, match="Empty"):
            composer.import_image(raster_twin(eps), BoundingBox(36, 36, 36, 300))
        composer.close()


# ============================================================================
# Report Policy
# ============================================================================

def test_result_url(cfg):
    assert result_url(cfg, "PDS000000001.1") == (
        "ftp://ftp.ncbi.nlm.nih.gov/pathogen/Results/Listeria/"
        "PDG000000001.1/SNP_trees/PDS000000001.1"
    )


def test_zero_height_trees_are_not_rendered(tmp_path, tree_files, metadata, cfg):
    images = render_tree_images(tree_files, metadata, tmp_path / "images", cfg)

    assert [acc for acc, _ in images] == ["PDS000000001.1"]
    assert not (tmp_path / "images" / "PDS000000002.1.eps").exists()


def test_tree_page_places_image(tmp_path, tree_files, metadata, cfg):
    tree = read_tree(tree_files[0])
    eps = render_tree_image(tree, annotate_tree(tree, metadata), tmp_path / "PDS000000001.1")
    geometry = cfg.report.geometry
    composer = ReportComposer(tmp_path / "r.pdf", geometry)

    bbox = add_tree_page(composer, cfg, eps, "PDS000000001.1")

    assert bbox == place(read_eps_bounding_box(eps), geometry)
    assert bbox.x2 <= geometry.content_width + 1e-6
    assert bbox.y2 <= geometry.content_height + 1e-6
    ax = composer._figure.axes[-1]
    assert ax.get_position().bounds == pytest.approx((
        bbox.x1 / geometry.width, bbox.y1 / geometry.height,
        bbox.width / geometry.width, bbox.height / geometry.height,
    ))
    composer.close()


def test_generate_report(tmp_path, tree_files, metadata, cfg, monkeypatch):
    composers = []

    class RecordingComposer(ReportComposer):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            composers.append(self)

    monkeypatch.setattr(reports, "ReportComposer", RecordingComposer)
    output = generate_report(tree_files, metadata, tmp_path / "images", tmp_path / "report.pdf", cfg)

    assert output == tmp_path / "report.pdf"
    assert output.read_bytes().startswith(b"%PDF")
    assert (tmp_path / "images" / "PDS000000001.1.eps").exists()
    assert (tmp_path / "images" / "PDS000000001.1.png").exists()
    # Title page plus one page for the only tree with height
    assert composers[0].page_count == 2


def test_generate_report_without_trees(tmp_path, metadata, cfg):
    output = generate_report([], metadata, tmp_path / "images", tmp_path / "report.pdf", cfg)
    assert output.exists()
