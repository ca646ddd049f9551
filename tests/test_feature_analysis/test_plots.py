"""Tests for exploratory figures."""

from src.feature_analysis.plots import (
    plot_correlation_heatmap,
    save_exploratory_plots,
)


class TestExploratoryPlots:
    """Each figure is written as a non-empty PNG."""

    def test_save_all(self, encounters, tmp_path):
        paths = save_exploratory_plots(encounters, tmp_path / "figures")

        assert [p.name for p in paths] == [
            "categorical_by_outcome.png",
            "numeric_by_outcome.png",
            "correlation_heatmap.png",
        ]
        for path in paths:
            assert path.exists()
            assert path.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"

    def test_heatmap_subset(self, encounters, tmp_path):
        path = plot_correlation_heatmap(
            encounters, tmp_path / "heat.png", features=["num_visits", "time_in_hospital"]
        )
        assert path.stat().st_size > 0
