"""
Tests for plots and the markdown report.
"""
import math

import pytest

from neat_car.envs.track import default_track
from neat_car.envs.world import SimulationResult
from neat_car.reporting import (
    build_complexification_commentary,
    build_driving_commentary,
    write_markdown_report,
)
from neat_car.visualization import node_depths, plot_genome, plot_history, plot_trajectory


@pytest.fixture
def history():
    return [
        {
            "generation": float(g),
            "best_fitness": 0.001 * (g + 1),
            "mean_fitness": 0.0005 * (g + 1),
            "unscored": 0.0,
            "best_completion": 0.25 * (g + 1),
            "crashes": float(3 - g),
            "mean_hidden_nodes": 0.5 * g,
            "mean_enabled_connections": 40.0 + g,
            "champ_hidden_nodes": float(g),
            "champ_enabled_connections": 40.0 + g,
        }
        for g in range(3)
    ]


class TestPlots:
    def test_node_depths(self, seed_genome, tracker):
        hidden = seed_genome.add_node(0, tracker)

        depth = node_depths(seed_genome)

        assert depth[0] == depth[1] == 0
        assert depth[hidden] == 1
        assert depth[2] == 2

    def test_plot_files(self, seed_genome, tracker, history, tmp_path):
        seed_genome.add_node(0, tracker)

        plot_history(history, tmp_path / "history.png")
        plot_genome(seed_genome, tmp_path / "genome.png")
        plot_trajectory(default_track(), [(400.0, -300.0), (450.0, -300.0)], tmp_path / "traj.png")

        assert (tmp_path / "history.png").exists()
        assert (tmp_path / "genome.png").exists()
        assert (tmp_path / "traj.png").exists()

    def test_empty_history_writes_nothing(self, tmp_path):
        plot_history([], tmp_path / "history.png")

        assert not (tmp_path / "history.png").exists()


class TestReport:
    def test_commentary(self, history, seed_genome, tracker):
        seed_genome.add_node(0, tracker)

        text = build_complexification_commentary(history, seed_genome)

        assert "Mean hidden nodes: 0 -> 1" in text
        assert "1 hidden node(s)" in text

    def test_commentary_without_history(self, seed_genome):
        assert build_complexification_commentary([], seed_genome) == "No generation history was recorded."

    def test_nan_fitness(self, history, seed_genome):
        history[0]["best_fitness"] = math.nan

        assert "Best fitness: nan -> 0.003." in build_complexification_commentary(history, seed_genome)

    def test_write_report(self, history, seed_genome, tmp_path):
        path = tmp_path / "report.md"

        write_markdown_report(path, history, seed_genome, {"champion_nw": tmp_path / "champion.nw"})

        text = path.read_text(encoding="utf-8")
        assert text.startswith("# NEAT Car Controller Report")
        assert "champion_nw" in text

    def test_driving_commentary(self, history):
        text = build_driving_commentary(history)

        assert "Best track completion: 25.0% -> 75.0%" in text
        assert "No controller finished the track." in text
        assert "Crashed drives: 6 over the run, 1 in the final generation." in text

    def test_first_full_lap(self, history):
        history[1]["best_completion"] = 1.0

        assert "First full lap in generation 1." in build_driving_commentary(history)

    def test_driving_commentary_without_drives(self, history):
        for h in history:
            h["best_completion"] = math.nan

        assert build_driving_commentary(history) == "No drives were recorded."

    def test_report_describes_champion_drive(self, history, seed_genome, tmp_path):
        replay = SimulationResult()
        replay.set_completion(0.5)
        for _ in range(100):
            replay.record_tick()
        replay.mark_crashed()
        replay.freeze()
        path = tmp_path / "report.md"

        write_markdown_report(path, history, seed_genome, {}, replay=replay)

        text = path.read_text(encoding="utf-8")
        assert "## Champion Drive" in text
        assert "- Outcome: crashed into a track edge." in text
        assert "- Track completion: 50.0%." in text
        assert "- Ticks driven: 100." in text
        assert "- Replay fitness: 0.0025." in text
        assert "### Driving Notes" in text
