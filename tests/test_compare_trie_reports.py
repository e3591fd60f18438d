import os
import sys
from pathlib import Path

project_root = str(Path(__file__).parent.parent)
src_dir = os.path.join(project_root, "src")
sys.path.insert(0, src_dir)
sys.path.insert(0, project_root)

import compare_trie_reports
from histogram import Histogram

## Auxiliary functions


def export_run(export_dir, state_depths, storage_depths=None):
    export_dir.mkdir(parents=True, exist_ok=True)
    state = Histogram("State Trie - Depths")
    for value in state_depths:
        state.observe(value)
    state.export(export_dir / "state_trie_depths.csv")

    if storage_depths is not None:
        storage = Histogram("Storage Trie - Depths")
        for value in storage_depths:
            storage.observe(value)
        storage.export(export_dir / "storage_trie_depths.csv")

## Tests


def test_parse_run_argument():
    assert compare_trie_reports.parse_run_argument("head=/tmp/a") == ("head", "/tmp/a")
    assert compare_trie_reports.parse_run_argument("/tmp/stats") == ("stats", "/tmp/stats")


def test_load_run_picks_up_existing_exports(tmp_path):
    export_run(tmp_path, [3, 5, 5])

    histograms = compare_trie_reports.load_run(tmp_path)
    assert list(histograms) == ["State Trie - Depths"]
    assert histograms["State Trie - Depths"].as_dict() == {3: 1, 5: 2}


def test_distribution_frame_aligns_runs(tmp_path):
    export_run(tmp_path / "a", [2, 2, 3, 3])
    export_run(tmp_path / "b", [3, 4])
    runs = {
        "a": compare_trie_reports.load_run(tmp_path / "a"),
        "b": compare_trie_reports.load_run(tmp_path / "b"),
    }

    table = compare_trie_reports.distribution_frame("State Trie - Depths", runs)

    assert list(table.columns) == ["a", "b"]
    assert list(table.index) == [2, 3, 4]
    assert table.loc[2, "a"] == 50.0
    assert table.loc[2, "b"] == 0.0
    assert table.loc[4, "b"] == 50.0


def test_main_writes_report(tmp_path, capsys):
    export_run(tmp_path / "first", [3, 5, 5], [2, 4])
    export_run(tmp_path / "second", [4, 4])
    output = tmp_path / "out" / "report.md"

    exit_code = compare_trie_reports.main([
        "--run", f"first={tmp_path / 'first'}",
        "--run", str(tmp_path / "second"),
        "--output", str(output),
    ])

    assert exit_code == 0
    report = output.read_text()
    assert report.startswith("# Trie Shape Comparison")
    assert "- **first**: 3 accounts, 0 storage tries" in report
    assert "| first | 3 | 4.33 | 5 | 3 | 5 |" in report
    assert "| second | 2 | 4.00 | 4 | 4 | 4 |" in report
    assert "#### Storage Trie - Depths - share per value (%)" in report


def test_main_without_exports(tmp_path):
    output = tmp_path / "report.md"
    assert compare_trie_reports.main(["--run", str(tmp_path), "--output", str(output)]) == 1
    assert not output.exists()
