#!/usr/bin/env python3
"""
Compare exported trie histograms across analysis runs:
- Summary statistics per histogram (mean/median/min/max depth)
- Share of leaves at each depth, side by side
"""

import os
import sys
import argparse
from pathlib import Path
from typing import Dict, Tuple

import pandas as pd

project_root = str(Path(__file__).parent)
src_dir = os.path.join(project_root, "src")
sys.path.insert(0, src_dir)

from analyzer import (
    STATE_DEPTHS_FILE,
    STORAGE_DEPTHS_FILE,
    SLOTS_PER_ACCOUNT_FILE,
    PATH_SHAPES_FILE,
)
from histogram import Histogram, load_histogram

HISTOGRAM_FILES = [
    (STATE_DEPTHS_FILE, "State Trie - Depths"),
    (STORAGE_DEPTHS_FILE, "Storage Trie - Depths"),
    (SLOTS_PER_ACCOUNT_FILE, "Storage Trie - Slots per Account"),
    (PATH_SHAPES_FILE, "State Trie - Path types"),
]


def parse_run_argument(value: str) -> Tuple[str, str]:
    """`label=dir`, or just `dir` labelled by its folder name."""
    if "=" in value:
        label, _, path = value.partition("=")
        return label.strip(), path.strip()
    return Path(value).name, value


def load_run(export_dir) -> Dict[str, Histogram]:
    """Load whichever known histogram exports exist in `export_dir`."""
    histograms = {}
    for filename, name in HISTOGRAM_FILES:
        path = Path(export_dir) / filename
        if path.exists():
            histograms[name] = load_histogram(path, name)
    return histograms


def format_stat(value) -> str:
    if value is None:
        return "-"
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def create_summary_table(name: str, runs: Dict[str, Dict[str, Histogram]]) -> str:
    lines = [f"\n### {name}\n"]
    lines.append("| Run | Observations | Mean | Median | Min | Max |")
    lines.append("|-----|--------------|------|--------|-----|-----|")

    for label, histograms in runs.items():
        histogram = histograms.get(name)
        if histogram is None:
            continue
        stats = histogram.summary()
        lines.append(
            f"| {label} | {stats['observations']} | {format_stat(stats.get('mean'))} | "
            f"{format_stat(stats.get('median'))} | {format_stat(stats.get('min'))} | "
            f"{format_stat(stats.get('max'))} |"
        )
    return '\n'.join(lines)


def distribution_frame(name: str, runs: Dict[str, Dict[str, Histogram]]) -> pd.DataFrame:
    """Percentage of observations at each value, one column per run."""
    frames = []
    for label, histograms in runs.items():
        histogram = histograms.get(name)
        if histogram is None or histogram.total == 0:
            continue
        df = histogram.to_frame()
        df["share"] = df["count"] / histogram.total * 100
        df["run"] = label
        frames.append(df)

    if not frames:
        return pd.DataFrame()

    combined = pd.concat(frames, ignore_index=True)
    table = combined.pivot_table(index="value", columns="run", values="share", aggfunc="sum", fill_value=0.0)
    return table[[label for label in runs if label in table.columns]].sort_index()


def create_distribution_table(name: str, runs: Dict[str, Dict[str, Histogram]]) -> str:
    table = distribution_frame(name, runs)
    if table.empty:
        return ""

    labels = list(table.columns)
    lines = [f"\n#### {name} - share per value (%)\n"]
    lines.append("| Value | " + " | ".join(labels) + " |")
    lines.append("|-------|" + "|".join("-" * (len(label) + 2) for label in labels) + "|")
    for value, row in table.iterrows():
        lines.append(f"| {value} | " + " | ".join(f"{row[label]:.2f}" for label in labels) + " |")
    return '\n'.join(lines)


def generate_report(runs: Dict[str, Dict[str, Histogram]]) -> str:
    report_lines = [
        "# Trie Shape Comparison",
        "",
        "## Runs",
        "",
    ]

    for label, histograms in runs.items():
        state = histograms.get("State Trie - Depths")
        accounts = state.total if state is not None else 0
        storage = histograms.get("Storage Trie - Slots per Account")
        storage_tries = storage.total if storage is not None else 0
        report_lines.append(f"- **{label}**: {accounts} accounts, {storage_tries} storage tries")

    report_lines.append("\n## Summary Statistics")
    for _, name in HISTOGRAM_FILES:
        if not any(name in histograms for histograms in runs.values()):
            continue
        report_lines.append(create_summary_table(name, runs))

    report_lines.append("\n## Depth Distributions")
    for name in ("State Trie - Depths", "Storage Trie - Depths"):
        table = create_distribution_table(name, runs)
        if table:
            report_lines.append(table)

    report_lines.extend([
        "",
        "---",
        "",
        f"*Report generated from {len(runs)} runs*",
    ])
    return '\n'.join(report_lines)


def main(argv=None):
    parser = argparse.ArgumentParser(description='Compare exported trie depth histograms across runs')
    parser.add_argument('--run', action='append', required=True,
                        help='Export directory of a run, optionally as label=dir (repeatable)')
    parser.add_argument('--output', default=str(Path(project_root) / "reports" / "Trie_Shape_Comparison.md"),
                        help='Markdown file to write (default: %(default)s)')
    args = parser.parse_args(argv)

    runs: Dict[str, Dict[str, Histogram]] = {}
    for value in args.run:
        label, export_dir = parse_run_argument(value)
        print(f"Loading {label} from {export_dir}...")
        histograms = load_run(export_dir)
        if not histograms:
            print(f"  No histogram exports found in {export_dir}")
            continue
        runs[label] = histograms

    if not runs:
        print("No analysis data found!")
        return 1

    print("Generating comparison report...")
    report = generate_report(runs)

    output_path = Path(args.output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w') as f:
        f.write(report)

    print(f"Report saved to: {output_path}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
