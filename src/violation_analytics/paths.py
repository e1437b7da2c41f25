from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

RUN_SUMMARY_FILENAME = "run_summary.json"


@dataclass(frozen=True)
class OutputPaths:
    root: Path
    tables: Path
    summary: Path

    @property
    def run_summary(self) -> Path:
        return self.summary / RUN_SUMMARY_FILENAME

    def table(self, name: str, fmt: str) -> Path:
        return self.tables / f"{name}.{fmt}"


def build_output_paths(out_dir: Path) -> OutputPaths:
    """Create ``tables/`` and ``summary/`` under ``out_dir`` for a dashboard export run."""
    paths = OutputPaths(root=out_dir, tables=out_dir / "tables", summary=out_dir / "summary")
    for path in (paths.root, paths.tables, paths.summary):
        path.mkdir(parents=True, exist_ok=True)
    return paths
