from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path

from .pipeline import PreparedModel


@dataclass(frozen=True)
class ReportPaths:
    out_dir: Path

    @property
    def model_json(self) -> Path:
        return self.out_dir / "model_spec.json"

    @property
    def report_md(self) -> Path:
        return self.out_dir / "report.md"


def format_table(rows: list[list], headers: list[str]) -> str:
    """Minimal markdown table formatter."""
    if not headers:
        raise ValueError("headers must be non-empty")
    cells = [[str(v) for v in r] for r in rows]
    if any(len(r) != len(headers) for r in cells):
        raise ValueError("Row length mismatch.")
    widths = [max([len(h)] + [len(r[j]) for r in cells]) for j, h in enumerate(headers)]

    def fmt_row(r: list[str]) -> str:
        return "| " + " | ".join(v.ljust(w) for v, w in zip(r, widths, strict=True)) + " |"

    out = [fmt_row(list(headers)), "| " + " | ".join("-" * w for w in widths) + " |"]
    out += [fmt_row(r) for r in cells]
    return "\n".join(out)


def render_model_report(prepared: PreparedModel) -> str:
    spec = prepared.spec
    calib = prepared.calibration
    g = prepared.grid
    stat_names = [f.name for f in fields(prepared.stats)]
    rows = []
    for j in range(g.n_cells):
        row = [j, f"{g.boundaries[j]:.4g}", f"{g.boundaries[j + 1]:.4g}"]
        row += [f"{getattr(prepared.stats, n)[j]:.4g}" for n in stat_names]
        row.append(f"{calib.naive_log_trajectory[j]:.4g}")
        rows.append(row)
    lines = [
        "# MRF smoothing model",
        "",
        f"- prior: `{spec.prior.value}`",
        f"- likelihood: `{spec.likelihood.value}`",
        f"- order: {spec.order} ({spec.differences.n_differences} differences)",
        f"- cells: {g.n_cells} over [{g.boundaries[0]:g}, {g.boundaries[-1]:g}]",
        f"- zeta: {calib.zeta:.6g} (alpha={calib.alpha:g}, {calib.scale_dist}, "
        f"target sd={calib.target_sd:.4g}, {calib.iterations} iterations)",
        "",
        "## Cell statistics",
        "",
        format_table(rows, ["cell", "lo", "hi", *stat_names, "naive"]),
        "",
    ]
    return "\n".join(lines)


def write_model_outputs(*, paths: ReportPaths, prepared: PreparedModel) -> None:
    paths.out_dir.mkdir(parents=True, exist_ok=True)
    paths.model_json.write_text(prepared.spec.to_json() + "\n", encoding="utf-8")
    paths.report_md.write_text(render_model_report(prepared), encoding="utf-8")
