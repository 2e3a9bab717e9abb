from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from mrf_trend.aggregation import Likelihood
from mrf_trend.emcee_engine import EmceeEngine
from mrf_trend.engine import SamplerControls, run_engine
from mrf_trend.ingest import load_observations
from mrf_trend.model_spec import Prior
from mrf_trend.pipeline import prepare_model
from mrf_trend.posterior import extract_trajectory
from mrf_trend.report import ReportPaths, format_table, write_model_outputs


def main() -> int:
    parser = argparse.ArgumentParser(description="Build the grid, cell statistics and calibrated zeta for an MRF smoothing model.")
    parser.add_argument("--likelihood", choices=[lk.value for lk in Likelihood], required=True)
    parser.add_argument("--data", type=Path, nargs="+", required=True, help="CSV file(s); coalescent needs samples then coal times.")
    parser.add_argument("--out", type=Path, default=Path("outputs/mrf_model"))
    parser.add_argument("--cells", type=int, default=50)
    parser.add_argument("--order", type=int, choices=[1, 2], default=1)
    parser.add_argument("--prior", choices=[p.value for p in Prior], default=Prior.HORSESHOE.value)
    parser.add_argument("--alpha", type=float, default=0.05, help="Exceedance probability for zeta calibration.")
    parser.add_argument("--scale-dist", choices=["halfcauchy", "halfnormal"], default="halfcauchy")
    parser.add_argument("--max-time", type=float, default=None)
    parser.add_argument("--sample", action="store_true", help="Also run the emcee reference engine (small grids only).")
    parser.add_argument("--chains", type=int, default=2)
    parser.add_argument("--iterations", type=int, default=2000)
    parser.add_argument("--thin", type=int, default=1)
    parser.add_argument("--seed", type=int, default=0)
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    obs = load_observations(args.likelihood, *args.data)
    prepared = prepare_model(
        obs,
        n_cells=int(args.cells),
        order=int(args.order),
        prior=args.prior,
        alpha=float(args.alpha),
        scale_dist=args.scale_dist,
        max_time=args.max_time,
    )
    paths = ReportPaths(out_dir=args.out)
    write_model_outputs(paths=paths, prepared=prepared)
    print(f"Wrote {paths.model_json} and {paths.report_md}")

    if args.sample:
        controls = SamplerControls(chains=int(args.chains), iterations=int(args.iterations), thin=int(args.thin), seed=int(args.seed))
        result = run_engine(EmceeEngine(), prepared.spec, controls)
        traj = extract_trajectory(result.theta, prepared.grid, prepared.spec.likelihood)
        summ = traj.summary(alpha=0.05)
        rows = [
            [f"{m:.4g}", f"{lo:.4g}", f"{med:.4g}", f"{hi:.4g}"]
            for m, lo, med, hi in zip(summ["midpts"], summ["lower"], summ["median"], summ["upper"], strict=True)
        ]
        table = format_table(rows, ["midpt", "lower", "median", "upper"])
        (args.out / "trajectory.md").write_text(table + "\n", encoding="utf-8")
        (args.out / "trajectory.json").write_text(
            json.dumps({k: v.tolist() for k, v in summ.items()}, indent=2, sort_keys=True) + "\n",
            encoding="utf-8",
        )
        print(table)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
