import argparse
import sys

from .experiment_manager import load_experiment, run_experiment_from_config
from .summary import asset_inventory_frame


def main(argv=None):
    parser = argparse.ArgumentParser(description="cyber-var Monte Carlo cyber risk engine")
    sub = parser.add_subparsers(dest="cmd")

    # ------------------------------------------------------------------
    # run
    # ------------------------------------------------------------------
    p_run = sub.add_parser("run", help="Run a simulation from a YAML portfolio file")
    p_run.add_argument("config", type=str, help="Path to .yaml portfolio file")
    p_run.add_argument("--seed", type=int, default=None, help="Random seed (overrides file)")
    p_run.add_argument("--iterations", type=int, default=None, help="Trials per horizon")
    p_run.add_argument("--scenario", type=str, default=None, help="Stress scenario name")

    # ------------------------------------------------------------------
    # inventory
    # ------------------------------------------------------------------
    p_inv = sub.add_parser("inventory", help="Print the asset inventory as CSV")
    p_inv.add_argument("config", type=str, help="Path to .yaml portfolio file")

    args = parser.parse_args(argv)

    if args.cmd == "run":
        overrides = {}
        if args.iterations is not None:
            overrides["iterations"] = args.iterations
        if args.scenario is not None:
            overrides["stress_scenario"] = args.scenario
        run_experiment_from_config(args.config, seed=args.seed, overrides=overrides)

    elif args.cmd == "inventory":
        exp = load_experiment(args.config)
        asset_inventory_frame(exp["assets"]).to_csv(sys.stdout, index=False)

    else:
        parser.print_help()


if __name__ == "__main__":
    main()
