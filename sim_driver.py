import argparse
import logging
import sys
from typing import List, Optional

import combat_sim as cs
import sheets_sync
from data_loader import load_game_data
from sim_accel import PARALLEL_MIN_SIMULATIONS, SimulationPool
from sim_rules import (
    BUFFED_ACTIONS,
    DEFAULT_CONFIDENCE,
    DEFAULT_MAX_CYCLES,
    DEFAULT_TRIALS,
    REFERENCE_ACTIONS,
)
from stat_model import SimulationError

logger = logging.getLogger("sim_driver")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Monte Carlo duel simulation: reference vs buffed action lists."
    )
    parser.add_argument("--data", default="data", help="Directory with the YAML definitions.")
    parser.add_argument("--first", required=True, help="First combatant (win rate is its survival).")
    parser.add_argument("--second", required=True, help="Second combatant for the buffed scenario.")
    parser.add_argument(
        "--second-ref",
        default=None,
        help="Second combatant for the reference scenario (defaults to --second).",
    )
    parser.add_argument("--trials", type=int, default=None, help=f"Trials per scenario (default {DEFAULT_TRIALS}).")
    parser.add_argument(
        "--margin",
        type=float,
        default=None,
        help="Target win-rate margin; derives --trials at 95%% confidence.",
    )
    parser.add_argument("--max-cycles", type=int, default=DEFAULT_MAX_CYCLES)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--workers", type=int, default=None, help="Process workers (1 = sequential).")
    parser.add_argument("--sheets-config", default=None, help="JSON config to export results to Google Sheets.")
    parser.add_argument("--progress", action="store_true", help="Show chunk progress.")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def resolve_trials(args) -> int:
    if args.trials is not None:
        if args.trials < 1:
            raise SimulationError("--trials must be at least 1")
        return args.trials
    if args.margin is not None:
        return cs.required_trials_for_margin(margin=args.margin, confidence=DEFAULT_CONFIDENCE)
    return DEFAULT_TRIALS


def build_scenarios(args, actions) -> List[cs.Scenario]:
    scenarios = []
    other_ref, self_ref = REFERENCE_ACTIONS
    if other_ref in actions and self_ref in actions:
        scenarios.append(
            cs.Scenario(
                name="reference",
                first=args.first,
                first_actions=other_ref,
                second=args.second_ref or args.second,
                second_actions=self_ref,
            )
        )
    other, own = BUFFED_ACTIONS
    if other in actions and own in actions:
        scenarios.append(
            cs.Scenario(
                name="buffed",
                first=args.first,
                first_actions=other,
                second=args.second,
                second_actions=own,
            )
        )
    if not scenarios:
        raise SimulationError(
            "action list file defines neither the reference "
            f"{REFERENCE_ACTIONS} nor the buffed {BUFFED_ACTIONS} labels"
        )
    return scenarios


def print_report(report: cs.ScenarioReport):
    print()
    print(f"{report.name}: {report.first} vs {report.second} ({report.win.n:,} trials)")
    for _, label, low, mean, high in report.rows():
        print(f"  {label:<24} [{low:.4f}, {mean:.4f}, {high:.4f}]")
    print(f"  {'avg cycles':<24} {report.avg_turns:.2f}")


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    sheets_config = None
    if args.sheets_config:
        try:
            sheets_config = sheets_sync.load_config(args.sheets_config)
        except (OSError, ValueError) as exc:
            logger.error("Cannot use Sheets config: %s", exc)
            return 1

    try:
        data = load_game_data(args.data)
        trials = resolve_trials(args)
        scenarios = build_scenarios(args, data.actions)
        margin = cs.error_margin_for_trials(trials, confidence=DEFAULT_CONFIDENCE)
        print(f"Trials per scenario: {trials:,}.")
        print(f"Worst-case win rate margin: +/- {margin*100:.2f}% (95% CI).")

        pool = None
        if trials >= PARALLEL_MIN_SIMULATIONS and args.workers != 1:
            pool = SimulationPool(max_workers=args.workers)
            pool.start()

        reports = []
        try:
            combatants = data.combatants
            for scenario in scenarios:
                report = cs.run_scenario(
                    scenario,
                    combatants,
                    data.skills,
                    data.actions,
                    max_cycles=args.max_cycles,
                    trials=trials,
                    seed=args.seed,
                    pool=pool,
                    show_progress=args.progress,
                )
                reports.append(report)
                print_report(report)
        finally:
            if pool is not None:
                pool.close()

        if len(reports) == 2:
            delta = reports[1].win.mean - reports[0].win.mean
            print()
            print(f"Win rate change (buffed - reference): {delta*100:+.2f}%")
    except SimulationError as exc:
        logger.error("%s", exc)
        return 1

    if sheets_config is not None:
        try:
            target = sheets_sync.write_scenario_reports(sheets_config, reports)
        except Exception as exc:
            print(f"Failed to write scenario reports to Google Sheet: {exc}")
            raise
        print(f"Scenario reports written to Google Sheet ({target}).")
    return 0


if __name__ == "__main__":
    sys.exit(main())
