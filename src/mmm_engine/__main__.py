"""
Command-line entry point for the MMM engine.

Used by the scheduler (fit-all) and for ad-hoc fitting, prediction and
budget planning. Results are printed as JSON.
"""
import sys
import json
import asyncio
import argparse
from datetime import date
from typing import Any, List

from pydantic import TypeAdapter, ValidationError

from mmm_engine.config.settings import settings
from mmm_engine.database.connection import DatabaseManager
from mmm_engine.database.repositories import SqlObservationStore, SqlParamsStore, ScenarioRepository
from mmm_engine.optimization.optimizer import OptimizationSummary
from mmm_engine.optimization.scenarios import SpendAllocationSchema, build_scenario
from mmm_engine.services.engine import MMMEngine
from mmm_engine.utils.exceptions import MMMException
from mmm_engine.utils.logging import setup_logging

allocation_list = TypeAdapter(List[SpendAllocationSchema])


def create_parser():
    """Create command-line argument parser."""
    parser = argparse.ArgumentParser(description="Marketing Mix Modeling engine")
    parser.add_argument("--database-url", default=settings.database.url, help="Database URL")
    parser.add_argument(
        "--log-level",
        default=settings.logging.level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set logging level"
    )
    parser.add_argument(
        "--as-of",
        type=date.fromisoformat,
        default=None,
        help="Reference date (YYYY-MM-DD) for trailing windows, defaults to today"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables")

    fit = sub.add_parser("fit", help="Fit response curves for one owner")
    fit.add_argument("--owner", required=True)

    fit_all = sub.add_parser("fit-all", help="Fit response curves for many owners")
    fit_all.add_argument(
        "--owner", action="append", dest="owners", default=None,
        help="Owner id (repeatable); all owners with spend data when omitted"
    )

    channels = sub.add_parser("channels", help="List fitted channel curves")
    channels.add_argument("--owner", required=True)

    predict = sub.add_parser("predict", help="Predict revenue for a spend level")
    predict.add_argument("--owner", required=True)
    predict.add_argument("--channel", required=True)
    predict.add_argument("--spend", type=float, required=True)

    curve = sub.add_parser("curve", help="Sample a channel response curve")
    curve.add_argument("--owner", required=True)
    curve.add_argument("--channel", required=True)
    curve.add_argument("--min", dest="min_spend", type=float, default=None)
    curve.add_argument("--max", dest="max_spend", type=float, default=None)
    curve.add_argument("--steps", type=int, default=None)

    optimize = sub.add_parser("optimize", help="Optimize a daily budget across channels")
    optimize.add_argument("--owner", required=True)
    optimize.add_argument("--budget", type=float, required=True)

    simulate = sub.add_parser("simulate", help="Evaluate a custom allocation")
    simulate.add_argument("--owner", required=True)
    simulate.add_argument(
        "--allocations", required=True,
        help='JSON list, e.g. [{"channel": "meta", "spend": 500}]'
    )

    efficiency = sub.add_parser("efficiency", help="Channel headroom and marginal ROAS")
    efficiency.add_argument("--owner", required=True)

    save = sub.add_parser("save-scenario", help="Save an optimized or custom scenario")
    save.add_argument("--owner", required=True)
    save.add_argument("--name", required=True)
    save.add_argument("--budget", type=float, required=True)
    save.add_argument("--allocations", default=None, help="JSON list; optimizer is used when omitted")

    scenarios = sub.add_parser("scenarios", help="List saved scenarios")
    scenarios.add_argument("--owner", required=True)

    return parser


def _to_jsonable(result: Any) -> Any:
    if isinstance(result, list):
        return [_to_jsonable(item) for item in result]
    if hasattr(result, "to_dict"):
        return result.to_dict()
    return result


async def run_command(args, db: DatabaseManager) -> Any:
    """Execute one CLI command against the database."""
    if args.command == "init-db":
        await db.create_tables()
        return {"status": "ok"}

    session_maker = await db.get_session_maker()
    engine = MMMEngine(SqlObservationStore(session_maker), SqlParamsStore(session_maker))

    if args.command == "fit":
        return await engine.fit_channel_curves(args.owner, args.as_of)
    if args.command == "fit-all":
        owners = args.owners or await engine.observations.list_owners()
        return await engine.fit_all_owners_curves(owners, args.as_of)
    if args.command == "channels":
        return await engine.list_channel_fits(args.owner)
    if args.command == "predict":
        revenue = await engine.predict_revenue(args.owner, args.channel, args.spend)
        return {"channel": args.channel, "spend": args.spend, "predicted_revenue": revenue}
    if args.command == "curve":
        points = await engine.get_response_curve(
            args.owner, args.channel, args.min_spend, args.max_spend, args.steps
        )
        return {"channel": args.channel, "curve": _to_jsonable(points)}
    if args.command == "optimize":
        allocations = await engine.optimize_budget(args.owner, args.budget)
        return OptimizationSummary.from_allocations(allocations)
    if args.command == "simulate":
        return await engine.simulate_scenario(args.owner, allocation_list.validate_json(args.allocations))
    if args.command == "efficiency":
        return await engine.get_channel_efficiency(args.owner, args.as_of)

    repository = ScenarioRepository(session_maker)
    if args.command == "save-scenario":
        if args.allocations:
            result = await engine.simulate_scenario(
                args.owner, allocation_list.validate_json(args.allocations)
            )
            scenario = build_scenario(args.name, args.budget, result.allocations, is_optimal=False)
        else:
            allocations = await engine.optimize_budget(args.owner, args.budget)
            scenario = build_scenario(args.name, args.budget, allocations, is_optimal=True)
        return await repository.save(args.owner, scenario)
    if args.command == "scenarios":
        return await repository.list_recent(args.owner, settings.scenarios.list_limit)

    raise ValueError(f"Unknown command {args.command}")


async def _run(args) -> Any:
    db = DatabaseManager(args.database_url)
    try:
        return await run_command(args, db)
    finally:
        await db.close()


def main():
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    setup_logging(args.log_level)

    try:
        result = asyncio.run(_run(args))
    except (MMMException, ValidationError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(130)

    print(json.dumps(_to_jsonable(result), indent=2, default=str))


if __name__ == "__main__":
    main()
