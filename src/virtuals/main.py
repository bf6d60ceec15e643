"""Application entry point."""

import argparse
import asyncio
import logging
import sys

from virtuals.config import get_config
from virtuals.db.pool import close_pool, get_pool
from virtuals.scheduler.pipeline import DEFAULT_ROUND_SIZE, PricedEvent, build_duel, build_round
from virtuals.simulation.quiz import QuizOutcome

PREVIEW_MARKETS = ("Match Winner", "Total Points", "Total Match Score")


async def boot() -> None:
    """
    Boot sequence: load config → validate → initialize pool → shutdown.

    Raises:
        SystemExit: On configuration or database errors
    """
    logger = logging.getLogger(__name__)

    try:
        # Load and validate configuration
        config = get_config()
        logger.info(f"Configuration loaded: env={config.env}")

        # Initialize database pool with health check
        await get_pool()
        logger.info(
            f"Database pool initialized: min={config.db_pool_min}, max={config.db_pool_max}"
        )

        # Clean shutdown
        await close_pool()
        logger.info("Application shutdown complete")

    except Exception as e:
        logger.error(f"Boot sequence failed: {e}")
        raise SystemExit(1) from e


def format_event(event: PricedEvent) -> str:
    """Plain-text summary of one priced event for the preview command."""
    outcome = event.outcome
    lines = [f"{outcome.event_id}"]

    if isinstance(outcome, QuizOutcome):
        for name, total in zip(outcome.participants, outcome.total_scores):
            marker = "*" if name == outcome.winner else " "
            lines.append(f"  {marker} {name:<28} {total:>4}")
    else:
        lines.append(f"    {outcome.player_a:<12} {outcome.total_a:>4}")
        lines.append(f"    {outcome.player_b:<12} {outcome.total_b:>4}")
        lines.append(f"    winner: {outcome.winner_name or 'tie'}")

    for market in event.markets:
        if market.name in PREVIEW_MARKETS:
            prices = ", ".join(f"{s.label} {s.odds:.2f}" for s in market.selections)
            lines.append(f"    {market.name}: {prices}")
    return "\n".join(lines)


def preview(round_slot: int, count: int) -> None:
    """Print a round's winners and headline odds; needs no database."""
    for event in build_round(round_slot, count):
        print(format_event(event))


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Virtual event pricing and settlement engine")
    commands = parser.add_subparsers(dest="command")

    preview_cmd = commands.add_parser("preview", help="Simulate and price a round without a database")
    preview_cmd.add_argument("--round", type=int, required=True, dest="round_slot")
    preview_cmd.add_argument("--count", type=int, default=DEFAULT_ROUND_SIZE)

    duel_cmd = commands.add_parser("duel", help="Simulate and price one duel without a database")
    duel_cmd.add_argument("--seed", type=int, required=True)

    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    """Main entry point with logging configuration."""
    # Configure logging
    config = get_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    args = _parse_args(argv)

    try:
        if args.command == "preview":
            preview(args.round_slot, args.count)
        elif args.command == "duel":
            print(format_event(build_duel(args.seed)))
        else:
            asyncio.run(boot())
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
        sys.exit(0)
    except SystemExit:
        raise
    except Exception as e:
        logging.error(f"Unexpected error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
