import argparse
import asyncio
import logging

from dotenv import find_dotenv, load_dotenv

from nettrailers_interactions.interactions_repo import InteractionsRepo
from nettrailers_interactions.interactions_service import InteractionsService
from nettrailers_logging.logger import DebugLogger, configure_logging

logger = logging.getLogger(__name__)


def positive_days(value: str) -> float:
    days = float(value)
    if not days > 0:
        raise argparse.ArgumentTypeError(f"retention days must be positive, got {value}")
    return days


async def purge(user_ids: list[str], retention_days: float | None) -> int:
    # imported late so .env is loaded before settings are read
    from app.main import Settings, _make_store

    settings = Settings()
    debug = DebugLogger(settings.debug_flags())
    store = _make_store(settings, debug)
    service = InteractionsService(
        InteractionsRepo(store),
        config=settings.tracking_config(),
        debug=debug,
    )
    total = 0
    try:
        for user_id in user_ids:
            deleted = await service.cleanup_old_interactions(user_id, retention_days)
            logger.info("%s: deleted %d interactions", user_id, deleted)
            total += deleted
    finally:
        await store.aclose()
    return total


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Delete interactions older than the retention window"
    )
    parser.add_argument("user_ids", nargs="+", help="Users to purge")
    parser.add_argument(
        "--retention-days",
        type=positive_days,
        default=None,
        help="Override RETENTION_DAYS for this run (must be positive)",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    load_dotenv(find_dotenv(), override=False)
    configure_logging("INFO")

    total = asyncio.run(purge(args.user_ids, args.retention_days))
    logger.info("Done: %d interactions deleted across %d users", total, len(args.user_ids))


if __name__ == "__main__":
    main()
