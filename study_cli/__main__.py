"""CLI interface for the adaptive learning engine.

Usage:
    python -m study_cli add-item USER [--topic T]     Create a new learning item
    python -m study_cli due USER                      Show items due for review
    python -m study_cli review ITEM GRADE             Grade an item (0-5)
    python -m study_cli stats USER                    Show retention statistics
    python -m study_cli history USER [options]        Record a learning-history entry
    python -m study_cli derive USER                   Build a profile from history
    python -m study_cli profile USER                  Show a cognitive profile
"""

import argparse
import asyncio
import json
import logging

from engine.config import settings, utcnow
from engine.database import async_session, engine
from engine.errors import EngineError
from engine.models import Base
from engine.profiles.repository import ProfileRepository, RepositoryResult
from engine.profiles.types import CognitiveProfile, HistoryRecord
from engine.srs.retention import retention, summarize_retention
from engine.srs.review import due_items, record_review
from engine.srs.scheduler import SM2Scheduler
from engine.storage import SqlLearningStore


async def ensure_db() -> None:
    """Create tables if they don't exist."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def _store() -> SqlLearningStore:
    return SqlLearningStore(async_session)


def _format_profile(profile: CognitiveProfile) -> str:
    data = {
        "user_id": profile.user_id,
        "learning_speed": profile.learning_speed,
        "preferred_content_formats": profile.preferred_content_formats,
        "knowledge_graph": {domain: sorted(topics) for domain, topics in profile.knowledge_graph.items()},
        "attention_span": profile.attention_span,
        "retention_rates": profile.retention_rates,
        "last_updated": profile.last_updated.isoformat(),
    }
    return json.dumps(data, indent=2, ensure_ascii=False)


def _print_result(result: RepositoryResult) -> None:
    if result.ok:
        print(_format_profile(result.profile))
    else:
        print(f"  {result.error.kind.value}: {result.error}")


async def cmd_add_item(args: argparse.Namespace) -> None:
    """Create a never-reviewed item, due immediately."""
    await ensure_db()
    item = SM2Scheduler().new_item(args.user, topic_id=args.topic)
    stored = await _store().persist_learning_item(item)
    print(f"  Added item {stored.item_id} for {args.user}")


async def cmd_due(args: argparse.Namespace) -> None:
    """Show the user's due items, lowest retention first."""
    await ensure_db()
    now = utcnow()
    threshold = args.threshold if args.threshold is not None else settings.due_threshold
    items = await due_items(_store(), args.user, now=now, threshold=threshold)

    if not items:
        print("\nNothing due for review. You're all caught up!")
        return

    print(f"\n  {len(items)} items due (retention < {threshold:.0%})\n")
    for item in sorted(items, key=lambda i: retention(i, now)):
        label = "new" if item.never_reviewed else f"rep {item.repetition_count}"
        print(f"  #{item.item_id:<6} {retention(item, now):6.1%}  {item.topic_id or '-':<20} ({label})")


async def cmd_review(args: argparse.Namespace) -> None:
    """Grade an item and show its new schedule."""
    await ensure_db()
    try:
        result = await record_review(_store(), args.item, args.grade)
    except EngineError as e:
        print(f"  {e.kind.value}: {e}")
        return

    state = result.new_state
    print(f"  Item {args.item}: retention was {result.retention_before:.1%}")
    print(
        f"  EF {state.easiness_factor:.2f}, next review in {result.interval_days} days "
        f"({state.next_review_at:%Y-%m-%d})"
    )


async def cmd_stats(args: argparse.Namespace) -> None:
    """Show average, lowest and per-topic retention."""
    await ensure_db()
    items = await _store().fetch_learning_items(args.user)
    summary = summarize_retention(items, utcnow())

    print(f"\n  Items:             {summary.item_count}")
    print(f"  Average retention: {summary.average:.1%}")
    print(f"  Lowest retention:  {summary.lowest:.1%}")
    for topic_id, value in sorted(summary.by_topic.items(), key=lambda kv: kv[1]):
        print(f"    {topic_id:<20} {value:.1%}")


async def cmd_history(args: argparse.Namespace) -> None:
    """Record one learning-history entry."""
    await ensure_db()
    record = HistoryRecord(
        module_id=args.module,
        topic_id=args.topic,
        content_type=args.content_type,
        progress_percent=args.progress,
        completed=args.completed,
    )
    await _store().add_history_record(args.user, record)
    print(f"  Recorded history for {args.user}")


async def cmd_derive(args: argparse.Namespace) -> None:
    """Return the user's profile, deriving it from history if none exists."""
    await ensure_db()
    repository = ProfileRepository(_store())
    _print_result(await repository.get_or_create_profile(args.user))


async def cmd_profile(args: argparse.Namespace) -> None:
    """Show the stored profile."""
    await ensure_db()
    repository = ProfileRepository(_store())
    _print_result(await repository.get_profile(args.user))


def main() -> None:
    """Entry point for the study CLI."""
    parser = argparse.ArgumentParser(
        prog="study_cli",
        description="Adaptive learning engine",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # add-item
    add_parser = subparsers.add_parser("add-item", help="Create a new learning item")
    add_parser.add_argument("user", help="User id")
    add_parser.add_argument("-t", "--topic", default=None, help="Topic id")

    # due
    due_parser = subparsers.add_parser("due", help="Show items due for review")
    due_parser.add_argument("user", help="User id")
    due_parser.add_argument("--threshold", type=float, default=None, help="Retention threshold")

    # review
    review_parser = subparsers.add_parser("review", help="Grade an item")
    review_parser.add_argument("item", type=int, help="Item id")
    review_parser.add_argument("grade", type=int, help="Grade 0-5")

    # stats
    stats_parser = subparsers.add_parser("stats", help="Show retention statistics")
    stats_parser.add_argument("user", help="User id")

    # history
    history_parser = subparsers.add_parser("history", help="Record a learning-history entry")
    history_parser.add_argument("user", help="User id")
    history_parser.add_argument("-m", "--module", default=None, help="Module id")
    history_parser.add_argument("-t", "--topic", default=None, help="Topic id")
    history_parser.add_argument("-c", "--content-type", default=None, help="Content type (text, video, ...)")
    history_parser.add_argument("-p", "--progress", type=float, default=None, help="Progress percent")
    history_parser.add_argument("--completed", action="store_true")

    # derive
    derive_parser = subparsers.add_parser("derive", help="Build a profile from learning history")
    derive_parser.add_argument("user", help="User id")

    # profile
    profile_parser = subparsers.add_parser("profile", help="Show a cognitive profile")
    profile_parser.add_argument("user", help="User id")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "add-item": cmd_add_item,
        "due": cmd_due,
        "review": cmd_review,
        "stats": cmd_stats,
        "history": cmd_history,
        "derive": cmd_derive,
        "profile": cmd_profile,
    }

    asyncio.run(cmd_map[args.command](args))


if __name__ == "__main__":
    main()
