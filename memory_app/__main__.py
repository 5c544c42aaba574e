"""CLI interface for Memory App.

Usage:
    python -m memory_app review                 Review every card due now
    python -m memory_app review --practice DECK Practice a deck without rescheduling
    python -m memory_app due                    Show how many cards are due
    python -m memory_app add "Q" "A" -c DECK    Add a new card
    python -m memory_app decks                  List decks by group
    python -m memory_app stats                  Show your statistics
    python -m memory_app export backup.json     Write a backup file
    python -m memory_app import backup.json     Merge a backup file
    python -m memory_app sync --email you@x.y   Sign in and run a full sync
"""

import argparse
import asyncio
import getpass
import logging
import os
from collections.abc import Awaitable, Callable
from datetime import date
from pathlib import Path

from backend.context import AppContext
from backend.database import engine, init_models
from backend.errors import MemoryAppError
from backend.models import Card
from backend.srs.decks import group_decks
from backend.srs.review import compute_stats, get_due, start_practice, start_session
from backend.srs.sm2 import Grade, format_next_review
from backend.transfer import export_data, export_json, import_data

logger = logging.getLogger(__name__)

GRADE_KEYS = {"1": Grade.AGAIN, "2": Grade.HARD, "3": Grade.GOOD, "4": Grade.EASY}


async def ensure_db() -> AppContext:
    """Create tables if they don't exist and return a context with the standard decks."""
    await init_models()
    ctx = AppContext()
    await ctx.library.ensure_standard_decks()
    return ctx


async def cmd_review(args: argparse.Namespace, ctx: AppContext) -> None:
    """Run an interactive review session."""
    if args.practice:
        cards = await ctx.library.list_cards(category=args.practice)
        session = start_practice(cards)
    else:
        session = await start_session(ctx.library)

    if session.is_complete:
        print("\nNo cards due for review. You're all caught up!")
        return

    mode = "Practice" if session.practice else "Review Session"
    print(f"\n  {mode}: {session.remaining} cards")
    print("  Type 'q' to quit\n")

    total = len(session.cards)
    while not session.is_complete:
        card = session.current_card
        print(f"  [{total - session.remaining + 1}/{total}] {card.category}")
        print(f"  Q: {card.question or '(image)'}")
        if input("\n  Press enter to show the answer: ").strip().lower() == "q":
            print("\n  Session ended early.")
            break
        print(f"  A: {card.answer or '(image)'}\n")

        options = "  ".join(
            f"{preview.grade + 1}={preview.grade.name.title()} ({preview.label})"
            for preview in ctx.library.preview(card)
        )
        print(f"  {options}")
        choice = input("  Rate [1-4]: ").strip().lower()
        while choice not in GRADE_KEYS and choice != "q":
            choice = input("  Rate [1-4]: ").strip().lower()
        if choice == "q":
            print("\n  Session ended early.")
            break

        result = await session.answer(GRADE_KEYS[choice])
        if result is not None:
            unit = "minutes" if result.is_minutes else "days"
            print(f"  Next review in {result.interval} {unit}\n")

    stats = session.stats
    print("\n  Session Complete!")
    print(
        f"  Reviewed: {stats.cards_reviewed}  Correct: {stats.correct}  "
        f"Accuracy: {stats.accuracy * 100:.0f}%"
    )
    print(f"  {stats.summary()}\n")


async def cmd_due(args: argparse.Namespace, ctx: AppContext) -> None:
    """Show how many cards are due."""
    due = await get_due(ctx.store)
    total = len(await ctx.store.list_all(Card))
    print(f"  {len(due)} cards due of {total}")


async def cmd_add(args: argparse.Namespace, ctx: AppContext) -> None:
    """Add a new card."""
    card = await ctx.library.create_card(
        question=args.question, answer=args.answer, category=args.category
    )
    if card.category not in {deck.name for deck in await ctx.library.list_decks()}:
        await ctx.library.create_deck(card.category)
    due = format_next_review(card.next_review, date.today())
    print(f"  Added card {card.id} to {card.category} (due {due})")


async def cmd_decks(args: argparse.Namespace, ctx: AppContext) -> None:
    """List decks grouped by exam field, with card counts."""
    decks = await ctx.library.list_decks()
    cards = await ctx.store.list_all(Card)
    counts: dict[str, int] = {}
    for card in cards:
        counts[card.category] = counts.get(card.category, 0) + 1

    for group, names in group_decks([deck.name for deck in decks]).items():
        print(f"\n  {group}")
        for name in names:
            print(f"    {name:<30} {counts.get(name, 0)}")
    print()


async def cmd_stats(args: argparse.Namespace, ctx: AppContext) -> None:
    """Show library statistics."""
    stats = await compute_stats(ctx.store)

    print("\n  Memory App Statistics")
    print(f"  {'Total cards:':<20} {stats.total_cards}")
    print(f"  {'Due now:':<20} {stats.cards_due}")
    print(f"  {'Mastered (3+ reps):':<20} {stats.cards_mastered}")
    print(f"  {'Streak (days):':<20} {stats.streak_days}")
    print(f"  {'Total reviews:':<20} {stats.total_reviews}")
    if stats.accuracy:
        print("\n  Accuracy by category")
        for entry in stats.accuracy:
            print(f"    {entry.category:<30} {entry.percent:>3}% ({entry.correct}/{entry.total})")
    print()


async def cmd_export(args: argparse.Namespace, ctx: AppContext) -> None:
    """Write every local record to a JSON backup file."""
    data = await export_data(ctx.store)
    Path(args.path).write_text(export_json(data), encoding="utf-8")
    print(f"  Exported {len(data['cards'])} cards and {len(data['decks'])} decks to {args.path}")


async def cmd_import(args: argparse.Namespace, ctx: AppContext) -> None:
    """Merge a JSON backup file into the local store."""
    raw = Path(args.path).read_text(encoding="utf-8")
    cards, decks = await import_data(ctx.store, raw)
    await ctx.library.ensure_standard_decks()
    print(f"  Imported {cards} cards and {decks} decks")


async def cmd_sync(args: argparse.Namespace, ctx: AppContext) -> None:
    """Sign in and run one full sync."""
    if not ctx.auth.is_configured():
        print("  Sync is not configured. Set MEMORY_APP_REMOTE_URL and MEMORY_APP_REMOTE_ANON_KEY.")
        return

    token = os.environ.get("MEMORY_APP_ACCESS_TOKEN")
    if args.email:
        password = os.environ.get("MEMORY_APP_PASSWORD") or getpass.getpass("  Password: ")
        session = await ctx.sign_in(args.email, password)
    elif token:
        session = await ctx.restore(token)
    else:
        print("  Pass --email or set MEMORY_APP_ACCESS_TOKEN.")
        return

    print(f"  Signed in as {session.email}: {ctx.sync_status.value}")
    if ctx.engine is not None and ctx.engine.last_synced_at:
        print(f"  Last synced at {ctx.engine.last_synced_at}")


Command = Callable[[argparse.Namespace, AppContext], Awaitable[None]]


async def run(command: Command, args: argparse.Namespace) -> None:
    ctx = await ensure_db()
    try:
        await command(args, ctx)
    except MemoryAppError as exc:
        print(f"  Error: {exc}")
    finally:
        await ctx.close()
        await engine.dispose()


def main() -> None:
    """Entry point for the Memory App CLI."""
    parser = argparse.ArgumentParser(
        prog="memory_app",
        description="Spaced repetition flashcards with offline-first sync",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # review
    review_parser = subparsers.add_parser("review", help="Review cards due now")
    review_parser.add_argument(
        "--practice", metavar="DECK", help="Practice a deck without changing its schedule"
    )

    # due
    subparsers.add_parser("due", help="Show cards due for review")

    # add
    add_parser = subparsers.add_parser("add", help="Add a new card")
    add_parser.add_argument("question", help="Question text")
    add_parser.add_argument("answer", help="Answer text")
    add_parser.add_argument("-c", "--category", default=None, help="Deck name")

    # decks
    subparsers.add_parser("decks", help="List decks by group")

    # stats
    subparsers.add_parser("stats", help="Show your statistics")

    # export / import
    export_parser = subparsers.add_parser("export", help="Write a JSON backup")
    export_parser.add_argument("path", help="Output file")
    import_parser = subparsers.add_parser("import", help="Merge a JSON backup")
    import_parser.add_argument("path", help="Backup file")

    # sync
    sync_parser = subparsers.add_parser("sync", help="Sign in and sync with the remote")
    sync_parser.add_argument("--email", default=None, help="Account email")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    cmd_map: dict[str, Command] = {
        "review": cmd_review,
        "due": cmd_due,
        "add": cmd_add,
        "decks": cmd_decks,
        "stats": cmd_stats,
        "export": cmd_export,
        "import": cmd_import,
        "sync": cmd_sync,
    }

    asyncio.run(run(cmd_map[args.command], args))


if __name__ == "__main__":
    main()
