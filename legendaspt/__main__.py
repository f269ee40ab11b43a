"""CLI interface for LegendasPT.

Usage:
    python -m legendaspt review                    Start a review session
    python -m legendaspt due                       Show how many cards are due
    python -m legendaspt stats                     Show your statistics
    python -m legendaspt add "frase" "phrase"      Add a new phrase
    python -m legendaspt progress --sort progress-low
                                                   List phrases with your progress
    python -m legendaspt export -o phrases.txt     Export phrases for Anki
"""

import argparse
import asyncio
import logging
import sys
import time
from collections import Counter
from pathlib import Path

from sqlalchemy import and_, func, select

from backend.config import settings, utcnow
from backend.database import async_session, init_db
from backend.models.card_study import CardStudyRecord
from backend.models.favorite import Favorite
from backend.models.phrase import Phrase
from backend.srs.fsrs import State
from backend.srs.progress import (
    FilterOption,
    PhraseProgress,
    SortOption,
    project_progress,
    sort_and_filter,
)
from backend.srs.queue import QueueConfig, select_due_cards
from backend.srs.repository import load_card_studies
from backend.srs.session import start_session
from legendaspt.anki_export import ExportRow, to_anki_tsv, to_csv

RATING_KEYS = {"1": 1, "2": 2, "3": 3, "4": 4}


def format_interval(days: float) -> str:
    """Human-readable interval: minutes, hours or days."""
    if days < 1 / 24:
        return f"{max(1, round(days * 24 * 60))} min"
    if days < 1:
        return f"{round(days * 24)} h"
    return f"{days:.0f} days" if days >= 2 else "1 day"


def progress_bar(percentage: float, width: int = 20) -> str:
    filled = round(percentage / 100 * width)
    return "#" * filled + "-" * (width - filled)


async def cmd_review(args: argparse.Namespace) -> None:
    """Run an interactive review session."""
    await init_db()
    config = QueueConfig(max_reviews=args.max_cards, max_new=args.new_cards)

    async with async_session() as db:
        session = await start_session(db, args.user, episode=args.episode, config=config)

        if session.queue.total == 0:
            print("\nNo cards due for review. You're all caught up!")
            return

        print("\n  Review Session")
        print(
            f"  {len(session.queue.due_cards)} due + {len(session.queue.new_phrase_ids)} new"
            f" = {session.queue.total} cards\n"
        )
        print("  Ratings: 1=Again  2=Hard  3=Good  4=Easy")
        print("  Type 'q' to quit\n")

        position = 0
        while not session.is_complete:
            session_card = await session.get_next(db)
            if session_card is None:
                break
            position += 1
            phrase = session_card.phrase

            card_label = f"  [{position}/{session.queue.total}]"
            if session_card.is_new:
                card_label += " (NEW)"
            print(card_label)
            print(f"  {phrase.phrase}")
            if phrase.context:
                print(f"  ({phrase.context})")

            start_time = time.time()
            response = input("\n  Enter to show the translation: ").strip()
            time_ms = int((time.time() - start_time) * 1000)
            if response.lower() == "q":
                print("\n  Session ended early.")
                break
            print(f"  -> {phrase.translation}")

            rate_input = input("  Rate [1-4]: ").strip()
            while rate_input not in RATING_KEYS:
                if rate_input.lower() == "q":
                    break
                rate_input = input("  Please enter 1, 2, 3 or 4: ").strip()
            if rate_input.lower() == "q":
                print("\n  Session ended early.")
                break

            outcome = await session.submit_rating(
                db, phrase.id, RATING_KEYS[rate_input], response_time_ms=time_ms
            )
            print(f"  Next review in {format_interval(outcome.card.scheduled_days)}\n")

        await session.finish(db)

    s = session.stats
    print("\n  Session Complete!")
    print(f"  Reviewed: {s.cards_reviewed}  Correct: {s.correct}  Accuracy: {s.accuracy:.0f}%\n")


async def cmd_stats(args: argparse.Namespace) -> None:
    """Show the user's statistics."""
    await init_db()
    now = utcnow()

    async with async_session() as db:
        cards = await load_card_studies(db, args.user, episode=args.episode)

    by_state = Counter(card.state for card in cards)
    learned = sum(1 for card in cards if project_progress(card).is_learned)

    print("\n  LegendasPT Statistics")
    print(f"  {'Cards studied:':<20} {len(cards)}")
    for state in State:
        print(f"  {state.value + ':':<20} {by_state[state]}")
    print(f"  {'Due now:':<20} {sum(1 for card in cards if card.is_due(now))}")
    print(f"  {'Learned:':<20} {learned}")
    print(f"  {'Total reviews:':<20} {sum(card.reps for card in cards)}")
    print(f"  {'Total lapses:':<20} {sum(card.lapses for card in cards)}")
    print()


async def cmd_due(args: argparse.Namespace) -> None:
    """Show how many cards are due."""
    await init_db()
    now = utcnow()

    async with async_session() as db:
        cards = await load_card_studies(db, args.user, episode=args.episode)
        due = sum(1 for _ in select_due_cards(cards, now))

        studied = select(CardStudyRecord.phrase_id).where(
            and_(CardStudyRecord.user_id == args.user, CardStudyRecord.state != State.NEW.value)
        )
        new_stmt = select(func.count(Phrase.id)).where(Phrase.id.not_in(studied))
        if args.episode:
            new_stmt = new_stmt.where(Phrase.episode == args.episode)
        new = (await db.execute(new_stmt)).scalar() or 0

    print(f"  {due} cards due, {new} new phrases available")


async def cmd_add(args: argparse.Namespace) -> None:
    """Add a new phrase."""
    await init_db()

    async with async_session() as db:
        stmt = select(Phrase).where(Phrase.phrase == args.phrase)
        if args.episode:
            stmt = stmt.where(Phrase.episode == args.episode)
        existing = (await db.execute(stmt)).scalars().first()
        if existing:
            print(f"  '{args.phrase}' already exists (id={existing.id}).")
            return

        phrase = Phrase(
            phrase=args.phrase,
            translation=args.translation,
            context=args.context or None,
            episode=args.episode,
        )
        db.add(phrase)
        await db.commit()

    print(f"  Added: {args.phrase} -> {args.translation}")


async def cmd_progress(args: argparse.Namespace) -> None:
    """List phrases with the user's progress."""
    await init_db()

    async with async_session() as db:
        stmt = select(Phrase).order_by(Phrase.created_at.asc(), Phrase.id.asc())
        if args.episode:
            stmt = stmt.where(Phrase.episode == args.episode)
        phrases = list((await db.execute(stmt)).scalars().all())
        cards = {
            card.phrase_id: card
            for card in await load_card_studies(db, args.user, episode=args.episode)
        }
        fav_stmt = select(Favorite.phrase_id).where(Favorite.user_id == args.user)
        favorite_ids = set((await db.execute(fav_stmt)).scalars().all())

    entries = sort_and_filter(
        (
            PhraseProgress(
                phrase_id=phrase.id,
                phrase=phrase.phrase,
                translation=phrase.translation,
                progress=project_progress(cards.get(phrase.id)),
                is_favorite=phrase.id in favorite_ids,
            )
            for phrase in phrases
        ),
        SortOption(args.sort),
        FilterOption.FAVORITES if args.favorites else FilterOption.ALL,
    )

    if not entries:
        print("  No phrases to show.")
        return
    for entry in entries:
        progress = entry.progress
        marker = "*" if progress.is_learned else " "
        print(
            f"  {marker} [{progress_bar(progress.progress_percentage)}]"
            f" {progress.progress_percentage:5.1f}%  {progress.state.value:<10}"
            f" {entry.phrase} -> {entry.translation}"
        )
    print(f"\n  Showing {len(entries)} of {len(phrases)} phrases (* = learned)")


async def cmd_export(args: argparse.Namespace) -> None:
    """Export phrases to an Anki TSV or CSV file."""
    await init_db()

    async with async_session() as db:
        stmt = select(Phrase).order_by(Phrase.created_at.asc(), Phrase.id.asc())
        if args.episode:
            stmt = stmt.where(Phrase.episode == args.episode)
        phrases = list((await db.execute(stmt)).scalars().all())

    rows = [ExportRow(p.phrase, p.translation, p.frequency) for p in phrases]
    content = to_csv(rows) if args.format == "csv" else to_anki_tsv(rows)

    if args.output:
        Path(args.output).write_text(content, encoding="utf-8")
        print(f"  Exported {len(rows)} phrases to {args.output}")
    else:
        sys.stdout.write(content + "\n")


def main() -> None:
    """Entry point for the LegendasPT CLI application."""
    parser = argparse.ArgumentParser(
        prog="legendaspt",
        description="Study Portuguese phrases from TV subtitles",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    parser.add_argument(
        "-u", "--user", default=settings.default_user_id, help="User id to study as"
    )
    parser.add_argument("-e", "--episode", default=None, help="Restrict to one episode")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # review
    review_parser = subparsers.add_parser("review", help="Start a review session")
    review_parser.add_argument("--max-cards", type=int, default=20, help="Max reviews per session")
    review_parser.add_argument("--new-cards", type=int, default=10, help="Max new phrases")

    # stats
    subparsers.add_parser("stats", help="Show your statistics")

    # due
    subparsers.add_parser("due", help="Show cards due for review")

    # add
    add_parser = subparsers.add_parser("add", help="Add a new phrase")
    add_parser.add_argument("phrase", help="Portuguese phrase")
    add_parser.add_argument("translation", help="English translation")
    add_parser.add_argument("-c", "--context", default="", help="Subtitle line it came from")

    # progress
    progress_parser = subparsers.add_parser("progress", help="List phrases with your progress")
    progress_parser.add_argument(
        "--sort",
        choices=[option.value for option in SortOption],
        default=SortOption.NONE.value,
    )
    progress_parser.add_argument("--favorites", action="store_true", help="Only favorites")

    # export
    export_parser = subparsers.add_parser("export", help="Export phrases for Anki")
    export_parser.add_argument("--format", choices=["tsv", "csv"], default="tsv")
    export_parser.add_argument("-o", "--output", default=None, help="Output file (default stdout)")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "review": cmd_review,
        "stats": cmd_stats,
        "due": cmd_due,
        "add": cmd_add,
        "progress": cmd_progress,
        "export": cmd_export,
    }

    asyncio.run(cmd_map[args.command](args))


if __name__ == "__main__":
    main()
