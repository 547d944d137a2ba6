"""Admin script to repair chat storage.

Removes messages without a query id and collapses duplicates inside each
query (same text, same sender, same second).

Usage:
    # Show what would change
    python -m scripts.clean_chat_storage --dry-run

    # Apply
    python -m scripts.clean_chat_storage
"""

import argparse
import asyncio
import logging
import sys
from collections import defaultdict
from dataclasses import asdict, dataclass
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import async_session_maker
from app.models.chat import ChatMessage

logger = logging.getLogger(__name__)


@dataclass
class CleanupStats:
    before: int = 0
    after: int = 0
    queries: int = 0
    missing_query_id_removed: int = 0
    duplicates_removed: int = 0


def find_duplicates(messages: list[ChatMessage]) -> list[ChatMessage]:
    """Messages repeating an earlier (text, sender, second) within one query.

    ``messages`` must already be ordered by timestamp; the first of each
    group is kept.
    """
    seen: set[tuple[str, str, str, int]] = set()
    duplicates = []
    for message in messages:
        key = (
            message.query_id,
            message.message,
            message.sender,
            int(message.timestamp.timestamp()),
        )
        if key in seen:
            duplicates.append(message)
        else:
            seen.add(key)
    return duplicates


async def clean_chat_storage(db: AsyncSession, *, dry_run: bool) -> CleanupStats:
    stats = CleanupStats()
    result = await db.execute(select(ChatMessage).order_by(ChatMessage.timestamp.asc()))
    messages = list(result.scalars().all())
    stats.before = len(messages)
    print(f"📊 Found {stats.before} total messages")

    orphans = [m for m in messages if not (m.query_id or "").strip()]
    stats.missing_query_id_removed = len(orphans)

    groups: dict[str, list[ChatMessage]] = defaultdict(list)
    for message in messages:
        query_id = (message.query_id or "").strip()
        if query_id:
            groups[query_id].append(message)
    stats.queries = len(groups)
    print(f"📊 Found {stats.queries} unique queries")

    duplicates: list[ChatMessage] = []
    for query_id, group in groups.items():
        found = find_duplicates(group)
        if found:
            print(f"🔍 Query {query_id}: {len(found)} duplicate(s) of {len(group)} messages")
        duplicates.extend(found)
    stats.duplicates_removed = len(duplicates)

    doomed = [m.id for m in orphans + duplicates]
    if doomed and not dry_run:
        await db.execute(delete(ChatMessage).where(ChatMessage.id.in_(doomed)))
        await db.commit()

    if dry_run:
        stats.after = stats.before - len(doomed)
    else:
        stats.after = (await db.execute(select(func.count(ChatMessage.id)))).scalar_one()
    return stats


async def _main(dry_run: bool) -> int:
    async with async_session_maker() as db:
        try:
            stats = await clean_chat_storage(db, dry_run=dry_run)
        except Exception as e:
            await db.rollback()
            print(f"💥 Error during cleanup: {e}")
            return 1

    label = "Dry run" if dry_run else "Cleanup"
    print(f"✅ {label} completed")
    for name, value in asdict(stats).items():
        print(f"   - {name.replace('_', ' ')}: {value}")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Remove orphaned and duplicate chat messages",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be deleted without actually deleting",
    )
    args = parser.parse_args()
    sys.exit(asyncio.run(_main(args.dry_run)))


if __name__ == "__main__":
    main()
