#!/usr/bin/env python3
"""
Print a family's resolved calendar for a date range.

Reads the configured database, expands every recurring event of the family,
applies edited and deleted occurrences and lists the result. Missing
arrival/drive events are created as a side effect, exactly as when the
calendar is opened in the app.

Usage:
    python scripts/preview_occurrences.py FAMILY_ID [--start YYYY-MM-DD] [--end YYYY-MM-DD]

Options:
    --start    First day to show (default: today)
    --end      Last day to show (default: 14 days after start)
"""
import argparse
import sys
from datetime import date, timedelta
from pathlib import Path
from uuid import UUID

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlmodel import Session

from family_calendar.core.database import engine
from family_calendar.recurrence import EngineError, EventStore, SeriesManager


def main(family_id: UUID, start: date, end: date):
    """Resolve and print the family's occurrences."""
    with Session(engine) as session:
        manager = SeriesManager(EventStore(session))
        try:
            occurrences = manager.resolve_occurrences(family_id, start, end)
        except EngineError as e:
            print(f"Error: {e}")
            sys.exit(1)

    if not occurrences:
        print(f"No events between {start} and {end}.")
        return

    current_day = None
    for occurrence in occurrences:
        day = occurrence.start_time.date()
        if day != current_day:
            print(f"\n{day:%A %Y-%m-%d}")
            current_day = day
        print(
            f"  {occurrence.start_time:%H:%M}-{occurrence.end_time:%H:%M}  "
            f"{occurrence.title}  [{occurrence.state}]"
        )
        print(f"      id: {occurrence.id}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Preview a family's calendar")
    parser.add_argument("family_id", type=UUID)
    parser.add_argument("--start", type=date.fromisoformat, default=date.today())
    parser.add_argument("--end", type=date.fromisoformat, default=None)
    args = parser.parse_args()

    main(args.family_id, args.start, args.end or args.start + timedelta(days=14))
