#!/usr/bin/env python3
"""CLI tool to manage RSS feeds and trigger manual refreshes."""

import sys
import asyncio
import argparse
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from noticeboard.config.feed_manager import FeedManager
from noticeboard.pipeline import FeedFetchService
from noticeboard.storage.factory import get_feed_storage


def print_header(title):
    print(f"\n{'='*60}")
    print(f" {title}")
    print('='*60)


def cmd_stats(args):
    """Show feed registry statistics."""
    stats = get_feed_storage().get_stats()

    print_header("FEED STATISTICS")
    print(f"\nFeeds:     {stats['total_feeds']} ({stats['active_feeds']} active)")
    print(f"Healthy:   {stats['healthy_feeds']}")
    print(f"Warning:   {stats['warning_feeds']}")
    print(f"Critical:  {stats['critical_feeds']}")
    print(f"\nItems:     {stats['total_items']}")


def cmd_list(args):
    """List feeds with their health."""
    feeds = FeedManager(get_feed_storage()).list_feeds()

    print_header(f"FEEDS ({len(feeds)} found)")
    for feed in feeds:
        flag = "" if feed["active"] else " [inactive]"
        print(f"\n  #{feed['id']} {feed['name']}{flag}")
        print(f"    {feed['url']}")
        print(f"    Status: {feed['status']} ({feed['error_count']} consecutive errors)")
        if feed["last_fetched_at"]:
            print(f"    Last fetched: {feed['last_fetched_at']}")
        if feed["last_error"]:
            print(f"    Last error: {feed['last_error'][:120]}")


def cmd_add(args):
    """Register a new feed."""
    try:
        feed = FeedManager(get_feed_storage()).add_feed(url=args.url, name=args.name)
    except ValueError as e:
        print(f"Error: {e}")
        return 1
    print(f"Added feed #{feed.id}: {feed.name}")
    return 0


def cmd_remove(args):
    """Delete a feed and its items."""
    if FeedManager(get_feed_storage()).delete_feed(args.feed_id):
        print(f"Deleted feed #{args.feed_id}")
        return 0
    print(f"Feed #{args.feed_id} not found")
    return 1


def cmd_toggle(args, active):
    """Enable or disable a feed."""
    if FeedManager(get_feed_storage()).toggle_feed(args.feed_id, active):
        print(f"Feed #{args.feed_id} {'enabled' if active else 'disabled'}")
        return 0
    print(f"Feed #{args.feed_id} not found")
    return 1


def cmd_refresh(args):
    """Fetch a feed now, regardless of schedule."""
    service = FeedFetchService(get_feed_storage())
    result = asyncio.run(service.refresh(args.feed_id))

    if result is None:
        print(f"Feed #{args.feed_id} not found")
        return 1
    if not result.ok:
        print(f"Refresh failed: {result}")
        return 1
    print(f"Refreshed feed #{args.feed_id}: {result.value} new items")
    return 0


def cmd_preview(args):
    """Fetch a feed now and show its latest items."""
    service = FeedFetchService(get_feed_storage())
    preview = asyncio.run(service.preview(args.feed_id, limit=args.limit))

    if preview is None:
        print(f"Feed #{args.feed_id} not found")
        return 1
    if not preview.ok:
        print(f"Preview failed: {preview.failure}")
        return 1

    print_header(f"PREVIEW feed #{args.feed_id} ({preview.created_count} new)")
    for item in preview.items:
        print(f"\n  {item.title}")
        if item.link:
            print(f"    {item.link}")
        print(f"    Published: {item.published_at}")
    return 0


def cmd_recent(args):
    """Show the latest items across active feeds."""
    items = get_feed_storage().recent_items(limit=args.limit)

    print_header(f"RECENT ITEMS ({len(items)})")
    for item in items:
        print(f"\n  [{item.feed_name}] {item.title}")
        print(f"    Published: {item.published_at}")


def main():
    parser = argparse.ArgumentParser(
        description="Manage Notice Board RSS feeds"
    )
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # stats
    subparsers.add_parser("stats", help="Show feed statistics")

    # list
    subparsers.add_parser("list", help="List feeds and their health")

    # add
    p = subparsers.add_parser("add", help="Register a feed")
    p.add_argument("name", help="Display name")
    p.add_argument("url", help="Feed URL (http or https)")

    # remove / enable / disable / refresh
    for name, help_text in (
        ("remove", "Delete a feed and its items"),
        ("enable", "Enable a feed"),
        ("disable", "Disable a feed"),
        ("refresh", "Fetch a feed now"),
    ):
        p = subparsers.add_parser(name, help=help_text)
        p.add_argument("feed_id", type=int, help="Feed id")

    # preview
    p = subparsers.add_parser("preview", help="Fetch a feed now and show its latest items")
    p.add_argument("feed_id", type=int, help="Feed id")
    p.add_argument("--limit", type=int, default=10, help="Max items")

    # recent
    p = subparsers.add_parser("recent", help="Latest items across active feeds")
    p.add_argument("--limit", type=int, default=50, help="Max items")

    args = parser.parse_args()

    if args.command == "stats":
        cmd_stats(args)
    elif args.command == "list":
        cmd_list(args)
    elif args.command == "add":
        return cmd_add(args)
    elif args.command == "remove":
        return cmd_remove(args)
    elif args.command == "enable":
        return cmd_toggle(args, True)
    elif args.command == "disable":
        return cmd_toggle(args, False)
    elif args.command == "refresh":
        return cmd_refresh(args)
    elif args.command == "preview":
        return cmd_preview(args)
    elif args.command == "recent":
        cmd_recent(args)
    else:
        parser.print_help()
    return 0


if __name__ == "__main__":
    sys.exit(main())
