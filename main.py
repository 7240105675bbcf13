#!/usr/bin/env python3
"""
FieldNotes CLI - record notes and ask questions about them.

Usage:
    python main.py add "Saw two slugs by the park bench this morning"
    python main.py ask "Where did we see slugs?"
    python main.py ask "Where did we see slugs?" --strategy tag
    python main.py tag slugs
    python main.py tags --type place
    python main.py backfill
"""

import argparse
import dataclasses
import sys
import textwrap

from fieldnotes.config import Settings
from fieldnotes.core.domain.query import Strategy
from fieldnotes.core.errors import FieldNotesError, ParseFailure
from fieldnotes.core.services.note_service import create_service
from fieldnotes.logging_config import configure_logging


def print_note(note, cited=False):
    marker = "⭐" if cited else "📝"
    preview = textwrap.shorten(note.text.replace("\n", " "), width=100, placeholder="...")
    print(f"  {marker} [{note.id}] {preview}")
    if note.tags:
        print("      " + ", ".join(f"{t.name} ({t.type.value})" for t in note.tags))


def build_parser():
    parser = argparse.ArgumentParser(
        description="Record free-text notes and ask natural-language questions about them",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )
    parser.add_argument("--db", type=str, help="SQLite database path (default: FIELDNOTES_DB_PATH)")
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in Strategy],
        help="Retrieval strategy (default: RETRIEVAL_STRATEGY or vector)"
    )
    parser.add_argument(
        "--provider",
        choices=["gemini", "openai", "ollama"],
        help="Answer provider (default: LLM_PROVIDER or gemini)"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    add = sub.add_parser("add", help="Add a note")
    add.add_argument("text")

    ask = sub.add_parser("ask", help="Ask a question over your notes")
    ask.add_argument("query")

    ls = sub.add_parser("list", help="List recent notes")
    ls.add_argument("--limit", "-n", type=int, default=20)
    ls.add_argument("--offset", type=int, default=0)

    show = sub.add_parser("show", help="Show a note and its tags")
    show.add_argument("id", type=int)

    edit = sub.add_parser("edit", help="Replace a note's text")
    edit.add_argument("id", type=int)
    edit.add_argument("text")

    delete = sub.add_parser("delete", help="Delete a note")
    delete.add_argument("id", type=int)

    tags = sub.add_parser("tags", help="List tags with note counts")
    tags.add_argument("--type", "-t", type=str)
    tags.add_argument("--search", "-s", type=str)

    tag = sub.add_parser("tag", help="Show notes carrying the best tag for a name")
    tag.add_argument("name")

    sub.add_parser("backfill", help="Embed notes stored without an embedding")
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    settings = Settings.from_env()
    if args.db:
        settings = dataclasses.replace(settings, db_path=args.db)
    if args.strategy:
        settings = dataclasses.replace(settings, strategy=Strategy(args.strategy))
    if args.provider:
        settings = dataclasses.replace(settings, llm_provider=args.provider)

    configure_logging("DEBUG" if args.verbose else settings.log_level, quiet=not args.verbose)

    try:
        service = create_service(settings)

        if args.command == "add":
            result = service.ingest_note(args.text)
            print(f"✅ Added note {result.note.id}")
            print_note(result.note)

        elif args.command == "ask":
            result = service.answer_query(args.query)
            print("=" * 60)
            print(result.summary)
            print("=" * 60)
            cited = set(result.cited_note_ids)
            for note in result.entries:
                print_note(note, cited=note.id in cited)

        elif args.command == "list":
            for note in service.list_notes(limit=args.limit, offset=args.offset):
                print_note(note)

        elif args.command == "show":
            note = service.get_note(args.id)
            if note is None:
                print(f"Note {args.id} not found")
                return 1
            print(f"[{note.id}] created {note.created_at}, updated {note.updated_at}")
            print(note.text)
            for t in note.tags:
                print(f"  🏷️  {t.name} ({t.type.value})")

        elif args.command == "edit":
            result = service.update_note(args.id, args.text)
            print(f"✅ Updated note {result.note.id}")
            print_note(result.note)

        elif args.command == "delete":
            if service.delete_note(args.id):
                print(f"🗑️  Deleted note {args.id}")
            else:
                print(f"Note {args.id} not found")
                return 1

        elif args.command == "tags":
            if args.search:
                for t in service.search_tags(args.search, args.type):
                    print(f"  🏷️  [{t.id}] {t.name} ({t.type.value})")
            else:
                for t, count in service.list_tags(args.type):
                    print(f"  🏷️  [{t.id}] {t.name} ({t.type.value}) - {count} notes")

        elif args.command == "tag":
            entries = service.entries_for_tag_name(args.name)
            if not entries:
                print(f'Tag "{args.name}" not found')
                return 1
            for note in entries:
                print_note(note)

        elif args.command == "backfill":
            updated = service.backfill_embeddings()
            print(f"📊 Embedded {updated} notes")

    except ParseFailure as e:
        print(f"Could not understand the query: {e}", file=sys.stderr)
        return 2
    except (FieldNotesError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
