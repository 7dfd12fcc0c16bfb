"""Manage the word list and play history from the command line.

Run from the project root (or use the installed ``vietplayer-words`` command).

Examples:
  python -m utilities.word_admin add "xin chào" "안녕하세요"
  python -m utilities.word_admin list --query chào
  python -m utilities.word_admin toggle 1718000000000
  python -m utilities.word_admin export backup.json
  python -m utilities.word_admin import backup.json --replace
  python -m utilities.word_admin stats
"""

import argparse
import logging
import sys
from datetime import date
from pathlib import Path
from typing import List, Optional

import settings
from vietplayer.play_log import PlayLog
from vietplayer.word_store import WordStore, WordStoreError

# Configure logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s | %(levelname)s | %(message)s')
LOGGER = logging.getLogger("word_admin")


def _default_path(name: str) -> Path:
    return Path(getattr(settings, name))


def _format_word(word) -> str:
    mark = "[x]" if word.included else "[ ]"
    return f"{mark} {word.id}  {word.text_primary}  –  {word.text_secondary}"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage VietPlayer words and play history")
    parser.add_argument('--words', type=Path, help='Path to words.yaml (default: settings.WORDS_FILE)')
    parser.add_argument('--history', type=Path, help='Path to history.json (default: settings.HISTORY_FILE)')
    sub = parser.add_subparsers(dest='command', required=True)

    p = sub.add_parser('list', help='List words, optionally filtered by a search query')
    p.add_argument('--query', type=str, default='', help='Match either text (case-insensitive)')
    p.add_argument('--included', action='store_true', help='Only words selected for playback')

    p = sub.add_parser('add', help='Add a word pair')
    p.add_argument('primary', type=str)
    p.add_argument('secondary', type=str)

    p = sub.add_parser('edit', help='Change the texts of a word')
    p.add_argument('id', type=str)
    p.add_argument('primary', type=str)
    p.add_argument('secondary', type=str)

    p = sub.add_parser('delete', help='Delete a word')
    p.add_argument('id', type=str)

    p = sub.add_parser('toggle', help='Include/exclude a word from playback')
    p.add_argument('id', type=str)

    p = sub.add_parser('export', help='Write words and history as JSON (stdout when no file)')
    p.add_argument('file', type=Path, nargs='?')

    p = sub.add_parser('import', help='Read words and history from an export')
    p.add_argument('file', type=Path)
    p.add_argument('--replace', action='store_true', help='Overwrite instead of merging')

    sub.add_parser('stats', help="Show today's listens and the last 7 days")
    return parser


def main(argv: Optional[List[str]] = None, today: Optional[date] = None) -> int:
    args = build_parser().parse_args(argv)
    store = WordStore(args.words or _default_path("WORDS_FILE"))
    play_log = PlayLog(args.history or _default_path("HISTORY_FILE"))
    today = today or date.today()

    try:
        if args.command == 'list':
            words = store.search(args.query)
            if args.included:
                words = [w for w in words if w.included]
            if not words:
                print("No matching words." if args.query else "No words stored.")
            for word in words:
                print(_format_word(word))
        elif args.command == 'add':
            print(_format_word(store.add(args.primary, args.secondary)))
        elif args.command == 'edit':
            print(_format_word(store.edit(args.id, args.primary, args.secondary)))
        elif args.command == 'delete':
            store.delete(args.id)
        elif args.command == 'toggle':
            print(_format_word(store.toggle(args.id)))
        elif args.command == 'export':
            payload = store.export_json(play_log.to_json())
            if args.file:
                args.file.write_text(payload, encoding='utf-8')
                LOGGER.info("Exported %d words to %s", len(store), args.file)
            else:
                print(payload)
        elif args.command == 'import':
            try:
                payload = args.file.read_text(encoding='utf-8')
            except OSError as exc:
                raise WordStoreError(f"Cannot read {args.file}: {exc}") from exc
            data = store.import_json(payload, merge=not args.replace)
            history = data.get('history') or []
            if args.replace:
                play_log.replace(history)
            else:
                play_log.merge(history)
            LOGGER.info("Imported from %s; now %d words", args.file, len(store))
        elif args.command == 'stats':
            print(f"Today ({today.isoformat()}): {play_log.count_for(today)}")
            for day, count in play_log.last_7_days(today):
                print(f"{day.strftime('%m/%d')}  {'#' * count} {count}")
    except WordStoreError as exc:
        LOGGER.error("%s", exc)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
