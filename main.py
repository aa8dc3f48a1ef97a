import asyncio
import argparse
from pathlib import Path
from src.apicontext.cli import cmd_context, cmd_debug, cmd_index, DEFAULT_SETTINGS
from src.apicontext.config import load_settings
from src.utils.logger import configure_logging


def parse_args():
    parser = argparse.ArgumentParser(description="Relevance-filtered API context for chat assistants")
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], default=None,
        help="Overrides the log level from settings"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    # context
    context = sub.add_parser("context", help="Build the context markdown for one message")
    context.add_argument("collection", type=Path, help="Normalized collection (.json/.yaml)")
    context.add_argument("message", type=str)
    context.add_argument("--history", type=Path, default=None, help="Prior turns as a JSON/YAML list")
    context.add_argument(
        "--budget", choices=["conservative", "balanced", "generous", "auto"], default=None
    )
    context.add_argument("--settings", type=Path, default=DEFAULT_SETTINGS)
    context.add_argument("--disable", action="store_true", help="Send the full collection")
    context.add_argument("--audit-dir", type=Path, default=None, help="Append a JSONL audit line here")

    # debug
    debug = sub.add_parser("debug", help="Show query analysis and raw search hits")
    debug.add_argument("collection", type=Path)
    debug.add_argument("message", type=str)

    # index
    index = sub.add_parser("index", help="Build the search index and print its stats")
    index.add_argument("collection", type=Path)

    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    settings_path = getattr(args, "settings", DEFAULT_SETTINGS)
    configure_logging(level=args.log_level or load_settings(settings_path).log_level)

    if args.command == "context":
        print(cmd_context(
            args.collection,
            args.message,
            history_path=args.history,
            budget=args.budget,
            settings_path=args.settings,
            disable=args.disable,
            audit_dir=args.audit_dir,
        ))

    elif args.command == "debug":
        print(cmd_debug(args.collection, args.message))

    elif args.command == "index":
        print(asyncio.run(cmd_index(args.collection)))
