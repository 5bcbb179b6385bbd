# ==============================================
# CLI — Command Line Entry Point
# ==============================================
#
# PURPOSE:
#   Inspect a database through the bean engine and import bean graphs
#   from JSON files.
#
# COMMANDS:
# ---------
# 1. List tables / columns:
#    fluidbean tables
#    fluidbean columns book
#
# 2. Show one bean as JSON:
#    fluidbean show book 1
#
# 3. Import a bean graph (one typed object or a list of them):
#    fluidbean import books.json
#
# 4. Count / wipe a type:
#    fluidbean count book
#    fluidbean wipe book --confirm
#
# OPTIONS:
# --------
#   --dsn      Connection string, overrides FLUIDBEAN_DSN
#   --frozen   Freeze the schema (no DDL)
#   --env      Path to a .env file
#
# ==============================================

import argparse
import json
import sys
from pathlib import Path
from typing import List, Optional

from fluidbean.config import load_config
from fluidbean.core.facade import FluidBean
from fluidbean.errors import FluidBeanError
from fluidbean.log import get_logger

logger = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="fluidbean", description="Bean-centric database tool")
    parser.add_argument("--dsn", help="Connection string, e.g. sqlite:///app.db")
    parser.add_argument("--frozen", action="store_true", help="Do not change the schema")
    parser.add_argument("--env", help="Path to a .env file")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("tables", help="List tables")

    columns = commands.add_parser("columns", help="List the columns of a type")
    columns.add_argument("type")

    show = commands.add_parser("show", help="Print one bean as JSON")
    show.add_argument("type")
    show.add_argument("id")

    imp = commands.add_parser("import", help="Store a bean graph from a JSON file")
    imp.add_argument("file")

    count = commands.add_parser("count", help="Count the beans of a type")
    count.add_argument("type")

    wipe = commands.add_parser("wipe", help="Delete all beans of a type")
    wipe.add_argument("type")
    wipe.add_argument("--confirm", action="store_true", help="Required to actually wipe")

    return parser


def run(args: argparse.Namespace, db: FluidBean) -> int:
    """Execute one parsed command against `db`. Returns the exit code."""
    if args.command == "tables":
        for table in db.inspect():
            print(table)
        return 0

    if args.command == "columns":
        for name, sql_type in db.inspect(args.type).items():
            print(f"{name}\t{sql_type}")
        return 0

    if args.command == "show":
        bean = db.load(args.type, args.id)
        if not bean.id:
            print(f"No {args.type} with id {args.id}", file=sys.stderr)
            return 1
        print(json.dumps(bean.export(), indent=2, default=str))
        return 0

    if args.command == "import":
        data = json.loads(Path(args.file).read_text(encoding="utf-8"))
        beans = db.graph(data)
        beans = beans if isinstance(beans, list) else [beans]
        ids = db.transaction(lambda tx: tx.store_all(beans))
        for bean, bean_id in zip(beans, ids):
            print(f"{bean.type}\t{bean_id}")
        return 0

    if args.command == "count":
        print(db.count(args.type))
        return 0

    if args.command == "wipe":
        if not args.confirm:
            print("Refusing to wipe without --confirm", file=sys.stderr)
            return 2
        wiped = db.wipe(args.type)
        print("wiped" if wiped else f"no table for {args.type}")
        return 0

    return 2


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    config = load_config(args.env)
    db = FluidBean(dsn=args.dsn, frozen=True if args.frozen else None, config=config)
    try:
        return run(args, db)
    except FluidBeanError as e:
        logger.error("command_failed", command=args.command, error=str(e))
        print(f"error: {e}", file=sys.stderr)
        return 1
    finally:
        db.close()


if __name__ == "__main__":
    sys.exit(main())
