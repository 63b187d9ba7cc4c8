from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict

from poolrota.errors import RotationError, ValidationError
from poolrota.io.roster_loader import StaticDirectory, load_directory
from poolrota.models.config import RotationConfig
from poolrota.services.orchestrator import RotationService
from poolrota.services.repair import diagnose, fix_ids, purge_unknown
from poolrota.store.backends import SQLiteBackend
from poolrota.store.frame_store import FrameStore
from poolrota.utils.logging_setup import get_logger, setup_logging
from poolrota.utils.structured_logging import configure_structlog

logger = get_logger("poolrota.cli")


def _build_cfg(args: argparse.Namespace) -> RotationConfig:
    cfg = RotationConfig.from_env()
    if args.db:
        cfg.db_path = Path(args.db)
    if args.verbose:
        cfg.log_level = "DEBUG"
    return cfg


def _load_directory(path: str | None):
    if not path:
        return StaticDirectory()
    try:
        return load_directory(path)
    except (OSError, ValueError) as e:
        raise ValidationError(f"cannot load roster: {e}") from e


def _emit(payload: Dict[str, Any]) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="poolrota", description="Pool guard rotation tools")
    p.add_argument("--db", help="SQLite database path (default: POOLROTA_DB or data/rotation.db)")
    p.add_argument("--roster", help="Roster CSV with id,name,dob columns")
    p.add_argument("--instance", help="Sandbox instance id")
    p.add_argument("-v", "--verbose", action="count", default=0)
    sub = p.add_subparsers(dest="command", required=True)

    d = sub.add_parser("diag", help="Count unresolvable seat and queue references")
    d.add_argument("--date", help="YYYY-MM-DD (default: every date)")

    f = sub.add_parser("fix-ids", help="Rewrite resolvable names to roster ids")
    f.add_argument("--date", help="YYYY-MM-DD (default: every date)")
    f.add_argument("--apply", action="store_true", help="Write changes (default: dry run)")

    u = sub.add_parser("purge-unknown", help="Clear seats and queue entries nobody matches")
    u.add_argument("--date", required=True)

    r = sub.add_parser("rotate", help="Advance the board one tick")
    r.add_argument("--date", required=True)
    r.add_argument("--now", help="ISO timestamp (default: current time)")

    a = sub.add_parser("autopopulate", help="Seed seats and queues from the roster")
    a.add_argument("--date", required=True)
    a.add_argument("--now", help="ISO timestamp (default: current time)")

    b = sub.add_parser("board", help="Show the current board")
    b.add_argument("--date", required=True)

    sub.add_parser("purge-expired", help="Reclaim expired sandbox state")
    return p


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    cfg = _build_cfg(args)
    setup_logging(level=cfg.log_level, log_file=cfg.log_file)
    configure_structlog(json_output=True)

    try:
        directory = _load_directory(args.roster)
        store = FrameStore(SQLiteBackend(cfg.db_path, timeout=cfg.storage_timeout_seconds))
        service = RotationService(store, directory, config=cfg)

        if args.command == "diag":
            _emit(diagnose(store, directory, args.date))
        elif args.command == "fix-ids":
            _emit(fix_ids(store, directory, args.date, apply=args.apply).to_dict())
        elif args.command == "purge-unknown":
            if not args.roster:
                raise ValidationError("purge-unknown needs --roster")
            _emit(purge_unknown(store, directory, args.date).to_dict())
        elif args.command == "rotate":
            _emit(service.rotate(args.date, now=args.now, instance=args.instance).to_dict())
        elif args.command == "autopopulate":
            _emit(service.autopopulate(args.date, now=args.now, instance=args.instance).to_dict())
        elif args.command == "board":
            _emit(service.board(args.date, instance=args.instance))
        elif args.command == "purge-expired":
            _emit({"removed": store.purge_expired()})
    except RotationError as e:
        logger.error(f"{args.command} failed: {e.kind}")
        print(json.dumps(e.public_dict(), ensure_ascii=False), file=sys.stderr)
        return 2 if isinstance(e, ValidationError) else 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
