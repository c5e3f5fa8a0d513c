"""Replay a persisted session and check it reproduces the recorded outcome.

Contract
- Input: a session record, either a JSON file (`--file`) or a Redis key (`--session-id`, using REDIS_URL).
- Output: one JSON line with the replayed tick/score and whether it matches the record.
- Exit code 0 when the replay matches, 1 otherwise.

Usage:
    uv run python scripts/replay_session.py --file session.json
    uv run python scripts/replay_session.py --session-id <id>

Replays are deterministic: same record in, same output.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from lazyplay.infra.redis_client import create_redis
from lazyplay.replay import replay_record
from lazyplay.session_store import SessionRecord, require_session

logger = logging.getLogger("replay_session")


def _load_record(args: argparse.Namespace) -> SessionRecord:
    if args.file:
        return SessionRecord.model_validate_json(Path(args.file).read_text(encoding="utf-8"))
    return require_session(r=create_redis(), session_id=args.session_id)


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--file", help="Path to a SessionRecord JSON file")
    source.add_argument("--session-id", help="Session id stored in Redis")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    record = _load_record(args)
    result = asyncio.run(replay_record(record))
    matches = result.matches(record)

    print(
        json.dumps(
            {
                "session_id": record.session_id,
                "game": record.game,
                "terminated": result.terminated,
                "tick": result.session.tick,
                "score": result.score,
                "matches": matches,
            }
        )
    )
    if not matches:
        logger.warning("replay of %s diverged from record (status=%s)", record.session_id, record.status.value)
    return 0 if matches else 1


if __name__ == "__main__":
    sys.exit(main())
