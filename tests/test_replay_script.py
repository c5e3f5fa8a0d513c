from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from lazyplay.core.identity import ParticipantIdentity
from lazyplay.games.line import LINE, LineState
from lazyplay.responders.scripted import ScriptedResponder
from lazyplay.session_store import record_from_session
from scripts.replay_session import main


async def _terminated_record_json() -> str:
    scheduler = LINE.scheduler()
    session = scheduler.open(LineState(goal=2), ParticipantIdentity.new())
    await scheduler.run(session, responder=ScriptedResponder.repeat(1))
    return record_from_session(session=session, game=LINE, responder="script").model_dump_json()


def test_replay_script_reports_match(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    path = tmp_path / "session.json"
    path.write_text(asyncio.run(_terminated_record_json()), encoding="utf-8")

    assert main(["--file", str(path)]) == 0
    out = json.loads(capsys.readouterr().out)
    assert out["matches"] is True
    assert out["score"] == 2


def test_replay_script_flags_tampered_record(tmp_path: Path) -> None:
    data = json.loads(asyncio.run(_terminated_record_json()))
    data["score"] = 99
    path = tmp_path / "session.json"
    path.write_text(json.dumps(data), encoding="utf-8")

    assert main(["--file", str(path)]) == 1
