from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from worktimer.db import Database
from worktimer.editor import SessionEditor
from worktimer.errors import ConflictError, NotFoundError, ValidationError
from worktimer.models import SESSION_ACTIVE, SESSION_STOPPED
from worktimer.tracker import WorkTimer

UTC = ZoneInfo("UTC")
T0 = datetime(2024, 1, 15, 9, 0, tzinfo=timezone.utc)


def _make_editor() -> SessionEditor:
    db = Database(":memory:")
    db.initialize()
    return SessionEditor(WorkTimer(db=db))


def _three_segment_session(editor: SessionEditor) -> str:
    timer = editor.timer
    session_id = timer.start("u1", UTC, now_utc=T0).current_session.id
    timer.pause("u1", UTC, now_utc=T0 + timedelta(hours=1))
    timer.resume("u1", UTC, now_utc=T0 + timedelta(hours=2))
    timer.pause("u1", UTC, now_utc=T0 + timedelta(hours=3))
    timer.resume("u1", UTC, now_utc=T0 + timedelta(hours=4))
    timer.stop("u1", UTC, now_utc=T0 + timedelta(hours=5))
    return session_id


def test_create_manual_session_with_end_is_stopped() -> None:
    editor = _make_editor()

    session = editor.create_manual_session(
        "u1", "2024-01-14", T0 - timedelta(days=1), T0 - timedelta(days=1) + timedelta(minutes=90), note="offline"
    )

    assert session.status == SESSION_STOPPED
    assert session.local_date == "2024-01-14"
    detail = editor.get_session(session.id, "u1")
    assert detail.total_seconds == 5400
    assert detail.session.note == "offline"


def test_create_manual_session_rejects_end_before_start() -> None:
    editor = _make_editor()

    with pytest.raises(ValidationError):
        editor.create_manual_session("u1", "2024-01-15", T0, T0 - timedelta(minutes=1))


def test_create_manual_session_rejects_malformed_date() -> None:
    editor = _make_editor()

    with pytest.raises(ValidationError):
        editor.create_manual_session("u1", "Jan 15", T0, T0 + timedelta(minutes=1))


def test_open_ended_manual_session_starts_back_dated_timer() -> None:
    editor = _make_editor()

    session = editor.create_manual_session("u1", "2024-01-15", T0, now_utc=T0 + timedelta(minutes=30))

    assert session.status == SESSION_ACTIVE
    status = editor.timer.get_status("u1", UTC, now_utc=T0 + timedelta(minutes=30))
    assert status.is_running
    assert status.elapsed_seconds == 1800


def test_open_ended_manual_session_conflicts_with_running_timer() -> None:
    editor = _make_editor()
    editor.timer.start("u1", UTC, now_utc=T0)

    with pytest.raises(ConflictError) as excinfo:
        editor.create_manual_session("u1", "2024-01-15", T0 - timedelta(hours=1), now_utc=T0 + timedelta(minutes=1))

    assert excinfo.value.status.is_running
    assert len(editor.db.list_sessions("u1", "2024-01-15", "2024-01-15")) == 1


def test_closed_manual_session_is_allowed_while_running() -> None:
    editor = _make_editor()
    editor.timer.start("u1", UTC, now_utc=T0)

    editor.create_manual_session("u1", "2024-01-14", T0 - timedelta(days=1), T0 - timedelta(days=1, minutes=-10))

    assert editor.timer.get_status("u1", UTC, now_utc=T0).is_running


def test_update_note_and_project_only() -> None:
    editor = _make_editor()
    session_id = _three_segment_session(editor)

    updated = editor.update_session(session_id, "u1", note="deep work", project_id="p-1")

    assert updated.note == "deep work"
    assert updated.project_id == "p-1"
    assert editor.get_session(session_id, "u1").total_seconds == 3 * 3600

    cleared = editor.update_session(session_id, "u1", note=None)
    assert cleared.note is None
    assert cleared.project_id == "p-1"


def test_update_retimes_only_first_and_last_segments() -> None:
    editor = _make_editor()
    session_id = _three_segment_session(editor)
    before = editor.get_session(session_id, "u1").segments

    editor.update_session(
        session_id,
        "u1",
        start_at=T0 + timedelta(minutes=30),
        end_at=T0 + timedelta(hours=4, minutes=15),
    )

    after = editor.get_session(session_id, "u1").segments
    assert after[0].start_at == T0 + timedelta(minutes=30)
    assert after[0].end_at == before[0].end_at
    assert after[1] == before[1]
    assert after[2].start_at == before[2].start_at
    assert after[2].end_at == T0 + timedelta(hours=4, minutes=15)
    assert editor.get_session(session_id, "u1").total_seconds == 1800 + 3600 + 900


def test_update_rejects_start_after_first_segment_end() -> None:
    editor = _make_editor()
    session_id = _three_segment_session(editor)

    with pytest.raises(ValidationError):
        editor.update_session(session_id, "u1", start_at=T0 + timedelta(hours=1, minutes=5))


def test_update_rejects_end_before_last_segment_start() -> None:
    editor = _make_editor()
    session_id = _three_segment_session(editor)

    with pytest.raises(ValidationError):
        editor.update_session(session_id, "u1", end_at=T0 + timedelta(hours=3, minutes=30))


def test_update_single_segment_rejects_inverted_interval() -> None:
    editor = _make_editor()
    session = editor.create_manual_session("u1", "2024-01-15", T0, T0 + timedelta(hours=1))

    with pytest.raises(ValidationError):
        editor.update_session(session.id, "u1", start_at=T0 + timedelta(hours=2))

    assert editor.get_session(session.id, "u1").total_seconds == 3600


def test_update_end_of_running_session_is_rejected() -> None:
    editor = _make_editor()
    session_id = editor.timer.start("u1", UTC, now_utc=T0).current_session.id

    with pytest.raises(ValidationError):
        editor.update_session(session_id, "u1", end_at=T0 + timedelta(minutes=5))


def test_failed_retime_keeps_note_change_out() -> None:
    editor = _make_editor()
    session = editor.create_manual_session("u1", "2024-01-15", T0, T0 + timedelta(hours=1), note="before")

    with pytest.raises(ValidationError):
        editor.update_session(session.id, "u1", note="after", end_at=T0 - timedelta(hours=1))

    assert editor.get_session(session.id, "u1").session.note == "before"


def test_delete_session_removes_segments() -> None:
    editor = _make_editor()
    session_id = _three_segment_session(editor)

    editor.delete_session(session_id, "u1")

    assert editor.db.list_segments("u1", [session_id]) == []
    with pytest.raises(NotFoundError):
        editor.get_session(session_id, "u1")


def test_deleting_running_session_returns_timer_to_idle() -> None:
    editor = _make_editor()
    session_id = editor.timer.start("u1", UTC, now_utc=T0).current_session.id

    editor.delete_session(session_id, "u1")

    assert editor.db.get_open_segment("u1") is None
    assert editor.timer.start("u1", UTC, now_utc=T0 + timedelta(minutes=1)).is_running


def test_sessions_of_other_users_are_not_found() -> None:
    editor = _make_editor()
    session_id = _three_segment_session(editor)

    with pytest.raises(NotFoundError):
        editor.get_session(session_id, "u2")
    with pytest.raises(NotFoundError):
        editor.update_session(session_id, "u2", note="mine now")
    with pytest.raises(NotFoundError):
        editor.delete_session(session_id, "u2")

    assert editor.get_session(session_id, "u1").total_seconds == 3 * 3600


def test_idle_elapsed_follows_latest_work_not_latest_entry() -> None:
    editor = _make_editor()
    editor.timer.start("u1", UTC, now_utc=T0)
    editor.timer.stop("u1", UTC, now_utc=T0 + timedelta(minutes=30))

    # Back-fill an earlier stretch of the same day after stopping.
    editor.create_manual_session(
        "u1",
        "2024-01-15",
        T0 - timedelta(hours=2),
        T0 - timedelta(hours=2) + timedelta(minutes=5),
        now_utc=T0 + timedelta(minutes=35),
    )

    status = editor.timer.get_status("u1", UTC, now_utc=T0 + timedelta(minutes=40))
    assert status.elapsed_seconds == 1800
    assert status.today_total_seconds == 2100
