from agent.local_store import LocalSessionMirror, MirrorRecord


def _record(**kw):
    base = dict(session_id="s1", user_id="u1", start_time_ms=1_767_268_800_000, duration_seconds=1500)
    base.update(kw)
    return MirrorRecord(**base)


def test_missing_file_loads_none(tmp_path):
    assert LocalSessionMirror(tmp_path / "none.json").load() is None


def test_save_then_load(tmp_path):
    mirror = LocalSessionMirror(tmp_path / "state" / "active.json")
    record = _record(pending_completion=True, provisional_completed=True, sync_attempts=3)
    mirror.save(record)
    assert mirror.load() == record
    assert [p.name for p in (tmp_path / "state").iterdir()] == ["active.json"]


def test_save_overwrites_previous_session(tmp_path):
    mirror = LocalSessionMirror(tmp_path / "active.json")
    mirror.save(_record(pending_completion=True))
    mirror.save(_record(session_id="s2"))
    loaded = mirror.load()
    assert loaded.session_id == "s2"
    assert loaded.pending_completion is False


def test_corrupt_file_is_discarded(tmp_path):
    path = tmp_path / "active.json"
    path.write_text("{not json", encoding="utf-8")
    mirror = LocalSessionMirror(path)
    assert mirror.load() is None
    assert not path.exists()


def test_clear_is_idempotent(tmp_path):
    mirror = LocalSessionMirror(tmp_path / "active.json")
    mirror.save(_record())
    mirror.clear()
    mirror.clear()
    assert mirror.load() is None


def test_local_elapsed():
    record = _record()
    assert record.local_elapsed_ms(record.start_time_ms + 90_000) == 90_000
    assert record.duration_ms == 1_500_000
