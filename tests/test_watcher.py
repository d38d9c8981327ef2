import os
import queue
import shutil
import time

import pytest

from optwatch.watcher import FileEvent, Notify, Watcher


def _collect(watcher, seconds=1.5):
    deadline = time.monotonic() + seconds
    found = []
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        try:
            event = watcher.events.get(timeout=remaining)
        except queue.Empty:
            break
        if event is None:
            break
        found.append(event)
    return found


def _wait_for(watcher, predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    found = []
    while True:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            break
        try:
            event = watcher.events.get(timeout=remaining)
        except queue.Empty:
            break
        if event is None:
            break
        found.append(event)
        if predicate(event):
            break
    return found


def _touch(path, data=""):
    with open(path, "w") as handle:
        handle.write(data)


@pytest.fixture
def watcher():
    instance = Watcher()
    yield instance
    instance.close()


def test_event_string_lists_kinds_in_fixed_order():
    event = FileEvent("/tmp/a", Notify.ATTRIB | Notify.CREATE | Notify.DELETE)
    assert str(event) == '"/tmp/a": CREATE|DELETE|MODIFY|ATTRIB'


def test_event_string_of_empty_mask():
    assert str(FileEvent("x", Notify(0))) == '"x": '


@pytest.mark.parametrize(
    "mask, expected",
    [
        (Notify.CREATE, (True, False, False, False, False)),
        (Notify.DELETE, (False, True, False, False, False)),
        (Notify.MODIFY, (False, False, True, False, False)),
        (Notify.RENAME, (False, False, False, True, False)),
        (Notify.ATTRIB, (False, False, True, False, True)),
    ],
)
def test_event_predicates(mask, expected):
    event = FileEvent("f", mask)
    got = (
        event.is_create(),
        event.is_delete(),
        event.is_modify(),
        event.is_rename(),
        event.is_attrib(),
    )
    assert got == expected


def test_create_in_watched_directory(watcher, tmp_path):
    watcher.watch(tmp_path)
    target = tmp_path / "new.testfile"
    _touch(target)
    events = _wait_for(watcher, lambda e: e.name == str(target) and e.is_create())
    assert any(e.name == str(target) and e.is_create() for e in events)


def test_write_gives_modify(watcher, tmp_path):
    target = tmp_path / "data.testfile"
    _touch(target)
    watcher.watch(tmp_path)
    _touch(target, "data")
    events = _wait_for(watcher, lambda e: e.name == str(target) and e.is_modify())
    assert any(e.name == str(target) and e.is_modify() for e in events)


def test_dir_only_counts(watcher, tmp_path):
    existing = tmp_path / "existing.testfile"
    _touch(existing)
    watcher.watch(tmp_path)
    target = tmp_path / "dironly.testfile"
    _touch(target, "data")
    time.sleep(0.05)
    os.remove(target)
    os.remove(existing)
    events = [e for e in _collect(watcher, 1.5) if e.name in (str(target), str(existing))]
    assert sum(e.is_create() for e in events) == 1
    assert sum(e.is_modify() for e in events) >= 1
    assert sum(e.is_delete() for e in events) == 2
    assert watcher.errors.empty()


def test_multiple_operations(watcher, tmp_path):
    watched = tmp_path / "watched"
    elsewhere = tmp_path / "elsewhere"
    watched.mkdir()
    elsewhere.mkdir()
    target = watched / "seq.testfile"
    moved = elsewhere / "seq_rename.testfile"
    watcher.watch(watched)
    _touch(target, "data")
    time.sleep(0.05)
    os.rename(target, moved)
    _touch(moved, "data")
    time.sleep(0.05)
    _touch(target)
    events = [e for e in _collect(watcher, 2.5) if e.name == str(target)]
    assert sum(e.is_create() for e in events) == 2
    assert sum(e.is_modify() for e in events) >= 1
    assert sum(e.is_delete() for e in events) + sum(e.is_rename() for e in events) == 1


def test_moving_into_watched_directory_gives_create(watcher, tmp_path):
    watched = tmp_path / "watched"
    source = tmp_path / "from"
    watched.mkdir()
    source.mkdir()
    origin = source / "events.testfile"
    _touch(origin)
    watcher.watch(watched)
    destination = watched / "events.testfileRenamed"
    os.rename(origin, destination)
    events = _wait_for(watcher, lambda e: e.name == str(destination) and e.is_create())
    assert any(e.name == str(destination) and e.is_create() for e in events)


def test_rename_of_watched_file(watcher, tmp_path):
    target = tmp_path / "events.testfile"
    renamed = tmp_path / "events.testfileRenamed"
    _touch(target, "data")
    watcher.watch(tmp_path)
    watcher.watch(target)
    os.rename(target, renamed)
    events = _wait_for(watcher, lambda e: e.name == str(target) and e.is_rename())
    assert any(e.name == str(target) and e.is_rename() for e in events)


def test_chmod_gives_attrib(watcher, tmp_path):
    target = tmp_path / "attrib.testfile"
    _touch(target, "data")
    os.chmod(target, 0o600)
    watcher.watch(target)
    os.chmod(target, 0o700)
    events = _wait_for(watcher, lambda e: e.name == str(target) and e.is_attrib())
    matching = [e for e in events if e.name == str(target) and e.is_attrib()]
    assert matching
    assert matching[0].is_modify()


def test_flags_filter_keeps_only_creates(watcher, tmp_path):
    watcher.watch_flags(tmp_path, Notify.CREATE)
    target = tmp_path / "filtered.testfile"
    _touch(target, "data")
    time.sleep(0.05)
    os.remove(target)
    events = _collect(watcher, 1.5)
    assert [e.name for e in events] == [str(target)]
    assert all(e.is_create() for e in events)


def test_removed_watch_gives_no_events(watcher, tmp_path):
    existing = tmp_path / "existing.testfile"
    _touch(existing)
    watcher.watch(tmp_path)
    watcher.remove_watch(tmp_path)
    _touch(existing, "data")
    os.chmod(existing, 0o700)
    _touch(tmp_path / "other.testfile")
    assert _collect(watcher, 1.0) == []


def test_remove_unknown_watch_raises(watcher, tmp_path):
    with pytest.raises(ValueError, match="non-existent"):
        watcher.remove_watch(tmp_path)


def test_watch_missing_path_raises(watcher, tmp_path):
    with pytest.raises(FileNotFoundError):
        watcher.watch(tmp_path / "missing")


def test_close_twice_then_watch_raises(tmp_path):
    instance = Watcher()
    instance.close()
    instance.close()
    with pytest.raises(RuntimeError, match="closed"):
        instance.watch(tmp_path)
    assert list(instance) == []


def test_close_ends_iteration_after_events(tmp_path):
    instance = Watcher()
    instance.watch(tmp_path)
    target = tmp_path / "closing.testfile"
    _touch(target)
    time.sleep(1.0)
    instance.close()
    events = list(instance)
    assert any(e.name == str(target) and e.is_create() for e in events)


def test_broken_symlink_gives_single_create(watcher, tmp_path):
    watcher.watch(tmp_path)
    link = tmp_path / "zzznew"
    os.symlink(tmp_path / "zzz", link)
    events = [e for e in _collect(watcher, 1.0) if e.name == str(link)]
    assert len(events) == 1
    assert events[0].is_create()
    assert watcher.errors.empty()


def test_sub_directory_contents_are_not_reported(watcher, tmp_path):
    first = tmp_path / "file1.testfile"
    sub = tmp_path / "sub"
    inner = sub / "file1.testfile"
    watcher.watch(tmp_path)
    sub.mkdir()
    _touch(first)
    _touch(inner)
    time.sleep(0.2)
    shutil.rmtree(sub)
    os.remove(first)
    events = _collect(watcher, 1.5)
    relevant = [e for e in events if e.name in (str(first), str(sub))]
    assert sum(e.is_create() for e in relevant) == 2
    assert sum(e.is_delete() for e in relevant) == 2
    assert all(e.name != str(inner) for e in events)


def test_deleting_watched_directory(watcher, tmp_path):
    watched = tmp_path / "watched"
    watched.mkdir()
    existing = watched / "existing.testfile"
    _touch(existing)
    watcher.watch(watched)
    watcher.watch(existing)
    shutil.rmtree(watched)
    events = _collect(watcher, 1.5)
    deletes = [e for e in events if e.name in (str(watched), str(existing)) and e.is_delete()]
    assert len(deletes) >= 2