"""
延迟清理单元测试
"""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

from atomsetup import cleanup
from atomsetup.cleanup import (
    DeferredCleanupScheduler,
    MOVEFILE_DELAY_UNTIL_REBOOT,
    PENDING_FILE_NAME,
)


def _locked_tree(tmp_path: Path) -> Path:
    root = tmp_path / "locked"
    (root / "sub").mkdir(parents=True)
    (root / "sub" / "a.dll").write_bytes(b"a")
    (root / "b.txt").write_text("b")
    return root


class TestDeferredCleanupScheduler:
    """DeferredCleanupScheduler 测试（待删除清单模式）"""

    def test_schedule_writes_pending_file(self, tmp_path):
        scheduler = DeferredCleanupScheduler(tmp_path / "state", use_os_queue=False)
        target = _locked_tree(tmp_path)

        assert scheduler.schedule_for_deletion(target)
        assert scheduler.schedule_for_deletion(target)

        pending = json.loads((tmp_path / "state" / PENDING_FILE_NAME).read_text(encoding='utf-8'))
        assert pending == [str(target)]

    def test_schedule_missing_path(self, tmp_path):
        scheduler = DeferredCleanupScheduler(tmp_path / "state", use_os_queue=False)
        assert scheduler.schedule_for_deletion(tmp_path / "missing")
        assert not scheduler.pending_file.exists()

    def test_delete_or_schedule_deletes(self, tmp_path):
        scheduler = DeferredCleanupScheduler(tmp_path / "state", use_os_queue=False)
        target = _locked_tree(tmp_path)

        assert scheduler.delete_or_schedule(target)
        assert not target.exists()
        assert not scheduler.pending_file.exists()

    def test_delete_or_schedule_falls_back(self, tmp_path):
        """直接删除失败时登记延迟删除"""
        scheduler = DeferredCleanupScheduler(tmp_path / "state", use_os_queue=False)
        target = _locked_tree(tmp_path)

        assert not scheduler.delete_or_schedule(target, remove_dir=lambda path: False)
        assert target.exists()
        assert str(target) in json.loads(scheduler.pending_file.read_text(encoding='utf-8'))

    def test_failed_save_leaves_no_temp_file(self, tmp_path):
        scheduler = DeferredCleanupScheduler(tmp_path / "state", use_os_queue=False)
        target = _locked_tree(tmp_path)

        with patch.object(cleanup.os, "replace", side_effect=OSError("read-only")):
            assert not scheduler.schedule_for_deletion(target)

        assert list((tmp_path / "state").iterdir()) == []

    def test_run_pending(self, tmp_path):
        scheduler = DeferredCleanupScheduler(tmp_path / "state", use_os_queue=False)
        first = _locked_tree(tmp_path)
        second = tmp_path / "second.tmp"
        second.write_text("x")
        scheduler.schedule_for_deletion(first)
        scheduler.schedule_for_deletion(second)

        # 第一次运行时 second 仍被占用
        still_locked = {second}
        removed = scheduler.run_pending(
            remove_dir=lambda path: path not in still_locked and cleanup.remove_tree(path))
        assert removed == 1
        assert not first.exists()
        assert json.loads(scheduler.pending_file.read_text(encoding='utf-8')) == [str(second)]

        assert scheduler.run_pending() == 1
        assert not second.exists()
        assert not scheduler.pending_file.exists()

    def test_run_pending_without_file(self, tmp_path):
        scheduler = DeferredCleanupScheduler(tmp_path / "state", use_os_queue=False)
        assert scheduler.run_pending() == 0

    def test_corrupted_pending_file_is_ignored(self, tmp_path):
        state = tmp_path / "state"
        state.mkdir()
        (state / PENDING_FILE_NAME).write_text("{not json", encoding='utf-8')
        scheduler = DeferredCleanupScheduler(state, use_os_queue=False)

        assert scheduler.run_pending() == 0
        target = _locked_tree(tmp_path)
        assert scheduler.schedule_for_deletion(target)
        assert json.loads(scheduler.pending_file.read_text(encoding='utf-8')) == [str(target)]


class TestOsQueue:
    """系统重启删除队列模式"""

    def test_entries_registered_bottom_up(self, tmp_path):
        target = _locked_tree(tmp_path)
        move_file = MagicMock(return_value=1)
        windll = MagicMock()
        windll.kernel32.MoveFileExW = move_file

        with patch.object(cleanup.ctypes, "windll", windll, create=True):
            scheduler = DeferredCleanupScheduler(tmp_path / "state", use_os_queue=True)
            assert scheduler.schedule_for_deletion(target)

        registered = [Path(call.args[0]) for call in move_file.call_args_list]
        assert registered[-1] == target
        assert registered.index(target / "sub" / "a.dll") < registered.index(target / "sub")
        assert all(call.args[1:] == (None, MOVEFILE_DELAY_UNTIL_REBOOT) for call in move_file.call_args_list)
        assert not scheduler.pending_file.exists()

    def test_registration_failure(self, tmp_path):
        target = _locked_tree(tmp_path)
        windll = MagicMock()
        windll.kernel32.MoveFileExW = MagicMock(return_value=0)

        with patch.object(cleanup.ctypes, "windll", windll, create=True):
            scheduler = DeferredCleanupScheduler(tmp_path / "state", use_os_queue=True)
            assert not scheduler.schedule_for_deletion(target)

    def test_run_pending_is_noop(self, tmp_path):
        scheduler = DeferredCleanupScheduler(tmp_path / "state", use_os_queue=True)
        assert scheduler.run_pending() == 0
