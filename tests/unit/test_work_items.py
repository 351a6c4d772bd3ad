"""
工作项与工作项列表单元测试

测试四种工作项的执行与撤销、失败时的逆序回滚，以及回滚的完整性。
"""

import copy
from pathlib import Path
from unittest.mock import patch

import pytest

from atomsetup.store.markers import MemoryMarkerStore, Scope
from atomsetup.transaction import WorkItemList
from atomsetup.work_items import (
    CopyPolicy,
    CopyTree,
    DeleteRegistryValue,
    DeleteTree,
    SetRegistryValue,
    WorkContext,
    WorkItemKind,
    apply_item,
    rollback_item,
)

KEY = "Software/AtomApp/Clients"


def snapshot_tree(root: Path):
    """目录树快照：相对路径 -> 文件内容（目录为 None）"""
    if not root.exists():
        return {}
    result = {}
    for path in sorted(root.rglob("*")):
        rel = path.relative_to(root).as_posix()
        result[rel] = path.read_bytes() if path.is_file() else None
    return result


def snapshot_store(store: MemoryMarkerStore):
    return copy.deepcopy(store._data)


@pytest.fixture
def workspace(tmp_path):
    """被修改的目录树与备份目录分开存放"""
    root = tmp_path / "work"
    (root / "app" / "1.0").mkdir(parents=True)
    (root / "app" / "1.0" / "core.dll").write_bytes(b"core 1.0")
    (root / "app" / "atomapp.exe").write_bytes(b"exe 1.0")
    (root / "old.log").write_text("old log")

    source = tmp_path / "source"
    (source / "1.1").mkdir(parents=True)
    (source / "1.1" / "core.dll").write_bytes(b"core 1.1")
    (source / "atomapp.exe").write_bytes(b"exe 1.1")

    backup = tmp_path / "backup"
    backup.mkdir()
    return root, source, backup


@pytest.fixture
def ctx():
    return WorkContext(store=MemoryMarkerStore())


class TestCopyTree:
    """CopyTree 测试"""

    def test_copy_file_new_dest(self, tmp_path, ctx):
        """复制到不存在的目标，撤销后目标消失"""
        source = tmp_path / "a.txt"
        source.write_text("hello")
        dest = tmp_path / "out" / "a.txt"
        item = CopyTree(source, dest, tmp_path)

        assert item.kind == WorkItemKind.COPY_TREE
        assert apply_item(item, ctx)
        assert dest.read_text() == "hello"

        assert rollback_item(item, ctx)
        assert not dest.exists()

    def test_copy_overwrites_and_restores(self, workspace, ctx):
        root, source, backup = workspace
        dest = root / "app" / "atomapp.exe"
        item = CopyTree(source / "atomapp.exe", dest, backup)

        assert apply_item(item, ctx)
        assert dest.read_bytes() == b"exe 1.1"
        assert item.undo.backup is not None

        assert rollback_item(item, ctx)
        assert dest.read_bytes() == b"exe 1.0"
        assert list(backup.iterdir()) == []

    def test_copy_directory(self, workspace, ctx):
        root, source, backup = workspace
        dest = root / "app" / "1.1"
        item = CopyTree(source / "1.1", dest, backup)

        assert apply_item(item, ctx)
        assert (dest / "core.dll").read_bytes() == b"core 1.1"
        assert rollback_item(item, ctx)
        assert not dest.exists()

    def test_if_different_skips_identical(self, workspace, ctx):
        """内容一致时跳过，撤销不做任何事"""
        root, source, backup = workspace
        dest = root / "app" / "1.1"
        first = CopyTree(source / "1.1", dest, backup, CopyPolicy.IF_DIFFERENT)
        assert apply_item(first, ctx)
        assert not first.undo.skipped

        second = CopyTree(source / "1.1", dest, backup, CopyPolicy.IF_DIFFERENT)
        assert apply_item(second, ctx)
        assert second.undo.skipped

        assert rollback_item(second, ctx)
        assert (dest / "core.dll").read_bytes() == b"core 1.1"

    def test_missing_source_fails(self, tmp_path, ctx):
        item = CopyTree(tmp_path / "missing", tmp_path / "dest", tmp_path)
        assert not apply_item(item, ctx)
        assert not (tmp_path / "dest").exists()

    def test_failed_copy_restores_itself(self, workspace, ctx):
        """复制中途失败时，目标恢复为原内容"""
        root, source, backup = workspace
        dest = root / "app" / "1.0"
        item = CopyTree(source / "1.1", dest, backup)

        with patch("atomsetup.work_items.shutil.copytree", side_effect=OSError("disk full")):
            assert not apply_item(item, ctx)

        assert (dest / "core.dll").read_bytes() == b"core 1.0"
        assert item.undo.skipped
        assert rollback_item(item, ctx)
        assert (dest / "core.dll").read_bytes() == b"core 1.0"


class TestDeleteTree:
    """DeleteTree 测试"""

    def test_delete_with_backup_and_restore(self, workspace, ctx):
        root, _, backup = workspace
        target = root / "app"
        before = snapshot_tree(target)
        item = DeleteTree(target, backup)

        assert apply_item(item, ctx)
        assert not target.exists()

        assert rollback_item(item, ctx)
        assert snapshot_tree(target) == before

    def test_delete_missing_is_success(self, tmp_path, ctx):
        item = DeleteTree(tmp_path / "missing", tmp_path)
        assert apply_item(item, ctx)
        assert item.undo.backup is None
        assert rollback_item(item, ctx)

    def test_delete_without_backup(self, workspace, ctx):
        root, _, _ = workspace
        item = DeleteTree(root / "old.log")
        assert apply_item(item, ctx)
        assert not (root / "old.log").exists()

    def test_best_effort_failure_is_ignored(self, workspace, ctx):
        """best_effort 的删除失败不算失败"""
        root, _, _ = workspace
        with patch("atomsetup.work_items.remove_tree", return_value=False):
            assert apply_item(DeleteTree(root / "old.log", best_effort=True), ctx)
            assert not apply_item(DeleteTree(root / "old.log"), ctx)


class TestRegistryValues:
    """标记值工作项测试"""

    def test_set_new_value_and_rollback(self, ctx):
        item = SetRegistryValue(Scope.USER, KEY, "pv", "1.0.0.0")
        assert apply_item(item, ctx)
        assert ctx.store.get_value(Scope.USER, KEY, "pv") == "1.0.0.0"

        assert rollback_item(item, ctx)
        assert ctx.store.get_value(Scope.USER, KEY, "pv") is None

    def test_overwrite_restores_previous(self, ctx):
        ctx.store.set_value(Scope.USER, KEY, "pv", "1.0.0.0")
        item = SetRegistryValue(Scope.USER, KEY, "pv", "1.1.0.0")
        assert apply_item(item, ctx)
        assert ctx.store.get_value(Scope.USER, KEY, "pv") == "1.1.0.0"

        assert rollback_item(item, ctx)
        assert ctx.store.get_value(Scope.USER, KEY, "pv") == "1.0.0.0"

    def test_no_overwrite_keeps_existing(self, ctx):
        ctx.store.set_value(Scope.USER, KEY, "pv", "1.0.0.0")
        item = SetRegistryValue(Scope.USER, KEY, "pv", "2.0.0.0", overwrite=False)
        assert apply_item(item, ctx)
        assert ctx.store.get_value(Scope.USER, KEY, "pv") == "1.0.0.0"
        assert not item.undo.changed

    def test_delete_value_and_rollback(self, ctx):
        ctx.store.set_value(Scope.SYSTEM, KEY, "opv", "0.9")
        item = DeleteRegistryValue(Scope.SYSTEM, KEY, "opv")
        assert apply_item(item, ctx)
        assert ctx.store.get_value(Scope.SYSTEM, KEY, "opv") is None

        assert rollback_item(item, ctx)
        assert ctx.store.get_value(Scope.SYSTEM, KEY, "opv") == "0.9"

    def test_delete_absent_value(self, ctx):
        item = DeleteRegistryValue(Scope.USER, KEY, "cmd")
        assert apply_item(item, ctx)
        assert not item.undo.existed
        assert rollback_item(item, ctx)
        assert ctx.store.get_value(Scope.USER, KEY, "cmd") is None

    def test_scopes_are_isolated(self, ctx):
        apply_item(SetRegistryValue(Scope.SYSTEM, KEY, "pv", "3.0"), ctx)
        assert ctx.store.get_value(Scope.USER, KEY, "pv") is None


def _build_items(items: WorkItemList, root: Path, source: Path, backup: Path) -> None:
    items.add_set_registry_value(Scope.USER, KEY, "pv", "1.1.0.0")
    items.add_copy_tree(source / "1.1", root / "app" / "1.1", backup)
    items.add_delete_tree(root / "old.log", backup)
    items.add_copy_tree(source / "atomapp.exe", root / "app" / "atomapp.exe", backup)
    items.add_delete_registry_value(Scope.USER, KEY, "opv")
    items.add_delete_tree(root / "app" / "1.0", backup)
    items.add_set_registry_value(Scope.USER, KEY, "cmd", "setup --rename-exe")


class TestWorkItemList:
    """WorkItemList 测试"""

    def test_execute_all(self, workspace):
        root, source, backup = workspace
        store = MemoryMarkerStore()
        items = WorkItemList(store)
        _build_items(items, root, source, backup)

        assert len(items) == 7
        assert items.execute()
        assert (root / "app" / "atomapp.exe").read_bytes() == b"exe 1.1"
        assert not (root / "app" / "1.0").exists()
        assert store.get_value(Scope.USER, KEY, "pv") == "1.1.0.0"

    @pytest.mark.parametrize("prefix", range(0, 8))
    def test_failure_restores_prior_state(self, workspace, prefix):
        """前 N 项成功、第 N+1 项失败时，状态与执行前完全一致"""
        root, source, backup = workspace
        store = MemoryMarkerStore()
        store.set_value(Scope.USER, KEY, "pv", "1.0.0.0")
        store.set_value(Scope.USER, KEY, "opv", "0.9.0.0")

        full = WorkItemList(store)
        _build_items(full, root, source, backup)

        items = WorkItemList(store)
        for item in full.items[:prefix]:
            items.add(item)
        items.add_copy_tree(source / "missing", root / "never", backup)

        tree_before = snapshot_tree(root)
        store_before = snapshot_store(store)

        assert not items.execute()
        assert snapshot_tree(root) == tree_before
        assert snapshot_store(store) == store_before

    def test_rollback_in_reverse_order(self, tmp_path):
        store = MemoryMarkerStore()
        items = WorkItemList(store)
        items.add_set_registry_value(Scope.USER, KEY, "pv", "1")
        items.add_set_registry_value(Scope.USER, KEY, "pv", "2")
        assert items.execute()
        assert store.get_value(Scope.USER, KEY, "pv") == "2"

        items.rollback()
        assert store.get_value(Scope.USER, KEY, "pv") is None

    def test_rollback_is_idempotent(self, tmp_path):
        store = MemoryMarkerStore()
        items = WorkItemList(store)
        items.add_set_registry_value(Scope.USER, KEY, "pv", "1")
        assert items.execute()

        items.rollback()
        store.set_value(Scope.USER, KEY, "pv", "manual")
        items.rollback()
        assert store.get_value(Scope.USER, KEY, "pv") == "manual"

    def test_execute_twice_is_stable(self, workspace):
        """同一列表重复执行，结果与执行一次相同"""
        root, source, backup = workspace
        store = MemoryMarkerStore()
        items = WorkItemList(store)
        items.add_copy_tree(source / "1.1", root / "app" / "1.1", backup, CopyPolicy.IF_DIFFERENT)
        items.add_set_registry_value(Scope.USER, KEY, "pv", "1.1.0.0")

        assert items.execute()
        after_first = (snapshot_tree(root), snapshot_store(store))
        assert items.execute()
        assert (snapshot_tree(root), snapshot_store(store)) == after_first

    def test_rollback_failure_is_logged_not_raised(self, workspace):
        """单项撤销失败不影响其余项的撤销"""
        root, source, backup = workspace
        store = MemoryMarkerStore()
        items = WorkItemList(store)
        items.add_set_registry_value(Scope.USER, KEY, "pv", "1.1.0.0")
        items.add_delete_tree(root / "old.log", backup)
        items.add_copy_tree(source / "missing", root / "never", backup)

        with patch("atomsetup.work_items._restore", side_effect=OSError("locked")), \
                patch("atomsetup.work_items.error") as mock_error:
            assert not items.execute()

        assert store.get_value(Scope.USER, KEY, "pv") is None
        assert not (root / "old.log").exists()
        assert any("撤销失败" in call.args[0] for call in mock_error.call_args_list)

    def test_empty_list(self):
        items = WorkItemList(MemoryMarkerStore())
        assert items.execute()
        items.rollback()
