"""
工作项

一个工作项是一次可撤销的文件系统或标记存储修改。工作项是封闭的四种类型：

* ``CopyTree``             复制文件或目录树
* ``DeleteTree``           删除文件或目录树（可移动到备份目录以便撤销）
* ``SetRegistryValue``     写入标记值
* ``DeleteRegistryValue``  删除标记值

每种类型的执行与撤销由分派表中的一对函数完成。撤销所需的信息在执行时、
修改之前记录到工作项的 ``undo`` 字段中，撤销时只使用记录的信息，不重新读取
已被修改过的状态。
"""

import os
import shutil
import tempfile
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple, Union

from .store.markers import MarkerStore, MarkerStoreError, MarkerValue, Scope
from .utils.logging import debug, error, warning, LogStage
from .utils.paths import remove_tree, trees_equal


class WorkItemKind(str, Enum):
    """工作项类型"""
    COPY_TREE = "copy_tree"
    DELETE_TREE = "delete_tree"
    SET_REGISTRY_VALUE = "set_registry_value"
    DELETE_REGISTRY_VALUE = "delete_registry_value"


class CopyPolicy(str, Enum):
    """复制策略"""
    ALWAYS = "always"
    IF_DIFFERENT = "if_different"   # 目标内容与源一致时跳过


@dataclass
class WorkContext:
    """工作项执行时共享的外部资源"""
    store: MarkerStore


def _stash(path: Path, temp_root: Path) -> Path:
    """把 path 移动到 temp_root 下新建的独占目录中，返回新位置"""
    holder = Path(tempfile.mkdtemp(prefix="backup_", dir=str(temp_root)))
    backup = holder / path.name
    shutil.move(str(path), str(backup))
    return backup


def _restore(backup: Path, path: Path) -> None:
    if os.path.lexists(path) and not remove_tree(path):
        raise OSError(f"无法清理目标以恢复备份: {path}")
    path.parent.mkdir(parents=True, exist_ok=True)
    shutil.move(str(backup), str(path))
    shutil.rmtree(backup.parent, ignore_errors=True)


# ---------------------------------------------------------------------------
# CopyTree
# ---------------------------------------------------------------------------

@dataclass
class CopyUndo:
    skipped: bool = False
    backup: Optional[Path] = None   # 目标原有内容的备份位置
    copied: bool = False


@dataclass
class CopyTree:
    source: Path
    dest: Path
    temp_root: Path
    policy: CopyPolicy = CopyPolicy.ALWAYS
    kind: WorkItemKind = field(default=WorkItemKind.COPY_TREE, init=False)
    undo: Optional[CopyUndo] = field(default=None, init=False)

    def describe(self) -> str:
        return f"复制 {self.source} -> {self.dest}"


def _apply_copy_tree(item: CopyTree, ctx: WorkContext) -> bool:
    source, dest = Path(item.source), Path(item.dest)
    undo = CopyUndo()
    item.undo = undo

    if not os.path.lexists(source):
        error(f"复制源不存在: {source}", stage=LogStage.EXECUTE)
        return False

    if item.policy == CopyPolicy.IF_DIFFERENT and trees_equal(source, dest):
        debug(f"目标内容一致，跳过复制: {dest}", stage=LogStage.EXECUTE)
        undo.skipped = True
        return True

    try:
        if os.path.lexists(dest):
            undo.backup = _stash(dest, Path(item.temp_root))
        dest.parent.mkdir(parents=True, exist_ok=True)
        undo.copied = True
        if source.is_dir():
            shutil.copytree(source, dest, symlinks=True)
        else:
            shutil.copy2(source, dest)
        return True
    except OSError as e:
        error(f"复制失败 {source} -> {dest}: {e}", stage=LogStage.EXECUTE)
        # 失败的复制自行恢复，不依赖执行器撤销
        _rollback_copy_tree(item, ctx)
        item.undo = CopyUndo(skipped=True)
        return False


def _rollback_copy_tree(item: CopyTree, ctx: WorkContext) -> None:
    undo = item.undo
    if undo is None or undo.skipped:
        return
    dest = Path(item.dest)
    if undo.copied and not remove_tree(dest):
        raise OSError(f"无法删除复制结果: {dest}")
    if undo.backup is not None:
        _restore(undo.backup, dest)


# ---------------------------------------------------------------------------
# DeleteTree
# ---------------------------------------------------------------------------

@dataclass
class DeleteUndo:
    backup: Optional[Path] = None


@dataclass
class DeleteTree:
    """删除文件或目录树

    给出 backup_root 时删除是可撤销的：目标被移动到备份目录，撤销时移回。
    best_effort 的删除失败只记录日志，不会导致整个列表回滚。
    """
    path: Path
    backup_root: Optional[Path] = None
    best_effort: bool = False
    kind: WorkItemKind = field(default=WorkItemKind.DELETE_TREE, init=False)
    undo: Optional[DeleteUndo] = field(default=None, init=False)

    def describe(self) -> str:
        return f"删除 {self.path}"


def _apply_delete_tree(item: DeleteTree, ctx: WorkContext) -> bool:
    path = Path(item.path)
    undo = DeleteUndo()
    item.undo = undo

    if not os.path.lexists(path):
        return True

    try:
        if item.backup_root is not None:
            undo.backup = _stash(path, Path(item.backup_root))
        elif not remove_tree(path):
            raise OSError(f"路径仍然存在: {path}")
        return True
    except OSError as e:
        if item.best_effort:
            warning(f"删除失败，忽略: {path}: {e}", stage=LogStage.EXECUTE)
            return True
        error(f"删除失败 {path}: {e}", stage=LogStage.EXECUTE)
        return False


def _rollback_delete_tree(item: DeleteTree, ctx: WorkContext) -> None:
    undo = item.undo
    if undo is None or undo.backup is None:
        return
    _restore(undo.backup, Path(item.path))


# ---------------------------------------------------------------------------
# SetRegistryValue / DeleteRegistryValue
# ---------------------------------------------------------------------------

@dataclass
class ValueUndo:
    existed: bool = False
    previous: Optional[MarkerValue] = None
    changed: bool = False


@dataclass
class SetRegistryValue:
    scope: Scope
    key: str
    name: str
    value: MarkerValue
    overwrite: bool = True
    kind: WorkItemKind = field(default=WorkItemKind.SET_REGISTRY_VALUE, init=False)
    undo: Optional[ValueUndo] = field(default=None, init=False)

    def describe(self) -> str:
        return f"写入 {self.scope.value}:{self.key}\\{self.name} = {self.value!r}"


@dataclass
class DeleteRegistryValue:
    scope: Scope
    key: str
    name: str
    kind: WorkItemKind = field(default=WorkItemKind.DELETE_REGISTRY_VALUE, init=False)
    undo: Optional[ValueUndo] = field(default=None, init=False)

    def describe(self) -> str:
        return f"删除 {self.scope.value}:{self.key}\\{self.name}"


def _apply_set_value(item: SetRegistryValue, ctx: WorkContext) -> bool:
    previous = ctx.store.get_value(item.scope, item.key, item.name)
    undo = ValueUndo(existed=previous is not None, previous=previous)
    item.undo = undo
    if previous is not None and not item.overwrite:
        return True
    ctx.store.set_value(item.scope, item.key, item.name, item.value)
    undo.changed = True
    return True


def _apply_delete_value(item: DeleteRegistryValue, ctx: WorkContext) -> bool:
    previous = ctx.store.get_value(item.scope, item.key, item.name)
    undo = ValueUndo(existed=previous is not None, previous=previous)
    item.undo = undo
    if previous is not None:
        ctx.store.delete_value(item.scope, item.key, item.name)
        undo.changed = True
    return True


def _rollback_value(item: Union[SetRegistryValue, DeleteRegistryValue], ctx: WorkContext) -> None:
    undo = item.undo
    if undo is None or not undo.changed:
        return
    if undo.existed:
        ctx.store.set_value(item.scope, item.key, item.name, undo.previous)
    else:
        ctx.store.delete_value(item.scope, item.key, item.name)


# ---------------------------------------------------------------------------
# 分派
# ---------------------------------------------------------------------------

WorkItem = Union[CopyTree, DeleteTree, SetRegistryValue, DeleteRegistryValue]

_Handler = Tuple[Callable[..., bool], Callable[..., None]]

_HANDLERS: Dict[WorkItemKind, _Handler] = {
    WorkItemKind.COPY_TREE: (_apply_copy_tree, _rollback_copy_tree),
    WorkItemKind.DELETE_TREE: (_apply_delete_tree, _rollback_delete_tree),
    WorkItemKind.SET_REGISTRY_VALUE: (_apply_set_value, _rollback_value),
    WorkItemKind.DELETE_REGISTRY_VALUE: (_apply_delete_value, _rollback_value),
}


def apply_item(item: WorkItem, ctx: WorkContext) -> bool:
    """执行工作项，失败返回 False，不抛出异常"""
    apply_fn, _ = _HANDLERS[item.kind]
    try:
        return apply_fn(item, ctx)
    except (OSError, MarkerStoreError) as e:
        error(f"工作项执行失败 [{item.describe()}]: {e}", stage=LogStage.EXECUTE)
        return False


def rollback_item(item: WorkItem, ctx: WorkContext) -> bool:
    """撤销工作项

    Returns:
        bool: 撤销是否完全成功；失败只记录日志
    """
    _, rollback_fn = _HANDLERS[item.kind]
    try:
        rollback_fn(item, ctx)
    except (OSError, MarkerStoreError) as e:
        error(f"撤销失败 [{item.describe()}]: {e}", stage=LogStage.ROLLBACK)
        return False
    item.undo = None
    return True
