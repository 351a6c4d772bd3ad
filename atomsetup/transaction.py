"""
工作项列表（事务执行器）

按顺序执行工作项；任一项失败时，按严格的逆序撤销此前已成功的项，
然后返回 False。撤销尽力而为，失败只记录日志。
"""

from pathlib import Path
from typing import List, Optional

from .store.markers import MarkerStore, MarkerValue, Scope
from .utils.logging import debug, error, info, warning, LogStage
from .work_items import (
    CopyPolicy,
    CopyTree,
    DeleteRegistryValue,
    DeleteTree,
    SetRegistryValue,
    WorkContext,
    WorkItem,
    apply_item,
    rollback_item,
)


class WorkItemList:
    """有序的工作项列表，作为一个整体执行或回滚"""

    def __init__(self, store: MarkerStore, name: str = "work-items"):
        self.name = name
        self._context = WorkContext(store=store)
        self._items: List[WorkItem] = []
        self._executed: List[WorkItem] = []

    def __len__(self) -> int:
        return len(self._items)

    @property
    def items(self) -> List[WorkItem]:
        return list(self._items)

    def add(self, item: WorkItem) -> WorkItem:
        self._items.append(item)
        return item

    def add_copy_tree(self, source: Path, dest: Path, temp_root: Path,
                      policy: CopyPolicy = CopyPolicy.ALWAYS) -> CopyTree:
        return self.add(CopyTree(Path(source), Path(dest), Path(temp_root), policy))

    def add_delete_tree(self, path: Path, backup_root: Optional[Path] = None,
                        best_effort: bool = False) -> DeleteTree:
        root = Path(backup_root) if backup_root is not None else None
        return self.add(DeleteTree(Path(path), root, best_effort))

    def add_set_registry_value(self, scope: Scope, key: str, name: str, value: MarkerValue,
                               overwrite: bool = True) -> SetRegistryValue:
        return self.add(SetRegistryValue(scope, key, name, value, overwrite))

    def add_delete_registry_value(self, scope: Scope, key: str, name: str) -> DeleteRegistryValue:
        return self.add(DeleteRegistryValue(scope, key, name))

    def execute(self) -> bool:
        """执行全部工作项

        Returns:
            bool: 全部成功为 True；否则已成功的前缀已被逆序撤销
        """
        self._executed = []
        info(f"执行 {self.name}: {len(self._items)} 项", stage=LogStage.EXECUTE)

        for index, item in enumerate(self._items, 1):
            debug(f"[{index}/{len(self._items)}] {item.describe()}", stage=LogStage.EXECUTE)
            if not apply_item(item, self._context):
                error(f"{self.name} 第 {index} 项失败，开始回滚", stage=LogStage.EXECUTE)
                self.rollback()
                return False
            self._executed.append(item)

        return True

    def rollback(self) -> None:
        """逆序撤销已成功执行的工作项，可重复调用"""
        if not self._executed:
            return

        failures = 0
        while self._executed:
            item = self._executed.pop()
            debug(f"撤销: {item.describe()}", stage=LogStage.ROLLBACK)
            if not rollback_item(item, self._context):
                failures += 1

        if failures:
            warning(f"{self.name} 回滚完成，{failures} 项撤销失败", stage=LogStage.ROLLBACK)
        else:
            info(f"{self.name} 已回滚", stage=LogStage.ROLLBACK)
