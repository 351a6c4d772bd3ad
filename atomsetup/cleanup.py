"""
延迟清理

直接删除失败（例如文件被运行中的进程占用）之后的兜底手段：把路径登记为
下次重启时删除。Windows 上使用 ``MoveFileExW(MOVEFILE_DELAY_UNTIL_REBOOT)``，
其他平台把路径写入状态目录下的待删除清单，在下一次运行开始时处理。

登记失败只记录日志，不影响调用方报告的安装状态。
"""

import ctypes
import json
import os
from pathlib import Path
from typing import List, Optional, Union

from .utils.logging import debug, info, warning, LogStage
from .utils.paths import remove_tree

MOVEFILE_DELAY_UNTIL_REBOOT = 0x4
PENDING_FILE_NAME = "pending_deletions.json"


def _bottom_up(path: Path) -> List[Path]:
    """目录树中的所有条目，子项在父目录之前"""
    entries: List[Path] = []
    if path.is_dir() and not path.is_symlink():
        for root, dirs, files in os.walk(path, topdown=False):
            entries.extend(Path(root) / name for name in files)
            entries.extend(Path(root) / name for name in dirs)
    entries.append(path)
    return entries


class DeferredCleanupScheduler:
    """重启后删除调度器

    Args:
        state_dir: 非 Windows 平台保存待删除清单的目录
        use_os_queue: 是否使用系统的重启删除队列，默认仅在 Windows 上使用
    """

    def __init__(self, state_dir: Union[str, Path], use_os_queue: Optional[bool] = None):
        self.state_dir = Path(state_dir)
        self.use_os_queue = (os.name == 'nt') if use_os_queue is None else use_os_queue

    @property
    def pending_file(self) -> Path:
        return self.state_dir / PENDING_FILE_NAME

    def _load_pending(self) -> List[str]:
        if not self.pending_file.exists():
            return []
        try:
            data = json.loads(self.pending_file.read_text(encoding='utf-8'))
        except (OSError, ValueError) as e:
            warning(f"待删除清单无法读取，忽略: {e}", stage=LogStage.CLEANUP)
            return []
        return [str(p) for p in data] if isinstance(data, list) else []

    def _save_pending(self, paths: List[str]) -> None:
        if not paths:
            if self.pending_file.exists():
                self.pending_file.unlink()
            return
        self.state_dir.mkdir(parents=True, exist_ok=True)
        tmp = self.pending_file.with_suffix(".tmp")
        try:
            tmp.write_text(json.dumps(paths, ensure_ascii=False, indent=2), encoding='utf-8')
            os.replace(tmp, self.pending_file)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    def _schedule_with_os(self, path: Path) -> bool:
        move_file = ctypes.windll.kernel32.MoveFileExW
        for entry in _bottom_up(path):
            if not move_file(str(entry), None, MOVEFILE_DELAY_UNTIL_REBOOT):
                warning(f"无法登记重启删除: {entry}", stage=LogStage.CLEANUP)
                return False
        return True

    def schedule_for_deletion(self, path: Union[str, Path]) -> bool:
        """登记重启后删除

        Returns:
            bool: 登记是否成功
        """
        path = Path(path)
        if not os.path.lexists(path):
            return True

        try:
            if self.use_os_queue:
                ok = self._schedule_with_os(path)
            else:
                pending = self._load_pending()
                if str(path) not in pending:
                    pending.append(str(path))
                self._save_pending(pending)
                ok = True
        except OSError as e:
            warning(f"登记延迟删除失败 {path}: {e}", stage=LogStage.CLEANUP)
            return False

        if ok:
            info(f"已登记延迟删除: {path}", stage=LogStage.CLEANUP)
        return ok

    def delete_or_schedule(self, path: Union[str, Path], remove_dir=remove_tree) -> bool:
        """先尝试直接删除，失败时登记延迟删除

        Returns:
            bool: 是否已直接删除
        """
        path = Path(path)
        if remove_dir(path):
            debug(f"已删除: {path}", stage=LogStage.CLEANUP)
            return True
        warning(f"无法删除 {path}，改为延迟删除", stage=LogStage.CLEANUP)
        self.schedule_for_deletion(path)
        return False

    def run_pending(self, remove_dir=remove_tree) -> int:
        """处理此前登记的待删除路径，返回成功删除的数量"""
        if self.use_os_queue:
            return 0
        pending = self._load_pending()
        if not pending:
            return 0

        remaining = [p for p in pending if not remove_dir(Path(p))]
        try:
            self._save_pending(remaining)
        except OSError as e:
            warning(f"更新待删除清单失败: {e}", stage=LogStage.CLEANUP)

        removed = len(pending) - len(remaining)
        if removed:
            info(f"已清理 {removed} 个延迟删除的路径", stage=LogStage.CLEANUP)
        return removed
