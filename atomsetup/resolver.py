"""
安装前置条件判定

根据请求的作用域与两个作用域的已安装状态快照，判定本次安装是全新安装、
更新，还是需要中止。判定只依赖传入的快照，不读取任何全局状态。
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from .layout import InstalledState
from .status import InstallStatus
from .utils.logging import error, info, LogStage
from .utils.paths import remove_tree
from .version import Version


class Resolution(str, Enum):
    FRESH_INSTALL = "fresh_install"
    UPGRADE = "upgrade"
    LAUNCH_EXISTING = "launch_existing"          # 用户级首次安装，但已有系统级安装
    CONFLICTING_SCOPE = "conflicting_scope"
    DIRECTORY_LOCKED = "directory_locked"


@dataclass(frozen=True)
class ResolveOutcome:
    resolution: Resolution
    existing_version: Optional[Version] = None
    status: Optional[InstallStatus] = None       # 中止时的安装状态
    launch_target: Optional[Path] = None         # LAUNCH_EXISTING 时要启动的可执行文件

    @property
    def can_proceed(self) -> bool:
        return self.resolution in (Resolution.FRESH_INSTALL, Resolution.UPGRADE)


def resolve(
    installed: InstalledState,
    other_scope: InstalledState,
    system_level: bool,
    remove_dir: Callable[[Path], bool] = remove_tree,
) -> ResolveOutcome:
    """判定安装前置条件

    Args:
        installed: 请求作用域的已安装状态
        other_scope: 另一个作用域的已安装状态
        system_level: 是否请求系统级安装
        remove_dir: 删除目录的函数，删除后目录不存在时返回 True
    """
    is_first_install = installed.version is None

    if other_scope.version is not None:
        error(
            f"另一作用域已安装版本 {other_scope.version}，与本次安装模式冲突",
            stage=LogStage.RESOLVE,
        )
        if not system_level and is_first_install:
            info("改为启动已有的系统级安装", stage=LogStage.RESOLVE)
            return ResolveOutcome(
                Resolution.LAUNCH_EXISTING,
                existing_version=other_scope.version,
                status=InstallStatus.EXISTING_VERSION_LAUNCHED,
                launch_target=other_scope.layout.exe,
            )
        status = (InstallStatus.USER_LEVEL_INSTALL_EXISTS if system_level
                  else InstallStatus.SYSTEM_LEVEL_INSTALL_EXISTS)
        return ResolveOutcome(Resolution.CONFLICTING_SCOPE, other_scope.version, status)

    if is_first_install:
        root = installed.install_root
        if root.exists() and not remove_dir(root):
            error(f"安装目录已存在且无法删除: {root}", stage=LogStage.RESOLVE)
            return ResolveOutcome(Resolution.DIRECTORY_LOCKED, status=InstallStatus.INSTALL_DIR_IN_USE)
        return ResolveOutcome(Resolution.FRESH_INSTALL)

    return ResolveOutcome(Resolution.UPGRADE, existing_version=installed.version)


def check_candidate(installed_version: Optional[Version], candidate: Version) -> Optional[InstallStatus]:
    """已安装版本高于待安装版本时返回 HIGHER_VERSION_EXISTS，否则返回 None"""
    if installed_version is not None and installed_version.is_higher_than(candidate):
        error(f"已安装更高版本 {installed_version}（待安装 {candidate}）", stage=LogStage.RESOLVE)
        return InstallStatus.HIGHER_VERSION_EXISTS
    return None
