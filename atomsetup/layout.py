"""
安装布局与已安装状态快照

磁盘布局::

    <install_root>/
        <exe>                  当前可执行文件
        new_<exe>              使用中更新时暂存的新可执行文件
        old_<exe>              上一次替换留下的旧可执行文件
        <version>/             产品文件
            Installer/<完整归档>  差分更新基准
"""

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants
from .store.markers import MarkerStore, Scope
from .utils.logging import debug, warning, LogStage
from .version import Version


def _default_system_base() -> Path:
    if sys.platform == "win32":
        return Path(os.environ.get("ProgramFiles", r"C:\Program Files"))
    return Path("/opt")


def _default_user_base() -> Path:
    if sys.platform == "win32":
        return Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    return Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))


@dataclass(frozen=True)
class ProductKeys:
    """产品在标记存储中的键"""
    version_key: str
    client_state_key: str

    @classmethod
    def for_product(cls, product_name: str) -> "ProductKeys":
        return cls(
            version_key=f"Software/{product_name}/Clients",
            client_state_key=f"Software/{product_name}/ClientState",
        )


@dataclass(frozen=True)
class InstallLayout:
    """某个作用域下的安装目录布局"""
    root: Path
    exe_name: str

    @property
    def exe(self) -> Path:
        return self.root / self.exe_name

    @property
    def new_exe(self) -> Path:
        return self.root / f"{constants.NEW_EXE_PREFIX}{self.exe_name}"

    @property
    def old_exe(self) -> Path:
        return self.root / f"{constants.OLD_EXE_PREFIX}{self.exe_name}"

    def version_dir(self, version: Version) -> Path:
        return self.root / str(version)

    def installer_dir(self, version: Version) -> Path:
        return self.version_dir(version) / constants.INSTALLER_DIR

    def archive_cache(self, version: Version) -> Path:
        return self.installer_dir(version) / constants.ARCHIVE_NAME

    @classmethod
    def for_scope(cls, product_name: str, exe_name: str, system_level: bool,
                  system_root: Optional[Path] = None, user_root: Optional[Path] = None) -> "InstallLayout":
        """计算安装根目录：``<base>/<product>/Application``"""
        if system_level:
            base = Path(system_root) if system_root else _default_system_base()
        else:
            base = Path(user_root) if user_root else _default_user_base()
        return cls(root=base / product_name / "Application", exe_name=exe_name)


@dataclass(frozen=True)
class InstalledState:
    """一次操作开始时读取的已安装状态快照，操作过程中不再修改

    version 为 None 表示该作用域下没有安装。
    """
    scope: Scope
    layout: InstallLayout
    version: Optional[Version] = None

    @property
    def install_root(self) -> Path:
        return self.layout.root

    @property
    def is_installed(self) -> bool:
        return self.version is not None

    def archive_cache_path(self) -> Path:
        if self.version is None:
            raise ValueError("未安装时没有完整归档缓存")
        return self.layout.archive_cache(self.version)


def read_installed_state(store: MarkerStore, keys: ProductKeys, scope: Scope,
                         layout: InstallLayout) -> InstalledState:
    """从标记存储读取已安装版本"""
    raw = store.get_value(scope, keys.version_key, constants.VERSION_FIELD)
    version = Version.parse(str(raw)) if raw is not None else None
    if raw is not None and version is None:
        warning(f"忽略无法解析的版本标记: {raw!r}", stage=LogStage.RESOLVE)
    if version is not None:
        debug(f"{scope.value} 作用域已安装版本: {version}", stage=LogStage.RESOLVE)
    return InstalledState(scope=scope, layout=layout, version=version)
