"""
运行环境协作者

安装流程中所有与操作系统交互、不适合在测试中真实执行的动作都集中在这里，
以可替换的函数形式注入到 ``setup_main``。
"""

import ctypes
import errno
import os
import subprocess
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from . import constants
from .status import InstallStatus
from .utils.logging import debug, info, warning, LogStage
from .utils.paths import get_temp_dir, remove_tree
from .version import Version


def is_user_admin() -> bool:
    """当前进程是否具有管理员权限"""
    if os.name == 'nt':
        try:
            return ctypes.windll.shell32.IsUserAnAdmin() != 0
        except (AttributeError, OSError):
            return False
    return os.geteuid() == 0


def is_file_in_use(path: Path) -> bool:
    """以读写方式打开文件探测是否被占用

    Windows 上被运行中的进程占用时打开会被拒绝；Linux 上正在执行的
    文件以写方式打开会得到 ETXTBSY。
    """
    path = Path(path)
    if not path.is_file():
        return False
    try:
        with open(path, 'r+b'):
            pass
    except PermissionError:
        return True
    except OSError as e:
        return e.errno == errno.ETXTBSY
    return False


def is_os_supported() -> bool:
    return sys.platform in ("win32", "linux", "darwin")


def launch_process(exe: Path, args: Optional[List[str]] = None) -> bool:
    """启动进程，不等待其退出"""
    command = [str(exe)] + list(args or [])
    try:
        subprocess.Popen(command, cwd=str(Path(exe).parent), close_fds=True)
    except OSError as e:
        warning(f"启动失败 {exe}: {e}", stage=LogStage.COMPLETE)
        return False
    info(f"已启动: {' '.join(command)}", stage=LogStage.COMPLETE)
    return True


def run_no_experiment(status: InstallStatus, version: Version, system_level: bool) -> None:
    debug(f"无安装后实验 ({status.name}, {version})", stage=LogStage.COMPLETE)


@dataclass
class SetupEnvironment:
    """可注入的环境协作者集合"""
    is_admin: Callable[[], bool] = is_user_admin
    is_in_use: Callable[[Path], bool] = is_file_in_use
    os_supported: Callable[[], bool] = is_os_supported
    launch: Callable[..., bool] = launch_process
    remove_dir: Callable[[Path], bool] = remove_tree
    make_temp_dir: Callable[[], Path] = field(
        default=lambda: get_temp_dir(prefix=constants.TEMP_PREFIX)
    )
    run_experiment: Callable[[InstallStatus, Version, bool], None] = run_no_experiment
