"""
Patch-setup 命令实现

对安装程序自身应用补丁，把新的安装程序写到指定位置。
"""

from typing import Optional

import typer

from ...config import Operation
from .common import build_options, execute, setup_logging


def patch_setup_command(
    patch: str = typer.Option(..., "--update-setup-exe", "-p", help="安装程序补丁载荷"),
    new_setup_exe: str = typer.Option(..., "--new-setup-exe", "-o", help="新安装程序输出路径"),
    setup_exe: Optional[str] = typer.Option(None, "--setup-exe", help="当前安装程序，默认为正在运行的程序"),
    system_level: Optional[bool] = typer.Option(None, "--system-level/--user-level", help="系统级或用户级"),
    state_dir: Optional[str] = typer.Option(None, "--state-dir", help="标记存储目录"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="日志输出文件"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出详细调试日志 (DEBUG 级别)"),
) -> None:
    """对安装程序应用补丁

    示例:
        atomsetup patch-setup -p setup_patch.zst -o new_setup.exe --setup-exe setup.exe
    """
    setup_logging(verbose, log_file)
    options = build_options(
        None,
        operation=Operation.PATCH_SETUP,
        setup_patch=patch,
        new_setup_exe=new_setup_exe,
        setup_exe=setup_exe,
        system_level=system_level,
        state_dir=state_dir,
        verbose_logging=verbose or None,
    )
    execute(options)
