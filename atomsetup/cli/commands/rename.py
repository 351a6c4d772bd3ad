"""
Rename-exe 命令实现

使用中更新之后，由外部更新程序在产品退出后调用，完成可执行文件替换。
"""

from typing import Optional

import typer

from ...config import Operation
from .common import build_options, execute, setup_logging


def rename_command(
    system_level: Optional[bool] = typer.Option(None, "--system-level/--user-level", help="系统级或用户级"),
    product_name: Optional[str] = typer.Option(None, "--product-name", help="产品名称"),
    exe_name: Optional[str] = typer.Option(None, "--exe-name", help="产品主程序文件名"),
    system_root: Optional[str] = typer.Option(None, "--system-root", help="系统级安装基础目录"),
    user_root: Optional[str] = typer.Option(None, "--user-root", help="用户级安装基础目录"),
    state_dir: Optional[str] = typer.Option(None, "--state-dir", help="标记存储目录"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="日志输出文件"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出详细调试日志 (DEBUG 级别)"),
) -> None:
    """用 new_<exe> 替换产品可执行文件"""
    setup_logging(verbose, log_file)
    options = build_options(
        None,
        operation=Operation.RENAME_EXE,
        system_level=system_level,
        product_name=product_name,
        exe_name=exe_name,
        system_root=system_root,
        user_root=user_root,
        state_dir=state_dir,
        verbose_logging=verbose or None,
    )
    execute(options)
