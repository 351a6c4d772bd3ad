"""
Uninstall 命令实现
"""

from typing import Optional

import typer

from ...config import Operation
from .common import build_options, execute, setup_logging


def uninstall_command(
    installer_data: Optional[str] = typer.Option(None, "--installer-data", help="安装偏好文件 (YAML)"),
    system_level: Optional[bool] = typer.Option(None, "--system-level/--user-level", help="系统级或用户级"),
    force: bool = typer.Option(False, "--force-uninstall", help="没有已安装版本时仍执行清理"),
    keep_shared: bool = typer.Option(
        False, "--do-not-remove-shared-items", help="保留 ClientState 等共享标记"
    ),
    product_name: Optional[str] = typer.Option(None, "--product-name", help="产品名称"),
    exe_name: Optional[str] = typer.Option(None, "--exe-name", help="产品主程序文件名"),
    system_root: Optional[str] = typer.Option(None, "--system-root", help="系统级安装基础目录"),
    user_root: Optional[str] = typer.Option(None, "--user-root", help="用户级安装基础目录"),
    state_dir: Optional[str] = typer.Option(None, "--state-dir", help="标记存储目录"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="日志输出文件"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出详细调试日志 (DEBUG 级别)"),
) -> None:
    """卸载产品

    示例:
        atomsetup uninstall
        atomsetup uninstall --system-level --force-uninstall
    """
    setup_logging(verbose, log_file)
    options = build_options(
        installer_data,
        operation=Operation.UNINSTALL,
        system_level=system_level,
        force_uninstall=force or None,
        do_not_remove_shared_items=keep_shared or None,
        product_name=product_name,
        exe_name=exe_name,
        system_root=system_root,
        user_root=user_root,
        state_dir=state_dir,
        verbose_logging=verbose or None,
    )
    execute(options)
