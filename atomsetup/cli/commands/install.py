"""
Install 命令实现

安装或更新产品。
"""

from typing import Optional

import typer

from ...config import Operation
from .common import build_options, execute, setup_logging


def install_command(
    archive: Optional[str] = typer.Option(None, "--archive", "-a", help="安装包路径"),
    installer_data: Optional[str] = typer.Option(None, "--installer-data", help="安装偏好文件 (YAML)"),
    system_level: Optional[bool] = typer.Option(None, "--system-level/--user-level", help="系统级或用户级安装"),
    do_not_launch: bool = typer.Option(False, "--do-not-launch", help="首次安装后不启动产品"),
    do_not_register: bool = typer.Option(
        False, "--do-not-register-for-update-launch", help="不写入安装后启动命令"
    ),
    product_name: Optional[str] = typer.Option(None, "--product-name", help="产品名称"),
    exe_name: Optional[str] = typer.Option(None, "--exe-name", help="产品主程序文件名"),
    system_root: Optional[str] = typer.Option(None, "--system-root", help="系统级安装基础目录"),
    user_root: Optional[str] = typer.Option(None, "--user-root", help="用户级安装基础目录"),
    state_dir: Optional[str] = typer.Option(None, "--state-dir", help="标记存储目录"),
    run_as_admin: bool = typer.Option(False, "--run-as-admin", help="本次调用已是提权后的重试"),
    log_file: Optional[str] = typer.Option(None, "--log-file", help="日志输出文件"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出详细调试日志 (DEBUG 级别)"),
) -> None:
    """安装或更新产品

    安装包可以是完整安装包，也可以是针对已安装版本的差分安装包。

    示例:
        atomsetup install -a app.packed.zst
        atomsetup install -a app.packed.zst --system-level
        atomsetup install --installer-data prefs.yaml
    """
    setup_logging(verbose, log_file)
    options = build_options(
        installer_data,
        operation=Operation.INSTALL,
        archive=archive,
        system_level=system_level,
        do_not_launch=do_not_launch or None,
        do_not_register_for_update_launch=do_not_register or None,
        product_name=product_name,
        exe_name=exe_name,
        system_root=system_root,
        user_root=user_root,
        state_dir=state_dir,
        run_as_admin=run_as_admin or None,
        verbose_logging=verbose or None,
    )
    execute(options)
