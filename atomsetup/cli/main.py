"""
atomsetup CLI 主入口

提供命令行接口，支持 install/uninstall/rename-exe/patch-setup/pack/diff/info 等命令。
"""

import sys
from typing import Optional

import typer
import zstandard
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..archive import CompressorFactory
from ..status import InstallStatus, get_install_return_code, status_message
from ..utils import configure_logging
from .commands import diff, install, pack, patch_setup, rename, uninstall


app = typer.Typer(
    name="atomsetup",
    help="atomsetup - 事务式安装引擎：安装、差分更新、可执行文件替换与卸载",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

console = Console()


def version_callback(value: bool) -> None:
    """显示版本信息"""
    if value:
        console.print(f"atomsetup v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="显示版本信息"
    ),
) -> None:
    """atomsetup - 事务式安装引擎

    使用 --help 查看可用命令的详细信息。
    """
    configure_logging(level="INFO")


app.command("install", help="安装或更新产品")(install.install_command)
app.command("uninstall", help="卸载产品")(uninstall.uninstall_command)
app.command("rename-exe", help="使用中更新后替换可执行文件")(rename.rename_command)
app.command("patch-setup", help="对安装程序自身应用补丁")(patch_setup.patch_setup_command)
app.command("pack", help="生成完整安装包")(pack.pack_command)
app.command("diff", help="生成差分安装包")(diff.diff_command)


@app.command("info")
def info_command(
    statuses: bool = typer.Option(False, "--statuses", help="列出全部安装状态码"),
) -> None:
    """显示系统信息"""
    console.print("[bold]atomsetup 系统信息[/bold]")
    console.print()

    table = Table(title="版本信息")
    table.add_column("组件", style="cyan")
    table.add_column("版本", style="green")
    table.add_row("atomsetup", __version__)
    table.add_row("Python", f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}")
    table.add_row("zstandard", zstandard.__version__)
    console.print(table)
    console.print()

    algo_table = Table(title="支持的压缩算法")
    algo_table.add_column("算法", style="cyan")
    for algo in CompressorFactory.get_available_algorithms():
        algo_table.add_row(algo.value)
    console.print(algo_table)

    if statuses:
        console.print()
        status_table = Table(title="安装状态码")
        status_table.add_column("值", style="cyan", justify="right")
        status_table.add_column("名称", style="green")
        status_table.add_column("退出码", justify="right")
        status_table.add_column("说明")
        for status in InstallStatus:
            status_table.add_row(str(int(status)), status.name,
                                 str(get_install_return_code(status)), status_message(status))
        console.print(status_table)


if __name__ == "__main__":
    app()
