"""
安装、更新、可执行文件替换、卸载与安装程序自更新

每个高层操作构建一个新的工作项列表并执行，列表执行后即丢弃。
"""

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from . import constants
from .archive.patch import PatchErrorCode, apply_diff_patch
from .archive.stager import StageResult, UncompressionError, uncompress_payload
from .cleanup import DeferredCleanupScheduler
from .config.schema import InstallerOptions
from .environment import SetupEnvironment
from .layout import InstallLayout, InstalledState, ProductKeys
from .status import InstallStatus
from .store.markers import MarkerStore, Scope
from .transaction import WorkItemList
from .utils.logging import debug, error, info, success, warning, LogStage
from .utils.paths import remove_tree
from .version import Version
from .work_items import CopyPolicy


_RENAME_OPTIONS = (
    ("--product-name", "product_name"),
    ("--exe-name", "exe_name"),
    ("--system-root", "system_root"),
    ("--user-root", "user_root"),
    ("--state-dir", "state_dir"),
)


@dataclass(frozen=True)
class InstallResult:
    executed: bool
    in_use: bool = False


def rename_command(options: InstallerOptions) -> str:
    """使用中更新后，外部更新程序用于完成替换的命令行

    除作用域外，只写入与默认值不同的产品与目录选项，保证替换的是本次更新的产品。
    """
    parts = [f'"{options.resolved_setup_exe()}"', constants.RENAME_EXE_COMMAND]
    if options.system_level:
        parts.append("--system-level")
    for flag, field_name in _RENAME_OPTIONS:
        value = getattr(options, field_name)
        if value is None or value == InstallerOptions.model_fields[field_name].default:
            continue
        parts.append(f'{flag} "{value}"')
    return " ".join(parts)


def launch_command(layout: InstallLayout) -> str:
    return f'"{layout.exe}"'


def _backup_root(temp_root: Path) -> Path:
    root = temp_root / "backup"
    root.mkdir(parents=True, exist_ok=True)
    return root


def install_or_update(
    options: InstallerOptions,
    store: MarkerStore,
    installed: InstalledState,
    staged: StageResult,
    env: SetupEnvironment,
) -> InstallResult:
    """把暂存好的程序目录安装到安装根目录

    产品文件复制到 ``<root>/<version>``，重建后的完整归档一并保存到其中的
    Installer 目录。产品可执行文件正在使用时，新的可执行文件写为
    ``new_<exe>``，并记录旧版本与替换命令，等待之后的替换操作。
    """
    layout = installed.layout
    keys = ProductKeys.for_product(options.product_name)
    scope = installed.scope
    version = staged.version
    backup_root = _backup_root(staged.temp_root)

    src_version_dir = staged.app_dir / str(version)
    src_exe = staged.app_dir / layout.exe_name

    # 完整归档随版本目录一起安装，作为下次差分更新的基准
    cache_dir = src_version_dir / constants.INSTALLER_DIR
    cache_dir.mkdir(parents=True, exist_ok=True)
    shutil.move(str(staged.archive_path), str(cache_dir / constants.ARCHIVE_NAME))

    in_use = (
        installed.version is not None
        and installed.version != version
        and env.is_in_use(layout.exe)
    )

    work_items = WorkItemList(store, name="install")
    work_items.add_copy_tree(src_version_dir, layout.version_dir(version), backup_root,
                             CopyPolicy.IF_DIFFERENT)
    if in_use:
        warning(f"{layout.exe} 正在使用，新程序写为 {layout.new_exe.name}", stage=LogStage.EXECUTE)
        work_items.add_copy_tree(src_exe, layout.new_exe, backup_root)
        work_items.add_set_registry_value(scope, keys.version_key, constants.OLD_VERSION_FIELD,
                                          str(installed.version))
        work_items.add_set_registry_value(scope, keys.version_key, constants.RENAME_CMD_FIELD,
                                          rename_command(options))
    else:
        work_items.add_copy_tree(src_exe, layout.exe, backup_root, CopyPolicy.IF_DIFFERENT)
        work_items.add_delete_tree(layout.new_exe, backup_root)
        work_items.add_delete_registry_value(scope, keys.version_key, constants.OLD_VERSION_FIELD)
        work_items.add_delete_registry_value(scope, keys.version_key, constants.RENAME_CMD_FIELD)
    work_items.add_set_registry_value(scope, keys.version_key, constants.VERSION_FIELD, str(version))

    if not work_items.execute():
        error("安装失败，已回滚所有修改", stage=LogStage.EXECUTE)
        return InstallResult(executed=False, in_use=in_use)

    if not in_use and installed.version is not None:
        remove_old_version_dirs(layout, version, env.remove_dir)

    success(f"已安装版本 {version} 到 {layout.root}", stage=LogStage.EXECUTE)
    return InstallResult(executed=True, in_use=in_use)


def remove_old_version_dirs(layout: InstallLayout, keep: Version, remove_dir=remove_tree) -> int:
    """删除低于 keep 的旧版本目录（尽力而为），返回删除的数量

    与 keep 相等但写法不同的目录（如 ``1.0`` 与 ``1.0.0.0``）同样视为旧目录。
    """
    keep_name = layout.version_dir(keep).name
    removed = 0
    if not layout.root.is_dir():
        return 0
    for child in layout.root.iterdir():
        version = Version.parse(child.name)
        if version is None or not child.is_dir() or version.is_higher_than(keep):
            continue
        if version == keep and child.name == keep_name:
            continue
        if not remove_dir(child):
            warning(f"旧版本目录删除失败: {child}", stage=LogStage.CLEANUP)
            continue
        debug(f"已删除旧版本目录: {child}", stage=LogStage.CLEANUP)
        removed += 1
    return removed


def remove_legacy_keys(store: MarkerStore, scope: Scope, legacy_keys: Iterable[str]) -> int:
    """删除遗留的标记键"""
    removed = 0
    for key in legacy_keys:
        if store.delete_key(scope, key):
            debug(f"已删除遗留标记键: {key}", stage=LogStage.CLEANUP)
            removed += 1
    return removed


def rename_executables(options: InstallerOptions, store: MarkerStore, layout: InstallLayout,
                       env: SetupEnvironment, scheduler: DeferredCleanupScheduler) -> InstallStatus:
    """用 ``new_<exe>`` 替换产品可执行文件，并清除待替换标记

    所有步骤在一个工作项列表中执行，任一步失败时全部回滚。
    """
    keys = ProductKeys.for_product(options.product_name)
    scope = options.scope

    try:
        temp_root = env.make_temp_dir()
    except OSError as e:
        error(f"无法创建临时目录: {e}", stage=LogStage.RENAME)
        return InstallStatus.RENAME_FAILED

    work_items = WorkItemList(store, name="rename-exe")
    work_items.add_delete_tree(layout.old_exe, temp_root)
    work_items.add_copy_tree(layout.new_exe, layout.exe, temp_root, CopyPolicy.IF_DIFFERENT)
    work_items.add_delete_registry_value(scope, keys.version_key, constants.OLD_VERSION_FIELD)
    work_items.add_delete_tree(layout.new_exe, temp_root)
    work_items.add_delete_registry_value(scope, keys.version_key, constants.RENAME_CMD_FIELD)

    status = InstallStatus.RENAME_SUCCESSFUL
    if not work_items.execute():
        error("可执行文件替换失败，已回滚", stage=LogStage.RENAME)
        status = InstallStatus.RENAME_FAILED
    else:
        success("可执行文件替换完成", stage=LogStage.RENAME)

    scheduler.delete_or_schedule(temp_root, env.remove_dir)
    return status


def uninstall(options: InstallerOptions, store: MarkerStore, installed: InstalledState,
              env: SetupEnvironment, scheduler: DeferredCleanupScheduler) -> InstallStatus:
    """卸载产品

    安装目录被移动到临时目录后再删除；无法删除的目录登记为重启后删除，
    此时返回 UNINSTALL_REQUIRES_REBOOT。
    """
    layout = installed.layout
    keys = ProductKeys.for_product(options.product_name)
    scope = installed.scope

    if installed.version is None and not options.force_uninstall:
        error("没有找到可卸载的安装", stage=LogStage.UNINSTALL)
        return InstallStatus.NOT_INSTALLED

    if env.is_in_use(layout.exe):
        error(f"产品正在运行，无法卸载: {layout.exe}", stage=LogStage.UNINSTALL)
        return InstallStatus.PRODUCT_RUNNING

    try:
        temp_root = env.make_temp_dir()
    except OSError as e:
        error(f"无法创建临时目录: {e}", stage=LogStage.UNINSTALL)
        return InstallStatus.UNINSTALL_FAILED

    work_items = WorkItemList(store, name="uninstall")
    for name in (constants.VERSION_FIELD, constants.OLD_VERSION_FIELD, constants.RENAME_CMD_FIELD):
        work_items.add_delete_registry_value(scope, keys.version_key, name)
    work_items.add_delete_tree(layout.root, _backup_root(temp_root), best_effort=True)

    if not work_items.execute():
        scheduler.delete_or_schedule(temp_root, env.remove_dir)
        return InstallStatus.UNINSTALL_FAILED

    if not options.do_not_remove_shared_items:
        store.delete_key(scope, keys.client_state_key)

    scheduler.delete_or_schedule(temp_root, env.remove_dir)

    if layout.root.exists():
        warning(f"安装目录无法立即删除: {layout.root}", stage=LogStage.UNINSTALL)
        scheduler.schedule_for_deletion(layout.root)
        return InstallStatus.UNINSTALL_REQUIRES_REBOOT

    success("卸载完成", stage=LogStage.UNINSTALL)
    return InstallStatus.UNINSTALL_SUCCESSFUL


def patch_setup_exe(options: InstallerOptions, env: SetupEnvironment, scheduler: DeferredCleanupScheduler,
                    setup_exe: Optional[Path] = None) -> InstallStatus:
    """解压安装程序补丁并应用到当前安装程序，输出到 new_setup_exe"""
    status = InstallStatus.SETUP_PATCH_FAILED
    try:
        temp_root = env.make_temp_dir()
    except OSError as e:
        error(f"无法创建临时目录: {e}", stage=LogStage.PATCH)
        return status

    try:
        info(f"解压安装程序补丁: {options.setup_patch}", stage=LogStage.PATCH)
        patch_file = uncompress_payload(Path(options.setup_patch), temp_root)
        old_setup = Path(setup_exe) if setup_exe else options.resolved_setup_exe()
        code = apply_diff_patch(old_setup, patch_file, Path(options.new_setup_exe))
        if code == PatchErrorCode.OK:
            status = InstallStatus.NEW_VERSION_UPDATED
            success(f"新的安装程序已写入 {options.new_setup_exe}", stage=LogStage.PATCH)
        else:
            error(f"安装程序补丁应用失败，错误码 {int(code)}", stage=LogStage.PATCH)
    except UncompressionError as e:
        error(str(e), stage=LogStage.PATCH)
    finally:
        scheduler.delete_or_schedule(temp_root, env.remove_dir)

    return status
