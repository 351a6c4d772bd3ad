"""
安装器主流程

按以下顺序处理一次调用：

1. 处理此前登记的延迟删除；
2. 检查操作系统；
3. 非安装类操作（安装程序自更新、可执行文件替换）直接执行并返回；
4. 系统级操作检查管理员权限；
5. 读取已安装状态，执行卸载或安装。

所有异常都在这里转换为唯一的安装状态。
"""

from pathlib import Path
from typing import Optional

from . import constants
from .archive.stager import (
    ArchiveStager,
    InvalidArchiveError,
    NotInstalledError,
    PatchError,
    StageResult,
    StagingError,
)
from .cleanup import DeferredCleanupScheduler
from .config.schema import InstallerOptions, Operation
from .decision import InstallFacts, decide
from .environment import SetupEnvironment
from .install import (
    install_or_update,
    launch_command,
    patch_setup_exe,
    remove_legacy_keys,
    rename_executables,
    uninstall,
)
from .layout import InstallLayout, InstalledState, ProductKeys, read_installed_state
from .resolver import ResolveOutcome, check_candidate, resolve
from .status import InstallStatus, get_install_return_code, status_message
from .store.markers import JsonMarkerStore, MarkerStore, MarkerStoreError, Scope
from .store.results import update_diff_install_status, write_installer_result
from .utils.logging import debug, error, info, set_log_level, warning, LogStage, OutputLevel


def _layout_for(options: InstallerOptions, system_level: bool) -> InstallLayout:
    return InstallLayout.for_scope(
        options.product_name,
        options.exe_name,
        system_level,
        system_root=options.system_root,
        user_root=options.user_root,
    )


def _read_state(store: MarkerStore, options: InstallerOptions, system_level: bool) -> InstalledState:
    keys = ProductKeys.for_product(options.product_name)
    scope = Scope.for_level(system_level)
    return read_installed_state(store, keys, scope, _layout_for(options, system_level))


def _write_result(store: MarkerStore, options: InstallerOptions, status: InstallStatus,
                  message: Optional[str] = None, launch_cmd: Optional[str] = None) -> None:
    keys = ProductKeys.for_product(options.product_name)
    write_installer_result(store, options.scope, keys.client_state_key, status, message, launch_cmd)


def _cleanup_temporaries(temp_root: Path, options: InstallerOptions, env: SetupEnvironment,
                         scheduler: DeferredCleanupScheduler) -> None:
    """删除临时目录和安装偏好文件；删除失败改为延迟删除，不影响安装状态"""
    info(f"删除临时目录 {temp_root}", stage=LogStage.CLEANUP)
    scheduler.delete_or_schedule(temp_root, env.remove_dir)
    if options.installer_data is not None:
        scheduler.delete_or_schedule(Path(options.installer_data), env.remove_dir)


def install_product(options: InstallerOptions, store: MarkerStore, env: SetupEnvironment,
                    scheduler: DeferredCleanupScheduler, installed: InstalledState,
                    other_scope: InstalledState) -> InstallStatus:
    """安装或更新产品"""
    system_level = options.system_level

    outcome = resolve(installed, other_scope, system_level, env.remove_dir)
    if not outcome.can_proceed:
        decision = decide(InstallFacts(system_level, installed.version, resolve=outcome))
        _write_result(store, options, decision.status, decision.message)
        if decision.follow_ups.launch_existing and outcome.launch_target is not None:
            env.launch(outcome.launch_target, [constants.FIRST_RUN_SWITCH])
        return decision.status

    try:
        temp_root = env.make_temp_dir()
    except OSError as e:
        error(f"无法创建临时目录: {e}", stage=LogStage.STAGE)
        _write_result(store, options, InstallStatus.TEMP_DIR_FAILED)
        return InstallStatus.TEMP_DIR_FAILED
    debug(f"临时目录: {temp_root}", stage=LogStage.STAGE)

    try:
        return _install_from_temp_root(options, store, env, installed, outcome, temp_root)
    finally:
        _cleanup_temporaries(temp_root, options, env, scheduler)


def _install_from_temp_root(options: InstallerOptions, store: MarkerStore, env: SetupEnvironment,
                            installed: InstalledState, outcome: ResolveOutcome, temp_root: Path) -> InstallStatus:
    """在临时目录中暂存安装包并执行安装，返回安装状态"""
    keys = ProductKeys.for_product(options.product_name)
    system_level = options.system_level

    staged: Optional[StageResult] = None
    staging_status: Optional[InstallStatus] = None
    staging_detail: Optional[str] = None
    incremental = False
    try:
        staged = ArchiveStager().stage(Path(options.archive), installed, temp_root)
        incremental = staged.incremental
    except InvalidArchiveError as e:
        staging_status, staging_detail = InstallStatus.INVALID_ARCHIVE, str(e)
    except StagingError as e:
        staging_status, staging_detail = InstallStatus.UNCOMPRESSION_FAILED, str(e)
        incremental = isinstance(e, (NotInstalledError, PatchError))

    executed = None
    in_use = False
    if staged is not None and check_candidate(installed.version, staged.version) is None:
        try:
            result = install_or_update(options, store, installed, staged, env)
            executed, in_use = result.executed, result.in_use
        except OSError as e:
            error(f"准备安装失败: {e}", stage=LogStage.EXECUTE)
            executed = False

    decision = decide(InstallFacts(
        system_level=system_level,
        installed_version=installed.version,
        resolve=outcome,
        staging_status=staging_status,
        staging_detail=staging_detail,
        candidate=staged.version if staged else None,
        executed=executed,
        in_use=in_use,
        do_not_launch=options.do_not_launch,
        do_not_register_for_update_launch=options.do_not_register_for_update_launch,
    ))
    status = decision.status
    info(f"安装状态: {status.name} - {decision.message}", stage=LogStage.DECIDE)

    follow_ups = decision.follow_ups
    launch_cmd = launch_command(installed.layout) if follow_ups.write_launch_command else None
    _write_result(store, options, status, decision.message, launch_cmd)

    if follow_ups.launch_product:
        env.launch(installed.layout.exe, [constants.FIRST_RUN_SWITCH])
    if follow_ups.remove_legacy_keys:
        remove_legacy_keys(store, options.scope, options.legacy_keys)
    if follow_ups.run_experiment and staged is not None:
        env.run_experiment(status, staged.version, system_level)

    update_diff_install_status(store, options.scope, keys.client_state_key, incremental, status)
    return status


def run(options: InstallerOptions, store: Optional[MarkerStore] = None,
        env: Optional[SetupEnvironment] = None) -> InstallStatus:
    """执行一次安装器调用，返回安装状态"""
    env = env or SetupEnvironment()
    if options.verbose_logging:
        set_log_level(OutputLevel.DEBUG)

    state_dir = options.resolved_state_dir()
    store = store if store is not None else JsonMarkerStore(state_dir)
    scheduler = DeferredCleanupScheduler(state_dir)
    scheduler.run_pending(env.remove_dir)

    info(f"操作: {options.operation.value}, 系统级: {options.system_level}", stage=LogStage.INIT)

    if not env.os_supported():
        error("不支持当前操作系统", stage=LogStage.INIT)
        _write_result(store, options, InstallStatus.OS_NOT_SUPPORTED)
        return InstallStatus.OS_NOT_SUPPORTED

    if options.operation == Operation.PATCH_SETUP:
        status = patch_setup_exe(options, env, scheduler)
        if get_install_return_code(status):
            warning("安装程序补丁失败", stage=LogStage.PATCH)
            _write_result(store, options, status)
        return status

    if options.operation == Operation.RENAME_EXE:
        return rename_executables(options, store, _layout_for(options, options.system_level), env,
                                  scheduler)

    if options.system_level and not env.is_admin():
        error("非管理员用户不能执行系统级安装", stage=LogStage.INIT)
        _write_result(store, options, InstallStatus.INSUFFICIENT_RIGHTS)
        return InstallStatus.INSUFFICIENT_RIGHTS

    installed = _read_state(store, options, options.system_level)
    if installed.version is not None:
        info(f"已安装版本: {installed.version}", stage=LogStage.RESOLVE)

    if options.operation == Operation.UNINSTALL:
        status = uninstall(options, store, installed, env, scheduler)
        if status not in (InstallStatus.UNINSTALL_SUCCESSFUL, InstallStatus.UNINSTALL_REQUIRES_REBOOT):
            _write_result(store, options, status)
        return status

    other_scope = _read_state(store, options, not options.system_level)
    return install_product(options, store, env, scheduler, installed, other_scope)


def run_setup(options: InstallerOptions, store: Optional[MarkerStore] = None,
              env: Optional[SetupEnvironment] = None) -> int:
    """执行安装器调用并返回进程退出码"""
    try:
        status = run(options, store, env)
    except MarkerStoreError as e:
        error(f"标记存储不可用: {e}", stage=LogStage.STORE)
        status = InstallStatus.OS_ERROR

    return_code = get_install_return_code(status)
    info(f"{status_message(status)}，返回 {return_code}", stage=LogStage.COMPLETE)
    return return_code
