"""
安装状态判定

把前置条件判定、暂存、事务执行与版本比较的结果映射为唯一的安装状态，
并给出后续动作。本模块是纯函数，不产生任何副作用，后续动作由调用方执行。
"""

from dataclasses import dataclass, field
from typing import Optional

from .resolver import Resolution, ResolveOutcome, check_candidate
from .status import InstallStatus, is_success, status_message
from .version import Version


@dataclass(frozen=True)
class FollowUps:
    """判定后需要执行的后续动作"""
    launch_product: bool = False          # 首次安装成功后启动产品
    launch_existing: bool = False         # 启动另一作用域中已有的安装
    remove_legacy_keys: bool = False      # 更新后清理遗留标记
    run_experiment: bool = False          # 安装后的实验钩子
    write_launch_command: bool = False    # 在安装结果中写入启动命令


@dataclass(frozen=True)
class InstallFacts:
    """一次安装调用中观察到的全部事实

    executed 为 None 表示事务没有执行（在此之前已经中止）。
    """
    system_level: bool
    installed_version: Optional[Version] = None
    resolve: Optional[ResolveOutcome] = None
    staging_status: Optional[InstallStatus] = None
    staging_detail: Optional[str] = None
    candidate: Optional[Version] = None
    executed: Optional[bool] = None
    in_use: bool = False
    do_not_launch: bool = False
    do_not_register_for_update_launch: bool = False


@dataclass(frozen=True)
class Decision:
    status: InstallStatus
    message: str
    follow_ups: FollowUps = field(default_factory=FollowUps)


def classify_install_outcome(executed_ok: bool, installed_version: Optional[Version],
                             candidate: Version, in_use: bool = False) -> InstallStatus:
    """根据事务结果和版本关系确定安装状态"""
    if installed_version is None:
        return InstallStatus.FIRST_INSTALL_SUCCESS if executed_ok else InstallStatus.INSTALL_FAILED

    if installed_version == candidate:
        return InstallStatus.INSTALL_REPAIRED if executed_ok else InstallStatus.SAME_VERSION_REPAIR_FAILED

    if not executed_ok:
        return InstallStatus.INSTALL_FAILED
    return InstallStatus.IN_USE_UPDATED if in_use else InstallStatus.NEW_VERSION_UPDATED


def _status_for(facts: InstallFacts) -> InstallStatus:
    if facts.resolve is not None and not facts.resolve.can_proceed:
        return facts.resolve.status or InstallStatus.UNKNOWN_STATUS
    if facts.staging_status is not None:
        return facts.staging_status
    if facts.candidate is None:
        return InstallStatus.INVALID_ARCHIVE

    higher = check_candidate(facts.installed_version, facts.candidate)
    if higher is not None:
        return higher
    if facts.executed is None:
        return InstallStatus.UNKNOWN_STATUS
    return classify_install_outcome(facts.executed, facts.installed_version, facts.candidate, facts.in_use)


def decide(facts: InstallFacts) -> Decision:
    """判定安装状态与后续动作

    * 首次安装成功才会自动启动产品（系统级安装或 do_not_launch 时不启动）；
    * 只有更新（包括使用中更新）会清理遗留标记；
    * 使用中更新不写入启动命令，因为新的可执行文件尚未就位。
    """
    status = _status_for(facts)

    if facts.resolve is not None and facts.resolve.resolution == Resolution.LAUNCH_EXISTING:
        return Decision(status, status_message(status), FollowUps(launch_existing=True))

    message = facts.staging_detail if facts.staging_status is not None and facts.staging_detail else status_message(status)
    follow_ups = FollowUps(
        launch_product=(status == InstallStatus.FIRST_INSTALL_SUCCESS
                        and not facts.system_level and not facts.do_not_launch),
        remove_legacy_keys=status in (InstallStatus.NEW_VERSION_UPDATED, InstallStatus.IN_USE_UPDATED),
        run_experiment=facts.candidate is not None,
        write_launch_command=(is_success(status)
                              and status != InstallStatus.IN_USE_UPDATED
                              and not facts.do_not_register_for_update_launch),
    )
    return Decision(status, message, follow_ups)
