"""
安装状态码

InstallStatus 是一次安装器调用结果对外传递的唯一通道。它的整数值
同时作为进程退出码被外部启动器读取，所以只能在末尾追加成员，
已有成员永远不能重新编号。
"""

from enum import IntEnum
from typing import Dict


class InstallStatus(IntEnum):
    """安装结果（取值固定，只能追加）"""
    FIRST_INSTALL_SUCCESS = 0
    INSTALL_REPAIRED = 1
    NEW_VERSION_UPDATED = 2
    EXISTING_VERSION_LAUNCHED = 3
    HIGHER_VERSION_EXISTS = 4
    USER_LEVEL_INSTALL_EXISTS = 5
    SYSTEM_LEVEL_INSTALL_EXISTS = 6
    INSTALL_FAILED = 7
    SETUP_PATCH_FAILED = 8
    OS_NOT_SUPPORTED = 9
    OS_ERROR = 10
    TEMP_DIR_FAILED = 11
    UNCOMPRESSION_FAILED = 12
    INVALID_ARCHIVE = 13
    INSUFFICIENT_RIGHTS = 14
    NOT_INSTALLED = 15
    PRODUCT_RUNNING = 16
    UNINSTALL_CONFIRMED = 17
    UNINSTALL_DELETE_PROFILE = 18
    UNINSTALL_SUCCESSFUL = 19
    UNINSTALL_FAILED = 20
    UNINSTALL_CANCELLED = 21
    UNKNOWN_STATUS = 22
    RENAME_SUCCESSFUL = 23
    RENAME_FAILED = 24
    EULA_REJECTED = 25
    EULA_ACCEPTED = 26
    EULA_ACCEPTED_OPT_IN = 27
    INSTALL_DIR_IN_USE = 28
    UNINSTALL_REQUIRES_REBOOT = 29
    IN_USE_UPDATED = 30
    SAME_VERSION_REPAIR_FAILED = 31
    REENTRY_SYS_UPDATE = 32
    SXS_OPTION_NOT_SUPPORTED = 33


# 对安装/更新而言视为成功、退出码为 0 的状态
SUCCESS_STATUSES = frozenset({
    InstallStatus.FIRST_INSTALL_SUCCESS,
    InstallStatus.INSTALL_REPAIRED,
    InstallStatus.NEW_VERSION_UPDATED,
    InstallStatus.IN_USE_UPDATED,
})


def is_success(status: InstallStatus) -> bool:
    return status in SUCCESS_STATUSES


def get_install_return_code(status: InstallStatus) -> int:
    """把安装状态映射为进程退出码"""
    return 0 if is_success(status) else int(status)


# 写入结果标记、展示给用户的说明文字
STATUS_MESSAGES: Dict[InstallStatus, str] = {
    InstallStatus.FIRST_INSTALL_SUCCESS: "安装成功",
    InstallStatus.INSTALL_REPAIRED: "已修复当前版本",
    InstallStatus.NEW_VERSION_UPDATED: "已更新到新版本",
    InstallStatus.EXISTING_VERSION_LAUNCHED: "已启动系统级安装的现有版本",
    InstallStatus.HIGHER_VERSION_EXISTS: "已安装更高的版本，无法降级",
    InstallStatus.USER_LEVEL_INSTALL_EXISTS: "已存在用户级安装，与系统级安装冲突",
    InstallStatus.SYSTEM_LEVEL_INSTALL_EXISTS: "已存在系统级安装，与用户级安装冲突",
    InstallStatus.INSTALL_FAILED: "安装失败，所有修改已回滚",
    InstallStatus.SETUP_PATCH_FAILED: "安装程序自身的补丁应用失败",
    InstallStatus.OS_NOT_SUPPORTED: "不支持当前操作系统",
    InstallStatus.OS_ERROR: "操作系统调用失败",
    InstallStatus.TEMP_DIR_FAILED: "无法创建临时目录",
    InstallStatus.UNCOMPRESSION_FAILED: "安装包解压失败",
    InstallStatus.INVALID_ARCHIVE: "安装包中没有有效的版本信息",
    InstallStatus.INSUFFICIENT_RIGHTS: "系统级安装需要管理员权限",
    InstallStatus.NOT_INSTALLED: "产品尚未安装",
    InstallStatus.PRODUCT_RUNNING: "产品正在运行",
    InstallStatus.UNINSTALL_SUCCESSFUL: "卸载成功",
    InstallStatus.UNINSTALL_FAILED: "卸载失败，所有修改已回滚",
    InstallStatus.UNKNOWN_STATUS: "未知状态",
    InstallStatus.RENAME_SUCCESSFUL: "可执行文件替换成功",
    InstallStatus.RENAME_FAILED: "可执行文件替换失败，所有修改已回滚",
    InstallStatus.INSTALL_DIR_IN_USE: "安装目录已存在且被占用，无法删除",
    InstallStatus.UNINSTALL_REQUIRES_REBOOT: "卸载完成，部分文件将在重启后删除",
    InstallStatus.IN_USE_UPDATED: "新版本已就绪，将在程序退出后生效",
    InstallStatus.SAME_VERSION_REPAIR_FAILED: "修复当前版本失败",
    InstallStatus.SXS_OPTION_NOT_SUPPORTED: "并行安装模式不支持该选项",
}


def status_message(status: InstallStatus) -> str:
    return STATUS_MESSAGES.get(status, status.name)
