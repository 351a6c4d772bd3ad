"""
安装结果写入

外部安装包装器通过读取 ClientState 键下的结果字段了解本次调用的结果，
包括状态码、展示文字和安装成功后的启动命令。
"""

from typing import Optional

from .. import constants
from ..status import InstallStatus, get_install_return_code, is_success, status_message
from ..utils.logging import debug, LogStage
from .markers import MarkerStore, Scope


def write_installer_result(
    store: MarkerStore,
    scope: Scope,
    client_state_key: str,
    status: InstallStatus,
    message: Optional[str] = None,
    launch_cmd: Optional[str] = None,
) -> None:
    """写入安装结果

    Args:
        store: 标记存储
        scope: 作用域
        client_state_key: 产品的 ClientState 键
        status: 安装状态
        message: 展示文字，默认使用状态对应的标准文字
        launch_cmd: 安装成功后外部包装器用于启动产品的命令行
    """
    result = constants.RESULT_SUCCESS if is_success(status) else constants.RESULT_FAILED_CUSTOM_ERROR
    store.set_value(scope, client_state_key, constants.INSTALLER_RESULT_FIELD, result)
    store.set_value(scope, client_state_key, constants.INSTALLER_ERROR_FIELD, int(status))

    text = message or status_message(status)
    if result != constants.RESULT_SUCCESS:
        store.set_value(scope, client_state_key, constants.INSTALLER_RESULT_UI_STRING_FIELD, text)
    else:
        store.delete_value(scope, client_state_key, constants.INSTALLER_RESULT_UI_STRING_FIELD)

    if launch_cmd:
        store.set_value(scope, client_state_key, constants.INSTALLER_SUCCESS_LAUNCH_CMD_FIELD, launch_cmd)
    else:
        store.delete_value(scope, client_state_key, constants.INSTALLER_SUCCESS_LAUNCH_CMD_FIELD)

    debug(f"写入安装结果: {status.name} ({int(status)})", stage=LogStage.STORE)


def update_diff_install_status(
    store: MarkerStore,
    scope: Scope,
    client_state_key: str,
    incremental: bool,
    status: InstallStatus,
) -> None:
    """记录差分安装结果并调整更新通道

    差分安装失败时在通道值末尾追加 ``-full``，让更新服务下次下发完整安装包；
    任何成功的安装都会去掉该后缀。
    """
    failed = get_install_return_code(status) != 0
    channel = str(store.get_value(scope, client_state_key, constants.CHANNEL_FIELD) or "")
    has_suffix = channel.endswith(constants.FULL_INSTALLER_SUFFIX)

    if incremental and failed and not has_suffix:
        channel = channel + constants.FULL_INSTALLER_SUFFIX
    elif not failed and has_suffix:
        channel = channel[:-len(constants.FULL_INSTALLER_SUFFIX)]

    if channel:
        store.set_value(scope, client_state_key, constants.CHANNEL_FIELD, channel)
    else:
        store.delete_value(scope, client_state_key, constants.CHANNEL_FIELD)

    diff_status = f"{'incremental' if incremental else 'full'}:{'failed' if failed else 'ok'}"
    store.set_value(scope, client_state_key, constants.INSTALLER_DIFF_STATUS_FIELD, diff_status)
