"""
安装选项 Schema

所有命令行等价开关都集中在一个 pydantic 模型中，每个字段的作用见字段说明。
"""

from __future__ import annotations

import os
import sys
from enum import Enum
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from ..store.markers import Scope
from ..utils.paths import is_safe_filename


class Operation(str, Enum):
    """安装器操作"""
    INSTALL = "install"
    UNINSTALL = "uninstall"
    RENAME_EXE = "rename_exe"       # 使用中更新之后执行可执行文件替换
    PATCH_SETUP = "patch_setup"     # 对安装程序自身应用补丁


def _default_state_base(system_level: bool) -> Path:
    if system_level:
        if os.name == 'nt':
            return Path(os.environ.get("ProgramData", r"C:\ProgramData")) / "atomsetup"
        return Path("/var/lib/atomsetup")
    return Path.home() / ".atomsetup"


class InstallerOptions(BaseModel):
    """安装器选项"""

    operation: Operation = Field(Operation.INSTALL, description="要执行的操作")
    system_level: bool = Field(False, description="系统级安装（所有用户），否则为当前用户安装")
    archive: Optional[Path] = Field(None, description="安装包路径（外层压缩载荷）")
    installer_data: Optional[Path] = Field(
        None, description="安装偏好文件路径，安装结束后删除"
    )
    force_uninstall: bool = Field(False, description="没有已安装版本时仍执行卸载清理")
    do_not_launch: bool = Field(False, description="首次安装成功后不启动产品")
    do_not_register_for_update_launch: bool = Field(
        False, description="不在安装结果中写入启动命令"
    )
    do_not_remove_shared_items: bool = Field(False, description="卸载时保留 ClientState 等共享标记")
    verbose_logging: bool = Field(False, description="输出调试日志")
    run_as_admin: bool = Field(False, description="标记本次调用已是提权后的重试")

    product_name: str = Field("AtomApp", description="产品名称", min_length=1, max_length=100)
    exe_name: str = Field("atomapp.exe", description="产品主程序文件名", min_length=1)
    legacy_keys: List[str] = Field(default_factory=list, description="更新后删除的遗留标记键")

    system_root: Optional[Path] = Field(None, description="系统级安装的基础目录")
    user_root: Optional[Path] = Field(None, description="用户级安装的基础目录")
    state_dir: Optional[Path] = Field(None, description="标记存储与待删除清单所在目录")

    setup_patch: Optional[Path] = Field(None, description="安装程序补丁载荷")
    setup_exe: Optional[Path] = Field(None, description="当前安装程序，默认为正在运行的程序")
    new_setup_exe: Optional[Path] = Field(None, description="打补丁后的安装程序输出路径")

    model_config = {
        "extra": "forbid",
        "validate_assignment": True,
        "str_strip_whitespace": True,
    }

    @field_validator('exe_name')
    @classmethod
    def validate_exe_name(cls, v: str) -> str:
        if not is_safe_filename(v):
            raise ValueError(f"可执行文件名不合法: {v}")
        return v

    @field_validator('product_name')
    @classmethod
    def validate_product_name(cls, v: str) -> str:
        if not is_safe_filename(v):
            raise ValueError(f"产品名称不能包含路径分隔符或非法字符: {v}")
        return v

    @model_validator(mode='after')
    def validate_operation_inputs(self) -> 'InstallerOptions':
        """校验各操作所需的输入"""
        if self.operation == Operation.INSTALL and self.archive is None:
            raise ValueError("install 操作需要指定 archive")
        if self.operation == Operation.PATCH_SETUP and (self.setup_patch is None or self.new_setup_exe is None):
            raise ValueError("patch_setup 操作需要同时指定 setup_patch 和 new_setup_exe")
        return self

    @property
    def scope(self) -> Scope:
        return Scope.for_level(self.system_level)

    def resolved_state_dir(self) -> Path:
        return self.state_dir or _default_state_base(self.system_level)

    def resolved_setup_exe(self) -> Path:
        return self.setup_exe or Path(sys.argv[0]).resolve()
