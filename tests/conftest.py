"""
测试共用夹具

提供程序目录、安装包、安装选项与可注入环境的构造工具。
"""

from pathlib import Path
from typing import Dict, Optional
from unittest.mock import MagicMock

import pytest

from atomsetup.archive.packer import build_full_payload
from atomsetup.config.schema import InstallerOptions, Operation
from atomsetup.environment import SetupEnvironment
from atomsetup.store.markers import MemoryMarkerStore
from atomsetup.utils.paths import get_temp_dir

EXE_NAME = "atomapp.exe"
PRODUCT_NAME = "AtomApp"


@pytest.fixture
def make_app_dir(tmp_path):
    """构造程序目录：``<exe>`` + ``<version>/...``"""

    def _make(version: str, files: Optional[Dict[str, bytes]] = None,
              exe_content: Optional[bytes] = None, name: Optional[str] = None) -> Path:
        app_dir = tmp_path / "apps" / (name or version)
        version_dir = app_dir / version
        version_dir.mkdir(parents=True)
        (app_dir / EXE_NAME).write_bytes(exe_content or f"exe {version}".encode())
        contents = files if files is not None else {
            "core.dll": f"core library {version}\n".encode() * 200,
            "resources/strings.txt": f"strings {version}\n".encode(),
        }
        for rel, data in contents.items():
            target = version_dir / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        return app_dir

    return _make


@pytest.fixture
def make_payload(tmp_path, make_app_dir):
    """构造完整安装包，返回载荷路径"""

    def _make(version: str, files: Optional[Dict[str, bytes]] = None,
              exe_content: Optional[bytes] = None) -> Path:
        app_dir = make_app_dir(version, files, exe_content)
        output = tmp_path / "payloads" / f"app-{version}.packed.zst"
        build_full_payload(app_dir, output, EXE_NAME)
        return output

    return _make


@pytest.fixture
def store():
    return MemoryMarkerStore()


@pytest.fixture
def env(tmp_path):
    """不接触真实系统的环境协作者"""
    temp_parent = tmp_path / "tmp"
    temp_parent.mkdir()
    return SetupEnvironment(
        is_admin=lambda: True,
        is_in_use=lambda path: False,
        os_supported=lambda: True,
        launch=MagicMock(return_value=True),
        make_temp_dir=lambda: get_temp_dir(prefix="test_", parent=temp_parent),
        run_experiment=MagicMock(),
    )


@pytest.fixture
def make_options(tmp_path):
    """构造安装选项，安装目录与状态目录都位于 tmp_path 下"""

    def _make(**overrides) -> InstallerOptions:
        data = dict(
            operation=Operation.INSTALL,
            product_name=PRODUCT_NAME,
            exe_name=EXE_NAME,
            system_root=tmp_path / "system",
            user_root=tmp_path / "user",
            state_dir=tmp_path / "state",
            setup_exe=tmp_path / "setup.exe",
        )
        data.update(overrides)
        return InstallerOptions(**data)

    return _make
