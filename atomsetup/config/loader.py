"""
安装偏好加载器

安装偏好文件是 YAML 格式，其中 ``distribution`` 映射为安装选项提供默认值；
命令行参数覆盖文件中的值。
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .schema import InstallerOptions

DISTRIBUTION_SECTION = "distribution"


class ConfigError(Exception):
    """配置错误基类"""
    pass


class ConfigValidationError(ConfigError):
    """选项验证错误"""

    def __init__(self, message: str, errors: List[Dict[str, Any]]):
        super().__init__(message)
        self.errors = errors

    def format_errors(self) -> str:
        """格式化错误信息为人类可读的格式"""
        formatted = []
        for error in self.errors:
            loc = " -> ".join(str(item) for item in error.get('loc', []))
            msg = error.get('msg', '未知错误')
            input_val = error.get('input', '')

            if loc:
                formatted.append(f"字段 '{loc}': {msg}")
                if input_val:
                    formatted.append(f"  输入值: {input_val}")
            else:
                formatted.append(f"根级别: {msg}")

        return "\n".join(formatted)

    def format_errors_json(self) -> str:
        return json.dumps(self.errors, ensure_ascii=False, indent=2, default=str)


class ConfigLoader:
    """安装偏好加载器"""

    def __init__(self):
        self.yaml = YAML(typ='safe')

    def load_preferences(self, prefs_path: Union[str, Path]) -> Dict[str, Any]:
        """读取偏好文件中的 distribution 映射

        Raises:
            ConfigError: 文件不存在、格式不对或内容不是映射
        """
        prefs_path = Path(prefs_path)

        if not prefs_path.is_file():
            raise ConfigError(f"安装偏好文件不存在: {prefs_path}")

        suffix = prefs_path.suffix.lower()
        if suffix == '.json':
            raise ConfigError(
                f"不支持 JSON 格式的安装偏好文件: {prefs_path}\n"
                "请转换为 YAML 格式。"
            )
        if suffix not in ('.yaml', '.yml'):
            raise ConfigError(f"安装偏好文件必须是 .yaml 或 .yml 格式: {prefs_path}")

        try:
            with open(prefs_path, 'r', encoding='utf-8') as f:
                raw_data = self.yaml.load(f)
        except YAMLError as e:
            raise ConfigError(f"YAML 解析错误: {e}")
        except OSError as e:
            raise ConfigError(f"文件读取错误: {e}")

        if raw_data is None:
            return {}
        if not isinstance(raw_data, dict):
            raise ConfigError("安装偏好文件根级别必须是对象/字典格式")

        section = raw_data.get(DISTRIBUTION_SECTION) or {}
        if not isinstance(section, dict):
            raise ConfigError(f"'{DISTRIBUTION_SECTION}' 必须是对象/字典格式")

        data = dict(section)
        self._resolve_relative_paths(data, prefs_path.parent)
        return data

    def build_options(self, prefs_path: Optional[Union[str, Path]] = None, **overrides: Any) -> InstallerOptions:
        """合并偏好文件与命令行参数，构建安装选项

        值为 None 的参数视为未指定，不会覆盖文件中的值。

        Raises:
            ConfigError / ConfigValidationError
        """
        data: Dict[str, Any] = {}
        if prefs_path is not None:
            data.update(self.load_preferences(prefs_path))
            data['installer_data'] = str(prefs_path)

        data.update({k: v for k, v in overrides.items() if v is not None})

        try:
            return InstallerOptions.model_validate(data)
        except ValidationError as e:
            raise ConfigValidationError("安装选项验证失败", e.errors())

    def _resolve_relative_paths(self, data: Dict[str, Any], base_path: Path) -> None:
        """偏好文件中的相对路径相对于文件所在目录"""
        path_fields = ('archive', 'system_root', 'user_root', 'state_dir',
                       'setup_patch', 'setup_exe', 'new_setup_exe')
        for name in path_fields:
            value = data.get(name)
            if isinstance(value, str) and value and not Path(value).is_absolute():
                data[name] = str((base_path / value).resolve())


config_loader = ConfigLoader()


def load_options(prefs_path: Optional[Union[str, Path]] = None, **overrides: Any) -> InstallerOptions:
    """便捷函数：构建安装选项"""
    return config_loader.build_options(prefs_path, **overrides)
