"""磁盘布局与标记存储中使用的固定名称"""

# 安装包（外层压缩载荷）默认文件名，位于安装程序同目录
COMPRESSED_ARCHIVE_NAME = "app.packed.zst"
# 外层解压后得到的完整归档；不存在时外层载荷被视为差分补丁
ARCHIVE_NAME = "app_archive.zip"
PATCH_NAME = "app_patch.diff"
# setup 自更新补丁解压后的文件名
SETUP_PATCH_NAME = "setup_patch.diff"

# 临时根目录下的解包目录，以及完整归档内的程序目录
INSTALL_SOURCE_DIR = "source"
INSTALL_SOURCE_APP_DIR = "app-bin"

# <安装根目录>/<版本>/Installer/ 保存完整归档缓存，作为下次差分更新的基准
INSTALLER_DIR = "Installer"

OLD_EXE_PREFIX = "old_"
NEW_EXE_PREFIX = "new_"

TEMP_PREFIX = "atomsetup_"

# 标记存储中的字段名
VERSION_FIELD = "pv"
OLD_VERSION_FIELD = "opv"
RENAME_CMD_FIELD = "cmd"
CHANNEL_FIELD = "ap"
FULL_INSTALLER_SUFFIX = "-full"

INSTALLER_RESULT_FIELD = "InstallerResult"
INSTALLER_ERROR_FIELD = "InstallerError"
INSTALLER_RESULT_UI_STRING_FIELD = "InstallerResultUIString"
INSTALLER_SUCCESS_LAUNCH_CMD_FIELD = "InstallerSuccessLaunchCmdLine"
INSTALLER_DIFF_STATUS_FIELD = "InstallerDiffStatus"

# InstallerResult 取值
RESULT_SUCCESS = 0
RESULT_FAILED_CUSTOM_ERROR = 1

# 启动参数
FIRST_RUN_SWITCH = "--first-run"
RENAME_EXE_COMMAND = "rename-exe"
