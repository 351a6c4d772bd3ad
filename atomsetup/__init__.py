"""
atomsetup - 事务式安装/更新引擎

A transactional setup engine: stages full or differential payloads and applies
install, update, rename and uninstall changes as rollback-safe work item lists.
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .status import InstallStatus
from .version import Version
from .transaction import WorkItemList

__all__ = ["InstallStatus", "Version", "WorkItemList", "__version__"]
