"""
MsScan Privilege

Confirms the scan runs from an elevated (Administrator) context.
"""

import ctypes
from typing import Callable

from msscan_errors import PrivilegeError


def is_admin() -> bool:
    try:
        return bool(ctypes.windll.shell32.IsUserAnAdmin())
    except Exception:
        return False


def require_admin(check: Callable[[], bool] = is_admin) -> None:
# Abort before any scan call when the caller is not elevated

    if not check():
        raise PrivilegeError("Run as Administrator. An offline update scan requires elevation.")
