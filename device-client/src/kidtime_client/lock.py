"""Screen locking."""

import ctypes
import logging
import subprocess
import sys

logger = logging.getLogger(__name__)


def lock_screen() -> bool:
    """Lock the current session.

    Returns True if the platform accepted the request.
    """
    if sys.platform == "win32":
        return bool(ctypes.windll.user32.LockWorkStation())

    if sys.platform.startswith("linux"):
        try:
            subprocess.run(["loginctl", "lock-session"], check=True, timeout=10)
        except (OSError, subprocess.SubprocessError):
            logger.exception("loginctl lock-session failed")
            return False
        return True

    logger.warning("Screen locking is not supported on %s", sys.platform)
    return False
