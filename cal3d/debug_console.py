"""
DebugConsole - routes loader diagnostics to the "cal3d" logger
"""
import logging

logger = logging.getLogger("cal3d")


class DebugConsole:
    @staticmethod
    def log(message):
        """Debug-level message (summaries, skipped tags, probing)"""
        logger.debug(message)

    @staticmethod
    def warning(message):
        """Recoverable problem: decoding or assembly carries on"""
        logger.warning(message)
