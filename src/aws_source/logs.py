"""Logging setup for the source process."""

import logging
import os

logger = logging.getLogger(__name__)

TERMINATION_LOG = "/dev/termination-log"

# Level names accepted by --log
LEVELS = {
    "panic": logging.CRITICAL,
    "fatal": logging.CRITICAL,
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
    "trace": logging.DEBUG,
}


class TerminationLogHandler(logging.Handler):
    """
    Appends CRITICAL records to the Kubernetes termination log, so the reason
    a pod died shows up in `kubectl describe`.
    """

    def __init__(self, path: str = TERMINATION_LOG):
        super().__init__(level=logging.CRITICAL)
        self.path = path

    def emit(self, record: logging.LogRecord):
        try:
            with open(self.path, "a") as f:
                f.write(self.format(record) + "\n")
        except OSError:
            self.handleError(record)


def setup_logging(level: str = "info", termination_log: str = TERMINATION_LOG):
    """
    Configure root logging at the given level name.

    Unknown level names fall back to info with a warning. The termination log
    handler is only added when the termination log file exists.
    """
    numeric = LEVELS.get(str(level).lower())

    logging.basicConfig(
        level=numeric or logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        force=True,
    )

    if numeric is None:
        logger.warning(f"Invalid log level {level}, using info")

    if os.path.exists(termination_log):
        logging.getLogger().addHandler(TerminationLogHandler(termination_log))

    # boto is very chatty at debug
    for name in ("botocore", "boto3", "urllib3"):
        logging.getLogger(name).setLevel(max(numeric or logging.INFO, logging.INFO))
