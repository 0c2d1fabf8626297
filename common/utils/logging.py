import contextlib
import logging
import time
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# =============================================================================
# CONFIGURATION
# =============================================================================


def configure_logging(verbose: bool = False) -> None:
    """
    Configures root logging for scripts. Library modules only create
    module-level loggers and never call this.

    Parameters:
        verbose (bool): DEBUG level when True, else INFO.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT,
    )
    # Third-party debug output drowns the per-row messages.
    for noisy in ("urllib3", "pyogrio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


# =============================================================================
# CONTEXT MANAGERS
# =============================================================================


@contextlib.contextmanager
def timer(
    operation_name: str,  #
    log: Optional[logging.Logger] = None,
) -> Iterator[None]:
    """
    Context manager to time operations.

    Parameters:
        operation_name (str): A descriptive name for the timed operation.
        log (logging.Logger, optional): Logger to report to. Defaults to this
            module's logger.

    Yields:
        None: This context manager yields control back to the caller.
    """
    log = log if log else logger
    start_time = time.perf_counter()
    log.info(f"Starting: {operation_name}")

    try:
        yield

    finally:
        end_time = time.perf_counter()
        log.info(f"Completed: {operation_name} in {end_time - start_time:.2f} seconds")
