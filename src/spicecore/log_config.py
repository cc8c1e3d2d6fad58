# --- src/spicecore/log_config.py ---
import logging
import sys
from typing import Optional

#: Loggers that emit one record per Newton iteration or per timestep attempt.
ITERATION_LOGGERS = (
    "spicecore.simulation.newton",
    "spicecore.simulation.mna",
    "spicecore.simulation.solver",
)


def setup_logging(level=logging.INFO, iteration_level: Optional[int] = None):
    """
    Configures basic logging to stdout.

    Args:
        level: Level for the root logger.
        iteration_level: Optional separate level for the per-iteration solver
                         loggers, which are very chatty at DEBUG on long
                         transient runs. Defaults to `level`.
    """
    log_formatter = logging.Formatter(
        "%(asctime)s [%(levelname)-5.5s] [%(name)s] %(message)s"
    )
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(log_formatter)
    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    for name in ITERATION_LOGGERS:
        logging.getLogger(name).setLevel(iteration_level if iteration_level is not None else logging.NOTSET)
    logging.info("Logging configured.")
