import logging
import sys

from . import config


class NamespaceFilter(logging.Filter):
    def __init__(self, allowed_namespaces=None):
        super().__init__()
        self.allowed_namespaces = allowed_namespaces if allowed_namespaces is not None else []

    def filter(self, record):
        if not self.allowed_namespaces:
            return True # If no namespaces are specified, allow all records
        # Allow record if its name starts with any of the allowed namespaces
        return any(record.name.startswith(ns) for ns in self.allowed_namespaces)


log_formatter = logging.Formatter(
    fmt="%(asctime)s - %(name)s:%(lineno)d - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

APP_LOGGER_NAME = "sales_metrics"


def configure_logging(level: str = config.LOG_LEVEL, namespaces=None) -> logging.Logger:
    """
    Attach the console handler to the application logger.

    Modules log through logging.getLogger(__name__), so everything under
    "sales_metrics.*" inherits the level and handler set here. Calling this
    again replaces the handler instead of stacking a second one.
    """
    app_logger = logging.getLogger(APP_LOGGER_NAME)
    app_logger.setLevel(level)

    for handler in list(app_logger.handlers):
        if getattr(handler, "_sales_metrics_console", False):
            app_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(log_formatter)
    console_handler._sales_metrics_console = True

    # Only records from these namespaces reach the console, e.g.
    # LOG_NAMESPACES="sales_metrics.features.sales,sales_metrics.main"
    allowed = config.LOG_NAMESPACES if namespaces is None else namespaces
    if allowed:
        console_handler.addFilter(NamespaceFilter(allowed))

    app_logger.addHandler(console_handler)
    return app_logger


configure_logging()
