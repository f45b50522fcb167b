from skil.core.logging.logger import Logger, configure_logging, get_logger

__all__ = ["Logger", "configure_logging", "get_logger"]
