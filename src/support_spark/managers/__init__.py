from support_spark.managers.logging_manager import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
