import logging

_FORMAT = "%(asctime)s %(levelname)s [%(localizer)s] %(message)s"
_PACKAGE = "aruco_localization"


class LocalizerNameFilter(logging.Filter):
    def __init__(self, name: str):
        super().__init__()
        self.localizer_name = name

    def filter(self, record: logging.LogRecord) -> bool:
        record.localizer = self.localizer_name
        return True


def setup_logger(name: str, level: int = logging.INFO) -> logging.Logger:
    """
    Logger for one localizer instance.

    The handler sits on the package logger so module loggers
    (aruco_localization.camera_model, ...) share the same output.
    """
    package_logger = logging.getLogger(_PACKAGE)
    package_logger.setLevel(level)

    if not package_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler.addFilter(LocalizerNameFilter(name))
        package_logger.addHandler(handler)

    return logging.getLogger(f"{_PACKAGE}.{name}")


def add_file_handler(name: str, log_path: str) -> logging.Handler:
    handler = logging.FileHandler(log_path)
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler.addFilter(LocalizerNameFilter(name))
    logging.getLogger(_PACKAGE).addHandler(handler)
    return handler


def remove_handler(handler: logging.Handler) -> None:
    logging.getLogger(_PACKAGE).removeHandler(handler)
    handler.close()
