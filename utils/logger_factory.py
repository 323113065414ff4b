import logging
import os

LOG_FORMAT = '%(asctime)s %(levelname)s %(module)s %(label)s: %(message)s'


class SafeLabelFormatter(logging.Formatter):
    def format(self, record):
        if not hasattr(record, 'label'):
            record.label = '-'
        return super().format(record)


class LabelLoggerAdapter(logging.LoggerAdapter):
    def __init__(self, logger, label):
        super().__init__(logger, {'label': label})

    def process(self, msg, kwargs):
        # The formatter already prints the module, so only the label goes in front
        return f"{self.extra['label']}: {msg}", kwargs


def _configured_level():
    level_name = os.getenv("LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


def new_logger(label, module_name=None):
    # Fall back to the caller's module so records point at the right file
    if module_name is None:
        import inspect
        frame = inspect.currentframe()
        try:
            module_name = frame.f_back.f_globals['__name__']
        finally:
            del frame
    logger = logging.getLogger(module_name)

    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(SafeLabelFormatter(fmt=LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S'))
        logger.addHandler(handler)
        logger.propagate = False
    logger.setLevel(_configured_level())
    return LabelLoggerAdapter(logger, label)
