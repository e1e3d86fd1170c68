import logging

from cajpro.core import config

LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once; later calls only adjust the level."""
    resolved_level = (level or config.LOG_LEVEL).upper()
    root = logging.getLogger()

    if not root.handlers:
        logging.basicConfig(level=resolved_level, format=LOG_FORMAT)
    else:
        root.setLevel(resolved_level)
