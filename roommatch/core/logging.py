import logging

from roommatch.core.config import settings

_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"


def configure_logging() -> None:
    level = getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO)
    logging.basicConfig(level=level, format=_FORMAT)
    # SQL echo is controlled by APP_ENV, keep the engine logger from doubling it
    logging.getLogger("sqlalchemy.engine").propagate = settings.APP_ENV != "development"
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))
