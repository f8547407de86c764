import logging

from nettoria.core.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(settings: Settings) -> None:
    logging.basicConfig(level=settings.LOG_LEVEL.upper(), format=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
    # SQL echo stays off unless explicitly asked for
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
