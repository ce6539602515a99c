import logging

from backend.core import config

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_configured = False


def setup_logging(level: str | None = None) -> None:
    global _configured

    if _configured:
        return

    logging.basicConfig(level=(level or config.LOG_LEVEL).upper(), format=LOG_FORMAT)
    # uvicorn installs its own handlers; keep its access log at the app level
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    _configured = True
