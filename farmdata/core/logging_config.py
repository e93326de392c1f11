"""
Logging setup shared by scripts and embedding applications
"""

import logging
from typing import Optional, Union

from farmdata.core.config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def setup_logging(level: Optional[Union[str, int]] = None) -> None:
    """Configure root logging once; later calls only adjust the level"""
    resolved = level if level is not None else settings.LOG_LEVEL
    if isinstance(resolved, str):
        resolved = logging.getLevelName(resolved.upper())
        if not isinstance(resolved, int):
            resolved = logging.INFO

    logging.basicConfig(level=resolved, format=LOG_FORMAT)
    logging.getLogger().setLevel(resolved)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(max(resolved, logging.WARNING))
