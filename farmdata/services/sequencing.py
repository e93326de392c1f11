"""
Request sequencing

Each render target (a workspace list, a report) hands out monotonically
increasing tokens. A response is applied only if its token is still the latest
issued for that target; anything older is discarded.
"""

import itertools
import logging
from typing import Dict

logger = logging.getLogger(__name__)


class RequestSequencer:
    """Issues per-target request tokens and checks them on completion"""

    def __init__(self):
        self._counter = itertools.count(1)
        self._latest: Dict[str, int] = {}

    def issue(self, target: str) -> int:
        token = next(self._counter)
        self._latest[target] = token
        return token

    def latest(self, target: str) -> int:
        return self._latest.get(target, 0)

    def is_latest(self, target: str, token: int) -> bool:
        current = self._latest.get(target, 0)
        if token != current:
            logger.info(f"Discarding stale response for {target} (token {token}, latest {current})")
            return False
        return True
