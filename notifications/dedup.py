from __future__ import annotations

import logging
from datetime import datetime, timedelta

LOGGER = logging.getLogger(__name__)


class DedupGuard:
    """Suppresses a send when the same (user, category) was sent within the window.

    The lookup and the later log append are separate calls, so two cycles
    running at once can both pass the check. Only ``sent`` rows count;
    a failed attempt never blocks the next run.
    """

    def __init__(self, log, window: timedelta = timedelta(hours=24)):
        self.log = log
        self.window = window

    def already_notified(self, user_id: str, category: str, now: datetime) -> bool:
        entries = self.log.find_sent(user_id, category, now - self.window)
        if entries:
            LOGGER.info("Already sent %s to %s within %s", category, user_id, self.window)
            return True
        return False
