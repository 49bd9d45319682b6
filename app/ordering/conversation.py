from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from .nlp import extract_table_number
from .types import ParsedOrder

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = timedelta(minutes=10)
SWEEP_INTERVAL_SECONDS = 60.0

Clock = Callable[[], datetime]

# a bare table token after "NAME," ("4", "12b"); a bare word is part of the name
_BARE_TABLE_RE = re.compile(r"[a-z]?\d+[a-z]?", re.IGNORECASE)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Stage(str, Enum):
    AWAITING_NAME = "awaiting_name"


@dataclass
class ConversationSession:
    customer_identity: str
    business_id: str
    stage: Stage
    pending_order: ParsedOrder
    last_activity_at: datetime


class ConversationTracker:
    """Holds a half-built order per customer while missing fields are asked for.

    Sessions are keyed by customer identity only, so the SMS gateway and the
    web chat share them. A session older than `timeout` is dropped before any
    read and is indistinguishable from no session at all.

    The name a customer gave is remembered for the same window after their
    session closes, so a second order to the same business isn't asked again.
    """

    def __init__(self, timeout: timedelta = DEFAULT_TIMEOUT, clock: Clock = _utcnow):
        self.timeout = timeout
        self._clock = clock
        self._sessions: Dict[str, ConversationSession] = {}
        # customer identity -> (business id, name, when)
        self._names: Dict[str, Tuple[str, str, datetime]] = {}

    def _stale(self, at: datetime) -> bool:
        return self._clock() - at > self.timeout

    def get_session(self, customer_identity: str) -> Optional[ConversationSession]:
        session = self._sessions.get(customer_identity)
        if session and self._stale(session.last_activity_at):
            logger.debug("Conversation for %s expired", customer_identity)
            del self._sessions[customer_identity]
            return None
        return session

    def open_session(
        self,
        customer_identity: str,
        business_id: str,
        pending_order: ParsedOrder,
    ) -> ConversationSession:
        session = ConversationSession(
            customer_identity=customer_identity,
            business_id=business_id,
            stage=Stage.AWAITING_NAME,
            pending_order=pending_order,
            last_activity_at=self._clock(),
        )
        self._sessions[customer_identity] = session
        return session

    def continue_session(self, customer_identity: str, message: str) -> Optional[ParsedOrder]:
        """Feed a follow-up message into the open session.

        Returns the completed order (and closes the session) once the missing
        field is filled. Returns None when there is no live session, or when
        the reply was blank and the question still stands.
        """
        session = self.get_session(customer_identity)
        if session is None:
            return None

        session.last_activity_at = self._clock()
        reply = (message or "").strip()
        if not reply:
            return None

        name, table = reply, None
        pending = session.pending_order
        if "," in reply and not pending.table_number:
            head, _, tail = reply.partition(",")
            tail = tail.strip()
            table = extract_table_number(tail) or (tail if _BARE_TABLE_RE.fullmatch(tail) else None)
            if table:
                name = head.strip()
        if not name:
            return None

        self.remember_name(customer_identity, session.business_id, name)
        completed = replace(pending, customer_name=name, table_number=pending.table_number or table)
        self.close_session(customer_identity)
        return completed

    def remember_name(self, customer_identity: str, business_id: str, name: str) -> None:
        self._names[customer_identity] = (business_id, name, self._clock())

    def remembered_customer_name(self, customer_identity: str, business_id: str) -> Optional[str]:
        """Name given in a recent conversation with this business, if any."""
        entry = self._names.get(customer_identity)
        if entry is None:
            return None
        remembered_for, name, at = entry
        if self._stale(at):
            del self._names[customer_identity]
            return None
        return name if remembered_for == business_id else None

    def close_session(self, customer_identity: str) -> None:
        self._sessions.pop(customer_identity, None)

    def purge_expired(self) -> int:
        """Drop expired sessions and remembered names. Returns how many sessions went."""
        stale = [k for k, s in self._sessions.items() if self._stale(s.last_activity_at)]
        for k in stale:
            del self._sessions[k]
        for k in [k for k, (_, _, at) in self._names.items() if self._stale(at)]:
            del self._names[k]
        return len(stale)

    async def sweep_forever(self, interval: float = SWEEP_INTERVAL_SECONDS) -> None:
        """Run `purge_expired` every `interval` seconds until cancelled."""
        while True:
            await asyncio.sleep(interval)
            purged = self.purge_expired()
            if purged:
                logger.info("Purged %d expired conversations", purged)

    def __len__(self) -> int:
        return len(self._sessions)
