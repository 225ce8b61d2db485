"""
Ticket-intake context machine.

  greeting → collecting_product → collecting_issue
           → collecting_urgency → confirming → complete

The server drives every transition: each reply carries the next full
context snapshot. Locally we only refuse snapshots that would move the
state backwards (an out-of-order or duplicate reply), so observed state
is non-decreasing for the lifetime of a session.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from deskline.models import STATES, STATE_COMPLETE, ConversationContext

logger = logging.getLogger(__name__)

_RANK = {state: i for i, state in enumerate(STATES)}


def state_rank(state: str) -> int:
    """Position of state in the intake sequence."""
    try:
        return _RANK[state]
    except KeyError:
        raise ValueError(f"Unknown conversation state: {state!r}") from None


class ContextMachine:
    """Holds the current ConversationContext and guards it against regression."""

    def __init__(self, context: ConversationContext | None = None):
        self._context = context or ConversationContext()

    @property
    def context(self) -> ConversationContext:
        return self._context

    @property
    def state(self) -> str:
        return self._context.state

    @property
    def is_complete(self) -> bool:
        return self._context.state == STATE_COMPLETE

    def advance(self, snapshot: ConversationContext) -> bool:
        """
        Adopt a server snapshot unless it would regress the state.

        Fields present in the snapshot overwrite ours (server corrections);
        a None field never clears something already collected.
        Returns True if the snapshot was adopted.
        """
        current = self._context
        if state_rank(snapshot.state) < state_rank(current.state):
            logger.warning(
                "Ignoring context snapshot: %s would regress from %s",
                snapshot.state, current.state,
            )
            return False

        self._context = replace(
            snapshot,
            product=snapshot.product if snapshot.product is not None else current.product,
            issue=snapshot.issue if snapshot.issue is not None else current.issue,
            urgency=snapshot.urgency if snapshot.urgency is not None else current.urgency,
            ticket_id=snapshot.ticket_id if snapshot.ticket_id is not None else current.ticket_id,
        )
        if self._context.state != current.state:
            logger.debug("Context advanced %s → %s", current.state, self._context.state)
        return True
