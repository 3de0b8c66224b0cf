"""
obras_app/services/sessions.py

Session lifecycle for medição and aditivo sessions.

State machine:
    create  -> aberta
    aberta    --block-->  bloqueada
    bloqueada --reopen--> aberta
    any       --delete--> (removed)

Transitions are checked against the current state. Applying a transition
whose target state already holds (blocking a blocked session, reopening an
open one) is accepted as a no-op and logged, so callers keep the idempotent
behaviour they rely on.

Deletion order is a hard invariant: item entries first, then the session
row, in one transaction. If removing the items fails, the session row stays.
"""

from __future__ import annotations

import logging
from typing import Any, List

from ..errors import NotFoundError, ValidationError
from ..gateway import SessionTable, write_transaction
from ..models import STATUS_ABERTA, STATUS_BLOQUEADA

logger = logging.getLogger(__name__)

BLOCK = "block"
REOPEN = "reopen"

TRANSITIONS = {
    STATUS_ABERTA: {BLOCK: STATUS_BLOQUEADA},
    STATUS_BLOQUEADA: {REOPEN: STATUS_ABERTA},
}

_TARGETS = {BLOCK: STATUS_BLOQUEADA, REOPEN: STATUS_ABERTA}


class SessionLifecycleManager:
    """Create / block / reopen / delete / list sessions of one kind."""

    def __init__(self, kind: str, table: SessionTable | None = None):
        self.kind = kind
        self.table = table or SessionTable(kind)

    def create_session(self, obra_id: int, sequencia: int):
        """
        Insert a new open session.

        No pre-check: a duplicate (obra_id, sequencia) is rejected by the
        unique constraint and surfaces as ConflictError.
        """
        if sequencia is None or int(sequencia) < 1:
            raise ValidationError("A sequência deve ser um inteiro positivo.")
        row = self.table.insert(obra_id=obra_id, sequencia=int(sequencia), status=STATUS_ABERTA)
        logger.info("Created %s session %s (obra=%s, seq=%s)", self.kind, row.id, obra_id, sequencia)
        return row

    def next_sequence(self, obra_id: int) -> int:
        current = self.table.max_sequence(obra_id)
        return (current or 0) + 1

    def block_session(self, session_id: int):
        return self._transition(session_id, BLOCK)

    def reopen_session(self, session_id: int):
        return self._transition(session_id, REOPEN)

    def _transition(self, session_id: int, event: str):
        row = self.table.get(session_id)
        if row is None:
            raise NotFoundError(f"Sessão {session_id} não encontrada.")

        target = _TARGETS[event]
        if row.status == target:
            logger.warning(
                "%s session %s already %s; %s ignored", self.kind, session_id, target, event
            )
            return row

        previous = row.status
        allowed = TRANSITIONS.get(previous, {})
        if event not in allowed:
            raise ValidationError(
                f"Transição inválida: {previous} -> {target}.",
                details={"status": previous, "event": event},
            )

        affected = self.table.update_status(session_id, allowed[event])
        if affected == 0:
            # Deleted between the read and the update
            raise NotFoundError(f"Sessão {session_id} não encontrada.")

        logger.info("%s session %s: %s -> %s", self.kind, session_id, previous, allowed[event])
        return self.table.get(session_id)

    def delete_session(self, session_id: int) -> None:
        if self.table.get(session_id) is None:
            raise NotFoundError(f"Sessão {session_id} não encontrada.")

        with write_transaction("excluir sessão"):
            removed_items = self.table.delete_items(session_id)
            self.table.delete_row(session_id)

        logger.info("Deleted %s session %s (%s items)", self.kind, session_id, removed_items)

    def fetch_sessions_with_items(self, obra_id: int) -> List[Any]:
        """Sessions of the obra, ascending by sequência, items eager-loaded."""
        return self.table.list_with_items(obra_id)
