# Overview: Service-layer operations for number sequences; allocates human-readable document numbers.

from __future__ import annotations

from sqlalchemy import update

from ..extensions import db
from ..models import NumberSequence, Terminal


TRANSACTION_SEQUENCE_PREFIX = "TRANSACTION"
GIFT_CARD_SEQUENCE_KEY = "GIFT_CARD"


def next_sequence_number(sequence_key: str) -> int:
    """
    Allocate the next number for a sequence key inside the caller's transaction.

    The increment is a single UPDATE so concurrent callers serialize on the
    sequence row; the allocation rolls back with the enclosing transaction.
    """
    if not sequence_key:
        raise ValueError("sequence_key is required")

    stmt = (
        update(NumberSequence)
        .where(NumberSequence.sequence_key == sequence_key)
        .values(next_number=NumberSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        current = (
            db.session.query(NumberSequence.next_number)
            .filter_by(sequence_key=sequence_key)
            .scalar()
        )
        return current - 1

    seq = NumberSequence(sequence_key=sequence_key, next_number=2)
    db.session.add(seq)
    db.session.flush()
    return 1


def next_transaction_number(terminal: Terminal) -> str:
    """Format: T{terminal_number:03d}-{sequence:06d}, monotonic per terminal."""
    seq = next_sequence_number(f"{TRANSACTION_SEQUENCE_PREFIX}:{terminal.id}")
    return f"T{terminal.terminal_number:03d}-{seq:06d}"


def next_gift_card_number() -> str:
    """Format: GC-0000000001"""
    seq = next_sequence_number(GIFT_CARD_SEQUENCE_KEY)
    return f"GC-{seq:010d}"
