"""Integer ordering for sibling lists, cards, checklists and checklist items.

Positions are plain integers treated as ordering hints: there is no
uniqueness constraint, so two concurrent appends may land on the same value
and readers break ties on ``(position, created_at, id)``. Any later full
reorder re-densifies the container to ``0..n-1``.

Every caller goes through :class:`PositionSequencer`, which keeps the
numbering scheme replaceable without touching the store or the routes.
"""
from __future__ import annotations

import logging
from typing import NamedTuple, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from .db import BoardList, Card, Checklist, ChecklistItem
from .errors import ValidationFailed

logger = logging.getLogger(__name__)


class Placement(NamedTuple):
    card_id: str
    list_id: str
    position: int


LIST_ORDER = (BoardList.position, BoardList.created_at, BoardList.id)
CARD_ORDER = (Card.position, Card.created_at, Card.id)


class PositionSequencer:
    def __init__(self, session: Session) -> None:
        self.session = session

    # === Append ===

    def next_position(self, column, *criteria) -> int:
        """One past the highest sibling position, or 0 for an empty container."""
        top = self.session.execute(select(func.max(column)).where(*criteria)).scalar_one_or_none()
        return 0 if top is None else top + 1

    def append_list(self, board_id: str) -> int:
        return self.next_position(BoardList.position, BoardList.board_id == board_id)

    def append_card(self, list_id: str) -> int:
        return self.next_position(Card.position, Card.list_id == list_id)

    def append_checklist(self, card_id: str) -> int:
        return self.next_position(Checklist.position, Checklist.card_id == card_id)

    def append_item(self, checklist_id: str) -> int:
        return self.next_position(ChecklistItem.position, ChecklistItem.checklist_id == checklist_id)

    # === Full reorder ===

    def reorder_lists(self, board_id: str, ordered_ids: Sequence[str]) -> int:
        """Write ``position = index`` for every list in ``ordered_ids``.

        Only non-archived lists of ``board_id`` may appear. Lists already at
        their index are not rewritten. Returns the number of rows written.
        """
        _require_distinct(ordered_ids, "orderedIds")
        current = dict(
            self.session.execute(
                select(BoardList.id, BoardList.position).where(
                    BoardList.board_id == board_id,
                    BoardList.is_archived.is_(False),
                    BoardList.id.in_(ordered_ids),
                )
            ).all()
        )
        unknown = [list_id for list_id in ordered_ids if list_id not in current]
        if unknown:
            raise ValidationFailed("Unknown list", {"orderedIds": unknown})

        written = 0
        for index, list_id in enumerate(ordered_ids):
            if current[list_id] == index:
                continue
            self.session.execute(
                update(BoardList)
                .where(BoardList.id == list_id, BoardList.board_id == board_id)
                .values(position=index)
            )
            # each row stands alone; an earlier write survives a later failure
            self.session.commit()
            written += 1
        logger.info("Reordered lists on board %s (%d of %d rows written)", board_id, written, len(ordered_ids))
        return written

    # === Cross-container moves ===

    def apply_card_moves(self, board_id: str, placements: Sequence[Placement]) -> int:
        """Apply each ``(card, list, position)`` triple verbatim.

        Every card and target list must belong to ``board_id``; nothing is
        written when any of them fails to resolve. Triples matching the stored
        state are skipped. Returns the number of rows written.
        """
        card_ids = [p.card_id for p in placements]
        _require_distinct(card_ids, "cards")

        current = {
            row.id: (row.list_id, row.position)
            for row in self.session.execute(
                select(Card.id, Card.list_id, Card.position)
                .join(BoardList, Card.list_id == BoardList.id)
                .where(BoardList.board_id == board_id, Card.id.in_(card_ids))
            )
        }
        unknown_cards = [card_id for card_id in card_ids if card_id not in current]
        if unknown_cards:
            raise ValidationFailed("Unknown card", {"cards": unknown_cards})

        target_ids = {p.list_id for p in placements}
        known_lists = set(
            self.session.execute(
                select(BoardList.id).where(BoardList.board_id == board_id, BoardList.id.in_(target_ids))
            ).scalars()
        )
        unknown_lists = sorted(target_ids - known_lists)
        if unknown_lists:
            raise ValidationFailed("Unknown list", {"listId": unknown_lists})

        written = 0
        for placement in placements:
            if current[placement.card_id] == (placement.list_id, placement.position):
                continue
            self.session.execute(
                update(Card)
                .where(Card.id == placement.card_id)
                .values(list_id=placement.list_id, position=placement.position)
            )
            self.session.commit()
            written += 1
        logger.info("Applied card moves on board %s (%d of %d rows written)", board_id, written, len(placements))
        return written

    def plan_card_move(self, board_id: str, card_id: str, to_list_id: str, index: int) -> list[Placement]:
        """Build the triples that move ``card_id`` to ``index`` in ``to_list_id``.

        The destination gets the card inserted at ``index`` (clamped to its
        length) and the source list, when different, is re-densified without
        it. An empty result means the move would change nothing.
        """
        card = self.session.execute(
            select(Card)
            .join(BoardList, Card.list_id == BoardList.id)
            .where(Card.id == card_id, BoardList.board_id == board_id)
        ).scalar_one_or_none()
        if card is None:
            raise ValidationFailed("Unknown card", {"cards": [card_id]})
        target = self.session.execute(
            select(BoardList.id).where(BoardList.id == to_list_id, BoardList.board_id == board_id)
        ).scalar_one_or_none()
        if target is None:
            raise ValidationFailed("Unknown list", {"listId": [to_list_id]})

        source_order = [cid for cid in self.visible_card_ids(card.list_id) if cid != card_id]
        if to_list_id == card.list_id:
            dest_order = list(source_order)
            source_order = []
        else:
            dest_order = [cid for cid in self.visible_card_ids(to_list_id) if cid != card_id]
        dest_order.insert(min(index, len(dest_order)), card_id)

        if to_list_id == card.list_id and self.visible_card_ids(card.list_id) == dest_order:
            return []

        placements = [Placement(cid, to_list_id, pos) for pos, cid in enumerate(dest_order)]
        placements.extend(Placement(cid, card.list_id, pos) for pos, cid in enumerate(source_order))
        return placements

    def visible_card_ids(self, list_id: str) -> list[str]:
        return list(
            self.session.execute(
                select(Card.id)
                .where(Card.list_id == list_id, Card.is_archived.is_(False))
                .order_by(*CARD_ORDER)
            ).scalars()
        )


def _require_distinct(ids: Sequence[str], field: str) -> None:
    if not ids:
        raise ValidationFailed("Nothing to reorder", {field: ["must not be empty"]})
    seen: set[str] = set()
    duplicates: set[str] = set()
    for i in ids:
        if i in seen:
            duplicates.add(i)
        seen.add(i)
    if duplicates:
        raise ValidationFailed("Duplicate identifiers", {field: sorted(duplicates)})
