from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .access import MEMBER_ROLES, Access, Role
from .db import (
    Attachment,
    Board,
    BoardList,
    BoardMember,
    Card,
    CardLabel,
    CardMember,
    Checklist,
    ChecklistItem,
    Comment,
    Label,
    User,
)
from .errors import Conflict, Forbidden, NotFound, ValidationFailed
from .positions import LIST_ORDER, Placement, PositionSequencer
from .utils import clean

logger = logging.getLogger(__name__)

DEFAULT_LISTS = ("To Do", "In Progress", "Done")
DEFAULT_LABELS = (
    ("Bug", "#EF4444"),
    ("Feature", "#8B5CF6"),
    ("Enhancement", "#3B82F6"),
    ("Urgent", "#F97316"),
    ("Design", "#EC4899"),
    ("Documentation", "#6B7280"),
)
DEFAULT_BACKGROUND = "#059669"


# === Users ===


def ensure_user(
    session: Session,
    user_id: str,
    name: Optional[str] = None,
    email: Optional[str] = None,
    image: Optional[str] = None,
) -> User:
    """Create or refresh the local copy of an identity-provider user."""
    user = session.get(User, user_id)
    if user is None:
        user = User(id=user_id, name=name, email=email, image=image)
        session.add(user)
        try:
            session.commit()
            return user
        except IntegrityError:
            # a concurrent first request for the same identity inserted it
            session.rollback()
            logger.debug("User %s was created concurrently", user_id)
            user = session.execute(select(User).where(User.id == user_id)).scalar_one()
    if name is not None:
        user.name = name
    if email is not None:
        user.email = email
    if image is not None:
        user.image = image
    session.commit()
    return user


# === Boards ===


def create_board(
    session: Session,
    owner_id: str,
    name: str,
    description: Optional[str] = None,
    background: Optional[str] = None,
) -> Board:
    board = Board(
        name=name.strip(),
        description=clean(description),
        background=background or DEFAULT_BACKGROUND,
        owner_id=owner_id,
    )
    session.add(board)
    session.flush()
    for position, title in enumerate(DEFAULT_LISTS):
        session.add(BoardList(board_id=board.id, title=title, position=position))
    for label_name, color in DEFAULT_LABELS:
        session.add(Label(board_id=board.id, name=label_name, color=color))
    session.commit()
    session.refresh(board)
    logger.info("Board %s created by %s", board.id, owner_id)
    return board


def list_boards(session: Session, user_id: str) -> list[tuple[Board, int]]:
    """Boards owned by or shared with ``user_id``, newest first, with member counts."""
    member_of = select(BoardMember.board_id).where(BoardMember.user_id == user_id)
    boards = session.execute(
        select(Board)
        .where((Board.owner_id == user_id) | Board.id.in_(member_of))
        .order_by(Board.created_at.desc(), Board.id)
    ).scalars().all()
    if not boards:
        return []
    counts = dict(
        session.execute(
            select(BoardMember.board_id, func.count())
            .where(BoardMember.board_id.in_([b.id for b in boards]))
            .group_by(BoardMember.board_id)
        ).all()
    )
    # the owner counts as a member without having a row
    return [(b, counts.get(b.id, 0) + 1) for b in boards]


class BoardStore:
    """Persistence for everything beneath one board.

    A store can only be opened from a granted :class:`~bello.access.Access`,
    and every lookup is qualified by that board, so identifiers belonging to
    another board resolve to :class:`NotFound`.
    """

    def __init__(self, session: Session, access: Access) -> None:
        if not access.allowed:
            raise Forbidden("Forbidden")
        self.session = session
        self.access = access
        self.board_id = access.board_id
        self.positions = PositionSequencer(session)

    @property
    def role(self) -> Role:
        return self.access.role

    def _require_manager(self) -> None:
        if not self.role.manages_board:
            raise Forbidden("Only the owner or an admin can do this")

    # === Board ===

    def board(self) -> Board:
        board = self.session.get(Board, self.board_id)
        if board is None:
            raise NotFound("Board not found")
        return board

    def update_board(self, changes: dict[str, Any]) -> Board:
        self._require_manager()
        board = self.board()
        if "description" in changes:
            changes = {**changes, "description": clean(changes["description"])}
        _apply(board, changes, required=("name", "background", "is_closed"))
        self.session.commit()
        self.session.refresh(board)
        return board

    def delete_board(self) -> None:
        if self.role is not Role.OWNER:
            raise Forbidden("Only the owner can delete a board")
        self.session.delete(self.board())
        self.session.commit()
        logger.info("Board %s deleted by %s", self.board_id, self.access.user_id)

    # === Members ===

    def list_members(self) -> tuple[list[BoardMember], Optional[User]]:
        members = self.session.execute(
            select(BoardMember)
            .where(BoardMember.board_id == self.board_id)
            .order_by(BoardMember.created_at, BoardMember.id)
        ).scalars().all()
        owner = self.session.get(User, self.board().owner_id)
        return list(members), owner

    def add_member(self, email: str, role: str = "member") -> BoardMember:
        self._require_manager()
        if Role(role) not in MEMBER_ROLES:
            raise ValidationFailed("Invalid role", {"role": ["owner cannot be granted"]})
        user = self.session.execute(select(User).where(User.email == email)).scalars().first()
        if user is None:
            raise NotFound("User not found")
        existing = self.session.execute(
            select(BoardMember.id).where(
                BoardMember.board_id == self.board_id, BoardMember.user_id == user.id
            )
        ).first()
        if existing:
            raise Conflict("Already a member")
        if self.board().owner_id == user.id:
            raise Conflict("User is the board owner")
        member = BoardMember(board_id=self.board_id, user_id=user.id, role=role)
        self.session.add(member)
        self.session.commit()
        self.session.refresh(member)
        logger.info("User %s added to board %s as %s", user.id, self.board_id, role)
        return member

    def remove_member(self, user_id: str) -> None:
        self._require_manager()
        if self.board().owner_id == user_id:
            raise Forbidden("Cannot remove the board owner")
        result = self.session.execute(
            delete(BoardMember).where(
                BoardMember.board_id == self.board_id, BoardMember.user_id == user_id
            )
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise NotFound("Member not found")
        self.session.commit()
        logger.info("User %s removed from board %s", user_id, self.board_id)

    def _on_board(self, user_id: str) -> bool:
        if self.board().owner_id == user_id:
            return True
        return self.session.execute(
            select(BoardMember.id).where(
                BoardMember.board_id == self.board_id, BoardMember.user_id == user_id
            )
        ).first() is not None

    # === Labels ===

    def list_labels(self) -> list[Label]:
        return list(
            self.session.execute(
                select(Label).where(Label.board_id == self.board_id).order_by(Label.created_at, Label.id)
            ).scalars()
        )

    def _label(self, label_id: str) -> Label:
        label = self.session.execute(
            select(Label).where(Label.id == label_id, Label.board_id == self.board_id)
        ).scalar_one_or_none()
        if label is None:
            raise NotFound("Label not found")
        return label

    def create_label(self, name: str, color: str) -> Label:
        label = Label(board_id=self.board_id, name=name.strip(), color=color.strip())
        self.session.add(label)
        self.session.commit()
        self.session.refresh(label)
        return label

    def update_label(self, label_id: str, changes: dict[str, Any]) -> Label:
        label = self._label(label_id)
        _apply(label, changes, required=("name", "color"))
        self.session.commit()
        self.session.refresh(label)
        return label

    def delete_label(self, label_id: str) -> None:
        self.session.delete(self._label(label_id))
        self.session.commit()

    # === Lists ===

    def list_lists(self) -> list[BoardList]:
        return list(
            self.session.execute(
                select(BoardList)
                .where(BoardList.board_id == self.board_id, BoardList.is_archived.is_(False))
                .order_by(*LIST_ORDER)
            ).scalars()
        )

    def _list(self, list_id: str) -> BoardList:
        board_list = self.session.execute(
            select(BoardList).where(BoardList.id == list_id, BoardList.board_id == self.board_id)
        ).scalar_one_or_none()
        if board_list is None:
            raise NotFound("List not found")
        return board_list

    def create_list(self, title: str) -> BoardList:
        board_list = BoardList(
            board_id=self.board_id,
            title=title.strip(),
            position=self.positions.append_list(self.board_id),
        )
        self.session.add(board_list)
        self.session.commit()
        self.session.refresh(board_list)
        return board_list

    def update_list(self, list_id: str, changes: dict[str, Any]) -> BoardList:
        board_list = self._list(list_id)
        _apply(board_list, changes, required=("title", "is_archived"))
        self.session.commit()
        self.session.refresh(board_list)
        return board_list

    def delete_list(self, list_id: str) -> None:
        self.session.delete(self._list(list_id))
        self.session.commit()

    def reorder_lists(self, ordered_ids: list[str]) -> int:
        return self.positions.reorder_lists(self.board_id, ordered_ids)

    # === Cards ===

    def _card(self, card_id: str) -> Card:
        card = self.session.execute(
            select(Card)
            .join(BoardList, Card.list_id == BoardList.id)
            .where(Card.id == card_id, BoardList.board_id == self.board_id)
        ).scalar_one_or_none()
        if card is None:
            raise NotFound("Card not found")
        return card

    def get_card(self, card_id: str) -> Card:
        return self._card(card_id)

    def create_card(self, list_id: str, title: str) -> Card:
        try:
            board_list = self._list(list_id)
        except NotFound:
            raise ValidationFailed("Unknown list", {"listId": [list_id]}) from None
        card = Card(
            list_id=board_list.id,
            title=title.strip(),
            position=self.positions.append_card(board_list.id),
        )
        self.session.add(card)
        self.session.commit()
        self.session.refresh(card)
        return card

    def update_card(self, card_id: str, changes: dict[str, Any]) -> Card:
        card = self._card(card_id)
        if "description" in changes:
            changes = {**changes, "description": clean(changes["description"])}
        _apply(card, changes, required=("title", "is_archived"))
        self.session.commit()
        self.session.refresh(card)
        return card

    def delete_card(self, card_id: str) -> None:
        # relationship cascades remove links, checklists with their items,
        # comments and attachments
        self.session.delete(self._card(card_id))
        self.session.commit()

    def reorder_cards(self, placements: Iterable[Placement]) -> int:
        return self.positions.apply_card_moves(self.board_id, list(placements))

    def move_card(self, card_id: str, list_id: str, index: int) -> Card:
        card = self._card(card_id)
        placements = self.positions.plan_card_move(self.board_id, card.id, list_id, index)
        if not placements:
            logger.debug("Card %s already at index %d of list %s", card_id, index, list_id)
            return card
        self.positions.apply_card_moves(self.board_id, placements)
        self.session.refresh(card)
        return card

    # === Card labels & members ===

    def add_card_label(self, card_id: str, label_id: str) -> CardLabel:
        card = self._card(card_id)
        try:
            label = self._label(label_id)
        except NotFound:
            raise ValidationFailed("Unknown label", {"labelId": [label_id]}) from None
        existing = self.session.execute(
            select(CardLabel.id).where(CardLabel.card_id == card.id, CardLabel.label_id == label.id)
        ).first()
        if existing:
            raise Conflict("Label already applied")
        link = CardLabel(card_id=card.id, label_id=label.id)
        self.session.add(link)
        self.session.commit()
        self.session.refresh(link)
        return link

    def remove_card_label(self, card_id: str, label_id: str) -> None:
        card = self._card(card_id)
        result = self.session.execute(
            delete(CardLabel).where(CardLabel.card_id == card.id, CardLabel.label_id == label_id)
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise NotFound("Label not applied to card")
        self.session.commit()

    def add_card_member(self, card_id: str, user_id: str) -> CardMember:
        card = self._card(card_id)
        if not self._on_board(user_id):
            raise ValidationFailed("User is not on this board", {"userId": [user_id]})
        existing = self.session.execute(
            select(CardMember.id).where(CardMember.card_id == card.id, CardMember.user_id == user_id)
        ).first()
        if existing:
            raise Conflict("Already assigned")
        link = CardMember(card_id=card.id, user_id=user_id)
        self.session.add(link)
        self.session.commit()
        self.session.refresh(link)
        return link

    def remove_card_member(self, card_id: str, user_id: str) -> None:
        card = self._card(card_id)
        result = self.session.execute(
            delete(CardMember).where(CardMember.card_id == card.id, CardMember.user_id == user_id)
        )
        if result.rowcount == 0:
            self.session.rollback()
            raise NotFound("User not assigned to card")
        self.session.commit()

    # === Checklists ===

    def _checklist(self, card_id: str, checklist_id: str) -> Checklist:
        card = self._card(card_id)
        checklist = self.session.execute(
            select(Checklist).where(Checklist.id == checklist_id, Checklist.card_id == card.id)
        ).scalar_one_or_none()
        if checklist is None:
            raise NotFound("Checklist not found")
        return checklist

    def create_checklist(self, card_id: str, title: str) -> Checklist:
        card = self._card(card_id)
        checklist = Checklist(
            card_id=card.id,
            title=title.strip(),
            position=self.positions.append_checklist(card.id),
        )
        self.session.add(checklist)
        self.session.commit()
        self.session.refresh(checklist)
        return checklist

    def update_checklist(self, card_id: str, checklist_id: str, title: str) -> Checklist:
        checklist = self._checklist(card_id, checklist_id)
        checklist.title = title.strip()
        self.session.commit()
        self.session.refresh(checklist)
        return checklist

    def delete_checklist(self, card_id: str, checklist_id: str) -> None:
        checklist = self._checklist(card_id, checklist_id)
        # items first, then the checklist, without relying on FK cascades
        self.session.execute(delete(ChecklistItem).where(ChecklistItem.checklist_id == checklist.id))
        self.session.execute(delete(Checklist).where(Checklist.id == checklist.id))
        self.session.commit()

    def _item(self, card_id: str, checklist_id: str, item_id: str) -> ChecklistItem:
        checklist = self._checklist(card_id, checklist_id)
        item = self.session.execute(
            select(ChecklistItem).where(
                ChecklistItem.id == item_id, ChecklistItem.checklist_id == checklist.id
            )
        ).scalar_one_or_none()
        if item is None:
            raise NotFound("Checklist item not found")
        return item

    def create_item(self, card_id: str, checklist_id: str, title: str) -> ChecklistItem:
        checklist = self._checklist(card_id, checklist_id)
        item = ChecklistItem(
            checklist_id=checklist.id,
            title=title.strip(),
            position=self.positions.append_item(checklist.id),
        )
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item

    def update_item(self, card_id: str, checklist_id: str, item_id: str, changes: dict[str, Any]) -> ChecklistItem:
        item = self._item(card_id, checklist_id, item_id)
        _apply(item, changes, required=("title", "is_checked"))
        self.session.commit()
        self.session.refresh(item)
        return item

    def delete_item(self, card_id: str, checklist_id: str, item_id: str) -> None:
        self.session.delete(self._item(card_id, checklist_id, item_id))
        self.session.commit()

    # === Comments ===

    def _own_comment(self, card_id: str, comment_id: str) -> Comment:
        card = self._card(card_id)
        comment = self.session.execute(
            select(Comment).where(Comment.id == comment_id, Comment.card_id == card.id)
        ).scalar_one_or_none()
        if comment is None:
            raise NotFound("Comment not found")
        if comment.user_id != self.access.user_id:
            raise Forbidden("Only the author can change a comment")
        return comment

    def create_comment(self, card_id: str, content: str) -> Comment:
        card = self._card(card_id)
        comment = Comment(card_id=card.id, user_id=self.access.user_id, content=content)
        self.session.add(comment)
        self.session.commit()
        self.session.refresh(comment)
        return comment

    def update_comment(self, card_id: str, comment_id: str, content: str) -> Comment:
        comment = self._own_comment(card_id, comment_id)
        comment.content = content
        self.session.commit()
        self.session.refresh(comment)
        return comment

    def delete_comment(self, card_id: str, comment_id: str) -> None:
        self.session.delete(self._own_comment(card_id, comment_id))
        self.session.commit()

    # === Attachments ===

    def create_attachment(
        self,
        card_id: str,
        filename: str,
        original_filename: str,
        content_type: str,
        size: int,
        storage_key: str,
    ) -> Attachment:
        card = self._card(card_id)
        attachment = Attachment(
            card_id=card.id,
            user_id=self.access.user_id,
            filename=filename,
            original_filename=original_filename,
            content_type=content_type,
            size=size,
            storage_key=storage_key,
        )
        self.session.add(attachment)
        self.session.commit()
        self.session.refresh(attachment)
        return attachment

    def delete_attachment(self, card_id: str, attachment_id: str) -> None:
        card = self._card(card_id)
        attachment = self.session.execute(
            select(Attachment).where(Attachment.id == attachment_id, Attachment.card_id == card.id)
        ).scalar_one_or_none()
        if attachment is None:
            raise NotFound("Attachment not found")
        if attachment.user_id != self.access.user_id and not self.role.manages_board:
            raise Forbidden("Only the uploader or a board admin can remove an attachment")
        self.session.delete(attachment)
        self.session.commit()


def _apply(entity: Any, changes: dict[str, Any], required: tuple[str, ...] = ()) -> None:
    """Copy ``changes`` onto ``entity``; fields in ``required`` cannot be cleared."""
    if not changes:
        raise ValidationFailed("No fields to update")
    cleared = sorted(field for field in required if field in changes and changes[field] is None)
    if cleared:
        raise ValidationFailed("Invalid input", {field: ["may not be null"] for field in cleared})
    for field, value in changes.items():
        if isinstance(value, str) and field in ("name", "title", "color", "background"):
            value = value.strip()
        setattr(entity, field, value)
