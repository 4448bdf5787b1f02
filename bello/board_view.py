"""Read-side composition of boards and cards for initial render."""
from __future__ import annotations

from collections import defaultdict
from typing import Iterable, Optional

from sqlalchemy import func, select

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
from .positions import CARD_ORDER
from .schemas import (
    AttachmentOut,
    BoardCardOut,
    BoardListOut,
    BoardOut,
    BoardSummary,
    BoardView,
    CardDetail,
    CardMemberOut,
    CardOut,
    ChecklistItemOut,
    ChecklistOut,
    CommentOut,
    LabelOut,
    ListOut,
    MemberOut,
    UserSummary,
)
from .store import BoardStore


# === Converters ===


def user_out(user: Optional[User]) -> Optional[UserSummary]:
    if user is None:
        return None
    return UserSummary(id=user.id, name=user.name, email=user.email, image=user.image)


def board_out(board: Board) -> BoardOut:
    return BoardOut(
        id=board.id,
        name=board.name,
        description=board.description,
        background=board.background,
        ownerId=board.owner_id,
        isClosed=board.is_closed,
        createdAt=board.created_at,
    )


def board_summary(board: Board, member_count: int) -> BoardSummary:
    return BoardSummary(**board_out(board).model_dump(), memberCount=member_count)


def member_out(member: BoardMember) -> MemberOut:
    return MemberOut(
        id=member.id,
        boardId=member.board_id,
        userId=member.user_id,
        role=member.role,
        createdAt=member.created_at,
        user=user_out(member.user),
    )


def label_out(label: Label) -> LabelOut:
    return LabelOut(id=label.id, boardId=label.board_id, name=label.name, color=label.color)


def list_out(board_list: BoardList) -> ListOut:
    return ListOut(
        id=board_list.id,
        boardId=board_list.board_id,
        title=board_list.title,
        position=board_list.position,
        isArchived=board_list.is_archived,
        createdAt=board_list.created_at,
    )


def card_out(card: Card) -> CardOut:
    return CardOut(
        id=card.id,
        listId=card.list_id,
        title=card.title,
        description=card.description,
        position=card.position,
        dueDate=card.due_date,
        coverColor=card.cover_color,
        isArchived=card.is_archived,
        createdAt=card.created_at,
    )


def card_member_out(link: CardMember) -> CardMemberOut:
    return CardMemberOut(id=link.id, userId=link.user_id, createdAt=link.created_at, user=user_out(link.user))


def item_out(item: ChecklistItem) -> ChecklistItemOut:
    return ChecklistItemOut(
        id=item.id,
        checklistId=item.checklist_id,
        title=item.title,
        isChecked=item.is_checked,
        position=item.position,
    )


def checklist_out(checklist: Checklist, items: Iterable[ChecklistItem] = ()) -> ChecklistOut:
    return ChecklistOut(
        id=checklist.id,
        cardId=checklist.card_id,
        title=checklist.title,
        position=checklist.position,
        items=[item_out(i) for i in items],
    )


def comment_out(comment: Comment) -> CommentOut:
    return CommentOut(
        id=comment.id,
        cardId=comment.card_id,
        userId=comment.user_id,
        content=comment.content,
        createdAt=comment.created_at,
        updatedAt=comment.updated_at,
        user=user_out(comment.user),
    )


def attachment_out(attachment: Attachment) -> AttachmentOut:
    return AttachmentOut(
        id=attachment.id,
        cardId=attachment.card_id,
        userId=attachment.user_id,
        filename=attachment.filename,
        originalFilename=attachment.original_filename,
        contentType=attachment.content_type,
        size=attachment.size,
        key=attachment.storage_key,
        createdAt=attachment.created_at,
    )


# === Aggregates ===


def read_board(store: BoardStore) -> BoardView:
    """Board, its visible lists and cards in position order, roster and labels."""
    session = store.session
    board = store.board()
    lists = store.list_lists()
    list_ids = [l.id for l in lists]

    cards_by_list: dict[str, list[Card]] = defaultdict(list)
    labels_by_card: dict[str, list[LabelOut]] = defaultdict(list)
    member_counts: dict[str, int] = {}
    if list_ids:
        cards = session.execute(
            select(Card)
            .where(Card.list_id.in_(list_ids), Card.is_archived.is_(False))
            .order_by(*CARD_ORDER)
        ).scalars().all()
        for card in cards:
            cards_by_list[card.list_id].append(card)
        card_ids = [c.id for c in cards]
        if card_ids:
            for card_id, label in session.execute(
                select(CardLabel.card_id, Label)
                .join(Label, CardLabel.label_id == Label.id)
                .where(CardLabel.card_id.in_(card_ids))
                .order_by(Label.created_at, Label.id)
            ).all():
                labels_by_card[card_id].append(label_out(label))
            member_counts = dict(
                session.execute(
                    select(CardMember.card_id, func.count())
                    .where(CardMember.card_id.in_(card_ids))
                    .group_by(CardMember.card_id)
                ).all()
            )

    members, _owner = store.list_members()
    return BoardView(
        board=board_out(board),
        myRole=store.role.value,
        lists=[
            BoardListOut(
                **list_out(l).model_dump(),
                cards=[
                    BoardCardOut(
                        **card_out(c).model_dump(),
                        labels=labels_by_card[c.id],
                        memberCount=member_counts.get(c.id, 0),
                    )
                    for c in cards_by_list[l.id]
                ],
            )
            for l in lists
        ],
        members=[member_out(m) for m in members],
        labels=[label_out(l) for l in store.list_labels()],
    )


def read_card(store: BoardStore, card_id: str) -> CardDetail:
    session = store.session
    card = store.get_card(card_id)
    labels = session.execute(
        select(Label)
        .join(CardLabel, CardLabel.label_id == Label.id)
        .where(CardLabel.card_id == card.id)
        .order_by(Label.created_at, Label.id)
    ).scalars().all()
    members = session.execute(
        select(CardMember).where(CardMember.card_id == card.id).order_by(CardMember.created_at, CardMember.id)
    ).scalars().all()
    checklists = session.execute(
        select(Checklist)
        .where(Checklist.card_id == card.id)
        .order_by(Checklist.position, Checklist.created_at, Checklist.id)
    ).scalars().all()
    items_by_checklist: dict[str, list[ChecklistItem]] = defaultdict(list)
    if checklists:
        for item in session.execute(
            select(ChecklistItem)
            .where(ChecklistItem.checklist_id.in_([c.id for c in checklists]))
            .order_by(ChecklistItem.position, ChecklistItem.created_at, ChecklistItem.id)
        ).scalars():
            items_by_checklist[item.checklist_id].append(item)
    comments = session.execute(
        select(Comment).where(Comment.card_id == card.id).order_by(Comment.created_at.desc(), Comment.id)
    ).scalars().all()
    attachments = session.execute(
        select(Attachment)
        .where(Attachment.card_id == card.id)
        .order_by(Attachment.created_at.desc(), Attachment.id)
    ).scalars().all()
    return CardDetail(
        card=card_out(card),
        labels=[label_out(l) for l in labels],
        members=[card_member_out(m) for m in members],
        checklists=[checklist_out(c, items_by_checklist[c.id]) for c in checklists],
        comments=[comment_out(c) for c in comments],
        attachments=[attachment_out(a) for a in attachments],
    )
