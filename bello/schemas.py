from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

MemberRoleName = Literal["admin", "member", "viewer"]


class ErrorEnvelope(BaseModel):
    code: str
    message: str
    details: Optional[dict[str, Any]] = None


class Health(BaseModel):
    status: str = "ok"


class UserSummary(BaseModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    image: Optional[str] = None


class Ok(BaseModel):
    ok: bool = True


_ATTRIBUTES = {
    "isClosed": "is_closed",
    "isArchived": "is_archived",
    "isChecked": "is_checked",
    "dueDate": "due_date",
    "coverColor": "cover_color",
}


class Patch(BaseModel):
    """Partial update; only fields present in the request are applied."""

    def changes(self) -> dict[str, Any]:
        return {_ATTRIBUTES.get(k, k): v for k, v in self.model_dump(exclude_unset=True).items()}


# === Boards ===


class BoardIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    background: Optional[str] = Field(default=None, max_length=50)


class BoardPatch(Patch):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    background: Optional[str] = Field(default=None, max_length=50)
    isClosed: Optional[bool] = None


class BoardOut(BaseModel):
    id: str
    name: str
    description: Optional[str]
    background: str
    ownerId: str
    isClosed: bool
    createdAt: datetime


class BoardSummary(BoardOut):
    memberCount: int


class BoardsPage(BaseModel):
    boards: list[BoardSummary]


# === Members ===


class MemberIn(BaseModel):
    email: str = Field(min_length=3, max_length=320, pattern=r"^[^@\s]+@[^@\s]+$")
    role: MemberRoleName = "member"


class MemberOut(BaseModel):
    id: str
    boardId: str
    userId: str
    role: MemberRoleName
    createdAt: datetime
    user: UserSummary


class MembersPage(BaseModel):
    members: list[MemberOut]
    owner: Optional[UserSummary]


# === Labels ===


class LabelIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    color: str = Field(min_length=1, max_length=50)


class LabelPatch(Patch):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, min_length=1, max_length=50)


class LabelOut(BaseModel):
    id: str
    boardId: str
    name: str
    color: str


# === Lists ===


class ListIn(BaseModel):
    title: str = Field(min_length=1, max_length=200)


class ListPatch(Patch):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    isArchived: Optional[bool] = None


class ListOut(BaseModel):
    id: str
    boardId: str
    title: str
    position: int
    isArchived: bool
    createdAt: datetime


class ListReorder(BaseModel):
    orderedIds: list[str] = Field(min_length=1)


# === Cards ===


class CardIn(BaseModel):
    listId: str = Field(min_length=1)
    title: str = Field(min_length=1, max_length=500)


class CardPatch(Patch):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=5000)
    dueDate: Optional[datetime] = None
    coverColor: Optional[str] = Field(default=None, max_length=50)
    isArchived: Optional[bool] = None


class CardOut(BaseModel):
    id: str
    listId: str
    title: str
    description: Optional[str]
    position: int
    dueDate: Optional[datetime]
    coverColor: Optional[str]
    isArchived: bool
    createdAt: datetime


class CardPlacement(BaseModel):
    id: str = Field(min_length=1)
    listId: str = Field(min_length=1)
    position: int = Field(ge=0)


class CardReorder(BaseModel):
    cards: list[CardPlacement] = Field(min_length=1)


class CardMove(BaseModel):
    listId: str = Field(min_length=1)
    index: int = Field(ge=0)


class CardLabelIn(BaseModel):
    labelId: str = Field(min_length=1)


class CardMemberIn(BaseModel):
    userId: str = Field(min_length=1)


class CardMemberOut(BaseModel):
    id: str
    userId: str
    createdAt: datetime
    user: UserSummary


# === Checklists ===


class ChecklistIn(BaseModel):
    title: str = Field(min_length=1, max_length=500)


class ChecklistItemIn(BaseModel):
    title: str = Field(min_length=1, max_length=500)


class ChecklistItemPatch(Patch):
    title: Optional[str] = Field(default=None, min_length=1, max_length=500)
    isChecked: Optional[bool] = None


class ChecklistItemOut(BaseModel):
    id: str
    checklistId: str
    title: str
    isChecked: bool
    position: int


class ChecklistOut(BaseModel):
    id: str
    cardId: str
    title: str
    position: int
    items: list[ChecklistItemOut] = []


# === Comments ===


class CommentIn(BaseModel):
    content: str = Field(min_length=1, max_length=5000)


class CommentOut(BaseModel):
    id: str
    cardId: str
    userId: str
    content: str
    createdAt: datetime
    updatedAt: datetime
    user: UserSummary


# === Attachments ===


class AttachmentIn(BaseModel):
    filename: str = Field(min_length=1, max_length=255)
    originalFilename: str = Field(min_length=1, max_length=255)
    contentType: str = Field(min_length=1, max_length=255)
    size: int = Field(ge=0)
    key: str = Field(min_length=1)


class AttachmentOut(BaseModel):
    id: str
    cardId: str
    userId: str
    filename: str
    originalFilename: str
    contentType: str
    size: int
    key: str
    createdAt: datetime


class PresignIn(BaseModel):
    filename: str = Field(min_length=1, max_length=255)
    contentType: str = Field(min_length=1, max_length=255)
    prefix: Optional[str] = Field(default=None, max_length=200)


class PresignOut(BaseModel):
    uploadUrl: str
    key: str
    expiresIn: int


# === Aggregates ===


class BoardCardOut(CardOut):
    labels: list[LabelOut]
    memberCount: int


class BoardListOut(ListOut):
    cards: list[BoardCardOut]


class BoardView(BaseModel):
    board: BoardOut
    myRole: str
    lists: list[BoardListOut]
    members: list[MemberOut]
    labels: list[LabelOut]


class CardDetail(BaseModel):
    card: CardOut
    labels: list[LabelOut]
    members: list[CardMemberOut]
    checklists: list[ChecklistOut]
    comments: list[CommentOut]
    attachments: list[AttachmentOut]
