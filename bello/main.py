from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI
from sqlalchemy.orm import Session

from . import __version__
from .access import BOARD_MANAGERS, Role, require_access
from .auth import get_current_user
from .board_view import (
    attachment_out,
    board_out,
    board_summary,
    card_out,
    checklist_out,
    comment_out,
    item_out,
    label_out,
    list_out,
    member_out,
    read_board,
    read_card,
    user_out,
)
from .config import Settings, get_settings
from .db import dispose_engine, get_session, init_db
from .errors import install_error_handlers
from .positions import Placement
from .schemas import (
    AttachmentIn,
    AttachmentOut,
    BoardIn,
    BoardOut,
    BoardPatch,
    BoardsPage,
    BoardView,
    CardDetail,
    CardIn,
    CardLabelIn,
    CardMemberIn,
    CardMove,
    CardOut,
    CardPatch,
    CardReorder,
    ChecklistIn,
    ChecklistItemIn,
    ChecklistItemOut,
    ChecklistItemPatch,
    ChecklistOut,
    CommentIn,
    CommentOut,
    Health,
    LabelIn,
    LabelOut,
    LabelPatch,
    ListIn,
    ListOut,
    ListPatch,
    ListReorder,
    MemberIn,
    MemberOut,
    MembersPage,
    Ok,
    PresignIn,
    PresignOut,
)
from .store import BoardStore, create_board, list_boards
from .uploads import presign_upload

logger = logging.getLogger(__name__)


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        stream=sys.stdout,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    configure_logging(settings.log_level)
    init_db(settings)
    logger.info("Bello API %s started (store scope: %s)", __version__, settings.store_scope)
    yield
    dispose_engine()


app = FastAPI(title="Bello API", version=__version__, lifespan=lifespan)
install_error_handlers(app)


# === Dependencies ===


def open_store(
    session: Session,
    board_id: str,
    user: str,
    required_roles: Optional[set[Role]] = None,
    include_closed: bool = False,
) -> BoardStore:
    access = require_access(session, board_id, user, required_roles, include_closed)
    return BoardStore(session, access)


def board_store(
    board_id: str,
    user: str = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> BoardStore:
    return open_store(session, board_id, user)


def manager_store(
    board_id: str,
    user: str = Depends(get_current_user),
    session: Session = Depends(get_session),
) -> BoardStore:
    return open_store(session, board_id, user, BOARD_MANAGERS)


# === Health & metadata ===


@app.get("/v1/health", response_model=Health)
def health() -> Health:
    return Health()


# === Board endpoints ===


@app.get("/v1/boards", response_model=BoardsPage)
def get_boards(user: str = Depends(get_current_user), session: Session = Depends(get_session)):
    return BoardsPage(boards=[board_summary(b, n) for b, n in list_boards(session, user)])


@app.post("/v1/boards", response_model=BoardOut, status_code=201)
def post_board(payload: BoardIn, user: str = Depends(get_current_user), session: Session = Depends(get_session)):
    board = create_board(session, user, payload.name, payload.description, payload.background)
    return board_out(board)


@app.get("/v1/boards/{board_id}", response_model=BoardView)
def get_board(store: BoardStore = Depends(board_store)):
    return read_board(store)


@app.patch("/v1/boards/{board_id}", response_model=BoardOut)
def patch_board(payload: BoardPatch, store: BoardStore = Depends(manager_store)):
    return board_out(store.update_board(payload.changes()))


@app.delete("/v1/boards/{board_id}", response_model=Ok)
def delete_board(board_id: str, user: str = Depends(get_current_user), session: Session = Depends(get_session)):
    # the owner may still delete a board they have closed
    open_store(session, board_id, user, include_closed=True).delete_board()
    return Ok()


# === Member endpoints ===


@app.get("/v1/boards/{board_id}/members", response_model=MembersPage)
def get_members(store: BoardStore = Depends(board_store)):
    members, owner = store.list_members()
    return MembersPage(members=[member_out(m) for m in members], owner=user_out(owner))


@app.post("/v1/boards/{board_id}/members", response_model=MemberOut, status_code=201)
def post_member(payload: MemberIn, store: BoardStore = Depends(manager_store)):
    return member_out(store.add_member(payload.email, payload.role))


@app.delete("/v1/boards/{board_id}/members/{user_id}", response_model=Ok)
def delete_member(user_id: str, store: BoardStore = Depends(manager_store)):
    store.remove_member(user_id)
    return Ok()


# === Label endpoints ===


@app.get("/v1/boards/{board_id}/labels", response_model=list[LabelOut])
def get_labels(store: BoardStore = Depends(board_store)):
    return [label_out(l) for l in store.list_labels()]


@app.post("/v1/boards/{board_id}/labels", response_model=LabelOut, status_code=201)
def post_label(payload: LabelIn, store: BoardStore = Depends(board_store)):
    return label_out(store.create_label(payload.name, payload.color))


@app.patch("/v1/boards/{board_id}/labels/{label_id}", response_model=LabelOut)
def patch_label(label_id: str, payload: LabelPatch, store: BoardStore = Depends(board_store)):
    return label_out(store.update_label(label_id, payload.changes()))


@app.delete("/v1/boards/{board_id}/labels/{label_id}", response_model=Ok)
def delete_label(label_id: str, store: BoardStore = Depends(board_store)):
    store.delete_label(label_id)
    return Ok()


# === List endpoints ===


@app.get("/v1/boards/{board_id}/lists", response_model=list[ListOut])
def get_lists(store: BoardStore = Depends(board_store)):
    return [list_out(l) for l in store.list_lists()]


@app.post("/v1/boards/{board_id}/lists", response_model=ListOut, status_code=201)
def post_list(payload: ListIn, store: BoardStore = Depends(board_store)):
    return list_out(store.create_list(payload.title))


@app.patch("/v1/boards/{board_id}/lists/reorder", response_model=Ok)
def reorder_lists(payload: ListReorder, store: BoardStore = Depends(board_store)):
    store.reorder_lists(payload.orderedIds)
    return Ok()


@app.patch("/v1/boards/{board_id}/lists/{list_id}", response_model=ListOut)
def patch_list(list_id: str, payload: ListPatch, store: BoardStore = Depends(board_store)):
    return list_out(store.update_list(list_id, payload.changes()))


@app.delete("/v1/boards/{board_id}/lists/{list_id}", response_model=Ok)
def delete_list(list_id: str, store: BoardStore = Depends(board_store)):
    store.delete_list(list_id)
    return Ok()


# === Card endpoints ===


@app.post("/v1/boards/{board_id}/cards", response_model=CardOut, status_code=201)
def post_card(payload: CardIn, store: BoardStore = Depends(board_store)):
    return card_out(store.create_card(payload.listId, payload.title))


@app.patch("/v1/boards/{board_id}/cards/reorder", response_model=Ok)
def reorder_cards(payload: CardReorder, store: BoardStore = Depends(board_store)):
    placements = [Placement(c.id, c.listId, c.position) for c in payload.cards]
    store.reorder_cards(placements)
    return Ok()


@app.get("/v1/boards/{board_id}/cards/{card_id}", response_model=CardDetail)
def get_card(card_id: str, store: BoardStore = Depends(board_store)):
    return read_card(store, card_id)


@app.patch("/v1/boards/{board_id}/cards/{card_id}", response_model=CardOut)
def patch_card(card_id: str, payload: CardPatch, store: BoardStore = Depends(board_store)):
    return card_out(store.update_card(card_id, payload.changes()))


@app.delete("/v1/boards/{board_id}/cards/{card_id}", response_model=Ok)
def delete_card(card_id: str, store: BoardStore = Depends(board_store)):
    store.delete_card(card_id)
    return Ok()


@app.post("/v1/boards/{board_id}/cards/{card_id}/move", response_model=CardOut)
def move_card(card_id: str, payload: CardMove, store: BoardStore = Depends(board_store)):
    return card_out(store.move_card(card_id, payload.listId, payload.index))


@app.post("/v1/boards/{board_id}/cards/{card_id}/labels", response_model=Ok, status_code=201)
def post_card_label(card_id: str, payload: CardLabelIn, store: BoardStore = Depends(board_store)):
    store.add_card_label(card_id, payload.labelId)
    return Ok()


@app.delete("/v1/boards/{board_id}/cards/{card_id}/labels/{label_id}", response_model=Ok)
def delete_card_label(card_id: str, label_id: str, store: BoardStore = Depends(board_store)):
    store.remove_card_label(card_id, label_id)
    return Ok()


@app.post("/v1/boards/{board_id}/cards/{card_id}/members", response_model=Ok, status_code=201)
def post_card_member(card_id: str, payload: CardMemberIn, store: BoardStore = Depends(board_store)):
    store.add_card_member(card_id, payload.userId)
    return Ok()


@app.delete("/v1/boards/{board_id}/cards/{card_id}/members/{user_id}", response_model=Ok)
def delete_card_member(card_id: str, user_id: str, store: BoardStore = Depends(board_store)):
    store.remove_card_member(card_id, user_id)
    return Ok()


# === Checklist endpoints ===


@app.post("/v1/boards/{board_id}/cards/{card_id}/checklists", response_model=ChecklistOut, status_code=201)
def post_checklist(card_id: str, payload: ChecklistIn, store: BoardStore = Depends(board_store)):
    return checklist_out(store.create_checklist(card_id, payload.title))


@app.patch("/v1/boards/{board_id}/cards/{card_id}/checklists/{checklist_id}", response_model=ChecklistOut)
def patch_checklist(
    card_id: str,
    checklist_id: str,
    payload: ChecklistIn,
    store: BoardStore = Depends(board_store),
):
    return checklist_out(store.update_checklist(card_id, checklist_id, payload.title))


@app.delete("/v1/boards/{board_id}/cards/{card_id}/checklists/{checklist_id}", response_model=Ok)
def delete_checklist(card_id: str, checklist_id: str, store: BoardStore = Depends(board_store)):
    store.delete_checklist(card_id, checklist_id)
    return Ok()


@app.post(
    "/v1/boards/{board_id}/cards/{card_id}/checklists/{checklist_id}/items",
    response_model=ChecklistItemOut,
    status_code=201,
)
def post_item(
    card_id: str,
    checklist_id: str,
    payload: ChecklistItemIn,
    store: BoardStore = Depends(board_store),
):
    return item_out(store.create_item(card_id, checklist_id, payload.title))


@app.patch(
    "/v1/boards/{board_id}/cards/{card_id}/checklists/{checklist_id}/items/{item_id}",
    response_model=ChecklistItemOut,
)
def patch_item(
    card_id: str,
    checklist_id: str,
    item_id: str,
    payload: ChecklistItemPatch,
    store: BoardStore = Depends(board_store),
):
    return item_out(store.update_item(card_id, checklist_id, item_id, payload.changes()))


@app.delete(
    "/v1/boards/{board_id}/cards/{card_id}/checklists/{checklist_id}/items/{item_id}",
    response_model=Ok,
)
def delete_item(card_id: str, checklist_id: str, item_id: str, store: BoardStore = Depends(board_store)):
    store.delete_item(card_id, checklist_id, item_id)
    return Ok()


# === Comment endpoints ===


@app.post("/v1/boards/{board_id}/cards/{card_id}/comments", response_model=CommentOut, status_code=201)
def post_comment(card_id: str, payload: CommentIn, store: BoardStore = Depends(board_store)):
    return comment_out(store.create_comment(card_id, payload.content))


@app.patch("/v1/boards/{board_id}/cards/{card_id}/comments/{comment_id}", response_model=CommentOut)
def patch_comment(
    card_id: str,
    comment_id: str,
    payload: CommentIn,
    store: BoardStore = Depends(board_store),
):
    return comment_out(store.update_comment(card_id, comment_id, payload.content))


@app.delete("/v1/boards/{board_id}/cards/{card_id}/comments/{comment_id}", response_model=Ok)
def delete_comment(card_id: str, comment_id: str, store: BoardStore = Depends(board_store)):
    store.delete_comment(card_id, comment_id)
    return Ok()


# === Attachment endpoints ===


@app.post("/v1/boards/{board_id}/cards/{card_id}/attachments", response_model=AttachmentOut, status_code=201)
def post_attachment(card_id: str, payload: AttachmentIn, store: BoardStore = Depends(board_store)):
    attachment = store.create_attachment(
        card_id,
        payload.filename,
        payload.originalFilename,
        payload.contentType,
        payload.size,
        payload.key,
    )
    return attachment_out(attachment)


@app.delete("/v1/boards/{board_id}/cards/{card_id}/attachments/{attachment_id}", response_model=Ok)
def delete_attachment(card_id: str, attachment_id: str, store: BoardStore = Depends(board_store)):
    store.delete_attachment(card_id, attachment_id)
    return Ok()


# === Uploads ===


@app.post("/v1/uploads/presign", response_model=PresignOut)
def presign(
    payload: PresignIn,
    user: str = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
):
    upload = presign_upload(settings, payload.filename, payload.contentType, payload.prefix)
    return PresignOut(uploadUrl=upload.upload_url, key=upload.key, expiresIn=upload.expires_in)
