"""Board access gate.

Every operation on a board resolves the caller's role through
:func:`check_access` before it reads or writes anything beneath the board.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from .db import Board, BoardMember
from .errors import Forbidden

logger = logging.getLogger(__name__)


class Role(enum.Enum):
    OWNER = "owner"
    ADMIN = "admin"
    MEMBER = "member"
    VIEWER = "viewer"

    @property
    def manages_board(self) -> bool:
        return self in (Role.OWNER, Role.ADMIN)


# roles a membership row may hold; ownership lives on the board itself
MEMBER_ROLES = (Role.ADMIN, Role.MEMBER, Role.VIEWER)
BOARD_MANAGERS = frozenset({Role.ADMIN})


@dataclass(frozen=True)
class Access:
    board_id: str
    user_id: str
    allowed: bool
    role: Optional[Role] = None


def check_access(
    session: Session,
    board_id: str,
    user_id: str,
    required_roles: Optional[Iterable[Role]] = None,
    include_closed: bool = False,
) -> Access:
    """Resolve ``user_id``'s access to ``board_id``.

    Missing boards, and closed ones unless ``include_closed`` is set, deny
    access. The owner is always allowed and bypasses ``required_roles``.
    Anyone else needs a membership row whose role is in ``required_roles``
    when that is given.
    """
    stmt = select(Board.owner_id).where(Board.id == board_id)
    if not include_closed:
        stmt = stmt.where(Board.is_closed.is_(False))
    owner_id = session.execute(stmt).scalar_one_or_none()
    if owner_id is None:
        return Access(board_id, user_id, allowed=False)

    if owner_id == user_id:
        return Access(board_id, user_id, allowed=True, role=Role.OWNER)

    stored = session.execute(
        select(BoardMember.role).where(
            BoardMember.board_id == board_id, BoardMember.user_id == user_id
        )
    ).scalar_one_or_none()
    if stored is None:
        return Access(board_id, user_id, allowed=False)

    role = Role(stored)
    if required_roles is not None and role not in set(required_roles):
        return Access(board_id, user_id, allowed=False, role=role)
    return Access(board_id, user_id, allowed=True, role=role)


def require_access(
    session: Session,
    board_id: str,
    user_id: str,
    required_roles: Optional[Iterable[Role]] = None,
    include_closed: bool = False,
) -> Access:
    access = check_access(session, board_id, user_id, required_roles, include_closed)
    if not access.allowed:
        logger.warning("Denied %s on board %s (role=%s)", user_id, board_id, access.role)
        raise Forbidden("Forbidden")
    return access
