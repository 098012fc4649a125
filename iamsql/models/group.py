"""
models/group.py
---------------
Group and membership ORM rows.

A membership row is an edge from a group to exactly one of:
  - a user (user_id set, sub_group_id null), or
  - another group (sub_group_id set, user_id null).
"""

from typing import Optional

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from iamsql.db.base import Base


class GroupRecord(Base):
    __tablename__ = "iam_group"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    dn: Mapped[str] = mapped_column(String(1024), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<GroupRecord id={self.id} dn={self.dn}>"


class MembershipRecord(Base):
    __tablename__ = "iam_membership"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("iam_group.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        ForeignKey("iam_user.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    sub_group_id: Mapped[Optional[str]] = mapped_column(
        String(255),
        ForeignKey("iam_group.id", ondelete="CASCADE"),
        nullable=True,
    )

    def __repr__(self) -> str:
        target = self.user_id or self.sub_group_id
        return f"<MembershipRecord group_id={self.group_id} member={target}>"
