"""
models/credential.py
--------------------
User credential ORM row.

  - salt + value: the salted hash. A null salt with a non-null value is a
    legacy plain-text credential, still accepted by authentication.
  - locked_at / locked_by: set while the account is locked. Locking clears
    salt and value.
  - isolated: company the user came from while quarantined. Stored as a
    plain string so the company can be deleted meanwhile.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from iamsql.db.base import Base, TimestampMixin


class CredentialRecord(Base, TimestampMixin):
    __tablename__ = "iam_credential"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(255),
        ForeignKey("iam_user.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    salt: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    value: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    locked_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    isolated: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<CredentialRecord user_id={self.user_id} locked={self.locked_at is not None}>"
