"""
models/user.py
--------------
User ORM row.

Mails are stored as a single column, several addresses separated by ","
or ";". Credentials live in their own table (see models/credential.py) so
the user row never carries secrets.
"""

from typing import Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from iamsql.db.base import Base


class UserRecord(Base):
    __tablename__ = "iam_user"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    mails: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # No foreign key: the quarantine company has no row, and deleting a
    # company leaves its users in place
    company_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<UserRecord id={self.id} company_id={self.company_id}>"
