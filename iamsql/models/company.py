"""
models/company.py
-----------------
Company ORM row.

A company is an organisational unit identified by its normalized name and
placed in the hierarchy by its DN. The hierarchy itself is never stored:
it is recomputed from the DNs when the cache is rebuilt.
"""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from iamsql.db.base import Base


class CompanyRecord(Base):
    __tablename__ = "iam_company"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    dn: Mapped[str] = mapped_column(String(1024), nullable=False, index=True)

    def __repr__(self) -> str:
        return f"<CompanyRecord id={self.id} dn={self.dn}>"
