"""
models/__init__.py
------------------
Re-export all models so table creation can import Base and discover
all tables via a single import:

    from iamsql.models import Base
"""

from iamsql.db.base import Base
from iamsql.models.company import CompanyRecord
from iamsql.models.credential import CredentialRecord
from iamsql.models.group import GroupRecord, MembershipRecord
from iamsql.models.user import UserRecord

__all__ = [
    "Base",
    "CompanyRecord",
    "CredentialRecord",
    "GroupRecord",
    "MembershipRecord",
    "UserRecord",
]
