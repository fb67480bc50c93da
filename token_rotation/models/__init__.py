from token_rotation.models.base import Base
from token_rotation.models.token_audit import TokenAuditRecord

__all__ = [
    "Base",
    "TokenAuditRecord",
]
