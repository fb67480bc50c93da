from token_rotation.repositories.token_audit import TokenAuditRepository

__all__ = ["TokenAuditRepository"]
