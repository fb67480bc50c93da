from token_rotation.schemas.token_family import TokenFamilySchema, token_family_schema
from token_rotation.schemas.token_operation import TokenOperationSchema, token_operation_schema

__all__ = [
    "TokenFamilySchema",
    "TokenOperationSchema",
    "token_family_schema",
    "token_operation_schema",
]
