"""Marshmallow schema for audit entries (:class:`TokenOperation`)."""

from __future__ import annotations

from typing import Any

from marshmallow import EXCLUDE, Schema, fields, post_load

from token_rotation.services.rotation.dto import OperationType, TokenOperation

AUDIT_SERVICE_NAME = "token-rotation"
AUDIT_SCHEMA_VERSION = "1"


class TokenOperationSchema(Schema):
    """JSON shape of one audit entry in the recent-history list."""

    class Meta:
        unknown = EXCLUDE

    operation_type = fields.Enum(OperationType, by_value=True, required=True)
    token_id = fields.String(required=True)
    family_id = fields.String(required=True)
    user_id = fields.String(required=True)
    timestamp = fields.AwareDateTime(required=True, default_timezone=None)
    success = fields.Boolean(required=True)
    session_id = fields.String(load_default=None, allow_none=True)
    ip_address = fields.String(load_default=None, allow_none=True)
    user_agent = fields.String(load_default=None, allow_none=True)
    error_code = fields.String(load_default=None, allow_none=True)
    meta_data = fields.Dict(
        data_key="metadata", attribute="metadata", load_default=None, allow_none=True
    )
    # Dump-only envelope fields
    service = fields.Constant(AUDIT_SERVICE_NAME, dump_only=True)
    schema_version = fields.Constant(AUDIT_SCHEMA_VERSION, dump_only=True)

    @post_load
    def make_operation(self, data: dict[str, Any], **_: Any) -> TokenOperation:
        return TokenOperation(**data)


token_operation_schema = TokenOperationSchema()
