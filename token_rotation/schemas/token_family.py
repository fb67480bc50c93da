"""Marshmallow schema (de)serializing :class:`TokenFamily` records for the keyed store."""

from __future__ import annotations

from typing import Any

from marshmallow import EXCLUDE, Schema, fields, post_load, validate

from token_rotation.services.rotation.dto import TokenFamily


class TokenFamilySchema(Schema):
    """JSON shape of a token family as stored under ``token_family:{family_id}``."""

    class Meta:
        unknown = EXCLUDE

    family_id = fields.String(required=True, validate=validate.Length(min=1, max=200))
    user_id = fields.String(required=True, validate=validate.Length(min=1, max=200))
    session_id = fields.String(load_default=None, allow_none=True)
    created_at = fields.AwareDateTime(required=True, default_timezone=None)
    last_rotated_at = fields.AwareDateTime(required=True, default_timezone=None)
    rotation_count = fields.Integer(required=True, validate=validate.Range(min=0))
    is_active = fields.Boolean(required=True)
    meta_data = fields.Dict(data_key="metadata", attribute="metadata", load_default=dict)
    version = fields.Integer(load_default=0, validate=validate.Range(min=0))

    @post_load
    def make_family(self, data: dict[str, Any], **_: Any) -> TokenFamily:
        return TokenFamily(**data)


token_family_schema = TokenFamilySchema()
