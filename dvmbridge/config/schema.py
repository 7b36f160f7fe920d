"""Marshmallow schema for inbound CONFIG payloads.

Payloads are applied all-or-nothing: a message with a missing, mistyped
or out-of-range field is rejected and the running configuration is kept.
"""

from __future__ import annotations

from typing import Any, Dict

import msgspec
from marshmallow import EXCLUDE, Schema, ValidationError, fields, post_load, pre_load, validate

from ..const import MAX_AUTOSEND_INTERVAL
from ..protocol.topics import InvalidDeviceId, validate_device_id
from .model import DeviceConfig


class ConfigPayloadError(ValueError):
    """Raised when a CONFIG payload cannot be applied."""

    def __init__(self, message: str, errors: Any = None) -> None:
        super().__init__(message)
        self.errors = errors


def _validate_server(value: str) -> None:
    if not value.strip():
        raise ValidationError("server must not be blank")


def _validate_identity(value: str) -> None:
    try:
        validate_device_id(value)
    except InvalidDeviceId as exc:
        raise ValidationError(str(exc)) from exc


class DeviceConfigSchema(Schema):
    """Declarative validation schema for the CONFIG topic."""

    class Meta:
        unknown = EXCLUDE

    server = fields.Str(required=True, validate=_validate_server)
    device_id = fields.Str(required=True, data_key="ID", validate=_validate_identity)
    mqtt_publish_interval = fields.Int(
        required=True,
        strict=True,
        validate=validate.Range(min=0, max=MAX_AUTOSEND_INTERVAL),
    )

    @pre_load
    def reject_boolean_interval(self, data: Dict[str, Any], **kwargs: Any) -> Dict[str, Any]:
        # bool is an Integral subclass and would otherwise pass strict=True.
        if isinstance(data.get("mqtt_publish_interval"), bool):
            raise ValidationError("Not a valid integer.", field_name="mqtt_publish_interval")
        return data

    @post_load
    def make_config(self, data: Dict[str, Any], **kwargs: Any) -> DeviceConfig:
        return DeviceConfig(
            server=data["server"].strip(),
            device_id=data["device_id"],
            interval=data["mqtt_publish_interval"],
            default_applied=True,
        )


_SCHEMA = DeviceConfigSchema()


def parse_config_payload(payload: bytes) -> DeviceConfig:
    """Decode and validate a CONFIG message body."""
    try:
        document = msgspec.json.decode(payload)
    except msgspec.DecodeError as exc:
        raise ConfigPayloadError(f"CONFIG payload is not valid JSON: {exc}") from exc

    if not isinstance(document, dict):
        raise ConfigPayloadError("CONFIG payload must be a JSON object")

    try:
        return _SCHEMA.load(document)
    except ValidationError as exc:
        raise ConfigPayloadError(f"CONFIG payload rejected: {exc.messages}", exc.messages) from exc
