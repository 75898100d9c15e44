"""
Per-topic message codecs.

The bridge treats message encoding as opaque: a topic's type tag selects a
codec from the registry, and the codec turns a local-bus message into bytes
and back.
"""

import json
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, ValidationError

from topicbridge.core.errors import ConfigError, DecodeError, EncodeError, ExitCode


@runtime_checkable
class Codec(Protocol):
    """Serializer for one message type."""

    def encode(self, message: Any) -> bytes: ...

    def decode(self, data: bytes) -> Any: ...


class BytesCodec:
    """Passes raw bytes through unchanged."""

    def encode(self, message: Any) -> bytes:
        if not isinstance(message, (bytes, bytearray, memoryview)):
            raise EncodeError(f"Expected bytes, got {type(message).__name__}")
        return bytes(message)

    def decode(self, data: bytes) -> bytes:
        return bytes(data)


class StringCodec:
    """UTF-8 text."""

    def encode(self, message: Any) -> bytes:
        if not isinstance(message, str):
            raise EncodeError(f"Expected str, got {type(message).__name__}")
        return message.encode("utf-8")

    def decode(self, data: bytes) -> str:
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError(f"Invalid UTF-8 payload: {exc}") from exc


class JsonCodec:
    """Compact JSON for plain Python values."""

    def encode(self, message: Any) -> bytes:
        try:
            return json.dumps(message, separators=(",", ":")).encode("utf-8")
        except (TypeError, ValueError) as exc:
            raise EncodeError(f"Message is not JSON serializable: {exc}") from exc

    def decode(self, data: bytes) -> Any:
        try:
            return json.loads(data)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise DecodeError(f"Invalid JSON payload: {exc}") from exc


class ModelCodec:
    """JSON codec bound to one pydantic model class."""

    def __init__(self, model: type[BaseModel]) -> None:
        self.model = model

    def encode(self, message: Any) -> bytes:
        if isinstance(message, self.model):
            return message.model_dump_json().encode("utf-8")
        # Accept plain mappings by validating them into the model first
        try:
            return self.model.model_validate(message).model_dump_json().encode("utf-8")
        except ValidationError as exc:
            raise EncodeError(f"Message is not a valid {self.model.__name__}: {exc}") from exc

    def decode(self, data: bytes) -> BaseModel:
        try:
            return self.model.model_validate_json(data)
        except ValidationError as exc:
            raise DecodeError(f"Payload is not a valid {self.model.__name__}: {exc}") from exc


class CodecRegistry:
    """Type tag to codec lookup."""

    def __init__(self, codecs: dict[str, Codec] | None = None) -> None:
        self._codecs: dict[str, Codec] = dict(codecs or {})

    @classmethod
    def with_defaults(cls) -> "CodecRegistry":
        """Registry holding the built-in ``bytes``, ``raw``, ``string`` and ``json`` codecs."""
        raw = BytesCodec()
        return cls(
            {
                "bytes": raw,
                "raw": raw,
                "string": StringCodec(),
                "json": JsonCodec(),
            }
        )

    def register(self, type_tag: str, codec: Codec) -> None:
        if not isinstance(codec, Codec):
            raise TypeError(f"Expected Codec, got {type(codec)}")
        self._codecs[type_tag] = codec

    def register_model(self, type_tag: str, model: type[BaseModel]) -> None:
        """Register a pydantic model under a type tag."""
        self.register(type_tag, ModelCodec(model))

    def resolve(self, type_tag: str) -> Codec:
        """
        Look up the codec for a type tag.

        Raises:
            ConfigError: If no codec is registered for the tag
        """
        codec = self._codecs.get(type_tag)
        if codec is None:
            raise ConfigError(
                f"No codec registered for type '{type_tag}' (known: {', '.join(self.list_tags())})",
                code=ExitCode.INVALID_CONFIG,
            )
        return codec

    def __contains__(self, type_tag: str) -> bool:
        return type_tag in self._codecs

    def list_tags(self) -> list[str]:
        return list(self._codecs)
