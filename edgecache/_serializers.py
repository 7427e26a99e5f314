from __future__ import annotations

import base64
import binascii
import json
import typing as tp

from edgecache._exceptions import ParseError
from edgecache._models import ResponseEnvelope

__all__ = ("BaseSerializer", "JSONSerializer", "DurableRecord", "wrap_durable", "unwrap_durable")

BASE64_ENCODING = "base64"

# Entries written before the status field existed were always successful responses.
DEFAULT_STATUS = 200


class BaseSerializer:
    def dumps(self, envelope: ResponseEnvelope) -> str:
        raise NotImplementedError()

    def loads(self, data: tp.Union[str, bytes]) -> ResponseEnvelope:
        raise NotImplementedError()

    def to_dict(self, envelope: ResponseEnvelope) -> tp.Dict[str, tp.Any]:
        raise NotImplementedError()

    def from_dict(self, data: tp.Any) -> ResponseEnvelope:
        raise NotImplementedError()


class JSONSerializer(BaseSerializer):
    """A json-based serializer for cache envelopes."""

    def to_dict(self, envelope: ResponseEnvelope) -> tp.Dict[str, tp.Any]:
        """
        Converts an envelope into its wire structure.

        Text bodies are kept as-is so that entries stay readable in the
        key/value console; anything that is not valid UTF-8 is base64 encoded.
        """
        entry: tp.Dict[str, tp.Any] = {
            "status": envelope.status,
            "headers": [[key, value] for key, value in envelope.headers],
        }
        try:
            entry["body"] = envelope.body.decode("utf-8")
        except UnicodeDecodeError:
            entry["body"] = base64.b64encode(envelope.body).decode("ascii")
            entry["body_encoding"] = BASE64_ENCODING
        return entry

    def from_dict(self, data: tp.Any) -> ResponseEnvelope:
        if not isinstance(data, dict):
            raise ParseError(f"Cache entry must be an object, got {type(data).__name__}")

        headers = data.get("headers")
        if not isinstance(headers, list) or not all(
            isinstance(pair, (list, tuple))
            and len(pair) == 2
            and isinstance(pair[0], str)
            and isinstance(pair[1], str)
            for pair in headers
        ):
            raise ParseError("Cache entry headers must be a list of [name, value] string pairs")

        body = data.get("body")
        if not isinstance(body, str):
            raise ParseError("Cache entry body must be a string")

        encoding = data.get("body_encoding")
        if encoding is None:
            raw_body = body.encode("utf-8")
        elif encoding == BASE64_ENCODING:
            try:
                raw_body = base64.b64decode(body.encode("ascii"), validate=True)
            except (binascii.Error, UnicodeEncodeError) as exc:
                raise ParseError("Cache entry body is not valid base64") from exc
        else:
            raise ParseError(f"Unknown cache entry body encoding: {encoding!r}")

        status = data.get("status", DEFAULT_STATUS)
        if isinstance(status, bool) or not isinstance(status, int):
            raise ParseError(f"Cache entry status must be an integer, got {status!r}")

        try:
            return ResponseEnvelope(
                status=status,
                headers=tuple((key, value) for key, value in headers),
                body=raw_body,
            )
        except ValueError as exc:
            raise ParseError(str(exc)) from exc

    def dumps(self, envelope: ResponseEnvelope) -> str:
        return json.dumps(self.to_dict(envelope), ensure_ascii=False)

    def loads(self, data: tp.Union[str, bytes]) -> ResponseEnvelope:
        try:
            decoded = json.loads(data)
        except (ValueError, UnicodeDecodeError) as exc:
            raise ParseError("Cache entry is not valid JSON") from exc
        return self.from_dict(decoded)


class DurableRecord(tp.TypedDict):
    data: tp.Any
    """The serialized envelope structure."""

    expiration: int
    """Epoch milliseconds after which the record is dead; 0 means it never expires."""


def wrap_durable(entry: tp.Any, expiration_ms: int) -> str:
    record: DurableRecord = {"data": entry, "expiration": expiration_ms}
    return json.dumps(record, ensure_ascii=False)


def unwrap_durable(data: tp.Union[str, bytes]) -> DurableRecord:
    try:
        record = json.loads(data)
    except (ValueError, UnicodeDecodeError) as exc:
        raise ParseError("Durable record is not valid JSON") from exc

    if not isinstance(record, dict) or "data" not in record:
        raise ParseError("Durable record must be an object with a `data` field")

    expiration = record.get("expiration", 0)
    if isinstance(expiration, bool) or not isinstance(expiration, (int, float)):
        raise ParseError(f"Durable record expiration must be a number, got {expiration!r}")

    return DurableRecord(data=record["data"], expiration=int(expiration))
