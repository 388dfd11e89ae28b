"""Message framing for the upload, acknowledgement and download topics.

Every message travels as a Kafka record whose key is the variant tag
(``start``, ``data``, ``finish``, ``abort``, ``error``) and whose value is a
UTF-8 JSON object. Binary payloads are base64 encoded.
"""

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, ClassVar, Dict, Optional, Type, Union

from common.types import ArchiveKey


class MalformedMessageError(ValueError):
    """
    Raised when an inbound record cannot be decoded into a protocol message.
    ``key`` is set when owner and archive name could still be recovered.
    """

    def __init__(self, message: str, key: Optional[ArchiveKey] = None):
        super().__init__(message)
        self.key = key


def _text(raw: Union[bytes, str, None]) -> str:
    if raw is None:
        raise MalformedMessageError("Record has no key or value")
    if isinstance(raw, bytes):
        try:
            return raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise MalformedMessageError(f"Record is not valid UTF-8: {e}")
    return raw


def _recover_key(obj: Dict[str, Any]) -> Optional[ArchiveKey]:
    owner = obj.get('owner', obj.get('userId'))
    name = obj.get('archiveName')
    if isinstance(owner, str) and isinstance(name, str):
        return ArchiveKey(owner, name)
    return None


def _require(obj: Dict[str, Any], field: str, kind: type) -> Any:
    value = obj.get(field)
    # bool is an int subclass and never a valid counter
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise MalformedMessageError(
            f"Field '{field}' must be of type {kind.__name__}",
            key=_recover_key(obj),
        )
    return value


@dataclass(frozen=True)
class UploadMessage:
    """Common part of all upload stream messages."""
    KEY: ClassVar[str] = ""

    owner: str
    archive_name: str

    @property
    def archive_key(self) -> ArchiveKey:
        return ArchiveKey(self.owner, self.archive_name)

    @classmethod
    def _base_fields(cls, obj: Dict[str, Any]) -> Dict[str, Any]:
        owner = obj.get('owner', obj.get('userId'))
        if not isinstance(owner, str):
            raise MalformedMessageError("Field 'owner' must be of type str")
        return {
            'owner': owner,
            'archive_name': _require(obj, 'archiveName', str),
        }

    @classmethod
    def from_value(cls, obj: Dict[str, Any]) -> 'UploadMessage':
        return cls(**cls._base_fields(obj))


@dataclass(frozen=True)
class UploadStart(UploadMessage):
    KEY: ClassVar[str] = "start"

    iv: Optional[str] = None

    @classmethod
    def from_value(cls, obj: Dict[str, Any]) -> 'UploadStart':
        iv = obj.get('iv')
        if iv is not None and not isinstance(iv, str):
            raise MalformedMessageError("Field 'iv' must be of type str", key=_recover_key(obj))
        return cls(iv=iv, **cls._base_fields(obj))


@dataclass(frozen=True)
class UploadData(UploadMessage):
    KEY: ClassVar[str] = "data"

    order_number: int = 0
    data: bytes = b""

    @classmethod
    def from_value(cls, obj: Dict[str, Any]) -> 'UploadData':
        base = cls._base_fields(obj)
        order_number = _require(obj, 'orderNumber', int)
        encoded = _require(obj, 'data', str)
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise MalformedMessageError(f"Field 'data' is not valid base64: {e}", key=_recover_key(obj))
        return cls(order_number=order_number, data=data, **base)


@dataclass(frozen=True)
class UploadFinish(UploadMessage):
    KEY: ClassVar[str] = "finish"

    chunk_amount: int = 0
    checksum: str = ""
    iv: str = ""

    @classmethod
    def from_value(cls, obj: Dict[str, Any]) -> 'UploadFinish':
        base = cls._base_fields(obj)
        return cls(
            chunk_amount=_require(obj, 'chunkAmount', int),
            checksum=_require(obj, 'checksum', str),
            iv=_require(obj, 'iv', str),
            **base,
        )


@dataclass(frozen=True)
class UploadAbort(UploadMessage):
    KEY: ClassVar[str] = "abort"


UPLOAD_MESSAGE_TYPES: Dict[str, Type[UploadMessage]] = {
    message_type.KEY: message_type
    for message_type in (UploadStart, UploadData, UploadFinish, UploadAbort)
}


def decode_upload_message(key: Union[bytes, str, None], value: Union[bytes, str, None]) -> UploadMessage:
    """
    Decode a record of the upload stream topic.

    Args:
        key: Record key, the variant tag
        value: Record value, JSON object

    Returns:
        Concrete UploadMessage subclass instance

    Raises:
        MalformedMessageError: Unknown tag, invalid JSON or missing/invalid fields
    """
    tag = _text(key)
    try:
        obj = json.loads(_text(value))
    except json.JSONDecodeError as e:
        raise MalformedMessageError(f"Record value is not valid JSON: {e}")

    if not isinstance(obj, dict):
        raise MalformedMessageError("Record value must be a JSON object")

    message_type = UPLOAD_MESSAGE_TYPES.get(tag)
    if message_type is None:
        raise MalformedMessageError(f"Unknown upload message key '{tag}'", key=_recover_key(obj))

    return message_type.from_value(obj)


def encode_upload_message(message: UploadMessage) -> Dict[str, Any]:
    """Build the JSON value of an upload message (client side of the protocol)."""
    obj: Dict[str, Any] = {'owner': message.owner, 'archiveName': message.archive_name}
    if isinstance(message, UploadStart) and message.iv is not None:
        obj['iv'] = message.iv
    elif isinstance(message, UploadData):
        obj['orderNumber'] = message.order_number
        obj['data'] = base64.b64encode(message.data).decode('ascii')
    elif isinstance(message, UploadFinish):
        obj['chunkAmount'] = message.chunk_amount
        obj['checksum'] = message.checksum
        obj['iv'] = message.iv
    return obj


@dataclass(frozen=True)
class Acknowledgement:
    """Outcome of an upload lifecycle step, published under key ``start|finish|error``."""
    key: str
    owner: str
    archive_name: str
    status: str
    error_message: Optional[str] = None

    def to_value(self) -> Dict[str, Any]:
        obj: Dict[str, Any] = {
            'owner': self.owner,
            'archiveName': self.archive_name,
            'status': self.status,
        }
        if self.error_message is not None:
            obj['errorMessage'] = self.error_message
        return obj


@dataclass(frozen=True)
class DownloadStart:
    KEY: ClassVar[str] = "start"

    owner: str
    archive_name: str
    checksum: Optional[str]
    iv: Optional[str] = None

    def to_value(self) -> Dict[str, Any]:
        return {
            'owner': self.owner,
            'archiveName': self.archive_name,
            'checksum': self.checksum,
            'iv': self.iv,
        }


@dataclass(frozen=True)
class DownloadData:
    KEY: ClassVar[str] = "data"

    owner: str
    archive_name: str
    data: bytes

    def to_value(self) -> Dict[str, Any]:
        return {
            'owner': self.owner,
            'archiveName': self.archive_name,
            'data': base64.b64encode(self.data).decode('ascii'),
        }


@dataclass(frozen=True)
class DownloadFinish:
    KEY: ClassVar[str] = "finish"

    owner: str
    archive_name: str

    def to_value(self) -> Dict[str, Any]:
        return {'owner': self.owner, 'archiveName': self.archive_name}


def encode_value(value: Dict[str, Any]) -> bytes:
    """Serialize a record value to JSON bytes."""
    return json.dumps(value).encode('utf-8')
