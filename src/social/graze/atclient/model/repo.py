"""Request and response shapes for ``com.atproto.repo.*`` methods.

Input models dump with the wire aliases (``swapRecord``, ``mimeType`` ...) and
leave out unset optional fields. Output models that carry a record value are
generic over the record type, so callers can decode ``value`` into their own
pydantic model or keep it as a plain dict.
"""

from typing import Any, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from social.graze.atclient.model.identifiers import AtUri, AtUriStr

RecordT = TypeVar("RecordT")


class CidLink(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    link: str = Field(alias="$link")


class BlobRef(BaseModel):
    """Reference to an uploaded blob, as embedded in records.

    Issued by the server from ``com.atproto.repo.uploadBlob`` and never
    modified afterwards.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type_marker: str = Field(default="blob", alias="$type")
    ref: CidLink
    mime_type: str = Field(alias="mimeType")
    size: int

    @staticmethod
    def new(cid: str, mime_type: str, size: int) -> "BlobRef":
        return BlobRef(ref=CidLink(link=cid), mime_type=mime_type, size=size)

    @property
    def cid(self) -> str:
        return self.ref.link

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class _Input(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class PutRecordInput(_Input):
    repo: str
    collection: str
    rkey: str
    record: Any
    swap_record: Optional[str] = Field(default=None, alias="swapRecord")
    swap_commit: Optional[str] = Field(default=None, alias="swapCommit")
    validate_record: Optional[bool] = Field(default=None, alias="validate")


class CreateRecordInput(_Input):
    repo: str
    collection: str
    record: Any
    rkey: Optional[str] = None
    swap_commit: Optional[str] = Field(default=None, alias="swapCommit")
    validate_record: Optional[bool] = Field(default=None, alias="validate")


class DeleteRecordInput(_Input):
    repo: str
    collection: str
    rkey: str
    swap_record: Optional[str] = Field(default=None, alias="swapRecord")
    swap_commit: Optional[str] = Field(default=None, alias="swapCommit")


class GetRecordOutput(BaseModel, Generic[RecordT]):
    uri: AtUriStr
    cid: Optional[str] = None
    value: RecordT


class PutRecordOutput(BaseModel):
    uri: AtUriStr
    cid: str


class CreateRecordOutput(BaseModel):
    uri: AtUriStr
    cid: str

    @property
    def rkey(self) -> Optional[str]:
        return AtUri.parse(self.uri).rkey


class ListRecordsRecord(BaseModel, Generic[RecordT]):
    uri: AtUriStr
    cid: str
    value: RecordT


class ListRecordsOutput(BaseModel, Generic[RecordT]):
    records: List[ListRecordsRecord[RecordT]]
    cursor: Optional[str] = None


class UploadBlobOutput(BaseModel):
    blob: BlobRef


class XrpcErrorBody(BaseModel):
    error: str
    message: Optional[str] = None
