"""Typed ``com.atproto.repo.*`` operations."""

from typing import Any, Dict, Optional, Type

from social.graze.atclient.atproto.xrpc import OutputT, XrpcClient
from social.graze.atclient.model.repo import (
    BlobRef,
    CreateRecordInput,
    CreateRecordOutput,
    DeleteRecordInput,
    GetRecordOutput,
    ListRecordsOutput,
    PutRecordInput,
    PutRecordOutput,
    UploadBlobOutput,
)

GET_RECORD = "com.atproto.repo.getRecord"
PUT_RECORD = "com.atproto.repo.putRecord"
CREATE_RECORD = "com.atproto.repo.createRecord"
DELETE_RECORD = "com.atproto.repo.deleteRecord"
LIST_RECORDS = "com.atproto.repo.listRecords"
UPLOAD_BLOB = "com.atproto.repo.uploadBlob"


class RepoClient:
    """Record and blob operations against the session's PDS.

    Record values are decoded into ``record_type`` when one is given (any
    pydantic model or type ``TypeAdapter`` understands) and left as plain
    dicts otherwise.
    """

    def __init__(self, xrpc: XrpcClient) -> None:
        self._xrpc = xrpc

    async def get_record(
        self,
        repo: str,
        collection: str,
        rkey: str,
        record_type: Type[OutputT] = Dict[str, Any],  # type: ignore[assignment]
    ) -> GetRecordOutput[OutputT]:
        return await self._xrpc.get(
            GET_RECORD,
            {"repo": repo, "collection": collection, "rkey": rkey},
            output_type=GetRecordOutput[record_type],  # type: ignore[valid-type]
        )

    async def put_record(
        self,
        repo: str,
        collection: str,
        rkey: str,
        record: Any,
        swap_record: Optional[str] = None,
        swap_commit: Optional[str] = None,
        validate: Optional[bool] = None,
    ) -> PutRecordOutput:
        request = PutRecordInput(
            repo=repo,
            collection=collection,
            rkey=rkey,
            record=record,
            swap_record=swap_record,
            swap_commit=swap_commit,
            validate_record=validate,
        )
        return await self._xrpc.post(PUT_RECORD, request, output_type=PutRecordOutput)

    async def create_record(
        self,
        repo: str,
        collection: str,
        record: Any,
        rkey: Optional[str] = None,
        swap_commit: Optional[str] = None,
        validate: Optional[bool] = None,
    ) -> CreateRecordOutput:
        request = CreateRecordInput(
            repo=repo,
            collection=collection,
            record=record,
            rkey=rkey,
            swap_commit=swap_commit,
            validate_record=validate,
        )
        return await self._xrpc.post(
            CREATE_RECORD, request, output_type=CreateRecordOutput
        )

    async def delete_record(
        self,
        repo: str,
        collection: str,
        rkey: str,
        swap_record: Optional[str] = None,
        swap_commit: Optional[str] = None,
    ) -> None:
        request = DeleteRecordInput(
            repo=repo,
            collection=collection,
            rkey=rkey,
            swap_record=swap_record,
            swap_commit=swap_commit,
        )
        await self._xrpc.post_no_response(DELETE_RECORD, request)

    async def list_records(
        self,
        repo: str,
        collection: str,
        limit: Optional[int] = None,
        cursor: Optional[str] = None,
        reverse: Optional[bool] = None,
        record_type: Type[OutputT] = Dict[str, Any],  # type: ignore[assignment]
    ) -> ListRecordsOutput[OutputT]:
        params = {
            "repo": repo,
            "collection": collection,
            "limit": limit,
            "cursor": cursor,
            "reverse": reverse,
        }
        return await self._xrpc.get(
            LIST_RECORDS,
            params,
            output_type=ListRecordsOutput[record_type],  # type: ignore[valid-type]
        )

    async def upload_blob(self, data: bytes, mime_type: str) -> BlobRef:
        """Upload raw bytes and return the reference to embed in a record."""
        output = await self._xrpc.post_bytes(
            UPLOAD_BLOB, data, mime_type, output_type=UploadBlobOutput
        )
        return output.blob
