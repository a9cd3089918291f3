import json
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import httpx

from endpoints import AUTH, FILES, SHARE
from .client import ApiClient
from .errors import NetworkFailure
from .models import FileRecord, ListingQuery, UploadFile, User


def _json_or_raise(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError as exc:
        raise NetworkFailure(f"Non-JSON response: {resp.text[:200]}") from exc


def _object_or_raise(resp: httpx.Response) -> Dict[str, Any]:
    payload = _json_or_raise(resp)
    if not isinstance(payload, dict):
        raise NetworkFailure(f"Unexpected response: {payload!r}"[:300])
    return payload


def _result_or_raise(resp: httpx.Response) -> List[Dict[str, Any]]:
    # Collections always arrive as {"result": [...]}; a bare array is malformed.
    payload = _object_or_raise(resp)
    rows = payload.get("result")
    if not isinstance(rows, list):
        raise NetworkFailure(f"Missing 'result' array in response: {payload!r}"[:300])
    return rows


def _record_from_row(row: Any) -> FileRecord:
    if not isinstance(row, dict):
        raise NetworkFailure(f"Malformed file row: {row!r}"[:300])
    try:
        return FileRecord(
            id=str(row.get("file_id")),
            name=row.get("name") or "",
            mime_type=row.get("type") or "",
            size_bytes=int(row.get("size") or 0),
            url=row.get("url") or "",
            tags=set(row.get("tags") or []),
            view_count=int(row.get("viewCount") or 0),
            created_at=row.get("createdAt") or "",
            updated_at=row.get("updatedAt") or "",
        )
    except (TypeError, ValueError) as exc:
        raise NetworkFailure(f"Malformed file row {row.get('file_id')!r}: {exc}") from exc


def _auth_result(resp: httpx.Response) -> Tuple[User, str]:
    payload = _object_or_raise(resp)
    user = payload.get("user")
    token = payload.get("token")
    if not isinstance(user, dict) or not token:
        raise NetworkFailure("Authentication response is missing user or token")
    return User.from_dict(user), str(token)


async def authenticate(client: ApiClient, email: str, password: str) -> Tuple[User, str]:
    payload = {"email": email, "password": password}
    resp = await client.request(AUTH["login"]["method"], AUTH["login"]["path"], auth=False, json=payload)
    return _auth_result(resp)


async def register(client: ApiClient, name: str, email: str, password: str) -> Tuple[User, str]:
    payload = {"name": name, "email": email, "password": password}
    resp = await client.request(AUTH["register"]["method"], AUTH["register"]["path"], auth=False, json=payload)
    return _auth_result(resp)


async def verify_identity(client: ApiClient) -> User:
    resp = await client.request(AUTH["verify"]["method"], AUTH["verify"]["path"])
    payload = _object_or_raise(resp)
    user = payload.get("user")
    if not isinstance(user, dict):
        raise NetworkFailure("Identity response is missing user")
    return User.from_dict(user)


async def list_files(client: ApiClient, query: ListingQuery) -> List[FileRecord]:
    resp = await client.request(FILES["list"]["method"], FILES["list"]["path"], params=query.to_params())
    return [_record_from_row(row) for row in _result_or_raise(resp)]


async def upload_files(client: ApiClient, files: Sequence[UploadFile], tags: Iterable[str]) -> List[FileRecord]:
    parts = [("document", (f.name, f.content, f.mime_type)) for f in files]
    form = {"tags": json.dumps(sorted(tags))}
    resp = await client.request(FILES["upload"]["method"], FILES["upload"]["path"], data=form, files=parts)
    records = [_record_from_row(row) for row in _result_or_raise(resp)]
    if len(records) != len(files):
        raise NetworkFailure(f"Upload returned {len(records)} record(s) for {len(files)} file(s)")
    return records


async def delete_file(client: ApiClient, file_id: str) -> None:
    params = {"file_id": file_id}
    await client.request(FILES["delete"]["method"], FILES["delete"]["path"], params=params)


async def bump_view_count(client: ApiClient, file_id: str) -> None:
    params = {"file_id": file_id}
    await client.request(FILES["view_count"]["method"], FILES["view_count"]["path"], params=params)


async def share_by_email(client: ApiClient, file_id: str, email: str) -> None:
    payload = {"file_id": file_id, "email": email}
    await client.request(SHARE["by_email"]["method"], SHARE["by_email"]["path"], json=payload)


async def generate_share_link(client: ApiClient, file_id: str) -> str:
    payload = {"file_id": file_id}
    resp = await client.request(SHARE["generate_link"]["method"], SHARE["generate_link"]["path"], json=payload)
    url = _object_or_raise(resp).get("url")
    if not url:
        raise NetworkFailure("Share link response is missing url")
    return str(url)


async def fetch_shared_file(client: ApiClient, share_token: str) -> FileRecord:
    # The bearer token is optional here: public links work anonymously.
    token: Optional[str] = client.token_provider() if client.token_provider else None
    path = SHARE["shared_file"]["path"].format(token=share_token)
    resp = await client.request(SHARE["shared_file"]["method"], path, auth=bool(token))
    return _record_from_row(_object_or_raise(resp))


async def download_file(client: ApiClient, record: FileRecord, dest: str) -> str:
    if not record.url:
        raise NetworkFailure(f"No download URL for {record.name}")
    try:
        async with client.stream(record.url) as resp:
            resp.raise_for_status()
            with open(dest, "wb") as handle:
                async for chunk in resp.aiter_bytes():
                    handle.write(chunk)
    except httpx.HTTPError as exc:
        raise NetworkFailure(f"Download of {record.name} failed: {exc}") from exc
    return dest
