"""SharePoint document library backend over Microsoft Graph."""

import logging
import re
import time
from datetime import datetime
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx

from voxstudio.core.config import settings
from voxstudio.core.exceptions import ConflictError, NotFoundError, StoreError
from voxstudio.storage.base import DocumentStore, DriveItem
from voxstudio.upload.models import ConflictPolicy, FolderHandle, ResumableSession, parse_expiry

logger = logging.getLogger(__name__)

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
CONFLICT_BEHAVIOR = "@microsoft.graph.conflictBehavior"
ITEM_FIELDS = "id,name,size,webUrl,file,folder,createdDateTime,parentReference"
TOKEN_REFRESH_MARGIN_SECONDS = 60
_DOCUMENTS_DRIVE = re.compile(r"documents", re.IGNORECASE)


def quote_path(path: str) -> str:
    """URL-quote each segment of a slash-separated path."""
    return "/".join(quote(segment, safe="") for segment in path.strip("/").split("/") if segment)


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parse_expiry(value)
    except ValueError:
        return None


def _error_detail(response: httpx.Response) -> str:
    """Extract Graph's error message from a response body."""
    try:
        body = response.json()
    except ValueError:
        return response.text
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("message") or error.get("code") or response.text
    return response.text


class GraphDocumentStore(DocumentStore):
    """Document store backed by a SharePoint site's document library."""

    def __init__(self, http_client: Optional[httpx.AsyncClient] = None):
        self._client = http_client
        self._token: Optional[str] = None
        self._token_expires_at: float = 0.0
        self._drive_path: Optional[str] = None

    def _get_client(self) -> httpx.AsyncClient:
        """Lazy-create and cache the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.GRAPH_REQUEST_TIMEOUT)
        return self._client

    async def _get_token(self) -> str:
        """Acquire an app-only token with the client-credentials grant."""
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token

        if not settings.graph_configured:
            raise ValueError("AZURE_TENANT_ID, AZURE_CLIENT_ID and AZURE_CLIENT_SECRET must be configured")

        token_url = f"{settings.GRAPH_LOGIN_URL}/{settings.AZURE_TENANT_ID}/oauth2/v2.0/token"
        try:
            response = await self._get_client().post(
                token_url,
                data={
                    "grant_type": "client_credentials",
                    "client_id": settings.AZURE_CLIENT_ID,
                    "client_secret": settings.AZURE_CLIENT_SECRET,
                    "scope": GRAPH_SCOPE,
                },
            )
        except httpx.HTTPError as e:
            raise StoreError(f"Failed to acquire Graph token: {e}") from e

        if response.status_code != 200:
            raise StoreError(
                "Failed to acquire Graph token",
                status_code=response.status_code,
                detail=response.text,
            )

        payload = response.json()
        token = payload.get("access_token")
        if not token:
            raise StoreError("Failed to acquire Graph token", detail="No access_token in response")

        expires_in = int(payload.get("expires_in", 3600))
        self._token = token
        self._token_expires_at = time.monotonic() + max(expires_in - TOKEN_REFRESH_MARGIN_SECONDS, 0)
        logger.debug("Graph token acquired", extra={"expires_in": expires_in})
        return token

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send an authenticated request and map error statuses to exceptions."""
        token = await self._get_token()
        url = path if path.startswith("http") else f"{settings.GRAPH_BASE_URL}{path}"
        headers = {"Authorization": f"Bearer {token}", **kwargs.pop("headers", {})}

        try:
            response = await self._get_client().request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            logger.error(
                "Graph request failed",
                extra={"method": method, "path": path, "error": str(e)},
            )
            raise StoreError(f"Graph request failed: {e}") from e

        if response.is_success:
            return response

        detail = _error_detail(response)
        if response.status_code == 404:
            raise NotFoundError(f"Not found: {path}", status_code=404, detail=detail)
        if response.status_code == 409:
            raise ConflictError(f"Conflict: {path}", status_code=409, detail=detail)

        logger.error(
            "Graph request rejected",
            extra={
                "method": method,
                "path": path,
                "status_code": response.status_code,
                "detail": detail,
            },
        )
        raise StoreError(
            f"Graph request failed ({response.status_code}): {detail}",
            status_code=response.status_code,
            detail=detail,
        )

    async def _get_drive_path(self) -> str:
        """Resolve and cache the site's document library as ``/drives/{id}``."""
        if self._drive_path is None:
            if not settings.SHAREPOINT_SITE_PATH:
                raise ValueError("SHAREPOINT_SITE_PATH not configured")

            site = (await self._request("GET", f"/sites/{settings.SHAREPOINT_SITE_PATH}")).json()
            drives = (await self._request("GET", f"/sites/{site['id']}/drives")).json().get("value") or []

            preferred = next(
                (d for d in drives if _DOCUMENTS_DRIVE.search(d.get("name") or "")),
                drives[0] if drives else None,
            )
            if not preferred:
                raise StoreError("No document library found on site")

            self._drive_path = f"/drives/{preferred['id']}"
            logger.info(
                "Resolved document library",
                extra={"site_id": site["id"], "drive_id": preferred["id"]},
            )
        return self._drive_path

    @staticmethod
    def _to_item(data: Dict[str, Any]) -> DriveItem:
        """Convert a Graph driveItem resource into a DriveItem."""
        parent_path = (data.get("parentReference") or {}).get("path") or ""
        # parentReference.path looks like /drives/{id}/root:/project/stage1
        parent_rel = parent_path.split("root:", 1)[1].strip("/") if "root:" in parent_path else ""
        name = data.get("name", "")
        return DriveItem(
            id=data["id"],
            name=name,
            is_folder="folder" in data,
            path=f"{parent_rel}/{name}" if parent_rel else name,
            size=data.get("size") or 0,
            web_url=data.get("webUrl"),
            mime_type=(data.get("file") or {}).get("mimeType"),
            created_at=_parse_datetime(data.get("createdDateTime")),
        )

    async def _item_ref(self, parent: Optional[FolderHandle]) -> str:
        drive = await self._get_drive_path()
        return f"{drive}/root" if parent is None else f"{drive}/items/{parent.item_id}"

    async def get_item(self, path: str) -> DriveItem:
        drive = await self._get_drive_path()
        response = await self._request("GET", f"{drive}/root:/{quote_path(path)}")
        return self._to_item(response.json())

    async def get_child(self, parent: Optional[FolderHandle], name: str) -> DriveItem:
        ref = await self._item_ref(parent)
        response = await self._request("GET", f"{ref}:/{quote(name, safe='')}")
        return self._to_item(response.json())

    async def create_folder(
        self,
        parent: Optional[FolderHandle],
        name: str,
        conflict_policy: ConflictPolicy = ConflictPolicy.FAIL,
    ) -> DriveItem:
        ref = await self._item_ref(parent)
        response = await self._request(
            "POST",
            f"{ref}/children",
            json={"name": name, "folder": {}, CONFLICT_BEHAVIOR: ConflictPolicy(conflict_policy).value},
        )
        item = self._to_item(response.json())
        logger.info("Folder created", extra={"folder_path": item.path, "item_id": item.id})
        return item

    async def create_upload_session(
        self,
        parent: FolderHandle,
        file_name: str,
        conflict_policy: ConflictPolicy,
        file_size: Optional[int] = None,
    ) -> ResumableSession:
        ref = await self._item_ref(parent)
        item: Dict[str, Any] = {
            CONFLICT_BEHAVIOR: ConflictPolicy(conflict_policy).value,
            "name": file_name,
        }
        if file_size is not None:
            item["fileSize"] = file_size

        response = await self._request(
            "POST",
            f"{ref}:/{quote(file_name, safe='')}:/createUploadSession",
            json={"item": item},
        )
        payload = response.json()
        return ResumableSession(
            upload_url=payload["uploadUrl"],
            expires_at=parse_expiry(payload.get("expirationDateTime")),
        )

    async def list_children(self, path: str) -> list[DriveItem]:
        drive = await self._get_drive_path()
        ref = f"{drive}/root" if not path.strip("/") else f"{drive}/root:/{quote_path(path)}:"
        url: Optional[str] = f"{ref}/children"
        params: Optional[Dict[str, Any]] = {"$select": ITEM_FIELDS, "$top": 999}

        items: list[DriveItem] = []
        while url:
            page = (await self._request("GET", url, params=params)).json()
            items.extend(self._to_item(entry) for entry in page.get("value") or [])
            # nextLink already carries the query string
            url = page.get("@odata.nextLink")
            params = None
        return items

    async def read_file(self, path: str) -> bytes:
        drive = await self._get_drive_path()
        response = await self._request(
            "GET", f"{drive}/root:/{quote_path(path)}:/content", follow_redirects=True
        )
        return response.content

    async def write_file(self, path: str, data: bytes) -> DriveItem:
        drive = await self._get_drive_path()
        response = await self._request(
            "PUT",
            f"{drive}/root:/{quote_path(path)}:/content",
            content=data,
            headers={"Content-Type": "application/octet-stream"},
        )
        return self._to_item(response.json())

    async def delete_item(self, item_id: str) -> None:
        drive = await self._get_drive_path()
        await self._request("DELETE", f"{drive}/items/{item_id}")
        logger.info("Item deleted", extra={"item_id": item_id})

    async def cancel_upload_session(self, session: ResumableSession) -> None:
        # Upload URLs are pre-authorized; a DELETE without a token cancels them
        try:
            response = await self._get_client().delete(session.upload_url)
        except httpx.HTTPError as e:
            raise StoreError(f"Failed to cancel upload session: {e}") from e
        if not response.is_success and response.status_code != 404:
            raise StoreError(
                "Failed to cancel upload session",
                status_code=response.status_code,
                detail=_error_detail(response),
            )
        logger.info("Upload session cancelled")

    def get_backend_name(self) -> str:
        return "graph"

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
