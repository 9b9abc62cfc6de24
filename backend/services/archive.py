"""
Agreement Archive
=================
Pushes agreement PDFs and signature images to SharePoint through
Microsoft Graph, one folder per client business.
"""

import os
import re
import unicodedata
from typing import Iterable, List, Optional
from urllib.parse import quote

import requests

from core.logger import logger
from services.signing.records import Agreement

GRAPH_BASE = "https://graph.microsoft.com/v1.0"
LOGIN_URL = "https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token"

SMALL_UPLOAD_LIMIT = 4 * 1024 * 1024
CHUNK_SIZE = 5 * 1024 * 1024
MAX_FOLDER_NAME = 100


def safe_folder_name(name: Optional[str] = "Client") -> str:
    """
    Folder name SharePoint accepts, derived from a business name.

    Diacritics are stripped, disallowed characters collapse to single
    spaces, trailing dots/hashes and leading dots go, and the result is
    capped at 100 characters.
    """
    text = unicodedata.normalize("NFKD", name or "Client")
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    text = re.sub(r"[^\w\-]", " ", text, flags=re.ASCII)
    text = re.sub(r"\s+", " ", text).strip()
    text = re.sub(r"[.#]+$", "", text)
    text = re.sub(r"^\.+", "", text)
    if not text or text.lower() == "forms":
        text = "Client"
    if len(text) > MAX_FOLDER_NAME:
        text = text[:MAX_FOLDER_NAME].strip()
    return text


def agreement_files(agreement: Agreement) -> List[str]:
    """Every artifact path recorded on the agreement, PDFs first."""
    paths: List[str] = []
    for doc in agreement.documents:
        paths.extend(p for p in (doc.final_signed_pdf_path, doc.client_signed_pdf_path, doc.draft_pdf_path) if p)
    for doc in agreement.documents:
        if doc.client_signature_image_path:
            paths.append(doc.client_signature_image_path)
        paths.extend(slot.signature_image_path for slot in doc.directors if slot.signature_image_path)
    return paths


class GraphArchive:
    """Microsoft Graph (client-credentials) uploader for one drive."""

    def __init__(self, settings, session: Optional[requests.Session] = None, timeout: float = 60.0):
        self.settings = settings
        self.http = session or requests.Session()
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return self.settings.graph_configured

    def _token(self) -> str:
        logger.info("GRAPH_TOKEN_REQ")
        resp = self.http.post(
            LOGIN_URL.format(tenant=self.settings.graph_tenant_id),
            data={
                "client_id": self.settings.graph_client_id,
                "client_secret": self.settings.graph_client_secret,
                "scope": "https://graph.microsoft.com/.default",
                "grant_type": "client_credentials",
            },
            timeout=self.timeout,
        )
        resp.raise_for_status()
        logger.info("GRAPH_TOKEN_OK")
        return resp.json()["access_token"]

    def _call(self, token: str, method: str, path: str, **kwargs) -> requests.Response:
        logger.debug(f"GRAPH_CALL {method} {path}")
        headers = {"Authorization": f"Bearer {token}", **kwargs.pop("headers", {})}
        resp = self.http.request(method, f"{GRAPH_BASE}{path}", headers=headers, timeout=self.timeout, **kwargs)
        resp.raise_for_status()
        return resp

    def _root_item(self, path: str) -> str:
        return f"/drives/{self.settings.graph_drive_id}/root:/{quote(path, safe='')}"

    def ensure_folder_path(self, token: str, segments: Iterable[str]) -> str:
        """Create each missing folder along ``segments``; returns the joined path."""
        drive = self.settings.graph_drive_id
        current = ""
        for segment in segments:
            current = f"{current}/{segment}" if current else segment
            try:
                self._call(token, "GET", self._root_item(current))
            except requests.HTTPError as e:
                if e.response is None or e.response.status_code != 404:
                    raise
                parent = current.rsplit("/", 1)[0] if "/" in current else ""
                parent_url = (
                    f"{self._root_item(parent)}:/children" if parent else f"/drives/{drive}/root/children"
                )
                self._call(token, "POST", parent_url, json={
                    "name": segment,
                    "folder": {},
                    "@microsoft.graph.conflictBehavior": "replace",
                })
        return current

    def upload_file(self, token: str, folder_path: str, local_path: str) -> bool:
        if not os.path.exists(local_path):
            logger.warning(f"SP_SKIP_FILE_MISSING path={local_path}")
            return False

        name = os.path.basename(local_path)
        full_path = f"{folder_path}/{name}" if folder_path else name
        size = os.path.getsize(local_path)
        logger.info(f"SP_UPLOAD_START path={full_path} size={size}")

        if size <= SMALL_UPLOAD_LIMIT:
            with open(local_path, "rb") as f:
                self._call(
                    token, "PUT", f"{self._root_item(full_path)}:/content",
                    data=f.read(), headers={"Content-Type": "application/octet-stream"},
                )
        else:
            self._upload_large(token, full_path, local_path, size)

        logger.info(f"SP_UPLOAD_OK path={full_path}")
        return True

    def _upload_large(self, token: str, full_path: str, local_path: str, size: int) -> None:
        session = self._call(
            token, "POST", f"{self._root_item(full_path)}:/createUploadSession",
            json={"item": {"@microsoft.graph.conflictBehavior": "replace", "name": os.path.basename(full_path)}},
        ).json()
        upload_url = session["uploadUrl"]

        with open(local_path, "rb") as f:
            offset = 0
            while offset < size:
                chunk = f.read(CHUNK_SIZE)
                end = offset + len(chunk) - 1
                logger.info(f"GRAPH_UPLOAD_CHUNK path={full_path} from={offset} to={end} size={size}")
                resp = self.http.put(
                    upload_url,
                    data=chunk,
                    headers={"Content-Length": str(len(chunk)), "Content-Range": f"bytes {offset}-{end}/{size}"},
                    timeout=self.timeout,
                )
                resp.raise_for_status()
                offset += len(chunk)

    def archive_agreement(self, agreement: Agreement) -> Optional[str]:
        """Upload every artifact of ``agreement``; returns the folder path, or None when skipped."""
        if not self.configured:
            logger.warning("Graph env not set; skipping SharePoint upload.")
            return None

        token = self._token()
        folder = safe_folder_name(agreement.business_name or "Client")
        segments = [s for s in (self.settings.sp_base_path, folder) if s]
        folder_path = self.ensure_folder_path(token, segments)

        for path in agreement_files(agreement):
            self.upload_file(token, folder_path, path)
        logger.info(f"SP_UPLOAD_DONE folder={folder_path}")
        return folder_path
