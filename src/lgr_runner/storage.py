"""Storage API client: events, file uploads and configuration tables."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import boto3
import requests
from boto3.exceptions import S3UploadFailedError
from botocore.exceptions import BotoCoreError, ClientError

from .exceptions import StorageApiError
from .logging import get_logger


@dataclass
class FileUploadOptions:
    """Options of a file stored in Storage API."""

    is_public: bool = False
    is_permanent: bool = True
    is_sliced: bool = False
    notify: bool = False
    tags: List[str] = field(default_factory=list)


class StorageApiClient:
    """Minimal Storage API client for the calls the runner needs."""

    def __init__(
        self,
        token: str,
        url: str = "https://connection.keboola.com",
        run_id: str = "",
        timeout: float = 60,
        session: Optional[requests.Session] = None,
        s3_client_factory: Optional[Callable[..., Any]] = None,
    ):
        """Initialize Storage API client.

        Args:
            token: Storage API token
            url: Storage API base URL
            run_id: Run ID attached to events and requests
            timeout: Request timeout in seconds
            session: Optional requests session (injectable for tests)
            s3_client_factory: Optional S3 client factory (defaults to boto3.client)
        """
        if not token:
            raise ValueError("Storage API token is required.")
        self.token = token
        self.url = url.rstrip("/")
        self.run_id = run_id
        self.timeout = timeout
        self.session = session or requests.Session()
        self._s3_client_factory = s3_client_factory or boto3.client
        self.logger = get_logger()

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"X-StorageApi-Token": self.token}
        if self.run_id:
            headers["X-KBC-RunId"] = self.run_id
        return headers

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Send a request and raise StorageApiError on failure."""
        url = f"{self.url}/v2/storage/{path.lstrip('/')}"
        try:
            resp = self.session.request(
                method, url, headers=self.headers, timeout=self.timeout, **kwargs
            )
        except requests.RequestException as e:
            raise StorageApiError(f"Storage API request failed: {e}") from e

        if resp.status_code >= 400:
            raise StorageApiError(
                f"Storage API returned {resp.status_code} for {method} {path}: "
                f"{resp.text[:500]}",
                status_code=resp.status_code,
            )
        return resp

    def create_event(self, event: Dict[str, Any]) -> Optional[int]:
        """Create a Storage API event.

        Args:
            event: Event payload (component, message, type, params, results...)

        Returns:
            ID of the created event, if returned by the API
        """
        payload = dict(event)
        if self.run_id:
            payload.setdefault("runId", self.run_id)
        resp = self._request("POST", "events", json=payload)
        return resp.json().get("id")

    def table_exists(self, table_id: str) -> bool:
        """Check whether a table exists and is accessible."""
        try:
            self._request("GET", f"tables/{table_id}")
        except StorageApiError as e:
            if e.status_code == 404:
                return False
            raise
        return True

    def export_table(self, table_id: str) -> str:
        """Export table contents as CSV text."""
        return self._request("GET", f"tables/{table_id}/export").text

    def upload_file(
        self, path: Union[str, Path], options: Optional[FileUploadOptions] = None
    ) -> int:
        """Upload a local file to Storage API file storage.

        The upload is prepared in Storage API, which returns a federation
        token for S3; the file body is then sent to S3 with boto3.

        Args:
            path: Local file path
            options: File upload options (defaults to private, permanent)

        Returns:
            ID of the uploaded file
        """
        path = Path(path)
        options = options or FileUploadOptions()
        if not path.is_file():
            raise StorageApiError(f"File to upload does not exist: {path}")

        form: Dict[str, Any] = {
            "name": path.name,
            "sizeBytes": os.path.getsize(path),
            "isPublic": int(options.is_public),
            "isPermanent": int(options.is_permanent),
            "isSliced": int(options.is_sliced),
            "notify": int(options.notify),
            "federationToken": 1,
            "tags[]": list(options.tags),
        }
        prepared = self._request("POST", "files/prepare", data=form).json()

        upload_params = prepared.get("uploadParams") or {}
        credentials = upload_params.get("credentials") or {}
        s3 = self._s3_client_factory(
            "s3",
            region_name=prepared.get("region"),
            aws_access_key_id=credentials.get("AccessKeyId"),
            aws_secret_access_key=credentials.get("SecretAccessKey"),
            aws_session_token=credentials.get("SessionToken"),
        )
        extra_args = {"ContentDisposition": f"attachment; filename={path.name}"}
        if upload_params.get("acl"):
            extra_args["ACL"] = upload_params["acl"]
        try:
            s3.upload_file(
                str(path), upload_params.get("bucket"), upload_params.get("key"),
                ExtraArgs=extra_args,
            )
        except (BotoCoreError, ClientError, S3UploadFailedError) as e:
            raise StorageApiError(f"Upload of {path.name} to S3 failed: {e}") from e

        self.logger.debug(
            f"Uploaded file {path.name} as {prepared.get('id')}",
            extra={"event_type": "file_uploaded"},
        )
        return prepared["id"]
