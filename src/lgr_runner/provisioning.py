"""Provisioning client for Redshift transformation credentials."""

from typing import Any, Dict, Optional

import requests
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import CredentialsError
from .logging import get_logger

REDSHIFT_DB_PORT = 5439


class Credentials(BaseModel):
    """Warehouse connection credentials. Held in memory only."""

    model_config = ConfigDict(populate_by_name=True)

    hostname: str
    db: str
    user: str
    password: str
    schema_name: str = Field(alias="schema")
    port: int = REDSHIFT_DB_PORT

    @property
    def jdbc_url(self) -> str:
        return f"jdbc:postgresql://{self.hostname}:{self.port}/{self.db}"

    def __repr__(self) -> str:
        return (
            f"Credentials(hostname={self.hostname!r}, db={self.db!r}, "
            f"user={self.user!r}, schema={self.schema_name!r}, password='*****')"
        )

    __str__ = __repr__


class ProvisioningClient:
    """Fetch workspace credentials from the provisioning service."""

    def __init__(
        self,
        backend: str,
        token: str,
        run_id: str = "",
        url: str = "https://syrup.keboola.com/provisioning",
        timeout: float = 60,
        session: Optional[requests.Session] = None,
    ):
        """Initialize provisioning client.

        Args:
            backend: Credentials backend (e.g., "redshift")
            token: Storage API token
            run_id: Run ID of the current job
            url: Provisioning service base URL
            timeout: Request timeout in seconds
            session: Optional requests session (injectable for tests)
        """
        self.backend = backend
        self.token = token
        self.run_id = run_id
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = get_logger()

    @property
    def headers(self) -> Dict[str, str]:
        headers = {"X-StorageApi-Token": self.token}
        if self.run_id:
            headers["X-KBC-RunId"] = self.run_id
        return headers

    def get_credentials(self, credentials_type: str = "transformations") -> Dict[str, Any]:
        """Return existing credentials of the given type, creating them if needed.

        Returns:
            Raw response payload; the credentials live under ``credentials``

        Raises:
            CredentialsError: If the service cannot be reached or refuses
        """
        endpoint = f"{self.url}/{self.backend}"
        try:
            resp = self.session.get(
                endpoint,
                params={"type": credentials_type},
                headers=self.headers,
                timeout=self.timeout,
            )
            if resp.status_code == 404:
                self.logger.debug(
                    f"No {credentials_type} credentials yet, creating them",
                    extra={"event_type": "credentials_create"},
                )
                resp = self.session.post(
                    endpoint,
                    json={"type": credentials_type},
                    headers=self.headers,
                    timeout=self.timeout,
                )
        except requests.RequestException as e:
            raise CredentialsError(
                f"I cannot get credentials for Redshift database: {e}"
            ) from e

        if resp.status_code >= 400:
            raise CredentialsError(
                "I cannot get credentials for Redshift database.",
                details={"status_code": resp.status_code},
            )

        try:
            return resp.json()
        except ValueError as e:
            raise CredentialsError(
                "Provisioning service returned an invalid response."
            ) from e


def fetch_credentials(
    client: ProvisioningClient,
    credentials_type: str = "transformations",
    port: int = REDSHIFT_DB_PORT,
) -> Credentials:
    """Fetch and validate warehouse credentials.

    Raises:
        CredentialsError: If the response has no usable credentials
    """
    payload = client.get_credentials(credentials_type)
    raw = payload.get("credentials") if isinstance(payload, dict) else None
    if not raw or not raw.get("hostname"):
        raise CredentialsError("I cannot get credentials for Redshift database.")

    try:
        return Credentials(**{"port": port, **raw})
    except ValidationError as e:
        # Field names only; the input values contain the password
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        raise CredentialsError(
            "Incomplete credentials for Redshift database, invalid fields: "
            + ", ".join(fields)
        ) from None
