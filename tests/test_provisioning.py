"""Tests for the provisioning client and credential validation."""

from unittest.mock import MagicMock

import pytest
import requests

from lgr_runner.exceptions import CredentialsError
from lgr_runner.provisioning import Credentials, ProvisioningClient, fetch_credentials


def _response(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload if payload is not None else {}
    return resp


@pytest.fixture
def session():
    return MagicMock(spec=requests.Session)


def _client(session):
    return ProvisioningClient(
        "redshift", "123-token", run_id="4567", url="https://prov.example.com/", session=session
    )


class TestProvisioningClient:
    def test_get_existing_credentials(self, session, provisioning_payload):
        session.get.return_value = _response(200, provisioning_payload)

        payload = _client(session).get_credentials("transformations")

        assert payload == provisioning_payload
        session.get.assert_called_once_with(
            "https://prov.example.com/redshift",
            params={"type": "transformations"},
            headers={"X-StorageApi-Token": "123-token", "X-KBC-RunId": "4567"},
            timeout=60,
        )
        session.post.assert_not_called()

    def test_creates_credentials_when_missing(self, session, provisioning_payload):
        session.get.return_value = _response(404)
        session.post.return_value = _response(201, provisioning_payload)

        payload = _client(session).get_credentials()

        assert payload == provisioning_payload
        assert session.post.call_args[1]["json"] == {"type": "transformations"}

    def test_error_status(self, session):
        session.get.return_value = _response(401)

        with pytest.raises(CredentialsError) as exc_info:
            _client(session).get_credentials()
        assert exc_info.value.details["status_code"] == 401

    def test_connection_error(self, session):
        session.get.side_effect = requests.ConnectionError("refused")

        with pytest.raises(CredentialsError, match="I cannot get credentials"):
            _client(session).get_credentials()

    def test_no_run_id_header_when_unset(self, session):
        client = ProvisioningClient("redshift", "tok", session=session)
        assert client.headers == {"X-StorageApi-Token": "tok"}


class TestFetchCredentials:
    def test_valid_credentials(self, session, provisioning_payload):
        session.get.return_value = _response(200, provisioning_payload)

        creds = fetch_credentials(_client(session))

        assert creds.hostname == "redshift.example.com"
        assert creds.schema_name == "workspace_42"
        assert creds.port == 5439
        assert creds.jdbc_url == "jdbc:postgresql://redshift.example.com:5439/sapi_123"

    def test_custom_port(self, session, provisioning_payload):
        session.get.return_value = _response(200, provisioning_payload)
        assert fetch_credentials(_client(session), port=5440).port == 5440

    @pytest.mark.parametrize(
        "payload",
        [{}, {"credentials": {}}, {"credentials": {"hostname": ""}}, []],
    )
    def test_missing_hostname(self, session, payload):
        session.get.return_value = _response(200, payload)

        with pytest.raises(CredentialsError, match="I cannot get credentials for Redshift database."):
            fetch_credentials(_client(session))

    def test_incomplete_credentials_do_not_leak_password(self, session):
        session.get.return_value = _response(
            200, {"credentials": {"hostname": "h", "password": "hunter2"}}
        )

        with pytest.raises(CredentialsError) as exc_info:
            fetch_credentials(_client(session))

        assert "hunter2" not in str(exc_info.value)
        assert "db" in exc_info.value.message
        assert "user" in exc_info.value.message


def test_credentials_repr_hides_password(credentials):
    assert credentials.password not in repr(credentials)
    assert credentials.password not in str(credentials)
    assert "*****" in repr(credentials)
