"""Tests for the Fastly API client.

The requests session is mocked; no network calls are made.
"""

from unittest.mock import MagicMock

import pytest
import requests

from fastly_deploy.utils.errors import ExternalAPIError, ResourceNotFoundError
from fastly_deploy.utils.fastly_client import FastlyClient


def response(status_code=200, body=None):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.headers = {}
    resp.content = b'' if body is None else b'{}'
    resp.json.return_value = body
    if status_code >= 400:
        resp.raise_for_status.side_effect = requests.HTTPError(f"{status_code}", response=resp)
    return resp


@pytest.fixture
def session():
    session = MagicMock(spec=requests.Session)
    session.headers = {}
    return session


@pytest.fixture
def client(session):
    return FastlyClient('secret-token', 'https://api.example.test/', session=session)


class TestFastlyClient:
    """Test request construction and error conversion."""

    def test_session_headers(self, client, session):
        assert session.headers['Fastly-Key'] == 'secret-token'
        assert session.headers['Accept'] == 'application/json'
        assert session.headers['User-Agent'].startswith('fastly-deploy/')

    def test_create_service(self, client, session):
        session.request.return_value = response(body={'id': 'svc1', 'versions': [{'number': 1}]})

        service = client.create_service('edge-app', comment='managed')

        assert service['id'] == 'svc1'
        session.request.assert_called_once_with(
            'POST',
            'https://api.example.test/service',
            timeout=(10, 60),
            data={'name': 'edge-app', 'type': 'compute', 'comment': 'managed'},
        )

    def test_create_backend_tls(self, client, session):
        """Port 443 backends should be created with TLS to the origin host."""
        session.request.return_value = response(body={'name': 'origin'})

        client.create_backend('svc1', 1, 'origin', 'origin.example.com')

        data = session.request.call_args.kwargs['data']
        assert data['use_ssl'] == 1
        assert data['ssl_cert_hostname'] == 'origin.example.com'
        assert session.request.call_args.args[1].endswith('/service/svc1/version/1/backend')

    def test_create_backend_plain(self, client, session):
        session.request.return_value = response(body={'name': 'origin'})

        client.create_backend('svc1', 1, 'origin', 'origin.example.com', port=80)

        assert 'use_ssl' not in session.request.call_args.kwargs['data']

    def test_empty_body(self, client, session):
        session.request.return_value = response()
        assert client.delete_service('svc1') is None

    def test_404_raises_not_found(self, client, session):
        session.request.return_value = response(404, body={'msg': 'Record not found'})

        with pytest.raises(ResourceNotFoundError) as exc_info:
            client.get_backend('svc1', 1, 'origin')

        assert exc_info.value.context.http_method == 'GET'
        assert exc_info.value.context.http_path == '/service/svc1/version/1/backend/origin'

    def test_error_status(self, client, session):
        session.request.return_value = response(500, body={'detail': 'boom'})

        with pytest.raises(ExternalAPIError) as exc_info:
            client.activate_version('svc1', 2)

        assert exc_info.value.status_code == 500
        assert 'boom' in exc_info.value.message

    def test_timeout(self, client, session):
        session.request.side_effect = requests.Timeout("read timed out")

        with pytest.raises(ExternalAPIError, match="Could not reach"):
            client.list_services()

    def test_find_service_by_name(self, client, session):
        session.request.return_value = response(body=[{'id': 'a', 'name': 'other'}, {'id': 'b', 'name': 'edge-app'}])
        assert client.find_service_by_name('edge-app')['id'] == 'b'

    def test_find_service_by_name_missing(self, client, session):
        session.request.return_value = response(body=[{'id': 'a', 'name': 'other'}])
        with pytest.raises(ResourceNotFoundError):
            client.find_service_by_name('edge-app')

    def test_upload_package(self, client, session, artifact_file):
        session.request.return_value = response(body={'id': 'pkg1'})

        client.upload_package('svc1', 1, str(artifact_file))

        method, url = session.request.call_args.args
        assert method == 'PUT'
        assert url.endswith('/service/svc1/version/1/package')
        name, _, content_type = session.request.call_args.kwargs['files']['package']
        assert name == artifact_file.name
        assert content_type == 'application/gzip'
