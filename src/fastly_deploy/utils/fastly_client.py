"""Fastly API client and session handling."""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import requests

from fastly_deploy import __version__
from fastly_deploy.utils.errors import ErrorContext, ResourceNotFoundError, error_handler
from fastly_deploy.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_API_URL = "https://api.fastly.com"


class FastlyClient:
    """Thin wrapper over the Fastly REST API.

    One client is shared by every resource in a resource manager. Calls are
    made once; failures are converted to DeploymentError subclasses and never
    retried here.
    """

    def __init__(
        self,
        api_token: str,
        api_url: str = DEFAULT_API_URL,
        timeout: Tuple[float, float] = (10, 60),
        session: Optional[requests.Session] = None
    ):
        """Initialize the Fastly client.

        Args:
            api_token: Fastly API token sent as the Fastly-Key header
            api_url: Base URL of the Fastly API
            timeout: (connect, read) timeout in seconds for each request
            session: Optional preconfigured requests session
        """
        self.api_url = api_url.rstrip('/')
        self.timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            'Fastly-Key': api_token,
            'Accept': 'application/json',
            'User-Agent': f'fastly-deploy/{__version__}',
        })
        logger.debug(f"Created Fastly client for {self.api_url}")

    def _request(self, method: str, path: str, **kwargs) -> Any:
        """Send one API request and decode the JSON body.

        Raises:
            ResourceNotFoundError: If Fastly answers 404
            ExternalAPIError: For any other failed request
        """
        url = f"{self.api_url}{path}"
        logger.debug(f"{method} {path}")

        try:
            response = self._session.request(method, url, timeout=self.timeout, **kwargs)
            response.raise_for_status()
        except requests.RequestException as e:
            raise error_handler.handle_exception(
                e, ErrorContext(http_method=method, http_path=path)
            ) from e

        if not response.content:
            return {}
        return response.json()

    # Services

    def create_service(self, name: str, service_type: str = 'compute', comment: str = '') -> Dict[str, Any]:
        """Create a service. Fastly creates version 1 alongside it."""
        return self._request('POST', '/service', data={
            'name': name,
            'type': service_type,
            'comment': comment,
        })

    def get_service_details(self, service_id: str) -> Dict[str, Any]:
        return self._request('GET', f'/service/{service_id}/details')

    def list_services(self) -> List[Dict[str, Any]]:
        return self._request('GET', '/service')

    def find_service_by_name(self, name: str) -> Dict[str, Any]:
        """Look up a service by its name.

        Raises:
            ResourceNotFoundError: If no service carries that name
        """
        for service in self.list_services():
            if service.get('name') == name:
                return service
        raise ResourceNotFoundError(
            f"Service not found: {name}",
            context=ErrorContext(resource_type='service', operation='lookup')
        )

    def delete_service(self, service_id: str) -> None:
        self._request('DELETE', f'/service/{service_id}')

    # Versions

    def get_version(self, service_id: str, version: int) -> Dict[str, Any]:
        return self._request('GET', f'/service/{service_id}/version/{version}')

    def activate_version(self, service_id: str, version: int) -> Dict[str, Any]:
        return self._request('PUT', f'/service/{service_id}/version/{version}/activate')

    def deactivate_version(self, service_id: str, version: int) -> Dict[str, Any]:
        return self._request('PUT', f'/service/{service_id}/version/{version}/deactivate')

    # Backends

    def create_backend(
        self,
        service_id: str,
        version: int,
        name: str,
        address: str,
        port: int = 443
    ) -> Dict[str, Any]:
        data = {'name': name, 'address': address, 'port': port}
        if port == 443:
            data['use_ssl'] = 1
            data['ssl_cert_hostname'] = address
            data['override_host'] = address
        return self._request('POST', f'/service/{service_id}/version/{version}/backend', data=data)

    def get_backend(self, service_id: str, version: int, name: str) -> Dict[str, Any]:
        return self._request('GET', f'/service/{service_id}/version/{version}/backend/{name}')

    def delete_backend(self, service_id: str, version: int, name: str) -> None:
        self._request('DELETE', f'/service/{service_id}/version/{version}/backend/{name}')

    # Domains

    def create_domain(self, service_id: str, version: int, name: str) -> Dict[str, Any]:
        return self._request(
            'POST', f'/service/{service_id}/version/{version}/domain', data={'name': name}
        )

    def get_domain(self, service_id: str, version: int, name: str) -> Dict[str, Any]:
        return self._request('GET', f'/service/{service_id}/version/{version}/domain/{name}')

    def delete_domain(self, service_id: str, version: int, name: str) -> None:
        self._request('DELETE', f'/service/{service_id}/version/{version}/domain/{name}')

    # Compute packages

    def upload_package(self, service_id: str, version: int, package_path: str) -> Dict[str, Any]:
        path = Path(package_path)
        with open(path, 'rb') as f:
            return self._request(
                'PUT',
                f'/service/{service_id}/version/{version}/package',
                files={'package': (path.name, f, 'application/gzip')}
            )

    def get_package(self, service_id: str, version: int) -> Dict[str, Any]:
        return self._request('GET', f'/service/{service_id}/version/{version}/package')
