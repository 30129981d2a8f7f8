"""Shared pytest fixtures for fastly-deploy tests."""

import hashlib
import itertools
from pathlib import Path

import pytest

from fastly_deploy.config.models import FastlySettings
from fastly_deploy.context import OperationContext
from fastly_deploy.utils.errors import ResourceNotFoundError
from fastly_deploy.utils.terminal import UI, StatusSink


class RecordingSink(StatusSink):
    """StatusSink that keeps every message it receives."""

    def __init__(self):
        self.updates = []
        self.steps = []
        self.closed = 0

    def update(self, message):
        self.updates.append(message)

    def step(self, message, success=True):
        self.steps.append((message, success))

    def close(self):
        self.closed += 1


class RecordingUI(UI):
    """UI that hands out recording sinks instead of drawing spinners."""

    def __init__(self):
        self.sinks = []
        self.messages = []

    def status(self):
        sink = RecordingSink()
        self.sinks.append(sink)
        return sink

    def output(self, message, style=None):
        self.messages.append(message)

    @property
    def updates(self):
        return [u for sink in self.sinks for u in sink.updates]


def _not_found(what):
    return ResourceNotFoundError(f"{what} not found")


class FakeFastlyClient:
    """In-memory stand-in for FastlyClient.

    Keeps services, versions, backends, domains and packages in dicts and
    raises ResourceNotFoundError where the API would answer 404.
    """

    def __init__(self):
        self.services = {}
        self.calls = []
        self._ids = itertools.count(1)

    def _service(self, service_id):
        try:
            return self.services[service_id]
        except KeyError:
            raise _not_found(f"service {service_id}") from None

    def _version(self, service_id, version):
        try:
            return self._service(service_id)['versions'][version]
        except KeyError:
            raise _not_found(f"version {version}") from None

    def create_service(self, name, service_type='compute', comment=''):
        self.calls.append(('create_service', name))
        service_id = f"svc{next(self._ids)}"
        self.services[service_id] = {
            'id': service_id,
            'name': name,
            'type': service_type,
            'comment': comment,
            'versions': {1: {'number': 1, 'active': False, 'locked': False}},
            'backends': {},
            'domains': {},
            'packages': {},
        }
        return {'id': service_id, 'name': name, 'type': service_type, 'versions': [{'number': 1}]}

    def get_service_details(self, service_id):
        self.calls.append(('get_service_details', service_id))
        service = self._service(service_id)
        versions = list(service['versions'].values())
        active = next((v for v in versions if v['active']), None)
        return {
            'id': service_id,
            'name': service['name'],
            'active_version': dict(active) if active else None,
            'versions': [dict(v) for v in versions],
        }

    def list_services(self):
        return [{'id': s['id'], 'name': s['name']} for s in self.services.values()]

    def find_service_by_name(self, name):
        self.calls.append(('find_service_by_name', name))
        for service in self.list_services():
            if service['name'] == name:
                return service
        raise _not_found(f"service {name}")

    def delete_service(self, service_id):
        self.calls.append(('delete_service', service_id))
        self._service(service_id)
        del self.services[service_id]

    def get_version(self, service_id, version):
        return dict(self._version(service_id, version))

    def activate_version(self, service_id, version):
        self.calls.append(('activate_version', service_id, version))
        target = self._version(service_id, version)
        for other in self._service(service_id)['versions'].values():
            other['active'] = False
        target['active'] = True
        target['locked'] = True
        return dict(target)

    def deactivate_version(self, service_id, version):
        self.calls.append(('deactivate_version', service_id, version))
        target = self._version(service_id, version)
        target['active'] = False
        return dict(target)

    def create_backend(self, service_id, version, name, address, port=443):
        self.calls.append(('create_backend', service_id, version, name))
        self._version(service_id, version)
        backend = {'name': name, 'address': address, 'port': port}
        self._service(service_id)['backends'][(version, name)] = backend
        return dict(backend)

    def get_backend(self, service_id, version, name):
        try:
            return dict(self._service(service_id)['backends'][(version, name)])
        except KeyError:
            raise _not_found(f"backend {name}") from None

    def delete_backend(self, service_id, version, name):
        self.calls.append(('delete_backend', service_id, version, name))
        self.get_backend(service_id, version, name)
        del self._service(service_id)['backends'][(version, name)]

    def create_domain(self, service_id, version, name):
        self.calls.append(('create_domain', service_id, version, name))
        self._version(service_id, version)
        domain = {'name': name}
        self._service(service_id)['domains'][(version, name)] = domain
        return dict(domain)

    def get_domain(self, service_id, version, name):
        try:
            return dict(self._service(service_id)['domains'][(version, name)])
        except KeyError:
            raise _not_found(f"domain {name}") from None

    def delete_domain(self, service_id, version, name):
        self.calls.append(('delete_domain', service_id, version, name))
        self.get_domain(service_id, version, name)
        del self._service(service_id)['domains'][(version, name)]

    def upload_package(self, service_id, version, package_path):
        self.calls.append(('upload_package', service_id, version))
        self._version(service_id, version)
        data = Path(package_path).read_bytes()
        package = {
            'id': f"pkg{next(self._ids)}",
            'metadata': {
                'name': Path(package_path).name,
                'size': len(data),
                'hashsum': hashlib.sha256(data).hexdigest(),
            },
        }
        self._service(service_id)['packages'][version] = package
        return package

    def get_package(self, service_id, version):
        try:
            return self._service(service_id)['packages'][version]
        except KeyError:
            raise _not_found(f"package on version {version}") from None


@pytest.fixture
def ui():
    return RecordingUI()


@pytest.fixture
def ctx(ui):
    """Operation context with a recording UI."""
    return OperationContext(ui=ui)


@pytest.fixture
def fake_client():
    return FakeFastlyClient()


@pytest.fixture
def settings():
    """Fastly settings naming a backend and a domain."""
    return FastlySettings(
        api_token='test-token',
        service_name='edge-app',
        backend_name='origin',
        backend_address='https://origin.example.com/',
        domain='app.example.com',
    )


@pytest.fixture
def artifact_file(tmp_path):
    """A small package archive on disk."""
    path = tmp_path / 'edge-app-1.0.0.tar.gz'
    path.write_bytes(b'package-bytes')
    return path
