"""Tests for the local registry."""

import hashlib
import tarfile

import pytest
from pydantic import ValidationError

from fastly_deploy.builder import Binary
from fastly_deploy.config.models import RegistryConfig
from fastly_deploy.registry import Artifact, Registry
from fastly_deploy.utils.errors import ConfigInvalidError, WorkspaceError


@pytest.fixture
def binary(tmp_path):
    path = tmp_path / 'builds' / 'abc' / 'build' / 'index.js'
    path.parent.mkdir(parents=True)
    path.write_text('compiled output')
    return Binary(location=str(path), build_id='abc', source_directory=str(tmp_path))


@pytest.fixture
def registry(tmp_path):
    return Registry(RegistryConfig(name='edge-app', version='1.0.0', path=str(tmp_path / 'registry')))


class TestPush:
    """Test pushing binaries."""

    def test_packages_binary(self, ctx, registry, binary, tmp_path):
        """Push should write a tar.gz holding the binary under the artifact name."""
        artifact = registry.push(ctx, binary)

        expected = tmp_path / 'registry' / 'edge-app' / 'edge-app-1.0.0.tar.gz'
        assert artifact.location == str(expected.resolve())
        assert artifact.name == 'edge-app'
        assert artifact.version == '1.0.0'

        with tarfile.open(expected) as archive:
            assert archive.getnames() == ['edge-app/index.js']
            assert archive.extractfile('edge-app/index.js').read() == b'compiled output'

    def test_digest_matches_archive(self, ctx, registry, binary):
        artifact = registry.push(ctx, binary)

        with open(artifact.location, 'rb') as f:
            assert artifact.digest == hashlib.sha256(f.read()).hexdigest()

    def test_push_replaces_existing(self, ctx, registry, binary, tmp_path):
        """Pushing the same version twice should leave a single archive."""
        registry.push(ctx, binary)
        registry.push(ctx, binary)

        files = list((tmp_path / 'registry' / 'edge-app').iterdir())
        assert [f.name for f in files] == ['edge-app-1.0.0.tar.gz']

    def test_missing_binary(self, ctx, registry, tmp_path):
        binary = Binary(location=str(tmp_path / 'gone.js'), build_id='x', source_directory='.')

        with pytest.raises(WorkspaceError, match="Binary not found"):
            registry.push(ctx, binary)

    def test_not_configured(self, ctx, binary):
        with pytest.raises(ConfigInvalidError):
            Registry().push(ctx, binary)

    def test_artifact_immutable(self, ctx, registry, binary):
        artifact = registry.push(ctx, binary)
        with pytest.raises(ValidationError):
            artifact.version = "2.0.0"
        assert isinstance(artifact, Artifact)


class TestRegistryConfig:
    """Test the registry configuration hook."""

    def test_config_set_defaults(self):
        registry = Registry()
        config = registry.config_set({'name': 'edge-app'})
        assert config.version == 'latest'
        assert registry.config() is config

    def test_name_required(self):
        with pytest.raises(ConfigInvalidError) as exc_info:
            Registry().config_set({})
        assert exc_info.value.errors[0]['loc'] == ['registry', 'name']

    def test_invalid_name(self):
        with pytest.raises(ConfigInvalidError):
            Registry().config_set({'name': 'has spaces/slash'})
