"""Tests for workspace staging."""

import os

import pytest

from fastly_deploy.builder.workspace import stage_workspace
from fastly_deploy.utils.errors import SourceNotADirectoryError, WorkspaceError


def _tree(root):
    """Map every file below root to its content."""
    result = {}
    for dirpath, _, filenames in os.walk(root):
        for name in filenames:
            path = os.path.join(dirpath, name)
            result[os.path.relpath(path, root)] = open(path, 'rb').read()
    return result


class TestStageWorkspace:
    """Test copying a source tree into a workspace."""

    def test_copies_tree(self, tmp_path):
        """Every file and directory should be reproduced with identical content."""
        source = tmp_path / 'src'
        (source / 'lib' / 'nested').mkdir(parents=True)
        (source / 'package.json').write_text('{"name": "app"}')
        (source / 'lib' / 'index.js').write_text('export default 1;\n')
        (source / 'lib' / 'nested' / 'data.bin').write_bytes(bytes(range(256)))
        (source / 'empty').mkdir()

        destination = stage_workspace(source, tmp_path / 'dst')

        assert _tree(destination) == _tree(source)
        assert (destination / 'empty').is_dir()

    def test_existing_destination(self, tmp_path):
        """Staging into an existing directory should succeed."""
        source = tmp_path / 'src'
        source.mkdir()
        (source / 'a.txt').write_text('a')
        destination = tmp_path / 'dst'
        destination.mkdir()

        stage_workspace(source, destination)

        assert (destination / 'a.txt').read_text() == 'a'

    def test_follows_symlinks(self, tmp_path):
        """Symlinked files should be copied as regular files."""
        target = tmp_path / 'outside.txt'
        target.write_text('outside')
        source = tmp_path / 'src'
        source.mkdir()
        (source / 'link.txt').symlink_to(target)

        destination = stage_workspace(source, tmp_path / 'dst')

        copied = destination / 'link.txt'
        assert not copied.is_symlink()
        assert copied.read_text() == 'outside'

    def test_exclude_patterns(self, tmp_path):
        source = tmp_path / 'src'
        (source / 'node_modules' / 'dep').mkdir(parents=True)
        (source / 'node_modules' / 'dep' / 'index.js').write_text('x')
        (source / 'main.js').write_text('y')

        destination = stage_workspace(source, tmp_path / 'dst', exclude=['node_modules'])

        assert (destination / 'main.js').exists()
        assert not (destination / 'node_modules').exists()

    def test_skip_paths(self, tmp_path):
        """A skipped location is left out only where it sits, not by name."""
        source = tmp_path / 'src'
        (source / '.state' / 'logs').mkdir(parents=True)
        (source / '.state' / 'logs' / 'run.jsonl').write_text('{}')
        (source / 'lib' / '.state').mkdir(parents=True)
        (source / 'main.js').write_text('y')

        destination = stage_workspace(source, tmp_path / 'dst', skip_paths=[source / '.state'])

        assert (destination / 'main.js').exists()
        assert not (destination / '.state').exists()
        assert (destination / 'lib' / '.state').is_dir()

    def test_source_is_file(self, tmp_path):
        """A file as source should raise SourceNotADirectoryError."""
        source = tmp_path / 'file.txt'
        source.write_text('not a dir')

        with pytest.raises(SourceNotADirectoryError):
            stage_workspace(source, tmp_path / 'dst')

    def test_missing_source(self, tmp_path):
        with pytest.raises(SourceNotADirectoryError):
            stage_workspace(tmp_path / 'missing', tmp_path / 'dst')

    def test_broken_symlink(self, tmp_path):
        """A dangling symlink cannot be followed and should raise WorkspaceError."""
        source = tmp_path / 'src'
        source.mkdir()
        (source / 'dangling').symlink_to(tmp_path / 'nowhere')

        with pytest.raises(WorkspaceError):
            stage_workspace(source, tmp_path / 'dst')
