"""Tests for the build pipeline.

run_command is patched so no npm is needed; the fake build stage writes
build/index.js into the scratch directory the way ``npm run build`` would.
TestConsoleBuild runs real child processes through the console UI.
"""

import io
import sys
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError
from rich.console import Console

from fastly_deploy.builder import Binary, Builder
from fastly_deploy.builder.builder import SCRATCH_PREFIX
from fastly_deploy.config.models import BuildConfig
from fastly_deploy.context import OperationContext
from fastly_deploy.utils.errors import (
    BuildFailedError,
    CommandFailedError,
    ConfigInvalidError,
    OperationCancelledError,
    SourceNotADirectoryError,
)
from fastly_deploy.utils.terminal import ConsoleUI


@pytest.fixture
def source(tmp_path):
    """A minimal JavaScript project."""
    source = tmp_path / 'app'
    (source / 'src').mkdir(parents=True)
    (source / 'package.json').write_text('{"name": "app"}')
    (source / 'src' / 'index.js').write_text('addEventListener("fetch", () => {});\n')
    return source


@pytest.fixture
def builder(source, tmp_path):
    return Builder(BuildConfig(directory=str(source), output_dir=str(tmp_path / 'builds')))


class FakeTooling:
    """Records stages and produces build output like npm would."""

    def __init__(self, write_output=True, fail_stage=None):
        self.calls = []
        self.write_output = write_output
        self.fail_stage = fail_stage

    def __call__(self, cmd, cwd, ctx):
        cwd = Path(cwd)
        self.calls.append((list(cmd), cwd, (cwd / 'package.json').exists()))
        if cmd == ['npm', 'run', 'build']:
            if self.fail_stage == 'build':
                raise CommandFailedError("exit 1", command=cmd, returncode=1)
            if self.write_output:
                (cwd / 'build').mkdir(exist_ok=True)
                (cwd / 'build' / 'index.js').write_text('compiled')
        elif self.fail_stage == 'install':
            raise CommandFailedError("exit 1", command=cmd, returncode=1)


class TestBuild:
    """Test Builder.build end to end."""

    def test_successful_build(self, ctx, builder, source, tmp_path):
        """Install then build should run in a scratch copy and keep the output."""
        tooling = FakeTooling()

        with patch('fastly_deploy.builder.builder.run_command', side_effect=tooling):
            binary = builder.build(ctx)

        assert [c[0] for c in tooling.calls] == [['npm', 'install'], ['npm', 'run', 'build']]
        scratch = tooling.calls[0][1]
        assert tooling.calls[1][1] == scratch
        assert scratch != source
        assert scratch.name.startswith(SCRATCH_PREFIX)
        assert all(c[2] for c in tooling.calls)

        # Scratch is removed but the binary survives
        assert not scratch.exists()
        location = Path(binary.location)
        assert location.read_text() == 'compiled'
        assert location == tmp_path / 'builds' / binary.build_id / 'build' / 'index.js'
        assert binary.source_directory == str(source.resolve())

    def test_source_untouched(self, ctx, builder, source):
        """The build should never write into the source tree."""
        with patch('fastly_deploy.builder.builder.run_command', side_effect=FakeTooling()):
            builder.build(ctx)

        assert not (source / 'build').exists()

    def test_unique_build_ids(self, ctx, builder):
        with patch('fastly_deploy.builder.builder.run_command', side_effect=FakeTooling()):
            first = builder.build(ctx)
            second = builder.build(ctx)

        assert first.build_id != second.build_id
        assert first.location != second.location

    def test_build_stage_failure(self, ctx, builder):
        """A failing build command should raise BuildFailedError and still clean up."""
        tooling = FakeTooling(fail_stage='build')

        with patch('fastly_deploy.builder.builder.run_command', side_effect=tooling):
            with pytest.raises(BuildFailedError) as exc_info:
                builder.build(ctx)

        assert exc_info.value.stage == 'build'
        assert isinstance(exc_info.value.cause, CommandFailedError)
        assert not tooling.calls[0][1].exists()

    def test_install_stage_failure(self, ctx, builder):
        """A failing install should stop before the build stage."""
        tooling = FakeTooling(fail_stage='install')

        with patch('fastly_deploy.builder.builder.run_command', side_effect=tooling):
            with pytest.raises(BuildFailedError) as exc_info:
                builder.build(ctx)

        assert exc_info.value.stage == 'install'
        assert len(tooling.calls) == 1
        assert not tooling.calls[0][1].exists()

    def test_missing_output(self, ctx, builder):
        """A build that produces no output file should fail in the build stage."""
        tooling = FakeTooling(write_output=False)

        with patch('fastly_deploy.builder.builder.run_command', side_effect=tooling):
            with pytest.raises(BuildFailedError, match="build/index.js") as exc_info:
                builder.build(ctx)

        assert exc_info.value.stage == 'build'
        assert not tooling.calls[0][1].exists()

    def test_source_not_directory(self, ctx, tmp_path):
        path = tmp_path / 'file'
        path.write_text('x')
        builder = Builder(BuildConfig(directory=str(path)))

        with patch('fastly_deploy.builder.builder.run_command') as mock_run:
            with pytest.raises(SourceNotADirectoryError):
                builder.build(ctx)

        mock_run.assert_not_called()

    def test_cancelled(self, ctx, builder):
        ctx.cancel()

        with patch('fastly_deploy.builder.builder.run_command') as mock_run:
            with pytest.raises(OperationCancelledError):
                builder.build(ctx)

        mock_run.assert_not_called()

    def test_state_directory_not_staged(self, ctx, source, monkeypatch):
        """Logs, earlier builds and the registry should stay out of scratch."""
        monkeypatch.chdir(source)
        (source / '.fastly-deploy' / 'logs').mkdir(parents=True)
        (source / '.fastly-deploy' / 'logs' / 'run.jsonl').write_text('{}')
        staged = []

        def tooling(cmd, cwd, ctx):
            staged.append(sorted(p.name for p in Path(cwd).iterdir()))
            FakeTooling()(cmd, cwd, ctx)

        builder = Builder(BuildConfig())
        with patch('fastly_deploy.builder.builder.run_command', side_effect=tooling):
            first = builder.build(ctx)
            builder.build(ctx)

        assert Path(first.location).is_relative_to(source.resolve() / '.fastly-deploy' / 'builds')
        assert staged[0] == ['package.json', 'src']
        assert '.fastly-deploy' not in staged[2]

    def test_progress_reported(self, ctx, ui, builder):
        with patch('fastly_deploy.builder.builder.run_command', side_effect=FakeTooling()):
            builder.build(ctx)

        sink = ui.sinks[0]
        assert [s[0] for s in sink.steps] == [
            f"Copied source from {Path(builder.config().directory).resolve()}",
            "Installed dependencies",
            "Built application",
        ]
        assert sink.closed == 1


class TestBuilderConfig:
    """Test the builder configuration hook."""

    def test_defaults(self):
        config = Builder().config()
        assert config.install_command == ['npm', 'install']
        assert config.build_command == ['npm', 'run', 'build']
        assert config.output_path == 'build/index.js'

    def test_config_set(self):
        builder = Builder()
        builder.config_set({'directory': 'web', 'build_command': ['npm', 'run', 'bundle']})
        assert builder.config().directory == 'web'

    def test_blank_directory_rejected(self):
        with pytest.raises(ConfigInvalidError) as exc_info:
            Builder().config_set({'directory': '  '})
        assert exc_info.value.errors[0]['loc'] == ['build', 'directory']

    def test_output_path_outside_tree_rejected(self):
        with pytest.raises(ConfigInvalidError):
            Builder().config_set({'output_path': '../escape.js'})


class TestBinary:
    """Test the binary record."""

    def test_immutable(self):
        binary = Binary(location='/tmp/x', build_id='abc', source_directory='/src')
        with pytest.raises(ValidationError):
            binary.location = '/tmp/y'


class TestConsoleBuild:
    """Test a real build through the rich console UI."""

    def test_build_with_child_processes(self, source, tmp_path):
        """Nested progress from the stages should share the build's spinner."""
        write_output = (
            "import pathlib; p = pathlib.Path('build'); p.mkdir(); "
            "(p / 'index.js').write_text('compiled')"
        )
        config = BuildConfig(
            directory=str(source),
            output_dir=str(tmp_path / 'builds'),
            install_command=[sys.executable, '-c', "print('installed')"],
            build_command=[sys.executable, '-c', write_output],
        )
        buffer = io.StringIO()
        ui = ConsoleUI(Console(file=buffer, force_terminal=True, width=120))

        binary = Builder(config).build(OperationContext(ui=ui))

        assert Path(binary.location).read_text() == 'compiled'
        assert 'Built application' in buffer.getvalue()
