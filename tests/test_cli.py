import io
import json
import tarfile

import httpx
import pytest
import yaml
from click.testing import CliRunner

from fnbuilder import cli as cli_module
from fnbuilder.cli import cli
from fnbuilder.builder import FunctionBuilder, verify_signature

PROJECT = {
    'builder': {'url': 'http://builder:8080', 'secret': 'cli-secret'},
    'functions': {
        'hello': {
            'lang': 'python3',
            'handler': './hello',
            'image': 'ttl.sh/hello:1h',
            'copy': ['common'],
        },
    },
}


@pytest.fixture
def project(tmp_path, monkeypatch):
    """A project directory with a template, a handler and shared code."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("CI", raising=False)
    (tmp_path / "template" / "python3" / "function").mkdir(parents=True)
    (tmp_path / "template" / "python3" / "Dockerfile").write_text("FROM python:3.12\n")
    (tmp_path / "hello" / "build").mkdir(parents=True)
    (tmp_path / "hello" / "handler.py").write_text("def handle(req):\n    return 'hi'\n")
    (tmp_path / "common").mkdir()
    (tmp_path / "common" / "shared.py").write_text("SHARED = 1\n")
    (tmp_path / "fnbuilder.yml").write_text(yaml.dump(PROJECT))
    return tmp_path


@pytest.fixture
def mock_builder(monkeypatch):
    """Route FunctionBuilder traffic from the CLI to a request handler."""
    def install(handler):
        def factory(url, **kwargs):
            client = httpx.Client(transport=httpx.MockTransport(handler))
            return FunctionBuilder(url, client=client, **kwargs)
        monkeypatch.setattr(cli_module, "FunctionBuilder", factory)
    return install


class TestContextCommand:

    def test_assembles_context(self, project):
        result = CliRunner().invoke(cli, ['context', 'fnbuilder.yml'])
        assert result.exit_code == 0, result.output
        root = project / "build" / "hello"
        assert (root / "Dockerfile").exists()
        assert (root / "function" / "handler.py").exists()
        assert (root / "function" / "common" / "shared.py").exists()
        assert not (root / "function" / "build").exists()
        assert "hello:" in result.output

    def test_unknown_function(self, project):
        result = CliRunner().invoke(cli, ['context', 'fnbuilder.yml', 'nope'])
        assert result.exit_code == 1

    def test_missing_config(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        result = CliRunner().invoke(cli, ['context', 'missing.yml'])
        assert result.exit_code == 1

    def test_escaping_extra_path(self, project):
        data = json.loads(json.dumps(PROJECT))
        data['functions']['hello']['copy'] = ['../../etc']
        (project / "fnbuilder.yml").write_text(yaml.dump(data))
        result = CliRunner().invoke(cli, ['context'])
        assert result.exit_code == 1
        assert not (project / "build").exists()


class TestTarCommand:

    def test_writes_archive(self, project):
        result = CliRunner().invoke(cli, ['tar', 'fnbuilder.yml', 'hello'])
        assert result.exit_code == 0, result.output
        with tarfile.open(project / "build" / "hello.tar") as tar:
            names = tar.getnames()
            manifest = json.loads(tar.extractfile("com.openfaas.docker.config").read())
        assert "context/function/handler.py" in names
        assert names[-1] == "com.openfaas.docker.config"
        assert manifest == {"image": "ttl.sh/hello:1h"}


class TestBuildCommand:

    def test_build(self, project, mock_builder):
        seen = {}

        def handler(request):
            seen['valid'] = verify_signature(request.content, 'cli-secret', request.headers['X-Build-Signature'])
            with tarfile.open(fileobj=io.BytesIO(request.content)) as tar:
                seen['names'] = tar.getnames()
            return httpx.Response(200, json={'log': ['pushed'], 'image': 'ttl.sh/hello:1h', 'status': 'success'})

        mock_builder(handler)
        result = CliRunner().invoke(cli, ['build', 'fnbuilder.yml'])

        assert result.exit_code == 0, result.output
        assert seen['valid']
        assert "context/function/common/shared.py" in seen['names']
        assert "pushed" in result.output
        assert "hello: ttl.sh/hello:1h (success)" in result.output

    def test_build_stream(self, project, mock_builder):
        lines = [
            {'log': ['step 1'], 'status': 'in_progress'},
            {'log': ['step 2'], 'status': 'in_progress'},
            {'image': 'ttl.sh/hello:1h', 'status': 'success'},
        ]
        body = "\n".join(json.dumps(line) for line in lines).encode()
        mock_builder(lambda request: httpx.Response(202, content=body))

        result = CliRunner().invoke(cli, ['build', 'fnbuilder.yml', '--stream'])

        assert result.exit_code == 0, result.output
        assert result.output.index("step 1") < result.output.index("step 2")
        assert "hello: ttl.sh/hello:1h (success)" in result.output

    def test_build_failure_status(self, project, mock_builder):
        mock_builder(lambda request: httpx.Response(500, json={'log': ['exit code 1'], 'status': 'failed'}))
        result = CliRunner().invoke(cli, ['build', 'fnbuilder.yml'])
        assert result.exit_code == 1
        assert "exit code 1" in result.output

    def test_build_failed_in_stream(self, project, mock_builder):
        body = json.dumps({'log': ['compile error'], 'status': 'failed'}).encode()
        mock_builder(lambda request: httpx.Response(202, content=body))
        result = CliRunner().invoke(cli, ['build', 'fnbuilder.yml', '-s'])
        assert result.exit_code == 1
        assert "compile error" in result.output

    def test_secret_file_overrides_config(self, project, mock_builder):
        (project / "secret.txt").write_text("from-file\n")
        seen = {}

        def handler(request):
            seen['valid'] = verify_signature(request.content, 'from-file', request.headers['X-Build-Signature'])
            return httpx.Response(202, json={'status': 'in_progress'})

        mock_builder(handler)
        result = CliRunner().invoke(cli, ['build', 'fnbuilder.yml', '--secret-file', 'secret.txt'])
        assert result.exit_code == 0, result.output
        assert seen['valid']
        assert "hello: in_progress" in result.output

    def test_unreachable_builder(self, project, mock_builder):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        mock_builder(handler)
        result = CliRunner().invoke(cli, ['build', 'fnbuilder.yml'])
        assert result.exit_code == 1


def test_version():
    result = CliRunner().invoke(cli, ['--version'])
    assert result.exit_code == 0
    assert "fnbuilder" in result.output
