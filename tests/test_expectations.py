"""Tests for probe expectations."""

import pytest

from ctprobe.errors import ConfigError
from ctprobe.expectations import (
    EXPECTATION_TABLES,
    CommandExpectation,
    FileExpectation,
    HttpExpectation,
)


@pytest.mark.unit
class TestFileExpectation:
    def test_default_label(self):
        assert FileExpectation("/usr/local/bin/yq").describe() == "Check /usr/local/bin/yq exists"

    def test_explicit_label(self):
        expectation = FileExpectation("/app/script.sh", label="script is shipped")
        assert expectation.describe() == "script is shipped"

    @pytest.mark.parametrize("path", ["usr/bin/yq", "", "./yq"])
    def test_relative_path_rejected(self, path):
        with pytest.raises(ConfigError, match="absolute"):
            FileExpectation(path)

    def test_from_dict_unknown_field(self):
        with pytest.raises(ConfigError, match="Unknown file probe field"):
            FileExpectation.from_dict({"path": "/bin/sh", "mode": "0755"})


@pytest.mark.unit
class TestHttpExpectation:
    def test_defaults(self):
        expectation = HttpExpectation()
        assert expectation.path == "/"
        assert expectation.port == 80
        assert expectation.status == 200
        assert expectation.body is None
        assert expectation.describe() == "GET :80/ returns 200"

    def test_from_dict(self):
        expectation = HttpExpectation.from_dict({"path": "/healthz", "port": 8080, "status": 204})
        assert expectation == HttpExpectation(path="/healthz", port=8080, status=204)

    def test_invalid_port(self):
        with pytest.raises(ConfigError, match="port"):
            HttpExpectation(port=70000)

    def test_path_must_start_with_slash(self):
        with pytest.raises(ConfigError):
            HttpExpectation(path="healthz")

    def test_status_must_be_int(self):
        with pytest.raises(ConfigError, match="status"):
            HttpExpectation(status="200")


@pytest.mark.unit
class TestCommandExpectation:
    def test_argv_with_entrypoint(self):
        expectation = CommandExpectation(entrypoint="yq", args=["--version"])
        assert expectation.argv() == ["yq", "--version"]
        assert expectation.args == ("--version",)

    def test_argv_without_entrypoint(self):
        expectation = CommandExpectation(args=["sh", "-c", "echo hi"])
        assert expectation.argv() == ["sh", "-c", "echo hi"]

    def test_default_label_quotes_arguments(self):
        expectation = CommandExpectation(args=["sh", "-c", "echo hi"], exit_code=3)
        assert expectation.describe() == "Run sh -c 'echo hi' exits 3"

    def test_empty_command_rejected(self):
        with pytest.raises(ConfigError, match="entrypoint or args"):
            CommandExpectation()

    def test_string_args_rejected(self):
        with pytest.raises(ConfigError, match="list of strings"):
            CommandExpectation(entrypoint="yq", args="--version")

    def test_hashable(self):
        expectation = CommandExpectation(entrypoint="yq", args=["--version"])
        assert hash(expectation) == hash(CommandExpectation(entrypoint="yq", args=("--version",)))


@pytest.mark.unit
def test_expectation_tables():
    assert EXPECTATION_TABLES == {
        "files": FileExpectation,
        "http": HttpExpectation,
        "commands": CommandExpectation,
    }
