from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from zshrug import installer
from zshrug.config import PluginSource, PluginSpec
from zshrug.errors import BuildError, FetchError


@pytest.fixture
def git_on_path(monkeypatch):
    monkeypatch.setattr(installer.shutil, "which", lambda name: f"/usr/bin/{name}")


def test_git_clone_is_shallow_with_submodules(tmp_path: Path, shell, git_on_path):
    installer.clone_git_repository("https://example.com/repo.git", tmp_path)

    ((command, kwargs),) = shell.calls
    assert command == [
        "/usr/bin/git",
        "clone",
        "--depth=1",
        "--recurse-submodules",
        "--shallow-submodules",
        "https://example.com/repo.git",
        str(tmp_path),
    ]
    assert kwargs["stdout"] == installer.STDERR_FD
    assert "stdin" not in kwargs


def test_git_failure_raises_fetch_error(tmp_path: Path, shell, git_on_path):
    shell.failing.add(f"/usr/bin/git clone --depth=1 --recurse-submodules --shallow-submodules repo {tmp_path}")

    with pytest.raises(FetchError, match="git has exited with an error"):
        installer.clone_git_repository("repo", tmp_path)


def test_git_spawn_failure_is_chained(tmp_path: Path, shell, git_on_path):
    shell.spawn_error = FileNotFoundError("no git")

    with pytest.raises(FetchError) as excinfo:
        installer.clone_git_repository("repo", tmp_path)
    assert isinstance(excinfo.value.__cause__, FileNotFoundError)


def test_missing_git_binary(tmp_path: Path, monkeypatch, shell):
    monkeypatch.setattr(installer.shutil, "which", lambda name: None)

    with pytest.raises(FetchError, match="git executable not found"):
        installer.clone_git_repository("repo", tmp_path)
    assert shell.calls == []


def test_fetch_starts_from_an_empty_directory(tmp_path: Path, fetcher):
    plugin_dir = tmp_path / "plugins" / "abc"
    plugin_dir.mkdir(parents=True)
    (plugin_dir / "stale.zsh").write_text("old")

    installer.fetch(PluginSpec(name="repo"), plugin_dir)

    assert fetcher.calls == [("repo", plugin_dir)]
    assert sorted(path.name for path in plugin_dir.iterdir()) == ["partial.tmp", "plugin.zsh"]


def test_failed_fetch_leaves_no_directory(tmp_path: Path, fetcher):
    plugin_dir = tmp_path / "plugins" / "abc"
    fetcher.failing.add("repo")

    with pytest.raises(FetchError):
        installer.fetch(PluginSpec(name="repo"), plugin_dir)

    assert not plugin_dir.exists()


def test_local_plugins_are_never_fetched(tmp_path: Path):
    with pytest.raises(ValueError):
        installer.fetch(PluginSpec(name=str(tmp_path), source=PluginSource.LOCAL), tmp_path)


def test_download_file_streams_into_directory(tmp_path: Path):
    requested = []

    def handler(request: httpx.Request) -> httpx.Response:
        requested.append(str(request.url))
        return httpx.Response(200, content=b"echo hello\n")

    with httpx.Client(transport=httpx.MockTransport(handler)) as client:
        installer.download_file("https://example.com/a/b/hello.zsh?raw=1", tmp_path, client=client)

    assert requested == ["https://example.com/a/b/hello.zsh?raw=1"]
    assert (tmp_path / "hello.zsh").read_bytes() == b"echo hello\n"


def test_download_http_error_raises_fetch_error(tmp_path: Path):
    transport = httpx.MockTransport(lambda request: httpx.Response(404))

    with httpx.Client(transport=transport) as client:
        with pytest.raises(FetchError) as excinfo:
            installer.download_file("https://example.com/missing.zsh", tmp_path, client=client)

    assert isinstance(excinfo.value.__cause__, httpx.HTTPStatusError)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://example.com/plugin.zsh", "plugin.zsh"),
        ("https://example.com/dir/my%20plugin.zsh", "my plugin.zsh"),
        ("https://example.com/", "index.html"),
        ("https://example.com", "index.html"),
    ],
)
def test_download_filename(url, expected):
    assert installer.download_filename(url) == expected


def test_empty_build_is_a_noop(tmp_path: Path, shell):
    installer.build(PluginSpec(name="repo"), tmp_path)

    assert shell.calls == []


def test_build_runs_in_plugin_directory(tmp_path: Path, shell):
    installer.build(PluginSpec(name="repo", build="make && make install"), tmp_path)

    ((command, kwargs),) = shell.calls
    assert command == "make && make install"
    assert kwargs["shell"] is True
    assert kwargs["cwd"] == str(tmp_path)
    assert kwargs["stdout"] == installer.STDERR_FD
    assert "stdin" not in kwargs
    assert "stderr" not in kwargs


def test_build_failure_raises_build_error(tmp_path: Path, shell):
    shell.failing.add("make")

    with pytest.raises(BuildError) as excinfo:
        installer.build(PluginSpec(name="repo", build="make"), tmp_path)
    assert excinfo.value.plugin == "repo"


def test_build_spawn_failure_is_chained(tmp_path: Path, shell):
    shell.spawn_error = PermissionError("denied")

    with pytest.raises(BuildError) as excinfo:
        installer.build(PluginSpec(name="repo", build="make"), tmp_path)
    assert isinstance(excinfo.value.__cause__, PermissionError)


def test_git_name_with_null_byte_is_a_fetch_error(tmp_path: Path, git_on_path):
    with pytest.raises(FetchError) as excinfo:
        installer.clone_git_repository("re\0po", tmp_path)
    assert isinstance(excinfo.value.__cause__, ValueError)
