"""Tests for repository path validation and temporary clones."""

import tempfile
from pathlib import Path
from unittest.mock import patch

import pytest
from git import Repo
from git.exc import GitCommandError

from gitvis.errors import ProviderError, ValidationError
from gitvis.nodes.repository_source import (
    CLONE_PREFIX,
    cleanup_repository,
    clone_repository,
    extract_repo_name,
    require_repository,
    validate_git_url,
    validate_repository,
)


@pytest.fixture
def temp_git_repo(tmp_path):
    repo_path = tmp_path / "test_repo"
    repo_path.mkdir()
    Repo.init(repo_path)
    return repo_path


def test_validate_repository(temp_git_repo, tmp_path):
    assert validate_repository(str(temp_git_repo))
    plain = tmp_path / "plain"
    plain.mkdir()
    assert not validate_repository(str(plain))
    assert not validate_repository("")
    assert not validate_repository(str(tmp_path / "missing"))


def test_require_repository_resolves_path(temp_git_repo):
    assert require_repository(str(temp_git_repo)) == str(temp_git_repo.resolve())


@pytest.mark.parametrize("path", ["", "   "])
def test_require_repository_needs_a_path(path):
    with pytest.raises(ValidationError, match="required"):
        require_repository(path)


def test_require_repository_rejects_missing_and_plain_dirs(tmp_path):
    with pytest.raises(ValidationError, match="does not exist"):
        require_repository(str(tmp_path / "missing"))
    with pytest.raises(ValidationError, match="Not a valid git repository"):
        require_repository(str(tmp_path))


@pytest.mark.parametrize(
    "url",
    [
        "https://github.com/owner/project",
        "https://gitlab.com/group/project.git",
        "git@github.com:owner/project.git",
        "https://example.org/scm/project.git",
        "git://example.org/project",
    ],
)
def test_valid_git_urls(url):
    assert validate_git_url(url)


@pytest.mark.parametrize("url", ["", "not a url", "ftp://example.org/project", "https://example.org/page"])
def test_invalid_git_urls(url):
    assert not validate_git_url(url)


def test_extract_repo_name():
    assert extract_repo_name("https://github.com/owner/project.git") == "project"
    assert extract_repo_name("git@github.com:owner/tool") == "tool"
    assert extract_repo_name("https://github.com/owner/site/") == "site"


def test_clone_rejects_invalid_url():
    with pytest.raises(ValidationError):
        clone_repository("not a url")


def test_clone_passes_depth_and_all_branches():
    with patch("gitvis.nodes.repository_source.Repo.clone_from") as clone_from:
        target = clone_repository("https://github.com/owner/project.git", shallow=True, depth=50)
    try:
        assert Path(target).name.startswith(f"{CLONE_PREFIX}project-")
        _, kwargs = clone_from.call_args
        assert kwargs["multi_options"] == ["--no-single-branch", "--depth=50"]
    finally:
        assert cleanup_repository(target)


def test_failed_clone_removes_target():
    error = GitCommandError("clone", 128, stderr="repository not found")
    with patch("gitvis.nodes.repository_source.Repo.clone_from", side_effect=error):
        with pytest.raises(ProviderError, match="repository not found"):
            clone_repository("https://github.com/owner/gone.git")
    leftovers = list(Path(tempfile.gettempdir()).glob(f"{CLONE_PREFIX}gone-*"))
    assert leftovers == []


def test_cleanup_only_touches_temporary_clones(temp_git_repo):
    assert not cleanup_repository(str(temp_git_repo))
    assert temp_git_repo.exists()
