"""Repository acquisition: local path validation and remote clones."""

import re
import shutil
import tempfile
import time
from pathlib import Path

from git import Repo
from git.exc import GitCommandError, InvalidGitRepositoryError, NoSuchPathError
from loguru import logger

from gitvis.errors import ProviderError, ValidationError

GIT_URL_PATTERNS = [
    re.compile(r"^https?://(www\.)?github\.com/[\w.-]+/[\w.-]+"),
    re.compile(r"^https?://(www\.)?gitlab\.com/[\w.-]+/[\w.-]+"),
    re.compile(r"^https?://(www\.)?bitbucket\.org/[\w.-]+/[\w.-]+"),
    re.compile(r"^git@github\.com:[\w.-]+/[\w.-]+"),
    re.compile(r"^git@gitlab\.com:[\w.-]+/[\w.-]+"),
    re.compile(r"^https?://.*\.git$"),
    re.compile(r"^git://.*"),
]

CLONE_PREFIX = "gitvis-"


def validate_repository(repo_path: str) -> bool:
    """Check whether a path points into a git working tree or bare repository."""
    if not repo_path or not repo_path.strip():
        return False
    try:
        Repo(repo_path)
        return True
    except (InvalidGitRepositoryError, NoSuchPathError):
        return False


def require_repository(repo_path: str) -> str:
    """Return the resolved repository path or raise ValidationError."""
    if not repo_path or not repo_path.strip():
        raise ValidationError("Repository path is required")
    resolved = Path(repo_path).expanduser().resolve()
    if not resolved.is_dir():
        raise ValidationError(f"Path does not exist or is not a directory: {repo_path}")
    if not validate_repository(str(resolved)):
        raise ValidationError("Not a valid git repository")
    return str(resolved)


def validate_git_url(url: str) -> bool:
    return any(pattern.match(url) for pattern in GIT_URL_PATTERNS)


def extract_repo_name(url: str) -> str:
    match = re.search(r"[/:]([^/:]+?)(\.git)?/?$", url)
    return match.group(1) if match else "repository"


def clone_repository(url: str, shallow: bool = True, depth: int = 500) -> str:
    """Clone a remote repository into a fresh temporary directory.

    All branches are fetched; ``shallow`` limits each to ``depth`` commits.
    """
    if not validate_git_url(url):
        raise ValidationError("Invalid git repository URL")

    name = extract_repo_name(url)
    target = Path(tempfile.gettempdir()) / f"{CLONE_PREFIX}{name}-{int(time.time() * 1000)}"
    target.mkdir(parents=True)

    options = ["--no-single-branch"]
    if shallow:
        options.append(f"--depth={depth}")

    logger.info(f"Cloning {url} into {target} ({'shallow' if shallow else 'full'})")
    try:
        Repo.clone_from(url, str(target), multi_options=options)
    except GitCommandError as e:
        shutil.rmtree(target, ignore_errors=True)
        raise ProviderError(f"Failed to clone repository: {e.stderr.strip() if e.stderr else e}") from e
    return str(target)


def cleanup_repository(repo_path: str) -> bool:
    """Remove a temporary clone; paths outside the temp directory are left alone."""
    path = Path(repo_path).resolve()
    temp_root = Path(tempfile.gettempdir()).resolve()
    if temp_root not in path.parents or not path.name.startswith(CLONE_PREFIX):
        return False
    shutil.rmtree(path, ignore_errors=True)
    logger.debug(f"Removed temporary clone {path}")
    return True
