from __future__ import annotations

from github import Github


def get_repo(repo_name: str, token: str, timeout: int = 15):
    return Github(token, timeout=timeout).get_repo(repo_name)


def get_pull(repo, pr_number: int):
    return repo.get_pull(pr_number)


def get_issue(repo, issue_number: int):
    return repo.get_issue(issue_number)


def get_changed_files(repo, pr_number: int) -> list[str]:
    """Return every path a pull request touches, in API order.

    A renamed file contributes both its old and new path so a move out of a
    watched directory still counts as touching it.
    """
    paths: list[str] = []
    for f in get_pull(repo, pr_number).get_files():
        previous = getattr(f, "previous_filename", None)
        if previous and previous not in paths:
            paths.append(previous)
        if f.filename not in paths:
            paths.append(f.filename)
    return paths
