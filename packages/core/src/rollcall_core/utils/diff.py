import re

_DIFF_HEADER_RE = re.compile(r"^diff --git a/(?P<old>.+?) b/(?P<new>.+)$")


def files_changed(diff_text: str) -> list[str]:
    """List the paths named in the ``diff --git`` headers of a unified diff.

    Both sides of a rename are reported, each path once, in diff order.
    """
    paths: list[str] = []
    for line in diff_text.splitlines():
        match = _DIFF_HEADER_RE.match(line)
        if not match:
            continue
        for path in (match.group("old"), match.group("new")):
            if path not in paths:
                paths.append(path)
    return paths
