"""
Renders an evidence bundle into the review prompt.
"""

import json
from string import Template
from typing import List

from repoaudit import constants
from repoaudit.models import CommitRecord, EvidenceBundle, PullRequestRecord
from repoaudit.utils import truncate

NOT_AVAILABLE = "{section} not available."

# Parsed once; substitute() is a single pass, so placeholder syntax inside
# evidence values is never expanded.
_TEMPLATE = Template(constants.REVIEW_PROMPT_TEMPLATE)


def render_readme(readme) -> str:
    if not readme:
        return NOT_AVAILABLE.format(section="README")
    return f"--- README ---\n{truncate(readme, constants.README_CHAR_LIMIT)}"


def render_tree(bundle: EvidenceBundle) -> str:
    if not bundle.files:
        return NOT_AVAILABLE.format(section="File tree")
    return "--- FILE STRUCTURE ---\n" + "\n".join(f.path for f in bundle.files)


def render_languages(languages) -> str:
    if not languages:
        return NOT_AVAILABLE.format(section="Language breakdown")
    return f"--- LANGUAGES (bytes) ---\n{json.dumps(languages, indent=2)}"


def _render_commit(commit: CommitRecord) -> str:
    lines = [
        f"Commit: {commit.sha}",
        f"Author: {commit.author_name or 'unknown'} ({commit.author_date or 'unknown date'})",
        f"Message: {commit.message}",
    ]
    if commit.stats:
        lines.append(f"Stats: +{commit.stats.additions} / -{commit.stats.deletions}")
    if commit.modified_files:
        lines.append("Files Modified: " + ", ".join(f.filename for f in commit.modified_files))
        patch = next((f.patch_excerpt for f in commit.modified_files if f.patch_excerpt), None)
        if patch:
            lines.append(f"Patch Snippet:\n{truncate(patch, constants.PATCH_SNIPPET_CHAR_LIMIT)}")
    return "\n".join(lines)


def render_commits(commits: List[CommitRecord]) -> str:
    if not commits:
        return NOT_AVAILABLE.format(section="Commit history")
    return "\n\n".join(_render_commit(c) for c in commits[: constants.PROMPT_COMMIT_LIMIT])


def _render_pull_request(pr: PullRequestRecord) -> str:
    body = truncate(pr.body, constants.PULL_REQUEST_BODY_CHAR_LIMIT) or "No description."
    return f"PR #{pr.number}: {pr.title} [{pr.state}] by {pr.author_login or 'unknown'}\nDescription: {body}"


def render_pull_requests(pull_requests: List[PullRequestRecord]) -> str:
    if not pull_requests:
        return NOT_AVAILABLE.format(section="Pull request history")
    return "\n\n".join(_render_pull_request(p) for p in pull_requests[: constants.PROMPT_PULL_REQUEST_LIMIT])


def render_files(bundle: EvidenceBundle) -> str:
    files = [f for f in bundle.ranked_files if f.content_excerpt is not None]
    if not files:
        return NOT_AVAILABLE.format(section="Source file content")
    return "\n\n".join(f"--- FILE: {f.path} ---\n{f.content_excerpt}" for f in files)


def render_contributors(bundle: EvidenceBundle) -> str:
    if not bundle.contributors:
        return NOT_AVAILABLE.format(section="Contributor data")
    top = bundle.contributors[: constants.PROMPT_CONTRIBUTOR_LIMIT]
    return "\n".join(f"{c.login}: {c.contributions} commits" for c in top)


def assemble(bundle: EvidenceBundle) -> str:
    """
    Build the review prompt for a bundle.

    Args:
        bundle: Collected repository evidence.

    Returns:
        The prompt text with every evidence placeholder filled exactly once.
    """
    return _TEMPLATE.substitute(
        readme_context=render_readme(bundle.readme),
        tree_context=render_tree(bundle),
        language_context=render_languages(bundle.languages),
        commit_context=render_commits(bundle.commits),
        pr_context=render_pull_requests(bundle.pull_requests),
        file_context=render_files(bundle),
        contributor_context=render_contributors(bundle),
    )
