"""
Data model shared by the evidence collector, prompt assembler and review stream.
"""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class RepositoryInfo(BaseModel):
    """Top-level repository metadata."""

    model_config = ConfigDict(extra="ignore")

    name: str
    full_name: str
    description: Optional[str] = None
    html_url: Optional[str] = None
    default_branch: Optional[str] = None
    stargazers_count: int = 0
    forks_count: int = 0
    open_issues_count: int = 0


class RepositoryFile(BaseModel):
    """
    A blob entry from the repository tree.

    ``content_excerpt`` is only populated for files selected by the ranker,
    truncated to a fixed character cap.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    blob_id: str
    byte_size: Optional[int] = None
    content_excerpt: Optional[str] = None

    @property
    def name(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def depth(self) -> int:
        return self.path.count("/") + 1

    @classmethod
    def from_tree_entry(cls, entry: Dict[str, Any]) -> "RepositoryFile":
        return cls(path=entry["path"], blob_id=entry["sha"], byte_size=entry.get("size"))


class CommitStats(BaseModel):
    additions: int = 0
    deletions: int = 0
    total: int = 0


class FileChange(BaseModel):
    filename: str
    status: str
    patch_excerpt: Optional[str] = None


class CommitRecord(BaseModel):
    sha: str
    message: str
    author_name: Optional[str] = None
    author_date: Optional[str] = None
    html_url: Optional[str] = None
    stats: Optional[CommitStats] = None
    modified_files: Optional[List[FileChange]] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "CommitRecord":
        commit = raw.get("commit") or {}
        author = commit.get("author") or {}
        return cls(
            sha=raw["sha"],
            message=commit.get("message", ""),
            author_name=author.get("name"),
            author_date=author.get("date"),
            html_url=raw.get("html_url"),
        )

    def with_detail(self, detail: Dict[str, Any], patch_limit: int) -> "CommitRecord":
        """Return a copy enriched with stats and modified files from a commit detail payload."""
        stats = detail.get("stats")
        files = [
            FileChange(
                filename=f["filename"],
                status=f.get("status", "modified"),
                patch_excerpt=f["patch"][:patch_limit] if f.get("patch") else None,
            )
            for f in detail.get("files") or []
        ]
        return self.model_copy(
            update={
                "stats": CommitStats(**stats) if stats else None,
                "modified_files": files,
            }
        )


class PullRequestRecord(BaseModel):
    number: int
    title: str
    state: str
    author_login: Optional[str] = None
    created_at: Optional[str] = None
    body: Optional[str] = None
    html_url: Optional[str] = None

    @classmethod
    def from_api(cls, raw: Dict[str, Any]) -> "PullRequestRecord":
        user = raw.get("user") or {}
        return cls(
            number=raw["number"],
            title=raw.get("title", ""),
            state=raw.get("state", "unknown"),
            author_login=user.get("login"),
            created_at=raw.get("created_at"),
            body=raw.get("body"),
            html_url=raw.get("html_url"),
        )


class Branch(BaseModel):
    name: str
    sha: Optional[str] = None


class Contributor(BaseModel):
    model_config = ConfigDict(extra="ignore")

    login: str
    contributions: int = 0


class EvidenceBundle(BaseModel):
    """Bounded set of repository facts rendered into one review prompt."""

    repository: RepositoryInfo
    readme: Optional[str] = None
    files: List[RepositoryFile] = Field(default_factory=list)
    ranked_files: List[RepositoryFile] = Field(default_factory=list)
    commits: List[CommitRecord] = Field(default_factory=list)
    pull_requests: List[PullRequestRecord] = Field(default_factory=list)
    branches: List[Branch] = Field(default_factory=list)
    contributors: List[Contributor] = Field(default_factory=list)
    languages: Dict[str, int] = Field(default_factory=dict)


class AnalysisScores(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    quality: int = Field(ge=0, le=100)
    security: int = Field(ge=0, le=100)
    reliability: int = Field(ge=0, le=100)
    tech_stack_suitability: int = Field(ge=0, le=100, alias="techStackSuitability")
    team_balance: int = Field(ge=0, le=100, alias="teamBalance")
    commit_quality: int = Field(ge=0, le=100, alias="commitQuality")
    pr_quality: int = Field(ge=0, le=100, alias="prQuality")
    structure_quality: int = Field(ge=0, le=100, alias="structureQuality")


class AnalysisResult(BaseModel):
    """Schema of the fenced JSON block that precedes the narrative report."""

    model_config = ConfigDict(populate_by_name=True)

    scores: AnalysisScores
    code_quality_summary: Optional[str] = Field(None, alias="codeQualitySummary")
    commit_summaries: Dict[str, str] = Field(default_factory=dict, alias="commitSummaries")
    pr_summaries: Dict[str, str] = Field(default_factory=dict, alias="prSummaries")


# --- Stream events ---

class TextDelta(BaseModel):
    type: Literal["text"] = "text"
    content: str


class UsageDelta(BaseModel):
    type: Literal["usage"] = "usage"
    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0


class TerminalError(BaseModel):
    type: Literal["error"] = "error"
    message: str


class StreamReset(BaseModel):
    """Discard everything streamed so far; a retry starts the review over."""

    type: Literal["reset"] = "reset"


StreamEvent = Union[TextDelta, UsageDelta, TerminalError, StreamReset]
