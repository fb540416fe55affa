# modregistry/github/api.py
"""Typed views of the GitHub REST payloads the registry consumes."""
from __future__ import annotations
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

__all__ = [
    "GitHubTreeItem", "GitHubTreeResponse", "GitHubContentResponse",
    "GitHubRepoResponse", "GitHubGitActor", "GitHubCommitDetail",
    "GitHubCommitResponse", "GitHubTagCommit", "GitHubTagItem",
]



class _GitHubModel(BaseModel):
    # GitHub adds fields freely; only what we read is declared.
    model_config = ConfigDict(extra="ignore")



class GitHubTreeItem(_GitHubModel):
    """Entry of /repos/{owner}/{repo}/git/trees/{sha}."""
    path: str
    type: Literal["blob", "tree", "commit"]
    sha: str | None = None
    size: int | None = None
    url: str | None = None
    mode: str | None = None



class GitHubTreeResponse(_GitHubModel):
    sha: str
    url: str | None = None
    tree: list[GitHubTreeItem] = Field(default_factory=list)
    truncated: bool = False



class GitHubContentResponse(_GitHubModel):
    """File payload of /repos/{owner}/{repo}/contents/{path}."""
    name: str
    path: str
    sha: str
    size: int
    type: str
    content: str | None = None
    encoding: str | None = None
    url: str | None = None
    html_url: str | None = None
    download_url: str | None = None



class GitHubRepoResponse(_GitHubModel):
    id: int
    name: str
    full_name: str
    default_branch: str
    description: str | None = None
    html_url: str | None = None



class GitHubGitActor(_GitHubModel):
    name: str | None = None
    email: str | None = None
    date: str | None = None



class GitHubCommitDetail(_GitHubModel):
    message: str | None = None
    author: GitHubGitActor | None = None
    committer: GitHubGitActor | None = None



class GitHubCommitResponse(_GitHubModel):
    """Payload of /repos/{owner}/{repo}/commits/{ref}."""
    sha: str
    url: str | None = None
    html_url: str | None = None
    commit: GitHubCommitDetail | None = None

    @property
    def committedAt(self) -> str | None:
        if self.commit is None:
            return None
        for actor in (self.commit.committer, self.commit.author):
            if actor is not None and actor.date:
                return actor.date
        return None



class GitHubTagCommit(_GitHubModel):
    sha: str
    url: str | None = None



class GitHubTagItem(_GitHubModel):
    name: str
    zipball_url: str | None = None
    tarball_url: str | None = None
    commit: GitHubTagCommit
