"""Webhook payload schemas"""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel

ZERO_REVISION = "0" * 40


class RepositoryOwner(BaseModel):
    name: str

    class Config:
        extra = "ignore"


class Repository(BaseModel):
    name: str
    url: str
    owner: RepositoryOwner

    class Config:
        extra = "ignore"


class PushPayload(BaseModel):
    """
    Minimal model for a forge push event.
    Only fields used by this app are included.
    """

    repository: Repository
    before: str
    after: str
    ref: str

    class Config:
        extra = "ignore"


class PushEvent(BaseModel):
    """
    One push delivery, flattened.

    Revisions are forwarded as received; the all-zero revision marks branch
    creation or deletion and is not treated specially here.
    """

    owner_name: str
    repo_name: str
    before: str
    after: str
    ref: str
    repository_url: str

    class Config:
        frozen = True

    @classmethod
    def from_payload(cls, data: Mapping[str, Any]) -> "PushEvent":
        """Decode a forge payload; raises ``pydantic.ValidationError`` if malformed."""
        payload = PushPayload.model_validate(data)
        return cls(
            owner_name=payload.repository.owner.name,
            repo_name=payload.repository.name,
            before=payload.before,
            after=payload.after,
            ref=payload.ref,
            repository_url=payload.repository.url,
        )

    @property
    def full_name(self) -> str:
        return f"{self.owner_name}/{self.repo_name}"

    @property
    def compare_url(self) -> str:
        return f"{self.repository_url.rstrip('/')}/compare/{self.before}...{self.after}"
