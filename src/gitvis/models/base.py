"""Base records describing commits and refs as they travel over the wire."""

from datetime import datetime
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Immutable record serialised with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class RefKind(str, Enum):
    BRANCH = "branch"
    TAG = "tag"
    REMOTE = "remote"


class Author(WireModel):
    name: str = Field(..., description="The author's display name")
    email: str = Field("", description="The author's email address")


class RefInfo(WireModel):
    """A ref decorating a commit."""

    name: str
    kind: RefKind
    is_head: bool = False


class Commit(WireModel):
    """Structured representation of a Git commit."""

    hash: str = Field(..., description="The full commit hash")
    short_hash: str = Field(..., description="The abbreviated commit hash")
    message: str = Field(..., description="The commit subject line")
    body: str = Field("", description="The commit message body")
    author: Author
    date: datetime = Field(..., description="The author timestamp")
    parents: List[str] = Field(default_factory=list, description="Parent hashes, first parent first")
    refs: List[RefInfo] = Field(default_factory=list)

    @property
    def is_root(self) -> bool:
        return not self.parents

    @property
    def is_merge(self) -> bool:
        return len(self.parents) >= 2


class Branch(WireModel):
    name: str
    commit: str
    is_remote: bool = False
    is_head: bool = False


class Tag(WireModel):
    name: str
    commit: str


class Submodule(WireModel):
    """A submodule registered in .gitmodules."""

    path: str
    url: str
    commit: str = ""
    initialized: bool = False
