"""Data models for the indexer."""

from dataclasses import dataclass, field
from typing import ClassVar


@dataclass(frozen=True)
class Kind:
    """Category tag for a document (e.g., "document", "issue").

    Kinds are open identifiers: any string is a valid kind. Two kinds are
    equal when their underlying strings are equal.
    """

    value: str

    DOCUMENT: ClassVar["Kind"]
    ISSUE: ClassVar["Kind"]

    def __str__(self) -> str:
        return self.value


Kind.DOCUMENT = Kind("document")
Kind.ISSUE = Kind("issue")


@dataclass(frozen=True)
class KindDefinition:
    """A kind and its known property keys (columns of its extension table)."""

    kind: Kind
    properties: tuple[str, ...] = ()


BUILTIN_KIND_DEFINITIONS = (
    KindDefinition(Kind.DOCUMENT),
    KindDefinition(Kind.ISSUE, ("status", "priority")),
)


@dataclass(frozen=True)
class Rule:
    """Assigns a kind to documents whose relative path matches a glob pattern."""

    path: str
    kind: Kind


@dataclass
class WorkspaceConfiguration:
    """Parsed shape of a workspace's workspace.yml."""

    kinds: list[KindDefinition] = field(default_factory=list)
    rules: list[Rule] = field(default_factory=list)


@dataclass
class DocumentRecord:
    """A row in the docs table."""

    path: str  # Relative from the workspace root
    kind: Kind = Kind.DOCUMENT
    title: str | None = None


@dataclass
class PropertyRecord:
    """A row in the properties table."""

    path: str
    key: str
    value: str


@dataclass
class WorkspaceDocument:
    """A document record together with all of its properties."""

    record: DocumentRecord
    properties: dict[str, str] = field(default_factory=dict)

    @property
    def path(self) -> str:
        return self.record.path

    @property
    def kind(self) -> Kind:
        return self.record.kind

    @property
    def title(self) -> str | None:
        return self.record.title
