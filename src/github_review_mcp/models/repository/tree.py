import unicodedata
from collections.abc import Iterable, Iterator, Sequence
from typing import Literal, Self

from pydantic import BaseModel, ConfigDict, Field

from github_review_mcp.clients.models.github import FileDescriptor, RepositoryListing, RepositoryReference

NodeKind = Literal["tree", "blob"]

KIND_ORDER: dict[NodeKind, int] = {"tree": 0, "blob": 1}


def get_file_extension(file_path: str) -> str | None:
    """Return the extension of the final path segment, including the leading dot."""

    file_name = file_path.rsplit("/", maxsplit=1)[-1]

    if "." not in file_name:
        return None

    return "." + file_name.rsplit(".", maxsplit=1)[-1]


def name_sort_key(name: str) -> tuple[str, str, str]:
    """Case-insensitive ordering. Names that differ only by case put lowercase first, and the exact name breaks any
    remaining tie so the order is total.

    The empty name sorts before every other name."""

    return unicodedata.normalize("NFKD", name).casefold(), name.swapcase(), name


class TreeNode(BaseModel):
    """A directory (tree) or file (blob) in a repository."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(description="The last segment of the path.")
    path: str = Field(description="The full path from the repository root.")
    kind: NodeKind = Field(description="Whether the node is a directory (tree) or a file (blob).")
    children: list["TreeNode"] = Field(default_factory=list, description="The sorted children of a directory. Empty for files.")
    identifier: str | None = Field(default=None, description="The content-addressing identifier of a file.")

    @property
    def sort_key(self) -> tuple[int, str, str, str]:
        return (KIND_ORDER[self.kind], *name_sort_key(self.name))

    @property
    def is_blob(self) -> bool:
        return self.kind == "blob"


class _NodeBuilder:
    """Mutable node used while the tree is assembled."""

    def __init__(self, name: str, path: str, kind: NodeKind, identifier: str | None = None, is_root: bool = False):
        self.name = name
        self.path = path
        self.kind: NodeKind = kind
        self.identifier = identifier
        self.is_root = is_root
        self.children: dict[tuple[str, NodeKind], _NodeBuilder] = {}

    def child(self, name: str, kind: NodeKind, identifier: str | None = None) -> "_NodeBuilder":
        key = (name, kind)

        if existing := self.children.get(key):
            return existing

        path = name if self.is_root else f"{self.path}/{name}"
        node = _NodeBuilder(name=name, path=path, kind=kind, identifier=identifier)
        self.children[key] = node
        return node

    def build(self) -> TreeNode:
        return TreeNode(
            name=self.name,
            path=self.path,
            kind=self.kind,
            children=sort_nodes(child.build() for child in self.children.values()),
            identifier=self.identifier,
        )


def sort_nodes(nodes: Iterable[TreeNode]) -> list[TreeNode]:
    """Directories first, then files, each group ordered by name."""

    return sorted(nodes, key=lambda node: node.sort_key)


def build_tree(files: Iterable[FileDescriptor]) -> list[TreeNode]:
    """Build a sorted tree from a flat list of repository entries.

    Directories are inferred from the path segments of each file. Entries with kind `tree` only add (possibly empty)
    directories. Only the top-level nodes are returned; there is no synthetic root node.

    Empty path segments (e.g. `a//b.py`) become nodes with an empty name. They are kept and sort first among their siblings.
    """

    root = _NodeBuilder(name="", path="", kind="tree", is_root=True)

    for file in files:
        segments = file.path.split("/")

        current = root

        for segment in segments[:-1]:
            current = current.child(name=segment, kind="tree")

        if file.kind == "tree":
            _ = current.child(name=segments[-1], kind="tree")
            continue

        _ = current.child(name=segments[-1], kind="blob", identifier=file.identifier)

    return root.build().children


def iter_blobs(nodes: Sequence[TreeNode]) -> Iterator[TreeNode]:
    """Yield every file in the tree, depth first, in the tree's own child order."""

    for node in nodes:
        if node.is_blob:
            yield node
            continue

        yield from iter_blobs(node.children)


def count_blobs(nodes: Sequence[TreeNode]) -> int:
    return sum(1 for _ in iter_blobs(nodes))


def filter_reviewable(nodes: Sequence[TreeNode], allow_list: Iterable[str]) -> list[TreeNode]:
    """Return the files whose extension is in the allow-list, in tree order."""

    extensions = set(allow_list)

    return [node for node in iter_blobs(nodes) if get_file_extension(node.path) in extensions]


class RepositoryTree(BaseModel):
    """The tree of a repository along with the listing's truncation advisory."""

    model_config = ConfigDict(frozen=True)

    repository: RepositoryReference = Field(description="The repository the tree belongs to.")
    nodes: list[TreeNode] = Field(description="The top-level directories and files of the repository.")
    truncated: bool = Field(
        default=False,
        description="Whether GitHub truncated the listing. If true, the tree does not contain all files.",
    )

    @classmethod
    def from_listing(cls, repository: RepositoryReference, listing: RepositoryListing) -> Self:
        return cls(repository=repository, nodes=build_tree(listing.files), truncated=listing.truncated)

    @property
    def count_files(self) -> int:
        return count_blobs(self.nodes)
