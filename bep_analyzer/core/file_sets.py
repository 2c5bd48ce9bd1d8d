"""Resolution of named output file sets.

A large build shares output file sets between targets by reference, so a
target's outputs are a walk over a graph of ``NamedSetOfFiles`` nodes.
The producer builds that graph as a DAG, but the walk does not rely on it:
a visited set guarantees termination and single emission, and a reference
to an id that never arrived (truncated stream) contributes nothing.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Mapping

from bep_analyzer.models.build import FileRef, NamedSetOfFiles


class FileSetResolver:
    """Breadth-first resolver over a read-only named-set map.

    Parameters
    ----------
    named_sets:
        Mapping of set id -> ``NamedSetOfFiles``.  Only read, never mutated.
    """

    def __init__(self, named_sets: Mapping[str, NamedSetOfFiles]) -> None:
        self._named_sets = named_sets

    def resolve(self, root_id: str) -> list[FileRef]:
        """Return every file reachable from *root_id*, each node visited once."""
        result: list[FileRef] = []
        queue = deque([root_id])
        visited: set[str] = set()

        while queue:
            set_id = queue.popleft()
            if set_id in visited:
                continue
            visited.add(set_id)

            node = self._named_sets.get(set_id)
            if node is None:
                continue
            result.extend(node.files)
            queue.extend(node.file_sets)

        return result

    def resolve_names(self, root_ids: Iterable[str]) -> list[str]:
        """Resolve several roots into de-duplicated file names, first-seen order."""
        names: dict[str, None] = {}
        for root_id in root_ids:
            for file_ref in self.resolve(root_id):
                names.setdefault(file_ref.name, None)
        return list(names)
