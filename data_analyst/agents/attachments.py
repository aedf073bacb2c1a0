"""
Per-turn attachment collection.
"""

from typing import Iterator, List

from data_analyst.cards import Artifact


class AttachmentCollector:
    """
    Accumulates artifacts produced by the visualization capability.

    One collector is allocated per orchestration invocation and handed to
    that turn's card tool only, so artifacts never leak across turns or
    conversations.
    """

    def __init__(self):
        self._artifacts: List[Artifact] = []

    def add(self, artifact: Artifact) -> None:
        self._artifacts.append(artifact)

    @property
    def artifacts(self) -> List[Artifact]:
        """Snapshot of the collected artifacts, in production order."""
        return list(self._artifacts)

    def __len__(self) -> int:
        return len(self._artifacts)

    def __iter__(self) -> Iterator[Artifact]:
        return iter(list(self._artifacts))
