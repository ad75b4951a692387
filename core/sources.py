"""
core/sources.py
---------------
Upstream collaborators the engine reads from once per tick. Scanning and
sentiment computation live outside the engine; these are the seams.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque
from typing import Iterable, List

from models.opportunity import Opportunity


class SignalSource(ABC):
    @abstractmethod
    async def scan(self) -> List[Opportunity]:
        """Candidate opportunities found in one scan cycle."""
        raise NotImplementedError


class SentimentSource(ABC):
    @abstractmethod
    async def sentiment(self) -> float:
        """Market-wide sentiment in [-1, 1]."""
        raise NotImplementedError


class StaticSentimentSource(SentimentSource):
    def __init__(self, value: float = 0.0):
        self.value = value

    async def sentiment(self) -> float:
        return self.value


class ScriptedSignalSource(SignalSource):
    """Returns pre-recorded batches, one per scan, then nothing."""

    def __init__(self, batches: Iterable[Iterable[Opportunity]] = ()):
        self._batches = deque(list(b) for b in batches)

    def push(self, batch: Iterable[Opportunity]) -> None:
        self._batches.append(list(batch))

    async def scan(self) -> List[Opportunity]:
        return self._batches.popleft() if self._batches else []
