"""
Play queue: the ordered tracks the now-playing screen walks through.
"""

from typing import List, Optional, Sequence

from plextui.library.models import Track


class PlayQueue:
    """
    Ordered list of tracks with a cursor.

    advance() moves to the next track and returns it, or None at the end of
    the list (the cursor stays on the last track).
    """

    def __init__(self, tracks: Sequence[Track], start_index: int = 0) -> None:
        self._tracks: List[Track] = list(tracks)
        if self._tracks and not 0 <= start_index < len(self._tracks):
            raise ValueError(f"start_index {start_index} out of range (0..{len(self._tracks) - 1})")
        self._index = start_index if self._tracks else -1

    def __len__(self) -> int:
        return len(self._tracks)

    @property
    def index(self) -> int:
        return self._index

    @property
    def current(self) -> Optional[Track]:
        if self._index < 0:
            return None
        return self._tracks[self._index]

    def has_next(self) -> bool:
        return 0 <= self._index < len(self._tracks) - 1

    def has_previous(self) -> bool:
        return self._index > 0

    def advance(self) -> Optional[Track]:
        if not self.has_next():
            return None
        self._index += 1
        return self._tracks[self._index]

    def previous(self) -> Optional[Track]:
        if not self.has_previous():
            return None
        self._index -= 1
        return self._tracks[self._index]

    def upcoming(self, count: int = 3) -> List[Track]:
        """Tracks after the current one, at most count."""
        if self._index < 0 or count <= 0:
            return []
        return self._tracks[self._index + 1:self._index + 1 + count]
