"""
Collection path patterns.

A pattern such as "organizations/{orgId}/members" has literal segments and
wildcard segments (wrapped in braces). A document path matches when every
literal segment is equal and the path is either a collection path of the
same depth or a document path one segment deeper.
"""

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

_WILDCARD = re.compile(r"^\{(\w+)\}$")


def split_path(path: str) -> List[str]:
    """Split a slash-delimited path, ignoring leading/trailing/duplicate slashes."""
    return [segment for segment in path.split("/") if segment]


@dataclass(frozen=True)
class PathPattern:
    raw: str
    segments: Tuple[str, ...]
    # (segment index, wildcard name) in order of appearance
    wildcards: Tuple[Tuple[int, str], ...]

    @classmethod
    def compile(cls, raw: str) -> "PathPattern":
        segments = tuple(split_path(raw))
        if not segments:
            raise ValueError(f"Empty collection path: {raw!r}")
        wildcards = []
        for index, segment in enumerate(segments):
            match = _WILDCARD.match(segment)
            if match:
                wildcards.append((index, match.group(1)))
            elif "{" in segment or "}" in segment:
                raise ValueError(f"Malformed wildcard segment {segment!r} in {raw!r}")
        return cls(raw=raw, segments=segments, wildcards=tuple(wildcards))

    @property
    def has_wildcards(self) -> bool:
        return bool(self.wildcards)

    @property
    def first_wildcard_index(self) -> Optional[int]:
        return self.wildcards[0][0] if self.wildcards else None

    @property
    def collection_id(self) -> str:
        """Last segment, the collection-group name for nested patterns."""
        return self.segments[-1]

    def _is_wildcard(self, index: int) -> bool:
        return any(i == index for i, _ in self.wildcards)

    def matches(self, path: Sequence[str]) -> bool:
        if len(path) not in (len(self.segments), len(self.segments) + 1):
            return False
        for index, segment in enumerate(self.segments):
            if not self._is_wildcard(index) and segment != path[index]:
                return False
        return True

    def captures(self, path: Sequence[str]) -> Dict[str, str]:
        """Wildcard name -> captured segment, for a matching path."""
        return {name: path[index] for index, name in self.wildcards if index < len(path)}
