"""
Tolerant extraction of user records from differently-nested upstream payloads.

Each projection is a fixed key path; they are tried in order and the first one
present in the payload wins. When none matches, the payload is searched for a
`users` array whose first element carries a numeric `fid`.
"""

from collections import Counter, defaultdict
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

from app.core.exceptions import UpstreamProtocolError
from app.core.logging import get_logger, log_projection

logger = get_logger(__name__)

_MAX_SEARCH_DEPTH = 6


@dataclass(frozen=True)
class Projection:
    """A key path into a payload yielding one record or a list of records."""

    name: str
    path: Tuple[str, ...]
    many: bool = False

    def extract(self, payload: Any) -> Optional[List[Dict[str, Any]]]:
        """
        Returns the records at this path, [] when the path ends in null or an
        empty list, and None when the path is absent.
        """
        node = payload
        for key in self.path:
            if not isinstance(node, dict) or key not in node:
                return None
            node = node[key]

        if node is None:
            return []
        if self.many:
            if not isinstance(node, list):
                return None
            return [item for item in node if isinstance(item, dict)]
        if isinstance(node, dict):
            return [node]
        return None


USER_PROJECTIONS: Tuple[Projection, ...] = (
    Projection("result.user", ("result", "user")),
    Projection("result.users", ("result", "users"), many=True),
    Projection("user", ("user",)),
    Projection("users", ("users",), many=True),
    Projection("data.farcasterProfile", ("data", "farcasterProfile")),
    Projection("profile", ("profile",)),
)


class ProjectionStats:
    """Counts which projection decoded each provider's payloads."""

    def __init__(self):
        self._counts: Dict[str, Counter] = defaultdict(Counter)

    def record(self, provider: str, projection: str) -> None:
        self._counts[provider][projection] += 1

    def snapshot(self) -> Dict[str, Dict[str, int]]:
        return {provider: dict(counts) for provider, counts in self._counts.items()}

    def reset(self) -> None:
        self._counts.clear()


projection_stats = ProjectionStats()


def _has_numeric_fid(item: Any) -> bool:
    if not isinstance(item, dict):
        return False
    fid = item.get("fid")
    return isinstance(fid, int) and not isinstance(fid, bool)


def find_users_array(node: Any, depth: int = 0) -> Optional[List[Dict[str, Any]]]:
    """Depth-first search for a `users` list whose first element has a numeric fid."""
    if depth > _MAX_SEARCH_DEPTH:
        return None

    if isinstance(node, dict):
        users = node.get("users")
        if isinstance(users, list) and users and _has_numeric_fid(users[0]):
            return [item for item in users if isinstance(item, dict)]
        children = node.values()
    elif isinstance(node, list):
        children = node
    else:
        return None

    for child in children:
        found = find_users_array(child, depth + 1)
        if found is not None:
            return found
    return None


def project_users(
    payload: Any,
    provider: str,
    projections: Sequence[Projection] = USER_PROJECTIONS,
) -> List[Dict[str, Any]]:
    """
    Extract user records from a payload.

    Args:
        payload: Decoded JSON body
        provider: Provider name for stats and logs
        projections: Ordered key paths to try

    Returns:
        User records; empty when the payload explicitly holds no users

    Raises:
        UpstreamProtocolError: The payload matches no known shape
    """
    for projection in projections:
        records = projection.extract(payload)
        if records is not None:
            projection_stats.record(provider, projection.name)
            log_projection(provider, projection.name, count=len(records))
            return records

    records = find_users_array(payload)
    if records is not None:
        projection_stats.record(provider, "search:users")
        log_projection(provider, "search:users", count=len(records))
        return records

    keys = sorted(payload.keys()) if isinstance(payload, dict) else type(payload).__name__
    logger.warning(f"Unrecognized {provider} payload shape: {keys}")
    raise UpstreamProtocolError(f"Unrecognized {provider} response shape", provider, {"keys": keys})
