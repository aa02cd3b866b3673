"""Pattern selection across every target of a watch result."""
import logging
from typing import Dict, List, Optional, Pattern, Union

from cmt.errors import NoMatch
from cmt.keys import UnifiedKey
from cmt.store import FloatColumn, WatchResult, compile_pattern

logger = logging.getLogger(__name__)


def select(result: WatchResult, pattern: Union[str, Pattern]) -> Dict[str, List[FloatColumn]]:
    """
    Select matching columns of every target as float columns.

    Targets without a match are left out; NoMatch is raised only when no
    target matches at all.
    """
    regex = compile_pattern(pattern)
    selected = {}
    for target, store in result.items():
        try:
            selected[target] = store.select(regex)
        except NoMatch:
            logger.debug(f"No match for '{regex.pattern}' in '{target}'")
    if not selected:
        raise NoMatch(f"no metric matches '{regex.pattern}'")
    return selected


def list_keys(
    result: WatchResult, pattern: Optional[Union[str, Pattern]] = None
) -> Dict[str, List[UnifiedKey]]:
    """List keys per target, optionally filtered by a pattern."""
    regex = compile_pattern(pattern) if pattern is not None else None
    return {
        target: [k for k in store.keys() if regex is None or regex.search(k.token)]
        for target, store in result.items()
    }
