import enum
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from fastapi import status

from redirector.exceptions import StatsPersistenceError
from redirector.models import StatsStore

logger = logging.getLogger(__name__)

FORBIDDEN_MESSAGE = "Forbidden: URL does not match filter criteria"
SAVE_ERROR_MESSAGE = "Error saving statistics"


class Outcome(enum.Enum):
    REDIRECT = "redirect"
    FORBIDDEN = "forbidden"
    ERROR = "error"


@dataclass(frozen=True)
class RedirectResult:
    outcome: Outcome
    status_code: int
    location: Optional[str] = None
    message: Optional[str] = None


def build_target_url(base_url: str, path: str, query: str = "") -> str:
    target = base_url + path
    if query:
        target += "?" + query
    return target


class KeywordFilter:
    """Allow-list of substrings; an empty list allows every path."""

    def __init__(self, keywords: Sequence[str] = ()):
        self.keywords: Tuple[str, ...] = tuple(keywords)

    def __bool__(self):
        return bool(self.keywords)

    def allows(self, path: str) -> bool:
        if not self.keywords:
            return True
        return any(keyword in path for keyword in self.keywords)


class RedirectEngine:
    """Decides what to do with a request that hit no reserved endpoint."""

    def __init__(self, store: StatsStore, base_url: str, keyword_filter: Optional[KeywordFilter] = None):
        self.store = store
        self.base_url = base_url
        self.keyword_filter = keyword_filter if keyword_filter is not None else KeywordFilter()

    def handle(self, path: str, query: str = "") -> RedirectResult:
        if not self.keyword_filter.allows(path):
            logger.debug(f"Rejected {path}: no filter keyword matched")
            return RedirectResult(Outcome.FORBIDDEN, status.HTTP_403_FORBIDDEN, message=FORBIDDEN_MESSAGE)

        try:
            self.store.record_redirect(path)
        except StatsPersistenceError:
            return RedirectResult(
                Outcome.ERROR, status.HTTP_500_INTERNAL_SERVER_ERROR, message=SAVE_ERROR_MESSAGE
            )

        return RedirectResult(
            Outcome.REDIRECT,
            status.HTTP_301_MOVED_PERMANENTLY,
            location=build_target_url(self.base_url, path, query),
        )
