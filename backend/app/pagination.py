from fastapi import Query

from .schemas import Pagination

DEFAULT_LIMIT = 50
MAX_LIMIT = 100


class PageParams:
    """``limit``/``offset`` query parameters; oversized limits are clamped, not rejected."""

    def __init__(
        self,
        limit: int = Query(default=DEFAULT_LIMIT, ge=1),
        offset: int = Query(default=0, ge=0),
    ):
        self.limit = clamp_limit(limit)
        self.offset = offset

    def slice(self, items: list) -> list:
        return items[self.offset : self.offset + self.limit]

    def meta(self, total: int, returned: int) -> Pagination:
        return page_meta(self.limit, self.offset, total, returned)


def clamp_limit(limit: int) -> int:
    return max(1, min(limit, MAX_LIMIT))


def page_meta(limit: int, offset: int, total: int, returned: int) -> Pagination:
    return Pagination(limit=limit, offset=offset, total=total, returned=returned)
