# search.py: the search parameters of a find request
#
# SearchHelper holds the relationship selector, paging, sort and filter arguments.
# It is either built from the request query string (`SearchHelper.from_request()`)
# or constructed directly when an entity is used outside of a request:
#
#   GET /posts?with=responses,users&page[limit]=10&page[offset]=20&sort=-title&filter[status]=open,closed
#
# pylint: disable=logging-format-interpolation
import re
from typing import Any, Dict, List, Optional
from flask import request
import sarest
from .config import get_config
from .errors import BadRequestError


class SearchHelper:
    """
    Search parameters consumed by the Entity and the QueryBuilder

    :param with_: relationship selector: "none", "all" or a csv list of relationship names
    :param limit: requested page size
    :param offset: requested page offset
    :param sort: list of field names, prefixed with a minus for a descending sort
    :param filters: field name -> value, a csv value or a list matches any of the values
    :param is_pager: add paging information to the response meta
    :param is_count: only count the matching records
    """

    def __init__(
        self,
        with_: Optional[str] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        sort: Optional[List[str]] = None,
        filters: Optional[Dict[str, Any]] = None,
        is_pager: bool = False,
        is_count: bool = False,
    ) -> None:
        self.with_ = with_
        self.limit = limit
        self.offset = offset or 0
        self.sort = list(sort or [])
        self.filters = dict(filters or {})
        self.is_pager = is_pager
        self.is_count = is_count
        # set by Entity.find_first
        self.entity_limit: Optional[int] = None
        self.entity_search_fields: Dict[str, Any] = {}

    def __repr__(self) -> str:
        return f"<SearchHelper with={self.get_with()} limit={self.get_limit()} offset={self.offset}>"

    @classmethod
    def from_request(cls, args=None) -> "SearchHelper":
        """
        Parse the query string arguments:
        - with
        - page[limit], page[offset] or page[number], page[size]
        - sort
        - filter[<field>]
        - count

        :param args: request arguments, defaults to `flask.request.args`
        """
        if args is None:
            args = request.args

        try:
            limit = args.get("page[limit]", None, type=int)
            offset = args.get("page[offset]", 0, type=int)
            if "page[number]" in args and "page[size]" in args:
                limit = args.get("page[size]", type=int)
                offset = (args.get("page[number]", type=int) - 1) * limit
        except TypeError:
            raise BadRequestError("Pagination Value Error")
        if limit is None and ("page[number]" in args or "page[size]" in args):
            raise BadRequestError("Pagination Value Error")

        filters = {}
        for arg, val in args.items():
            filter_attr = re.search(r"filter\[(\w+)\]", arg)
            if filter_attr:
                filters[filter_attr.group(1)] = val

        sort = [field.strip() for field in args.get("sort", "").split(",") if field.strip()]
        is_pager = any(arg.startswith("page[") for arg in args.keys())
        is_count = args.get("count", "").lower() in ("1", "true", "yes")

        result = cls(
            with_=args.get("with", None),
            limit=limit,
            offset=offset,
            sort=sort,
            filters=filters,
            is_pager=is_pager,
            is_count=is_count,
        )
        sarest.log.debug(f"Parsed {result}")
        return result

    def get_with(self) -> str:
        """
        :return: the relationship selector, the DEFAULT_WITH config value when none was requested
        """
        if self.with_:
            return self.with_
        return get_config("DEFAULT_WITH") or "none"

    def get_limit(self) -> int:
        """
        The entity limit (eg. 1 for find_first) takes precedence over the requested limit,
        the requested limit is clamped between 1 and MAX_PAGE_LIMIT
        """
        if self.entity_limit:
            return self.entity_limit
        limit = self.limit if self.limit is not None else int(get_config("DEFAULT_PAGE_LIMIT"))
        if limit <= 0:
            limit = 1
        max_limit = int(get_config("MAX_PAGE_LIMIT"))
        if limit > max_limit:
            limit = max_limit
        return limit
