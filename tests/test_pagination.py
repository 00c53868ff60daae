from __future__ import annotations

import pytest

from ems.pagination import MAX_LIMIT, PaginationError, make_page_response, offset_of, parse_page_params


def test_pagination_defaults():
    req = parse_page_params({})
    assert req["page"] == 1
    assert req["limit"] == 10


def test_pagination_custom_params():
    req = parse_page_params({"page": "3", "limit": "5"})
    assert req == {"page": 3, "limit": 5}
    assert offset_of(req) == 10


def test_pagination_caps_limit():
    assert parse_page_params({"limit": "500"})["limit"] == MAX_LIMIT


@pytest.mark.parametrize("args", [{"page": "0"}, {"page": "-2"}, {"page": "x"}, {"limit": "0"}, {"limit": "ten"}])
def test_pagination_invalid(args):
    with pytest.raises(PaginationError):
        parse_page_params(args)


def test_page_response_envelope():
    body = make_page_response([{"id": 1}], {"page": 2, "limit": 1}, total=3)
    assert body == {
        "success": True,
        "data": [{"id": 1}],
        "pagination": {"page": 2, "limit": 1, "total": 3, "pages": 3},
    }


def test_empty_page_has_zero_pages():
    assert make_page_response([], {"page": 1, "limit": 10}, total=0)["pagination"]["pages"] == 0
