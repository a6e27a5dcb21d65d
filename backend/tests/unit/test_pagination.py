"""
Unit tests for pagination helpers.
"""

from utils.pagination import PageRequest, normalize_pagination


class TestNormalizePagination:

    def test_defaults(self):
        request = normalize_pagination(None, None)

        assert request == PageRequest(page=1, limit=25)
        assert request.offset == 0

    def test_non_positive_values_fall_back(self):
        assert normalize_pagination(0, 0) == PageRequest(page=1, limit=25)
        assert normalize_pagination(-3, -1) == PageRequest(page=1, limit=25)

    def test_limit_capped_at_maximum(self):
        assert normalize_pagination(1, 500).limit == 100

    def test_offset(self):
        assert normalize_pagination(3, 10).offset == 20
