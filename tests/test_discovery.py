"""Tests for sequential pagination discovery on the primary session."""

from __future__ import annotations

from harvester.discovery import PageDiscovery

from conftest import FakeRow, make_settings, page_url


def _rows(*titles):
    return [FakeRow(t) for t in titles]


def test_walks_every_page_in_order(config, site):
    urls = site.add_pages(_rows("A"), _rows("B"), _rows("C"))
    session = site.signed_in_session()

    assert PageDiscovery(config).discover(session) == urls


def test_single_page_listing(config, site):
    site.add_pages(_rows("A"))
    session = site.signed_in_session()

    assert PageDiscovery(config).discover(session) == [page_url(1)]


def test_page_cap(tmp_path, site):
    site.add_pages(*[_rows(f"Book {i}") for i in range(1, 6)])
    session = site.signed_in_session()
    config = make_settings(tmp_path, max_pages=2)

    assert PageDiscovery(config).discover(session) == [page_url(1), page_url(2)]


def test_control_that_does_not_advance_stops_discovery(config, site):
    site.add_pages(_rows("A"), _rows("B"), _rows("C"))
    site.link_overrides[3] = page_url(2)
    session = site.signed_in_session()

    assert PageDiscovery(config).discover(session) == [page_url(1), page_url(2)]


def test_page_without_rows_stops_with_partial_list(config, site):
    site.add_pages(_rows("A"), _rows("B"), _rows("C"))
    site.pages[page_url(3)].load_failures = 1
    session = site.signed_in_session()

    assert PageDiscovery(config).discover(session) == [page_url(1), page_url(2)]


def test_directional_next_control(tmp_path, site):
    site.add_pages(_rows("A"), _rows("B"))
    site.link_overrides[99] = page_url(2)
    session = site.signed_in_session()
    config = make_settings(tmp_path, next_page_selector="#page-99", max_pages=5)

    # A fixed selector keeps matching; the second click lands on the same URL.
    assert PageDiscovery(config).discover(session) == [page_url(1), page_url(2)]


def test_pagination_that_loops_back_stops(config, site):
    site.add_pages(_rows("A"), _rows("B"), _rows("C"))
    site.link_overrides[3] = page_url(1)
    session = site.signed_in_session()

    assert PageDiscovery(config).discover(session) == [page_url(1), page_url(2)]


def test_zero_page_cap_still_terminates(tmp_path, site):
    site.add_pages(_rows("A"), _rows("B"), _rows("C"))
    session = site.signed_in_session()
    config = make_settings(tmp_path, max_pages=0)

    assert config.max_pages == 1
    assert PageDiscovery(config).discover(session) == [page_url(1)]
