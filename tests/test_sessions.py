"""Tests for cloning authenticated worker sessions."""

from __future__ import annotations

import pytest

from harvester.errors import LostAuthentication
from harvester.sessions import SessionFactory


def test_clone_replays_scoped_cookies(config, site):
    factory = SessionFactory(site.open_session, config)
    session = factory.clone_authenticated(site.snapshot())

    inner = site.sessions[-1]
    assert inner.authed
    assert [c["name"] for c in inner.cookie_jar] == ["session-id"]
    assert session.current_url == config.base_url
    assert factory.open_sessions == 1

    session.close()
    assert factory.open_sessions == 0
    assert inner.closed


def test_clone_without_identity_raises_and_closes(config, site):
    site.accept_cookies = False
    factory = SessionFactory(site.open_session, config)

    with pytest.raises(LostAuthentication):
        factory.clone_authenticated(site.snapshot())

    assert factory.open_sessions == 0
    assert site.sessions[-1].closed


def test_close_is_counted_once(config, site):
    factory = SessionFactory(site.open_session, config)
    first = factory.open()
    second = factory.open()
    assert factory.peak_sessions == 2

    first.close()
    first.close()
    assert factory.open_sessions == 1
    second.close()
    assert factory.open_sessions == 0
    assert factory.peak_sessions == 2


def test_sessions_are_independent(config, site):
    factory = SessionFactory(site.open_session, config)
    a = factory.clone_authenticated(site.snapshot())
    b = factory.clone_authenticated(site.snapshot())
    a.navigate("https://www.amazon.com/a")
    assert b.current_url == config.base_url
    a.close()
    b.close()
