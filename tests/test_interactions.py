from datetime import timedelta

import pytest

from core.errors import UnknownInteraction
from models.ad_interaction import AdInteraction
from models.venue import Venue, VenueAd
from utils.interactions import (
    build_event, link_session, normalize_kind, record_interaction, detect_device_type,
)

IPHONE_UA = (
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_0 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Mobile/15E148 Safari/604.1"
)


def _track(client, venue, ad, kind, headers=None, **extra):
    body = {"adId": ad, "businessId": venue, "interactionType": kind, **extra}
    return client.post("/api/analytics/track", json=body, headers=headers or {})


def _ad(db, ad_id):
    db.expire_all()
    return db.query(VenueAd).filter(VenueAd.id == ad_id).one()


@pytest.mark.parametrize("raw, kind", [
    ("view", "view"),
    ("CLICK", "click"),
    ("LIKE", "like"),
    ("SHARE", "share"),
    ("GALLERY_EXPAND", "expand"),
    ("Expand", "expand"),
])
def test_normalize_kind(raw, kind):
    assert normalize_kind(raw) == kind


def test_normalize_kind_rejects_unknown():
    with pytest.raises(UnknownInteraction):
        normalize_kind("purchase")


def test_detect_device_type():
    assert detect_device_type(IPHONE_UA) == "mobile"
    assert detect_device_type(None) is None


def test_view_is_recorded_and_counted(client, db, venue, ad):
    res = _track(client, venue, ad, "view", sessionId="sess-1", headers={"User-Agent": IPHONE_UA})

    assert res.status_code == 200
    assert res.json() == {"success": True}
    row = db.query(AdInteraction).one()
    assert row.interaction_type == "view"
    assert row.session_id == "sess-1"
    assert row.device_type == "mobile"
    assert row.email is None
    assert _ad(db, ad).views == 1


def test_click_returns_ad_destination(client, db, venue, ad):
    res = _track(client, venue, ad, "click")
    assert res.json() == {"success": True, "redirectUrl": "https://cafeblue.in/menu"}
    assert _ad(db, ad).clicks == 1


def test_click_falls_back_to_venue_then_default(client, db, venue):
    bare_ad = VenueAd(venue_id=venue, title="No link")
    db.add(bare_ad)
    plain = Venue(name="Plain", status="active")
    db.add(plain)
    db.commit()
    plain_ad = VenueAd(venue_id=plain.id, title="Also no link")
    db.add(plain_ad)
    db.commit()

    assert _track(client, venue, bare_ad.id, "click").json()["redirectUrl"] == "https://g.page/r/cafe-blue/review"
    assert _track(client, plain.id, plain_ad.id, "click").json()["redirectUrl"] == "https://google.com"


def test_n_clicks_count_n(client, db, venue, ad):
    for _ in range(7):
        _track(client, venue, ad, "click")
    assert _ad(db, ad).clicks == 7
    assert db.query(AdInteraction).filter(AdInteraction.interaction_type == "click").count() == 7


def test_legacy_kinds_hit_matching_counters(client, db, venue, ad):
    _track(client, venue, ad, "SHARE")
    _track(client, venue, ad, "GALLERY_EXPAND")
    ad_row = _ad(db, ad)
    assert ad_row.shares_count == 1
    assert ad_row.expands_count == 1
    assert ad_row.likes_count == 0


def test_unknown_kind_is_422(client, db, venue, ad):
    res = _track(client, venue, ad, "purchase")
    assert res.status_code == 422
    assert db.query(AdInteraction).count() == 0


def test_tracking_guards_venue(client, db, ad):
    assert _track(client, "missing", ad, "view").status_code == 404

    paused = Venue(name="Paused", status="pending")
    db.add(paused)
    db.commit()
    assert _track(client, paused.id, ad, "view").status_code == 403


def test_duplicate_like_from_same_ip_is_dropped(client, db, venue, ad):
    headers = {"X-Forwarded-For": "203.0.113.5"}
    _track(client, venue, ad, "like", headers=headers, sessionId="a")
    _track(client, venue, ad, "like", headers=headers, sessionId="b")

    assert db.query(AdInteraction).count() == 1
    assert _ad(db, ad).likes_count == 1


def test_duplicate_like_from_same_session_is_dropped(client, db, venue, ad):
    _track(client, venue, ad, "like", headers={"X-Forwarded-For": "203.0.113.5"}, sessionId="s")
    _track(client, venue, ad, "like", headers={"X-Forwarded-For": "203.0.113.6"}, sessionId="s")
    assert _ad(db, ad).likes_count == 1


def test_likes_from_different_visitors_both_count(client, db, venue, ad):
    _track(client, venue, ad, "like", headers={"X-Forwarded-For": "203.0.113.5"}, sessionId="a")
    _track(client, venue, ad, "like", headers={"X-Forwarded-For": "203.0.113.6"}, sessionId="b")
    assert _ad(db, ad).likes_count == 2


def test_like_accepted_again_after_window(db, venue, ad):
    first = build_event(ad, venue, "like", session_id="s", ip_address="203.0.113.5")
    assert record_interaction(first) is True

    again = build_event(ad, venue, "like", session_id="s", ip_address="203.0.113.5")
    again.occurred_at = first.occurred_at + timedelta(seconds=30)
    assert record_interaction(again) is False

    later = build_event(ad, venue, "like", session_id="s", ip_address="203.0.113.5")
    later.occurred_at = first.occurred_at + timedelta(seconds=61)
    assert record_interaction(later) is True

    assert _ad(db, ad).likes_count == 2


def test_dedup_query_failure_records_like(db, venue, ad, monkeypatch):
    def broken_or(*clauses):
        raise RuntimeError("db hiccup")

    monkeypatch.setattr("utils.interactions.or_", broken_or)
    for _ in range(2):
        event = build_event(ad, venue, "like", session_id="s", ip_address="203.0.113.5")
        assert record_interaction(event) is True
    assert _ad(db, ad).likes_count == 2


def test_persist_failure_does_not_reach_visitor(client, db, venue, ad, monkeypatch):
    def broken(event):
        raise RuntimeError("insert failed")

    monkeypatch.setattr("utils.interactions.record_interaction", broken)
    res = _track(client, venue, ad, "view")

    assert res.status_code == 200
    assert res.json() == {"success": True}
    assert db.query(AdInteraction).count() == 0


def test_link_session_fills_only_anonymous_rows(db, venue, ad):
    db.add_all([
        AdInteraction(ad_id=ad, venue_id=venue, interaction_type="view", session_id="sess-1"),
        AdInteraction(ad_id=ad, venue_id=venue, interaction_type="click", session_id="sess-1"),
        AdInteraction(ad_id=ad, venue_id=venue, interaction_type="view", session_id="sess-1", email="first@example.com"),
        AdInteraction(ad_id=ad, venue_id=venue, interaction_type="view", session_id="sess-2"),
    ])
    db.commit()

    assert link_session("sess-1", 7, "guest@example.com") == 2
    # Already linked rows stay as they are
    assert link_session("sess-1", 8, "late@example.com") == 0

    db.expire_all()
    by_email = sorted((r.session_id, r.email) for r in db.query(AdInteraction).all())
    assert by_email == [
        ("sess-1", "first@example.com"),
        ("sess-1", "guest@example.com"),
        ("sess-1", "guest@example.com"),
        ("sess-2", None),
    ]


def test_link_session_without_session_is_noop(db):
    assert link_session("", 1, "guest@example.com") == 0
    assert link_session(None, 1, "guest@example.com") == 0


def test_connect_logs_session_and_redirects(client, db, venue):
    from models.compliance_log import ComplianceLog

    res = client.post("/api/analytics/connect", json={"businessId": venue, "macAddress": "aa:bb:cc:dd:ee:ff"})

    assert res.status_code == 200
    assert res.json() == {"success": True, "redirectUrl": "https://g.page/r/cafe-blue/review"}
    entry = db.query(ComplianceLog).one()
    assert entry.mac_address == "AA:BB:CC:DD:EE:FF"
    assert entry.email is None


def test_event_for_unknown_ad_is_not_stored(client, db, venue, ad):
    res = _track(client, venue, "no-such-ad", "view")

    assert res.status_code == 200
    assert res.json() == {"success": True}
    assert db.query(AdInteraction).count() == 0
    assert _ad(db, ad).views == 0


def test_event_for_another_venues_ad_is_not_stored(db, venue):
    other = Venue(name="Other", status="active")
    db.add(other)
    db.commit()
    foreign_ad = VenueAd(venue_id=other.id, title="Elsewhere")
    db.add(foreign_ad)
    db.commit()

    assert record_interaction(build_event(foreign_ad.id, venue, "click")) is False
    assert db.query(AdInteraction).count() == 0
    assert _ad(db, foreign_ad.id).clicks == 0


def test_user_id_kept_only_for_this_venues_visitor(db, venue, ad):
    from models.wifi_user import WifiUser

    guest = WifiUser(venue_id=venue, email="guest@example.com")
    db.add(guest)
    db.commit()

    assert record_interaction(build_event(ad, venue, "view", user_id=guest.id, session_id="known")) is True
    assert record_interaction(build_event(ad, venue, "view", user_id=guest.id + 100, session_id="stale")) is True

    rows = {r.session_id: r.wifi_user_id for r in db.query(AdInteraction).all()}
    assert rows == {"known": guest.id, "stale": None}
    assert _ad(db, ad).views == 2
