import threading
from concurrent.futures import ThreadPoolExecutor

from core.database import SessionLocal
from core.errors import RateLimited
from models.ad_interaction import AdInteraction
from models.venue import Venue, VenueAd
from models.wifi_user import WifiUser
from utils.background import InlineDispatcher
from utils.interactions import build_event, record_interaction
from utils.otp import OtpEngine, OtpIssue, MAX_OTP_REQUESTS_PER_HOUR
from utils.verification import VerificationService

WORKERS = 8


def _seed(session_factory):
    session = session_factory()
    try:
        venue = Venue(name="Cafe Blue", status="active")
        session.add(venue)
        session.commit()
        ad = VenueAd(venue_id=venue.id, title="Happy hour")
        user = WifiUser(venue_id=venue.id, email="guest@example.com")
        session.add_all([ad, user])
        session.commit()
        return venue.id, ad.id, user.id
    finally:
        session.close()


def _run_together(n, fn):
    barrier = threading.Barrier(n)

    def worker(i):
        barrier.wait(timeout=10)
        return fn(i)

    with ThreadPoolExecutor(max_workers=n) as pool:
        return list(pool.map(worker, range(n)))


def test_concurrent_clicks_all_counted(threaded_db):
    venue_id, ad_id, _ = _seed(threaded_db)

    results = _run_together(WORKERS, lambda i: record_interaction(build_event(ad_id, venue_id, "click")))

    assert results == [True] * WORKERS
    session = threaded_db()
    try:
        assert session.get(VenueAd, ad_id).clicks == WORKERS
        assert session.query(AdInteraction).count() == WORKERS
    finally:
        session.close()


def _request(session_factory, user_id, now):
    session = session_factory()
    try:
        user = session.get(WifiUser, user_id)
        return OtpEngine().request_code(session, user, now)
    except RateLimited as ex:
        return ex
    finally:
        session.close()


def test_concurrent_requests_issue_one_code_per_cooldown(threaded_db, clock):
    _, _, user_id = _seed(threaded_db)
    now = clock()

    outcomes = _run_together(WORKERS, lambda i: _request(threaded_db, user_id, now))

    assert sum(isinstance(o, OtpIssue) for o in outcomes) == 1
    session = threaded_db()
    try:
        assert session.get(WifiUser, user_id).otp_request_count == 1
    finally:
        session.close()


def test_concurrent_requests_never_exceed_hourly_quota(threaded_db, clock, monkeypatch):
    monkeypatch.setattr("utils.otp.RESEND_COOLDOWN_SECONDS", 0)
    _, _, user_id = _seed(threaded_db)
    now = clock()

    outcomes = _run_together(WORKERS, lambda i: _request(threaded_db, user_id, now))

    issued = [o for o in outcomes if isinstance(o, OtpIssue)]
    assert len(issued) == MAX_OTP_REQUESTS_PER_HOUR
    assert all(isinstance(o, RateLimited) for o in outcomes if not isinstance(o, OtpIssue))
    session = threaded_db()
    try:
        assert session.get(WifiUser, user_id).otp_request_count == MAX_OTP_REQUESTS_PER_HOUR
    finally:
        session.close()


def test_insert_race_resolves_to_existing_record(db, venue, mailer, clock, monkeypatch):
    service = VerificationService(db, mailer, InlineDispatcher(), clock=clock)
    real_lookup = service._lookup
    missed = []

    def lookup_once_stale(venue_id, email):
        if not missed:
            missed.append(email)
            # A competing request creates the record right after our miss
            rival = SessionLocal()
            try:
                rival.add(WifiUser(venue_id=venue_id, email=email, auth_method="google"))
                rival.commit()
            finally:
                rival.close()
            return None
        return real_lookup(venue_id, email)

    monkeypatch.setattr(service, "_lookup", lookup_once_stale)

    user, created = service._find_or_create(venue, "guest@example.com", auth_method="email")

    assert created is False
    assert user.auth_method == "google"
    assert db.query(WifiUser).filter(WifiUser.email == "guest@example.com").count() == 1
