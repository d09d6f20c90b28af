import threading

import pytest

from admission import AdmissionController, BanRegistry, Decision, RateWindow


def test_window_counts_only_recent_requests():
    win = RateWindow()
    for t in (0.0, 0.5, 1.0):
        assert win.record_and_check("a", t, 1.0, 10) is False
    assert win.count("a") == 3
    # 0.0 y 0.5 quedan fuera de [1.6, 2.6]
    win.record_and_check("a", 2.0, 1.0, 10)
    assert win.count("a") == 2


def test_window_keeps_entry_exactly_at_edge():
    win = RateWindow()
    win.record_and_check("a", 0.0, 1.0, 10)
    win.record_and_check("a", 1.0, 1.0, 10)
    assert win.count("a") == 2


def test_limit_boundary_is_strictly_greater():
    win = RateWindow()
    results = [win.record_and_check("a", i * 0.1, 1.0, 4) for i in range(5)]
    assert results == [False, False, False, False, True]


def test_ban_registry_expiry_is_exclusive():
    bans = BanRegistry()
    bans.ban("a", 10.0, 60.0)
    assert bans.is_banned("a", 10.0)
    assert bans.is_banned("a", 69.999)
    assert not bans.is_banned("a", 70.0)
    assert bans.active_count() == 0


def test_expired_ban_is_evicted_once():
    bans = BanRegistry()
    bans.ban("a", 0.0, 1.0)
    assert not bans.is_banned("a", 5.0)
    assert bans.expires_at("a") is None
    assert not bans.is_banned("a", 5.0)


def test_ban_overwrites_instead_of_stacking():
    bans = BanRegistry()
    bans.ban("a", 0.0, 60.0)
    bans.ban("a", 10.0, 60.0)
    assert bans.expires_at("a") == 70.0


def test_concrete_scenario(controller):
    times = [0.0, 0.1, 0.2, 0.3, 0.4]
    decisions = [controller.check("9.9.9.9", now=t) for t in times]
    assert decisions == [Decision.ALLOWED] * 4 + [Decision.TOO_MANY_REQUESTS]
    assert controller.check("9.9.9.9", now=0.5) is Decision.FORBIDDEN
    assert controller.check("9.9.9.9", now=61.0) is Decision.ALLOWED


def test_violation_clears_history_and_writes_ban(controller):
    for i in range(5):
        controller.check("a", now=i * 0.1)
    assert controller.requests_in_window("a") == 0
    assert controller.ban_expiry("a") == pytest.approx(60.4)
    assert controller.snapshot() == {"clients_tracked": 0, "active_bans": 1}


def test_history_starts_clean_after_ban(controller):
    for i in range(5):
        controller.check("a", now=i * 0.1)
    assert controller.is_banned("a", now=60.0)
    assert not controller.is_banned("a", now=60.5)
    assert controller.check("a", now=60.6) is Decision.ALLOWED
    assert controller.requests_in_window("a") == 1


def test_forbidden_requests_are_not_recorded(controller):
    for i in range(5):
        controller.check("a", now=i * 0.1)
    for i in range(10):
        assert controller.check("a", now=1.0 + i) is Decision.FORBIDDEN
    assert controller.requests_in_window("a") == 0


def test_uses_injected_clock(controller, clock):
    for _ in range(4):
        assert controller.check("a") is Decision.ALLOWED
    assert controller.check("a") is Decision.TOO_MANY_REQUESTS
    clock.advance(59.9)
    assert controller.check("a") is Decision.FORBIDDEN
    clock.advance(0.1)
    assert controller.check("a") is Decision.ALLOWED


def test_clients_are_isolated(controller):
    for i in range(4):
        assert controller.check("A", now=i * 0.1) is Decision.ALLOWED
        assert controller.check("B", now=i * 0.1) is Decision.ALLOWED
    assert controller.check("A", now=0.5) is Decision.TOO_MANY_REQUESTS
    assert controller.check("B", now=0.5) is Decision.TOO_MANY_REQUESTS
    assert controller.check("C", now=0.5) is Decision.ALLOWED


def test_empty_client_id_is_one_bucket(controller):
    for i in range(4):
        assert controller.check("", now=i * 0.1) is Decision.ALLOWED
    assert controller.check("", now=0.4) is Decision.TOO_MANY_REQUESTS


def test_concurrent_checks_ban_exactly_once():
    ctl = AdmissionController(ban_duration=60.0, request_limit=4, time_window=1.0, clock=lambda: 0.0)
    results = {"A": [], "B": []}
    lock = threading.Lock()
    barrier = threading.Barrier(20)

    def hit(cid):
        barrier.wait()
        d = ctl.check(cid)
        with lock:
            results[cid].append(d)

    threads = [threading.Thread(target=hit, args=("A" if i % 2 else "B",)) for i in range(20)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    for cid in ("A", "B"):
        ds = results[cid]
        assert ds.count(Decision.ALLOWED) == 4
        assert ds.count(Decision.TOO_MANY_REQUESTS) == 1
        assert ds.count(Decision.FORBIDDEN) == 5


def test_decision_status_codes():
    assert Decision.ALLOWED.status_code == 200
    assert Decision.FORBIDDEN.status_code == 403
    assert Decision.TOO_MANY_REQUESTS.status_code == 429
    assert Decision.ALLOWED.allowed and not Decision.FORBIDDEN.allowed
