import threading
from datetime import datetime, timedelta, timezone

from pdf_rag_server.auth.revocation import TokenRevocationList


class Clock:
    def __init__(self):
        self.now = datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now


def test_revoked_token_is_rejected_until_expiry():
    clock = Clock()
    revocations = TokenRevocationList(clock=clock)

    revocations.revoke("token-a", clock.now + timedelta(minutes=5))

    assert revocations.is_revoked("token-a") is True
    assert revocations.is_revoked("token-b") is False

    clock.now += timedelta(minutes=6)
    assert revocations.is_revoked("token-a") is False
    assert revocations.size() == 0


def test_size_sweeps_expired_entries():
    clock = Clock()
    revocations = TokenRevocationList(clock=clock)
    revocations.revoke("short", clock.now + timedelta(seconds=10))
    revocations.revoke("long", clock.now + timedelta(hours=1))

    assert revocations.size() == 2

    clock.now += timedelta(minutes=1)
    assert revocations.size() == 1


def test_revoke_sweeps_expired_entries():
    clock = Clock()
    revocations = TokenRevocationList(clock=clock)
    revocations.revoke("old", clock.now + timedelta(seconds=1))

    clock.now += timedelta(seconds=2)
    revocations.revoke("new", clock.now + timedelta(hours=1))

    assert revocations.sweep() == 0
    assert revocations.size() == 1


def test_clear():
    revocations = TokenRevocationList()
    revocations.revoke("t", datetime.now(timezone.utc) + timedelta(hours=1))

    revocations.clear()

    assert revocations.size() == 0


def test_expiry_check_tolerates_concurrent_sweep():
    clock = Clock()
    revocations = TokenRevocationList(clock=clock)
    revocations.revoke("tok", clock.now + timedelta(seconds=1))
    clock.now += timedelta(seconds=5)

    class SweepingClock:
        """Removes the entry between lookup and expiry check."""

        def __call__(self):
            revocations._clock = clock
            revocations.sweep()
            return clock.now

    revocations._clock = SweepingClock()

    assert revocations.is_revoked("tok") is False
    assert revocations.size() == 0


def test_concurrent_checks_and_sweeps_do_not_raise():
    clock = Clock()
    revocations = TokenRevocationList(clock=clock)
    errors = []

    for i in range(200):
        revocations.revoke(f"tok-{i}", clock.now + timedelta(seconds=1))
    clock.now += timedelta(seconds=5)

    def check():
        try:
            for i in range(200):
                revocations.is_revoked(f"tok-{i}")
        except Exception as exc:
            errors.append(repr(exc))

    def sweep():
        try:
            for _ in range(200):
                revocations.sweep()
        except Exception as exc:
            errors.append(repr(exc))

    threads = [threading.Thread(target=fn) for fn in (check, sweep, check, sweep)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert revocations.size() == 0
