"""Rate limiter and fake-account checks."""

from types import SimpleNamespace

from prizewheel.anti_fraud import SimpleRateLimit, looks_like_fake


class Ticker:
    def __init__(self):
        self.t = 0.0

    def __call__(self):
        return self.t


class TestSimpleRateLimit:
    def test_limit_within_window(self):
        tick = Ticker()
        rl = SimpleRateLimit(clock=tick)
        assert rl.allow("spin:a", 2, 60)
        assert rl.allow("spin:a", 2, 60)
        assert not rl.allow("spin:a", 2, 60)

        tick.t = 61
        assert rl.allow("spin:a", 2, 60)

    def test_expired_keys_are_dropped(self):
        tick = Ticker()
        rl = SimpleRateLimit(clock=tick)
        for i in range(100):
            rl.allow(f"spin:ghost-{i}", 20, 60)
        assert rl.tracked_keys() == 100

        tick.t = 60
        assert rl.allow("spin:real", 20, 60)
        assert rl.tracked_keys() == 1


def test_looks_like_fake():
    assert looks_like_fake(SimpleNamespace(is_bot=True, username="x", first_name="X"))
    assert looks_like_fake(SimpleNamespace(is_bot=False, username=None, first_name=None))
    assert not looks_like_fake(SimpleNamespace(is_bot=False, username=None, first_name="Lan"))
