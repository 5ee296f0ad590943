from precedent_finder.cache import SharedCache


def _cache():
    return SharedCache(storage_uri="memory://")


def test_increment_counts_within_window():
    cache = _cache()
    assert cache.increment("hits", 60) == 1
    assert cache.increment("hits", 60) == 2
    assert cache.count("hits") == 2


def test_no_cooldown_by_default():
    assert _cache().cooldown_remaining_ms("ik") == 0


def test_cooldown_is_active_after_set():
    cache = _cache()
    cache.set_cooldown("ik", 5000)
    assert 0 < cache.cooldown_remaining_ms("ik") <= 5000
    assert cache.cooldown_remaining_ms("other") == 0


def test_longer_cooldown_extends_a_live_one():
    cache = _cache()
    cache.set_cooldown("ik", 2000)
    cache.set_cooldown("ik", 30000)
    assert cache.cooldown_remaining_ms("ik") > 20000


def test_shorter_cooldown_keeps_the_later_expiry():
    cache = _cache()
    cache.set_cooldown("ik", 30000)
    cache.set_cooldown("ik", 2000)
    assert cache.cooldown_remaining_ms("ik") > 20000
