"""Small helpers shared by the test modules."""


def wait_ready(lifecycle, timeout=3.0):
    """Block until the lifecycle reports READY; fail with its last snapshot otherwise."""
    assert lifecycle.wait_until(lambda s: s.ready, timeout), lifecycle.snapshot
