import logging

import pytest

from stepwise.core.cleanup import CleanupChain


def test_unwind_runs_steps_in_reverse_order():
    calls = []
    chain = CleanupChain()
    chain.push("first", lambda: calls.append("first"))
    chain.push("second", lambda: calls.append("second"))

    chain.unwind()

    assert calls == ["second", "first"]
    assert len(chain) == 0


def test_unwind_logs_and_continues_past_failing_step(caplog):
    calls = []

    def boom():
        raise RuntimeError("daemon gone")

    chain = CleanupChain()
    chain.push("first", lambda: calls.append("first"))
    chain.push("remove container", boom)

    with caplog.at_level(logging.WARNING, logger="stepwise.core.cleanup"):
        chain.unwind()

    assert calls == ["first"]
    assert "remove container" in caplog.text
    assert "daemon gone" in caplog.text


def test_original_error_survives_failing_cleanup():
    def boom():
        raise RuntimeError("cleanup error")

    chain = CleanupChain()
    chain.push("remove", boom)

    with pytest.raises(ValueError, match="original"):
        try:
            raise ValueError("original")
        except ValueError:
            chain.unwind()
            raise


def test_discard_forgets_steps():
    calls = []
    chain = CleanupChain()
    chain.push("first", lambda: calls.append("first"))

    chain.discard()
    chain.unwind()

    assert calls == []
