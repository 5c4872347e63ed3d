"""
Tests for cancellation tokens and error chains.
"""

import os
import signal
import threading

import pytest

from ybuild.core.cancel import CancelToken, cancel_on_signals, detached
from ybuild.core.errors import CancelError, NetworkError, ResourceError, error_chain


class TestCancelToken:
    def test_initial_state(self):
        token = CancelToken()
        assert not token.cancelled
        token.check()

    def test_cancel_keeps_first_reason(self):
        token = CancelToken()
        token.cancel("first")
        token.cancel("second")
        assert token.cancelled
        assert token.reason == "first"
        with pytest.raises(CancelError, match="first"):
            token.check()

    def test_wait_returns_early(self):
        token = CancelToken()
        threading.Timer(0.05, token.cancel).start()
        assert token.wait(5)

    def test_wait_times_out(self):
        assert not CancelToken().wait(0.01)

    def test_detached_is_independent(self):
        token = CancelToken()
        token.cancel()
        assert not detached().cancelled


class TestSignals:
    def test_sigterm_cancels(self):
        token = CancelToken()
        previous = signal.getsignal(signal.SIGTERM)
        with cancel_on_signals(token):
            os.kill(os.getpid(), signal.SIGTERM)
            assert token.wait(5)
        assert "SIGTERM" in token.reason
        assert signal.getsignal(signal.SIGTERM) == previous


class TestErrorChain:
    def test_follows_causes(self):
        try:
            try:
                raise ResourceError("docker start: boom")
            except ResourceError as exc:
                raise NetworkError("start container db") from exc
        except NetworkError as err:
            assert error_chain(err) == ["start container db", "docker start: boom"]
