"""Tests for abort module."""

import pytest

from agentstream import CALLER_ABORT, AbortController, AbortError, AbortSignal


class TestAbortSignal:
    def test_initial_state(self):
        signal = AbortSignal()
        assert signal.aborted is False
        assert signal.reason is None

    def test_throw_if_aborted_when_not_aborted(self):
        AbortSignal().throw_if_aborted()  # Should not raise

    def test_throw_if_aborted_carries_reason(self):
        controller = AbortController()
        controller.abort("timeout")
        with pytest.raises(AbortError) as exc_info:
            controller.signal.throw_if_aborted()
        assert exc_info.value.reason == "timeout"
        assert exc_info.value.is_caller_abort is False


class TestAbortController:
    def test_default_reason_is_caller(self):
        controller = AbortController()
        controller.abort()
        assert controller.signal.aborted is True
        assert controller.signal.reason == CALLER_ABORT

    def test_first_reason_wins(self):
        controller = AbortController()
        controller.abort("timeout")
        controller.abort()
        assert controller.signal.reason == "timeout"


class TestAbortCallbacks:
    def test_callback_called_once(self):
        controller = AbortController()
        called = []

        controller.signal.on_abort(lambda: called.append(1))
        assert called == []

        controller.abort()
        controller.abort()
        assert called == [1]

    def test_callback_called_immediately_if_already_aborted(self):
        controller = AbortController()
        controller.abort()

        called = []
        controller.signal.on_abort(lambda: called.append(1))
        assert called == [1]

    def test_unsubscribe(self):
        controller = AbortController()
        called = []

        unsub = controller.signal.on_abort(lambda: called.append(1))
        unsub()

        controller.abort()
        assert called == []

    def test_callback_error_doesnt_stop_others(self):
        controller = AbortController()
        called = []

        def boom():
            raise RuntimeError("oops")

        controller.signal.on_abort(lambda: called.append(1))
        controller.signal.on_abort(boom)
        controller.signal.on_abort(lambda: called.append(3))

        controller.abort()  # Should not raise
        assert called == [1, 3]
