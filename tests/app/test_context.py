"""Tests for call context cancellation and deadlines."""

from __future__ import annotations

import pytest

from resumable_store.common.context import (
    CallContext,
    DeadlineExceededError,
    OperationCancelledError,
    ensure_active,
)


class TestCallContext:
    def test_fresh_context_is_active(self) -> None:
        ctx = CallContext()

        ctx.check("read")

        assert not ctx.cancelled
        assert ctx.deadline is None

    def test_cancel_raises(self) -> None:
        ctx = CallContext()
        ctx.cancel()

        with pytest.raises(OperationCancelledError, match="append cancelled"):
            ctx.check("append")

    def test_expired_deadline_raises_deadline_error(self) -> None:
        ctx = CallContext.with_timeout(0)

        with pytest.raises(DeadlineExceededError, match="size deadline exceeded"):
            ctx.check("size")

    def test_future_deadline_is_active(self) -> None:
        ctx = CallContext.with_timeout(60)

        ctx.check("write")

        assert ctx.deadline is not None
        assert not ctx.cancelled

    def test_rejects_negative_timeout(self) -> None:
        with pytest.raises(ValueError):
            CallContext.with_timeout(-1)


def test_ensure_active_accepts_none() -> None:
    ensure_active(None, "read")


def test_ensure_active_checks_context() -> None:
    ctx = CallContext()
    ctx.cancel()

    with pytest.raises(OperationCancelledError):
        ensure_active(ctx, "delete")
