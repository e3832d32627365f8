"""Property-based tests for trace context management."""

import uuid

from hypothesis import given
from hypothesis import strategies as st

from quote_engine.utils.trace_context import get_current_trace, resolution_trace


class TestTraceContextManagement:
    """Tests for trace context management."""

    @given(num_operations=st.integers(min_value=1, max_value=10))
    def test_generated_trace_persists_for_operations(self, num_operations):
        """
        For any resolution, the system SHALL assign a UUID trace ID that stays
        current for every operation performed under it.
        """
        with resolution_trace() as trace_id:
            uuid.UUID(trace_id)
            for _ in range(num_operations):
                assert get_current_trace() == trace_id

        assert get_current_trace() is None

    @given(count=st.integers(min_value=2, max_value=6))
    def test_sequential_resolutions_get_unique_ids(self, count):
        """For any number of separate resolutions, each SHALL get its own ID."""
        created = []
        for _ in range(count):
            with resolution_trace() as trace_id:
                created.append(trace_id)

        assert len(created) == len(set(created))

    @given(trace_id=st.uuids().map(str))
    def test_explicit_trace_id_is_used_and_restored(self, trace_id):
        """An explicit trace ID is current inside the block and cleared after."""
        assert get_current_trace() is None

        with resolution_trace(trace_id) as active:
            assert active == trace_id
            assert get_current_trace() == trace_id

        assert get_current_trace() is None

    def test_nested_resolution_reuses_outer_trace(self):
        """Nested resolutions share the outer trace ID."""
        with resolution_trace() as outer:
            with resolution_trace() as inner:
                assert inner == outer
            assert get_current_trace() == outer

        assert get_current_trace() is None

    def test_explicit_id_inside_active_trace_is_restored(self):
        with resolution_trace("outer"):
            with resolution_trace("inner"):
                assert get_current_trace() == "inner"
            assert get_current_trace() == "outer"

    def test_trace_is_reset_when_block_raises(self):
        try:
            with resolution_trace("failing"):
                raise ValueError("boom")
        except ValueError:
            pass

        assert get_current_trace() is None
