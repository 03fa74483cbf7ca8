"""Trace addressing, onion skinning and playback state."""

from __future__ import annotations

import pytest

from solverlink.errors import TraceBoundsError
from solverlink.trace import Trace, TracePlayback


def _trace(steps=5, **extra):
    return Trace.create("A*", {"events": [{"type": "expand", "id": i} for i in range(steps)], **extra})


def test_trace_identity_is_fresh_and_content_is_copied():
    content = {"events": [{"id": 0}], "render": {"nodes": []}}
    first = Trace.create("A*", content)
    second = Trace.create("A*", content)
    assert first.id != second.id
    assert first.key != first.id
    content["events"].append({"id": 1})
    assert first.step_count == 1
    first.step(0)["id"] = 99
    assert first.step(0) == {"id": 0}


def test_trace_content_cannot_be_changed_through_accessors():
    trace = Trace.create("A*", {"events": [{"type": "expand"}], "render": {"nodes": [1]}})
    trace.content["events"][0]["type"] = "changed"
    trace.content["render"]["nodes"].append(2)
    trace.steps[0]["type"] = "changed"
    trace.to_dict()["content"]["events"].clear()
    assert trace.step(0) == {"type": "expand"}
    assert trace.content == {"events": [{"type": "expand"}], "render": {"nodes": [1]}}
    with pytest.raises(AttributeError):
        trace.content = {}
    with pytest.raises(AttributeError):
        trace.name = "other"


def test_trace_without_events_has_no_steps():
    trace = Trace.create("empty", {"render": {}})
    assert trace.step_count == 0
    with pytest.raises(TraceBoundsError):
        trace.step(0)
    assert Trace.create("opaque", "not a mapping").steps == ()


def test_step_bounds():
    trace = _trace(3)
    assert trace.step(2)["id"] == 2
    for index in (-1, 3):
        with pytest.raises(TraceBoundsError) as exc:
            trace.step(index)
        assert exc.value.details == {"index": index, "step_count": 3}
        assert isinstance(exc.value, IndexError)


def test_onion_layers_fade_towards_the_past():
    trace = _trace(6)
    layers = trace.onion(4, 3)
    assert [layer.index for layer in layers] == [2, 3, 4]
    assert [layer.opacity for layer in layers] == [pytest.approx(1 / 3, abs=1e-6), pytest.approx(2 / 3, abs=1e-6), 1.0]
    assert [layer.index for layer in trace.onion(1, 5)] == [0, 1]
    with pytest.raises(ValueError):
        trace.onion(1, 0)


def test_playback_navigation_stops_at_the_ends():
    playback = TracePlayback(_trace(3))
    assert playback.step == 0
    assert not playback.backward()
    assert playback.forward()
    assert playback.forward(5)
    assert playback.step == 2
    assert playback.at_end()
    assert not playback.forward()
    assert playback.current()["id"] == 2
    with pytest.raises(TraceBoundsError):
        playback.seek(3)
    assert playback.seek(1)["id"] == 1


def test_breakpoints():
    playback = TracePlayback(_trace(10), breakpoints=[7, 3])
    assert playback.next_breakpoint() == 3
    assert playback.next_breakpoint() == 7
    assert playback.next_breakpoint() is None
    assert playback.previous_breakpoint() == 3
    assert playback.toggle_breakpoint(5)
    assert not playback.toggle_breakpoint(7)
    assert playback.breakpoints == {3, 5}
    with pytest.raises(TraceBoundsError):
        playback.add_breakpoint(10)
    playback.clear_breakpoints()
    assert playback.next_breakpoint() is None


def test_playback_snapshot_round_trip():
    trace = _trace(8)
    playback = TracePlayback(trace, step=4, breakpoints=[6, 1], onion_depth=3)
    snapshot = playback.snapshot()
    assert snapshot == {"step": 4, "onion": 3, "breakpoints": [1, 6]}
    restored = TracePlayback.from_snapshot(trace, snapshot)
    assert restored.step == 4
    assert [layer.index for layer in restored.visible()] == [2, 3, 4]
    with pytest.raises(ValueError):
        restored.onion_depth = 0


def test_playback_of_empty_trace():
    playback = TracePlayback(Trace.create("empty", {}))
    assert playback.visible() == []
    assert not playback.forward()
