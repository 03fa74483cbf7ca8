"""Task inputs, editing commands and the cancellable execution lifecycle."""

from __future__ import annotations

import asyncio
import itertools

import pytest
import yaml

from conftest import local_connection, make_backend
from solverlink.config import SolverLinkConfig
from solverlink.connection import ConnectionStore
from solverlink.errors import CommandNotAllowedError, SolverApplicationError
from solverlink.features import FeatureDiscovery, FeatureStore
from solverlink.protocol.map_uri import encode_map_uri
from solverlink.task import (
    MapReference,
    TaskExecutor,
    TaskInputs,
    TaskState,
    allowed_commands,
)

GRID = MapReference(format="grid", content="type octile\nheight 2\nwidth 2\nmap\n@.\n..")

ROUTE = TaskInputs(algorithm="astar", problem_type="pathfinding", map=GRID, start=0, end=3)


def _setup(solve=None, *, maps=None, config=None):
    backend = make_backend(
        "solver",
        algorithms=["astar", "dijkstra"],
        formats=["grid"],
        problem_types=["pathfinding", "plant-watering"],
        maps=maps,
        solve=solve,
    )
    store = ConnectionStore([local_connection("local:solver", backend)])
    features = FeatureStore(FeatureDiscovery(store))
    notes = []
    executor = TaskExecutor(store, features, notify=notes.append, name="Route", config=config)
    return executor, features, notes


async def _until(predicate, timeout=2.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(poll(), timeout)


def _gated_solver():
    gates = {"astar": asyncio.Event(), "dijkstra": asyncio.Event()}

    async def solve(params):
        await gates[params["algorithm"]].wait()
        return {"events": [{"algorithm": params["algorithm"]}]}

    return gates, solve


# Inputs and editing commands --------------------------------------------

def test_inputs_completeness():
    assert not TaskInputs().is_complete
    assert not ROUTE.model_copy(update={"problem_type": None}).is_complete
    assert not ROUTE.model_copy(update={"map": MapReference(format="grid")}).is_complete
    assert ROUTE.model_copy(update={"map": MapReference(format="grid", id="m", source="local:x")}).is_complete
    assert ROUTE.is_complete


def test_pour_amounts_follow_plants_through_edits():
    inputs = TaskInputs(problem_type="plant-watering")
    inputs = inputs.add_plant(4).add_plant([1, 2]).add_plant(9)
    assert inputs.pour_amounts == (0, 0, 0)
    inputs = inputs.set_pour_amount(1, 2.5).set_pour_amount(2, 1)
    inputs = inputs.remove_plant(0)
    assert inputs.plants == ([1, 2], 9)
    assert inputs.pour_amounts == (2.5, 1)
    inputs = inputs.add_plant(7).remove_plant(1)
    assert inputs.plants == ([1, 2], 7)
    assert inputs.pour_amounts == (2.5, 0)
    assert len(inputs.clear().pour_amounts) == len(inputs.clear().plants) == 0
    with pytest.raises(IndexError):
        inputs.remove_plant(5)
    with pytest.raises(IndexError):
        inputs.set_pour_amount(2, 1.0)


def test_inputs_pad_and_reject_pour_amounts():
    assert TaskInputs(plants=[1, 2], pour_amounts=[3]).pour_amounts == (3, 0)
    with pytest.raises(ValueError):
        TaskInputs(plants=[1], pour_amounts=[1, 2])


def test_build_args_encodes_map_reference():
    inputs = ROUTE.add_tap(5).with_source(1, map_key="layer-1")
    args = inputs.build_args()
    assert inputs.map_key == "layer-1"
    assert args.map_uri == encode_map_uri(GRID.content)
    wire = args.to_wire()
    assert wire["instances"] == [{"start": 1, "end": 3, "plants": [], "taps": [5], "pourAmounts": []}]
    assert wire["algorithm"] == "astar"


def test_command_sets_per_problem_type():
    assert set(allowed_commands("pathfinding")) == {"source", "clear", "destination"}
    assert set(allowed_commands("plant-watering")) == {"source", "clear", "taps", "plants"}
    assert allowed_commands("tsp") == ()
    assert allowed_commands(None) == ()


def test_disallowed_command_is_rejected():
    executor, _, _ = _setup()
    executor.update(TaskInputs(problem_type="pathfinding"))
    with pytest.raises(CommandNotAllowedError):
        executor.apply_command("plants", 3)
    with pytest.raises(CommandNotAllowedError):
        executor.remove_tap(0)
    executor.update(TaskInputs(problem_type="plant-watering"))
    with pytest.raises(CommandNotAllowedError):
        executor.apply_command("destination", 3)
    executor.apply_command("plants", 3)
    executor.apply_command("taps", 1)
    assert executor.inputs.plants == (3,)
    assert executor.inputs.pour_amounts == (0,)
    executor.remove_tap(0)
    assert executor.inputs.taps == ()
    assert executor.state is TaskState.IDLE


# Lifecycle ----------------------------------------------------------------

def test_incomplete_inputs_stay_idle():
    executor, _, notes = _setup()
    assert executor.update(TaskInputs(algorithm="astar")) is None
    assert executor.state is TaskState.IDLE
    assert executor.display_name == "Route"
    assert notes == []


def test_completed_lifecycle_produces_trace_and_query():
    async def scenario():
        executor, features, notes = _setup()
        await features.refresh()
        states = []
        executor.subscribe(lambda ex: states.append(ex.state))

        executor.update(ROUTE)
        trace = await executor.wait()

        assert states == [TaskState.RESOLVING, TaskState.SUBMITTING, TaskState.COMPLETED]
        assert trace is executor.trace
        assert trace.name == "Astar"
        assert trace.step_count == 3
        assert executor.query.algorithm == "astar"
        assert executor.connection.url == "local:solver"
        assert notes == ["Executing Route using local:solver..."]
        assert executor.display_name == "Astar"

    asyncio.run(scenario())


def test_identical_inputs_do_not_restart():
    async def scenario():
        executor, _, _ = _setup()
        first = executor.update(ROUTE)
        assert executor.update(ROUTE) is first
        assert executor.update(ROUTE, force=True) is not first
        await executor.wait()

    asyncio.run(scenario())


def test_superseded_result_is_discarded_when_it_arrives_late():
    async def scenario():
        gates, solve = _gated_solver()
        executor, _, notes = _setup(solve)

        first = executor.update(ROUTE)
        await _until(lambda: executor.state is TaskState.SUBMITTING)
        second = executor.update(ROUTE.model_copy(update={"algorithm": "dijkstra"}))

        gates["dijkstra"].set()
        await second
        assert executor.trace.content["events"] == [{"algorithm": "dijkstra"}]
        newest = executor.trace

        gates["astar"].set()
        assert await first is None
        assert executor.trace is newest
        assert executor.query.algorithm == "dijkstra"
        assert executor.state is TaskState.COMPLETED
        assert notes[-1] == "Canceled"

    asyncio.run(scenario())


def test_superseded_result_is_discarded_when_it_arrives_first():
    async def scenario():
        gates, solve = _gated_solver()
        executor, _, _ = _setup(solve)

        first = executor.update(ROUTE)
        await _until(lambda: executor.state is TaskState.SUBMITTING)
        second = executor.update(ROUTE.model_copy(update={"algorithm": "dijkstra"}))

        gates["astar"].set()
        assert await first is None
        assert executor.trace is None
        assert executor.state in (TaskState.RESOLVING, TaskState.SUBMITTING)

        gates["dijkstra"].set()
        trace = await second
        assert trace.content["events"] == [{"algorithm": "dijkstra"}]

    asyncio.run(scenario())


def test_explicit_cancel_discards_result():
    async def scenario():
        gates, solve = _gated_solver()
        executor, _, notes = _setup(solve)
        task = executor.update(ROUTE)
        await _until(lambda: executor.state is TaskState.SUBMITTING)
        executor.cancel()
        assert executor.state is TaskState.CANCELED
        gates["astar"].set()
        assert await task is None
        assert executor.trace is None
        assert "Canceled" in notes

    asyncio.run(scenario())


def test_same_inputs_restart_after_cancel():
    async def scenario():
        gates, solve = _gated_solver()
        executor, _, _ = _setup(solve)
        canceled = executor.update(ROUTE)
        await _until(lambda: executor.state is TaskState.SUBMITTING)
        executor.cancel()

        restarted = executor.update(ROUTE)
        assert restarted is not None and restarted is not canceled
        assert executor.state is TaskState.RESOLVING
        gates["astar"].set()
        assert await canceled is None
        trace = await restarted
        assert trace is executor.trace
        assert trace.content["events"] == [{"algorithm": "astar"}]
        assert executor.state is TaskState.COMPLETED

    asyncio.run(scenario())


def test_edit_that_keeps_inputs_drops_to_idle():
    async def scenario():
        executor, _, _ = _setup()
        executor.update(ROUTE)
        await executor.wait()
        assert executor.state is TaskState.COMPLETED

        assert executor.apply_command("destination", ROUTE.end) is not None
        assert executor.inputs == ROUTE
        assert executor.trace is None
        assert executor.query is None
        assert executor.state is TaskState.IDLE

    asyncio.run(scenario())


def test_edit_commands_reset_trace_and_query():
    async def scenario():
        executor, _, _ = _setup()
        executor.update(ROUTE)
        assert await executor.wait() is not None

        executor.apply_command("clear")
        assert executor.trace is None
        assert executor.query is None
        assert executor.inputs.start is None and executor.inputs.end is None

        await executor.wait()
        assert executor.query.instances[0].start == 0
        executor.apply_command("destination", 2)
        assert executor.trace is None
        assert executor.inputs.end == 2
        await executor.aclose()

    asyncio.run(scenario())


def test_unavailable_when_no_backend_matches():
    async def scenario():
        executor, _, notes = _setup()
        executor.update(ROUTE.model_copy(update={"algorithm": "theta"}))
        assert await executor.wait() is None
        assert executor.state is TaskState.UNAVAILABLE
        assert executor.trace is None
        assert "theta" in notes[-1]

    asyncio.run(scenario())


def test_failure_keeps_prior_trace():
    async def scenario():
        def solve(params):
            if params["algorithm"] == "dijkstra":
                raise SolverApplicationError("map too large")
            return {"events": [{"ok": True}]}

        executor, _, notes = _setup(solve)
        executor.update(ROUTE)
        prior = await executor.wait()

        executor.update(ROUTE.model_copy(update={"algorithm": "dijkstra"}))
        assert await executor.wait() is prior
        assert executor.state is TaskState.FAILED
        assert isinstance(executor.error, SolverApplicationError)
        assert notes[-1].startswith("Failed to execute")
        assert "map too large" in notes[-1]

    asyncio.run(scenario())


def test_map_content_is_fetched_from_owning_connection():
    async def scenario():
        content = "type octile\nmap\n@@..\n"
        executor, _, _ = _setup(maps={"maze": {"format": "grid", "content": content}})
        executor.update(ROUTE.model_copy(update={
            "map": MapReference(format="grid", id="maze", source="local:solver"),
        }))
        await executor.wait()
        assert executor.query.map_uri == encode_map_uri(content)

    asyncio.run(scenario())


def test_sources_redact_long_strings():
    async def scenario():
        long_map = MapReference(format="grid", content="." * 200)
        executor, _, _ = _setup()
        before = yaml.safe_load(executor.sources()[0]["content"])
        assert before["mapURI"] == "(...)"

        executor.update(ROUTE.model_copy(update={"map": long_map}))
        await executor.wait()
        views = executor.sources()
        params = yaml.safe_load(views[0]["content"])
        assert params["algorithm"] == "astar"
        assert params["mapURI"].endswith("(204 characters)")
        assert len(params["mapURI"].split(" (")[0]) == 40
        assert views[1]["id"] == "trace"

    asyncio.run(scenario())


def test_playback_uses_configured_onion_depth(monkeypatch):
    monkeypatch.setenv("SOLVERLINK_ONION_DEPTH", "2")

    async def scenario():
        executor, _, _ = _setup(config=SolverLinkConfig())
        assert executor.playback() is None
        executor.update(ROUTE)
        await executor.wait()
        playback = executor.playback()
        playback.seek(2)
        assert [layer.index for layer in playback.visible()] == [1, 2]

    asyncio.run(scenario())


_EDITS = {
    "pathfinding": [("source", 1), ("destination", 2)],
    "plant-watering": [("source", 1), ("plants", 4), ("taps", 5)],
}


@pytest.mark.parametrize(
    "problem_type, edits",
    [
        (problem_type, combo)
        for problem_type, options in _EDITS.items()
        for size in range(len(options) + 1)
        for combo in itertools.combinations(options, size)
    ],
)
def test_clear_resets_trace_and_query_after_any_edits(problem_type, edits):
    async def scenario():
        executor, _, _ = _setup()
        executor.update(ROUTE.model_copy(update={"problem_type": problem_type, "start": None, "end": None}))
        await executor.wait()
        for command, node in edits:
            executor.apply_command(command, node)
            await executor.wait()
        assert executor.trace is not None

        executor.apply_command("clear")
        assert executor.trace is None
        assert executor.query is None
        assert executor.inputs.plants == executor.inputs.taps == ()
        await executor.aclose()

    asyncio.run(scenario())
