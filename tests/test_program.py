import pytest

from blockquest.events import BLOCK_CHANGE, BLOCK_CREATE, BLOCK_DELETE, BLOCK_MOVE, LoadingSession
from blockquest.program import (GenericBlock, ProcedureCallBlock, ProcedureDefinitionBlock, baseName,
                                isPlaceholderName)


def test_block_variants(graph):
    assert isinstance(graph.createBlock("procedures_defreturn"), ProcedureDefinitionBlock)
    assert isinstance(graph.createBlock("procedures_callnoreturn"), ProcedureCallBlock)
    assert isinstance(graph.createBlock("move_forward"), GenericBlock)


def test_definition_slots(graph):
    withReturn = graph.createBlock("procedures_defreturn")
    without = graph.createBlock("procedures_defnoreturn")
    assert withReturn.slotByName("RETURN") is not None and withReturn.hasReturn
    assert without.slotByName("RETURN") is None and not without.hasReturn


@pytest.mark.parametrize("name, base", [
    ("solve", "solve"),
    ("solve1", "solve"),
    ("solve12", "solve"),
    ("bfs2d3", "bfs2d"),
    ("123", "123"),
    (" solve2 ", "solve"),
])
def test_base_name(name, base):
    assert baseName(name) == base


@pytest.mark.parametrize("name", [None, "", "   ", "unnamed", "undefined", "temp_procedure"])
def test_placeholder_names(name):
    assert isPlaceholderName(name)


def test_real_names_are_not_placeholders():
    assert not isPlaceholderName("solve")
    assert not isPlaceholderName("unnamed2")


def test_statement_sequence_and_descendants(makeDefinition):
    definition = makeDefinition("solve", bodySize=3)
    body = definition.getStatementBlocks("STACK")

    assert len(body) == 3
    assert definition.getDescendants() == [definition] + body
    assert body[2].getRootBlock() is definition
    assert body[2].enclosingProcedure() is definition


def test_connect_statement_pushes_existing_sequence_down(graph):
    loop = graph.createBlock("controls_whileUntil")
    first = graph.createBlock("move_forward")
    inserted = graph.createBlock("turn_left")

    graph.connectStatement(loop, "DO", first)
    graph.connectStatement(loop, "DO", inserted)

    assert loop.getStatementBlocks("DO") == [inserted, first]
    assert first.parentId == inserted.id


def test_connect_next_inserts_between(graph):
    a = graph.createBlock("move_forward")
    b = graph.createBlock("turn_left")
    c = graph.createBlock("hit")
    graph.connectNext(a, c)
    graph.connectNext(a, b)

    assert a.getNextBlock() is b
    assert b.getNextBlock() is c


def test_disconnect_keeps_block(graph, makeDefinition):
    definition = makeDefinition("solve", bodySize=2)
    second = definition.getStatementBlocks("STACK")[1]

    graph.disconnect(second)

    assert graph.getBlock(second.id) is second
    assert second.parentId is None
    assert len(definition.getStatementBlocks("STACK")) == 1
    assert second in graph.getTopBlocks()


def test_dispose_removes_whole_subtree(graph, makeDefinition, recorder):
    definition = makeDefinition("solve", bodySize=3)
    ids = [block.id for block in definition.getDescendants()]
    recorder.clear()

    removed = graph.disposeBlock(definition)

    assert len(removed) == 4
    assert all(graph.getBlock(id) is None for id in ids)
    assert all(block.disposed for block in removed)
    assert recorder[-1].type == BLOCK_DELETE
    assert set(recorder[-1].blockIds) == set(ids)


def test_dispose_without_undo_stays_out_of_history(graph, makeDefinition):
    definition = makeDefinition("solve")
    graph.history.clear()

    graph.disposeBlock(definition, recordUndo=False)

    assert graph.history == []


def test_dispose_twice_is_harmless(graph):
    block = graph.createBlock("move_forward")
    graph.disposeBlock(block)
    assert graph.disposeBlock(block) == []


def test_set_field_value_emits_change_only_on_difference(graph, recorder):
    definition = graph.createBlock("procedures_defnoreturn", fields={"NAME": "solve"})
    recorder.clear()

    definition.rename("solve")
    assert recorder == []

    definition.rename("walk")
    assert len(recorder) == 1
    assert recorder[0].type == BLOCK_CHANGE
    assert (recorder[0].name, recorder[0].oldValue, recorder[0].newValue) == ("NAME", "solve", "walk")


def test_call_rename_keeps_mutation_in_sync(makeCall):
    call = makeCall("solve1", args=["a", "b"])
    call.rename("solve")

    assert call.name == "solve"
    assert call.mutationName == "solve"
    assert call.slotByName("ARG1") is not None


def test_creation_events(graph, recorder):
    block = graph.createBlock("move_forward", pos=(10, 20))
    assert recorder[0].type == BLOCK_CREATE
    assert recorder[0].blockId == block.id
    assert (block.x, block.y) == (10, 20)


def test_duplicate_ids_are_replaced(graph):
    a = graph.createBlock("move_forward", id="x")
    b = graph.createBlock("move_forward", id="x")
    assert a.id == "x"
    assert b.id != "x"


def test_events_from_listeners_are_queued(graph):
    order = []

    def renamer(event):
        order.append(("renamer", event.type))
        if event.type == BLOCK_CREATE:
            graph.getBlock(event.blockId).setFieldValue("NAME", "renamed")

    def observer(event):
        order.append(("observer", event.type))

    graph.subscribe(renamer)
    graph.subscribe(observer)
    graph.createBlock("procedures_defnoreturn")

    # the change caused inside the create dispatch is delivered after every listener saw the create
    assert order == [
        ("renamer", BLOCK_CREATE),
        ("observer", BLOCK_CREATE),
        ("renamer", BLOCK_CHANGE),
        ("observer", BLOCK_CHANGE),
    ]
    assert graph.feed.pending == 0


def test_mutation_source_is_recorded(graph, recorder):
    with graph.mutationSource("resolver"):
        graph.createBlock("move_forward")
    graph.createBlock("turn_left")

    assert [event.source for event in recorder] == ["resolver", "user"]


def test_move_events(graph, recorder):
    loop = graph.createBlock("controls_repeat_ext")
    step = graph.createBlock("move_forward")
    recorder.clear()

    graph.connectStatement(loop, "DO", step)
    assert [event.type for event in recorder] == [BLOCK_MOVE]


def test_loading_session_marks_events(graph, recorder):
    with LoadingSession(graph) as loading:
        assert graph.isLoading()
        graph.createBlock("move_forward")
        graph.createBlock("turn_left")

    assert not graph.isLoading()
    assert loading.blocksLoaded == 2
    assert all(event.duringLoad for event in recorder)
    assert graph.history == []


def test_loading_session_is_cleared_on_failure(graph):
    with pytest.raises(ValueError):
        with LoadingSession(graph):
            raise ValueError("broken")

    assert not graph.isLoading()


def test_loading_session_cannot_nest(graph):
    with LoadingSession(graph):
        with pytest.raises(RuntimeError):
            with LoadingSession(graph):
                pass
        assert graph.isLoading()


def test_variables(graph):
    var = graph.addVariable("count", "v1")
    assert graph.findVariableByName("count") is var
    assert graph.getVariableById("v1") is var
    assert graph.resolveVariable("other", "v1") is var
    assert graph.resolveVariable("count") is var
    assert graph.resolveVariable("missing") is None


def test_top_blocks_ordered_by_position(graph):
    low = graph.createBlock("move_forward", pos=(0, 200))
    high = graph.createBlock("turn_left", pos=(0, 10))
    unplaced = graph.createBlock("hit")

    assert graph.getTopBlocks(ordered=True) == [unplaced, high, low]


def test_snapshot(graph, makeDefinition, makeCall):
    makeDefinition("solve", bodySize=2, params=["node"])
    call = makeCall("solve", args=["node"])

    snapshot = graph.snapshot()

    assert snapshot.definitionNames() == ["solve"]
    assert snapshot.definitions[0].descendantCount == 3
    assert snapshot.definitions[0].parameters[0][0] == "node"
    assert snapshot.calls[0].blockId == call.id
    assert snapshot.calls[0].argumentNames == ("node",)
