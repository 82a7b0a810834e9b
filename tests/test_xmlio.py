import pytest

from blockquest.events import LoadingSession
from blockquest.program import ProcedureCallBlock, ProcedureDefinitionBlock, ProgramGraph
from blockquest.xmlio import ProgramParseError, loadProgram, parseProgram, serializeProgram

PROGRAM = """<xml xmlns="https://developers.google.com/blockly/xml">
  <variables>
    <variable id="v1">steps</variable>
  </variables>
  <block type="procedures_defreturn" id="def1" x="20" y="20">
    <mutation>
      <arg name="node" varid="a1"></arg>
    </mutation>
    <field name="NAME">walk</field>
    <statement name="STACK">
      <block type="variables_set" id="set1">
        <field name="VAR" id="v1">steps</field>
        <value name="VALUE">
          <shadow type="math_number" id="n0"><field name="NUM">0</field></shadow>
          <block type="math_number" id="n1"><field name="NUM">3</field></block>
        </value>
        <next>
          <block type="move_forward" id="mv1"></block>
        </next>
      </block>
    </statement>
    <value name="RETURN">
      <block type="variables_get" id="get1"><field name="VAR" id="v1">steps</field></block>
    </value>
  </block>
  <block type="procedures_callreturn" id="call1" x="20" y="300">
    <mutation name="walk"><arg name="node"></arg></mutation>
    <field name="NAME">walk</field>
    <value name="ARG0">
      <block type="graph_get_current_node" id="cur1"></block>
    </value>
  </block>
</xml>"""


def load(text, graph=None):
    graph = graph or ProgramGraph()
    with LoadingSession(graph) as loading:
        loadProgram(text, graph, loading)
    return graph


def test_parse_rejects_malformed_text():
    with pytest.raises(ProgramParseError):
        parseProgram("<xml><block type='x'>")
    with pytest.raises(ProgramParseError):
        parseProgram("   ")
    with pytest.raises(ProgramParseError):
        parseProgram("<html></html>")
    with pytest.raises(ProgramParseError):
        parseProgram("<xml><block id='no-type'></block></xml>")


def test_load_builds_blocks_and_connections():
    graph = load(PROGRAM)

    definition = graph.getBlock("def1")
    assert isinstance(definition, ProcedureDefinitionBlock)
    assert definition.name == "walk"
    assert definition.parameterNames == ["node"]
    assert (definition.x, definition.y) == (20, 20)

    body = definition.getStatementBlocks("STACK")
    assert [block.id for block in body] == ["set1", "mv1"]
    assert definition.getSlotBlock("RETURN").id == "get1"

    # the real block wins over the shadow it covers
    assert body[0].getSlotBlock("VALUE").id == "n1"
    assert graph.getBlock("n0") is None


def test_load_resolves_variables():
    graph = load(PROGRAM)
    steps = graph.getVariableById("v1")
    assert steps.name == "steps"
    assert graph.getBlock("set1").fieldByName("VAR").varId == "v1"

    # parameters are registered as variables under their varid
    assert graph.getVariableById("a1").name == "node"


def test_load_declares_undeclared_variables():
    graph = load('<xml><block type="variables_get" id="g"><field name="VAR">ghost</field></block></xml>')
    ghost = graph.findVariableByName("ghost")
    assert ghost is not None
    assert graph.getBlock("g").fieldByName("VAR").varId == ghost.id


def test_load_call_metadata():
    graph = load(PROGRAM)
    call = graph.getBlock("call1")
    assert isinstance(call, ProcedureCallBlock)
    assert call.mutationName == "walk"
    assert call.argumentNames == ["node"]
    assert call.getArgumentBlock(0).id == "cur1"


def test_call_without_name_field_takes_mutation_name():
    graph = load('<xml><block type="procedures_callnoreturn" id="c"><mutation name="walk"></mutation></block></xml>')
    assert graph.getBlock("c").name == "walk"


def test_load_events_are_marked(recorder, graph):
    load(PROGRAM, graph)
    assert recorder
    assert all(event.duringLoad for event in recorder)
    assert all(event.source == "loader" for event in recorder)
    assert graph.history == []


def test_failed_load_keeps_previous_program():
    graph = load(PROGRAM)
    with pytest.raises(ProgramParseError):
        load("<xml><block", graph)

    assert graph.getBlock("def1") is not None
    assert not graph.isLoading()


def test_load_requires_open_session():
    graph = ProgramGraph()
    with LoadingSession(ProgramGraph()) as otherLoading:
        with pytest.raises(ValueError):
            loadProgram(PROGRAM, graph, otherLoading)


def test_single_block_document():
    graph = load('<block type="move_forward" id="only"></block>')
    assert [block.id for block in graph.getBlocks()] == ["only"]


def test_serialize_round_trip():
    original = load(PROGRAM)
    copy = load(serializeProgram(original))

    assert sorted(block.id for block in copy.getBlocks()) == sorted(block.id for block in original.getBlocks())
    assert copy.getBlock("def1").parameterNames == ["node"]
    assert [block.id for block in copy.getBlock("def1").getStatementBlocks("STACK")] == ["set1", "mv1"]
    assert copy.getBlock("call1").mutationName == "walk"
    assert copy.getBlock("call1").getArgumentBlock(0).id == "cur1"
    assert copy.getVariableById("v1").name == "steps"


def test_serialize_is_stable():
    graph = load(PROGRAM)
    assert serializeProgram(load(serializeProgram(graph))) == serializeProgram(graph)
