import pytest

from blockquest.events import LoadingSession
from blockquest.program import ProcedureParameter, ProgramGraph
from blockquest.xmlio import loadProgram


def buildDefinition(graph, name, bodySize=0, params=(), type="procedures_defnoreturn"):
    """ A definition whose body is [bodySize] move_forward blocks, so it has bodySize + 1 descendants """
    definition = graph.createBlock(type, fields={"NAME": name})
    definition.parameters = [ProcedureParameter(p, (graph.findVariableByName(p) or graph.addVariable(p)).id) for p in params]

    previous = None
    for i in range(bodySize):
        step = graph.createBlock("move_forward")
        if previous is None:
            graph.connectStatement(definition, "STACK", step)
        else:
            graph.connectNext(previous, step)
        previous = step
    return definition


def buildCall(graph, name, args=(), type="procedures_callnoreturn"):
    call = graph.createBlock(type, fields={"NAME": name})
    call.mutationName = name
    call.setArgumentNames(args)
    return call


@pytest.fixture
def graph():
    return ProgramGraph()


@pytest.fixture
def makeDefinition(graph):
    def make(name, bodySize=0, params=(), type="procedures_defnoreturn"):
        return buildDefinition(graph, name, bodySize, params, type)
    return make


@pytest.fixture
def makeCall(graph):
    def make(name, args=(), type="procedures_callnoreturn"):
        return buildCall(graph, name, args, type)
    return make


@pytest.fixture
def recorder(graph):
    """ Every event the graph emits, in dispatch order """
    events = []
    graph.subscribe(events.append)
    return events


@pytest.fixture
def loadXml():
    """ Load Blockly XML text into a fresh graph """
    def load(text):
        graph = ProgramGraph()
        with LoadingSession(graph) as loading:
            loadProgram(text, graph, loading)
        return graph
    return load
