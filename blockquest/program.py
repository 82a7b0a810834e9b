"""
In-memory model of a block program

A ProgramGraph holds the blocks of one editing session and its variable table.
Blocks reference each other by id. Basic usage:

    graph = ProgramGraph()
    definition = graph.createBlock("procedures_defnoreturn")
    definition.rename("solve")
    step = graph.createBlock("move_forward")
    graph.appendStatement(definition, "STACK", step)

Statement slots hold the first block of a sequence; the rest of the sequence hangs off
Block.nextId. As in Scratch and Blockly, the parent of a block inside a sequence is the block
before it.
"""

import contextlib
import random
import re

from .events import (BLOCK_CHANGE, BLOCK_CREATE, BLOCK_DELETE, BLOCK_MOVE, SOURCE_USER, ChangeFeed,
                     StructuralEvent)

PROCEDURE_DEFINITION_TYPES = ("procedures_defnoreturn", "procedures_defreturn")
PROCEDURE_CALL_TYPES = ("procedures_callnoreturn", "procedures_callreturn")

PLACEHOLDER_NAMES = ("unnamed", "undefined", "temp_procedure")

STATEMENT = "statement"
VALUE = "value"


def randomId(size=20):
    return "".join([random.choice("1234567890abcdefghijklmnopqrstuvwxyz") for i in range(size)])


def isPlaceholderName(name):
    """ True for names that cannot identify a procedure: missing, blank or an editor placeholder """
    if name is None:
        return True
    name = str(name).strip()
    return name == "" or name in PLACEHOLDER_NAMES


def baseName(name):
    """ Strip a trailing numeric suffix: "solve12" -> "solve". A name made only of digits is its own base """
    name = str(name).strip()
    stripped = re.sub(r"\d+$", "", name)
    return stripped if stripped else name


class BlockField:
    def __init__(self, name, value, varId=None):
        self.fieldName = name
        self.value = value
        self.varId = varId

    def __repr__(self):
        return f"<Field \"{self.fieldName}\": {repr(self.value)}>"


class Slot:
    """ A named place where child blocks plug in. A statement slot holds the first block of a sequence,
    a value slot holds a single expression block """

    def __init__(self, name, kind, blockId=None):
        self.slotName = name
        self.kind = kind
        self.blockId = blockId

    def __repr__(self):
        return f"<Slot \"{self.slotName}\" ({self.kind}): {self.blockId}>"


class Block:
    def __init__(self, program, id: str, type: str):
        self.program = program
        self.id = id
        self.type = type
        self.fields: list[BlockField] = []
        self.slots: list[Slot] = []
        self.shadow = False
        self.parentId = None
        self.nextId = None
        self.x = None
        self.y = None

        self.isInFlyout = False
        self.disposed = False

    # Fields

    def fieldByName(self, name):
        for field in self.fields:
            if field.fieldName == name:
                return field

    def getFieldValue(self, name, default=None):
        field = self.fieldByName(name)
        return field.value if field else default

    def setFieldValue(self, name, value, varId=None):
        field = self.fieldByName(name)
        oldValue = field.value if field else None

        if field is None:
            field = BlockField(name, value, varId)
            self.fields.append(field)
        else:
            field.value = value
            if varId is not None:
                field.varId = varId

        if oldValue != value:
            self.program.emit(BLOCK_CHANGE, self, name=name, oldValue=oldValue, newValue=value)

    # Slots

    def slotByName(self, name):
        for slot in self.slots:
            if slot.slotName == name:
                return slot

    def ensureSlot(self, name, kind):
        slot = self.slotByName(name)
        if slot is None:
            slot = Slot(name, kind)
            self.slots.append(slot)
        return slot

    def getSlotBlock(self, name):
        slot = self.slotByName(name)
        if slot and slot.blockId:
            return self.program.getBlock(slot.blockId)

    def getStatementBlocks(self, name):
        """ Every block of the sequence plugged into statement slot [name], in order """
        blocks = []
        block = self.getSlotBlock(name)
        while block:
            blocks.append(block)
            block = block.getNextBlock()
        return blocks

    # Navigation

    def getNextBlock(self):
        return self.program.getBlock(self.nextId)

    def getParentBlock(self):
        return self.program.getBlock(self.parentId)

    def getRootBlock(self):
        block = self
        while block.getParentBlock():
            block = block.getParentBlock()
        return block

    def getChildren(self):
        """ Blocks directly plugged into this one: slot contents, then the next block """
        children = []
        for slot in self.slots:
            if slot.blockId and (child := self.program.getBlock(slot.blockId)):
                children.append(child)
        if nextBlock := self.getNextBlock():
            children.append(nextBlock)
        return children

    def getDescendants(self):
        """ This block and everything below it, in document order """
        descendants = [self]
        for child in self.getChildren():
            descendants.extend(child.getDescendants())
        return descendants

    def enclosingProcedure(self):
        root = self.getRootBlock()
        if isinstance(root, ProcedureDefinitionBlock):
            return root

    @property
    def isProcedureDefinition(self):
        return False

    @property
    def isProcedureCall(self):
        return False

    def __repr__(self):
        return f"<{type(self).__name__} {self.type} id={self.id}>"


class GenericBlock(Block):
    pass


class ProcedureParameter:
    def __init__(self, name, varId=None):
        self.name = name
        self.varId = varId

    def __eq__(self, other):
        return isinstance(other, ProcedureParameter) and self.name == other.name and self.varId == other.varId

    def __repr__(self):
        return f"<Parameter \"{self.name}\" varid={self.varId}>"


class ProcedureDefinitionBlock(Block):
    def __init__(self, program, id, type):
        super().__init__(program, id, type)
        self.parameters: list[ProcedureParameter] = []
        self.ensureSlot("STACK", STATEMENT)
        if type == "procedures_defreturn":
            self.ensureSlot("RETURN", VALUE)

    @property
    def name(self):
        return self.getFieldValue("NAME")

    def rename(self, newName):
        self.setFieldValue("NAME", newName)

    @property
    def hasReturn(self):
        return self.type == "procedures_defreturn"

    @property
    def parameterNames(self):
        return [param.name for param in self.parameters]

    def setParameters(self, parameters):
        oldNames = self.parameterNames
        self.parameters = [ProcedureParameter(p.name, p.varId) for p in parameters]
        if oldNames != self.parameterNames:
            self.program.emit(BLOCK_CHANGE, self, name="PARAMS", oldValue=oldNames, newValue=self.parameterNames)

    @property
    def isProcedureDefinition(self):
        return True


class ProcedureCallBlock(Block):
    def __init__(self, program, id, type):
        super().__init__(program, id, type)
        # parameter metadata ("mutation"): the procedure the call was built for and its argument names
        self.mutationName = None
        self.argumentNames: list[str] = []

    @property
    def name(self):
        return self.getFieldValue("NAME")

    def rename(self, newName):
        self.mutationName = newName
        self.setFieldValue("NAME", newName)

    @property
    def returnsValue(self):
        return self.type == "procedures_callreturn"

    def setArgumentNames(self, names):
        self.argumentNames = list(names)
        for i in range(len(self.argumentNames)):
            self.ensureSlot(f"ARG{i}", VALUE)

    def getArgumentBlock(self, index):
        return self.getSlotBlock(f"ARG{index}")

    @property
    def isProcedureCall(self):
        return True


def blockClassFor(blockType):
    if blockType in PROCEDURE_DEFINITION_TYPES:
        return ProcedureDefinitionBlock
    if blockType in PROCEDURE_CALL_TYPES:
        return ProcedureCallBlock
    return GenericBlock


class Variable:
    def __init__(self, id, name):
        self.id = id
        self.name = name

    def __repr__(self):
        return f"<Variable \"{self.name}\" id={self.id}>"


""" Snapshots """


class ProcedureSnapshot:
    def __init__(self, blockId, name, descendantCount, parameters, order):
        self.blockId = blockId
        self.name = name
        self.descendantCount = descendantCount
        self.parameters = tuple(parameters)
        self.order = order

    def __repr__(self):
        return f"<ProcedureSnapshot \"{self.name}\" size={self.descendantCount}>"


class CallSnapshot:
    def __init__(self, blockId, name, mutationName, argumentNames):
        self.blockId = blockId
        self.name = name
        self.mutationName = mutationName
        self.argumentNames = tuple(argumentNames)

    def __repr__(self):
        return f"<CallSnapshot \"{self.name}\">"


class ProgramSnapshot:
    """ Read-only view of the procedures of a graph at one instant """

    def __init__(self, definitions, calls):
        self.definitions: tuple[ProcedureSnapshot, ...] = tuple(definitions)
        self.calls: tuple[CallSnapshot, ...] = tuple(calls)

    def definitionNames(self):
        return [d.name for d in self.definitions]


""" Program graph """


class ProgramGraph:
    def __init__(self):
        self._blocks: dict[str, Block] = {}
        self._variables: dict[str, Variable] = {}
        self.feed = ChangeFeed()
        self.history: list[StructuralEvent] = []
        self.loadingSession = None
        self._sources = [SOURCE_USER]

    # Events

    @property
    def currentSource(self):
        return self._sources[-1]

    @contextlib.contextmanager
    def mutationSource(self, source):
        """ Attribute every mutation made inside the block to [source] """
        self._sources.append(source)
        try:
            yield
        finally:
            self._sources.pop()

    def isLoading(self):
        return self.loadingSession is not None

    def emit(self, type, block, recordUndo=True, **kwargs):
        event = StructuralEvent(
            type,
            blockId=block.id if block else None,
            blockType=block.type if block else None,
            source=self.currentSource,
            recordUndo=recordUndo,
            duringLoad=self.isLoading(),
            **kwargs
        )
        if recordUndo and not event.duringLoad:
            self.history.append(event)
        self.feed.emit(event)
        return event

    def subscribe(self, listener):
        self.feed.subscribe(listener)

    def unsubscribe(self, listener):
        self.feed.unsubscribe(listener)

    # Blocks

    def createBlock(self, type, id=None, pos=None, fields=None):
        """ Create a block of the right variant for [type] and add it to the graph as a root """
        if id is None or id in self._blocks:
            id = randomId()

        block = blockClassFor(type)(self, id, type)
        if pos:
            block.x = pos[0]
            block.y = pos[1]

        # fields given here are part of the block's initial state, no change events
        for name, value in (fields or {}).items():
            block.fields.append(BlockField(name, value))

        self._blocks[id] = block
        if self.loadingSession:
            self.loadingSession.blocksLoaded += 1

        self.emit(BLOCK_CREATE, block)
        return block

    def getBlock(self, id) -> Block:
        if id is None:
            return None
        return self._blocks.get(id, None)

    def getBlocks(self):
        return list(self._blocks.values())

    def getBlocksByType(self, *types):
        return [block for block in self._blocks.values() if block.type in types]

    def getTopBlocks(self, ordered=False):
        roots = [block for block in self._blocks.values() if block.parentId is None]
        if ordered:
            # stable, so blocks without positions keep creation order
            roots.sort(key=lambda block: (block.y or 0, block.x or 0))
        return roots

    def getProcedureDefinitions(self) -> list[ProcedureDefinitionBlock]:
        return [block for block in self._blocks.values() if isinstance(block, ProcedureDefinitionBlock)]

    def getProcedureCalls(self) -> list[ProcedureCallBlock]:
        return [block for block in self._blocks.values() if isinstance(block, ProcedureCallBlock)]

    def findProcedureDefinition(self, name):
        for definition in self.getProcedureDefinitions():
            if definition.name == name:
                return definition

    # Connections

    def _detach(self, block: Block):
        """ Unplug [block] (and the sequence after it) from wherever it sits, without emitting an event """
        parent = block.getParentBlock()
        if parent is None:
            return False

        if parent.nextId == block.id:
            parent.nextId = None
        else:
            for slot in parent.slots:
                if slot.blockId == block.id:
                    slot.blockId = None
        block.parentId = None
        return True

    def connectValue(self, parent: Block, slotName, child: Block):
        self._detach(child)
        slot = parent.ensureSlot(slotName, VALUE)

        if slot.blockId and (old := self.getBlock(slot.blockId)):
            old.parentId = None

        slot.blockId = child.id
        child.parentId = parent.id
        self.emit(BLOCK_MOVE, child)

    def connectStatement(self, parent: Block, slotName, child: Block):
        """ Plug [child] in as the first block of statement slot [slotName]. Whatever was there is
        attached after the last block of [child]'s sequence """
        self._detach(child)
        slot = parent.ensureSlot(slotName, STATEMENT)

        previousFirst = self.getBlock(slot.blockId)
        slot.blockId = child.id
        child.parentId = parent.id

        if previousFirst:
            last = child
            while last.getNextBlock():
                last = last.getNextBlock()
            last.nextId = previousFirst.id
            previousFirst.parentId = last.id

        self.emit(BLOCK_MOVE, child)

    def appendStatement(self, parent: Block, slotName, child: Block):
        """ Attach [child] at the end of the sequence in statement slot [slotName] """
        existing = parent.getStatementBlocks(slotName)
        if not existing:
            self.connectStatement(parent, slotName, child)
        else:
            self.connectNext(existing[-1], child)

    def connectNext(self, previous: Block, block: Block):
        """ Chain [block] after [previous], between it and its original next block """
        self._detach(block)

        if oldNext := previous.getNextBlock():
            last = block
            while last.getNextBlock():
                last = last.getNextBlock()
            last.nextId = oldNext.id
            oldNext.parentId = last.id

        previous.nextId = block.id
        block.parentId = previous.id
        self.emit(BLOCK_MOVE, block)

    def disconnect(self, block: Block):
        """ Turn [block] (and the sequence after it) into a root, keeping it alive """
        if self._detach(block):
            self.emit(BLOCK_MOVE, block)

    def disposeBlock(self, block: Block, recordUndo=True):
        """ Remove [block], its slot contents and the sequence after it from the graph """
        if block.disposed or block.id not in self._blocks:
            return []

        self._detach(block)
        removed = block.getDescendants()
        for b in removed:
            b.disposed = True
            self._blocks.pop(b.id, None)

        self.emit(BLOCK_DELETE, block, recordUndo=recordUndo, blockIds=[b.id for b in removed])
        return removed

    def clear(self):
        for root in self.getTopBlocks():
            self.disposeBlock(root, recordUndo=False)
        self._variables = {}

    # Variables

    def addVariable(self, name, id=None):
        if id is None or id in self._variables:
            id = randomId()
        self._variables[id] = Variable(id, name)
        return self._variables[id]

    def getVariables(self):
        return list(self._variables.values())

    def getVariableById(self, id):
        return self._variables.get(id, None)

    def findVariableByName(self, name):
        for var in self.getVariables():
            if var.name == name:
                return var

    def resolveVariable(self, name, id=None):
        """ Return the variable with [id], else the one called [name] """
        if id is not None and (var := self.getVariableById(id)):
            return var
        return self.findVariableByName(name)

    # Snapshot

    def snapshot(self) -> ProgramSnapshot:
        definitions = []
        for order, definition in enumerate(self.getProcedureDefinitions()):
            definitions.append(ProcedureSnapshot(
                definition.id,
                definition.name,
                len(definition.getDescendants()),
                [(p.name, p.varId) for p in definition.parameters],
                order
            ))

        calls = [CallSnapshot(c.id, c.name, c.mutationName, c.argumentNames) for c in self.getProcedureCalls()]
        return ProgramSnapshot(definitions, calls)

    def __repr__(self):
        return f"<ProgramGraph blocks={len(self._blocks)} variables={len(self._variables)}>"
