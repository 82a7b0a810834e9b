""" Edit-time guard: immediate fixes for procedure blocks as the learner edits """

import contextlib
import logging
import time

from .config import GuardParameters
from .events import BLOCK_CHANGE, BLOCK_CREATE, BLOCK_DELETE, SOURCE_GUARD, SOURCE_RESOLVER, StructuralEvent
from .program import ProcedureCallBlock, baseName, isPlaceholderName

logger = logging.getLogger(__name__)


class EditTimeGuard:
    """
    Watches a graph's change feed and repairs the damage editors do while blocks are dragged around:

    - dragging a call out of the palette can drag a fresh definition along with it. A definition
      created within `creatingCallWindow` seconds of a call is disposed again
    - a call with a placeholder name, or a name no definition has, is pointed at a real definition
    - typing a new name into a variable field declares the variable

    Everything else is left to the resolver, which the guard asks for through [onStructuralEdit].
    """

    def __init__(self, graph, params: GuardParameters = None, clock=time.monotonic, onStructuralEdit=None):
        self.graph = graph
        self.params = params or GuardParameters()
        self.clock = clock
        self.onStructuralEdit = onStructuralEdit

        self._busy = False
        self._creatingCallUntil = None

    def attach(self):
        self.graph.subscribe(self.handleEvent)

    def detach(self):
        self.graph.unsubscribe(self.handleEvent)

    @contextlib.contextmanager
    def _action(self):
        self._busy = True
        try:
            with self.graph.mutationSource(SOURCE_GUARD):
                yield
        finally:
            self._busy = False

    def isCreatingCall(self):
        return self._creatingCallUntil is not None and self.clock() < self._creatingCallUntil

    def shouldIgnore(self, event: StructuralEvent):
        if event.duringLoad or self.graph.isLoading():
            return True
        if event.isCosmetic:
            return True
        if event.source in (SOURCE_GUARD, SOURCE_RESOLVER):
            return True
        return self._busy

    def handleEvent(self, event: StructuralEvent):
        if self.shouldIgnore(event):
            return

        if event.type == BLOCK_CREATE:
            self._handleCreate(event)
        elif event.type == BLOCK_CHANGE:
            self._handleChange(event)

        if event.type in (BLOCK_CREATE, BLOCK_CHANGE, BLOCK_DELETE) and self.onStructuralEdit:
            self.onStructuralEdit(event)

    def _handleCreate(self, event):
        block = self.graph.getBlock(event.blockId)
        if block is None:
            return

        if block.isProcedureCall:
            self._creatingCallUntil = self.clock() + self.params.creatingCallWindow
            if self._needsResolution(block):
                self._resolveCall(block)

        elif block.isProcedureDefinition and self.isCreatingCall():
            logger.info('Disposing definition "%s" created along with a call', block.name)
            with self._action():
                self.graph.disposeBlock(block, recordUndo=False)

    def _handleChange(self, event):
        block = self.graph.getBlock(event.blockId)
        if block is None:
            return

        if isinstance(block, ProcedureCallBlock) and event.name == "NAME":
            if self._needsResolution(block):
                self._resolveCall(block)

        elif event.name == "VAR" and not block.isInFlyout:
            self._declareVariable(block, event.newValue)

    def _needsResolution(self, call: ProcedureCallBlock):
        return isPlaceholderName(call.name) or self.graph.findProcedureDefinition(call.name) is None

    def _resolveCall(self, call: ProcedureCallBlock):
        definitions = [d for d in self.graph.getProcedureDefinitions() if not isPlaceholderName(d.name)]
        if not definitions:
            logger.debug("No definition available for call %s", call.id)
            return

        target = definitions[0]
        if not isPlaceholderName(call.name):
            for definition in definitions:
                if baseName(definition.name) == baseName(call.name):
                    target = definition
                    break

        logger.debug('Pointing call %s ("%s") at "%s"', call.id, call.name, target.name)
        with self._action():
            call.rename(target.name)
            call.setArgumentNames(target.parameterNames)

    def _declareVariable(self, block, newName):
        name = str(newName or "").strip()
        if not name:
            return

        with self._action():
            var = self.graph.findVariableByName(name)
            if var is None:
                var = self.graph.addVariable(name)
                logger.info('Declared variable "%s"', name)
            block.fieldByName("VAR").varId = var.id
