""" Structural change feed for a ProgramGraph

Every mutation of a graph is announced as a StructuralEvent. Events are pushed onto a FIFO queue
and drained by a single dispatcher, so a listener that mutates the graph while it handles an event
never re-enters itself: the events it causes are delivered after it returns.
"""

import logging

logger = logging.getLogger(__name__)

BLOCK_CREATE = "create"
BLOCK_CHANGE = "change"
BLOCK_DELETE = "delete"
BLOCK_MOVE = "move"

UI = "ui"
SELECTED = "selected"
CLICK = "click"
VIEWPORT = "viewport"

STRUCTURAL_EVENTS = (BLOCK_CREATE, BLOCK_CHANGE, BLOCK_DELETE, BLOCK_MOVE)
COSMETIC_EVENTS = (UI, SELECTED, CLICK, VIEWPORT)

# who caused a mutation
SOURCE_USER = "user"
SOURCE_GUARD = "guard"
SOURCE_RESOLVER = "resolver"
SOURCE_LOADER = "loader"


class StructuralEvent:
    def __init__(self, type, blockId=None, source=SOURCE_USER, name=None, oldValue=None, newValue=None,
                 blockType=None, blockIds=(), recordUndo=True, duringLoad=False):
        self.type = type
        self.blockId = blockId
        self.blockType = blockType
        self.source = source

        # for BLOCK_CHANGE: the field that changed
        self.name = name
        self.oldValue = oldValue
        self.newValue = newValue

        # for BLOCK_DELETE: every block removed along with blockId
        self.blockIds = tuple(blockIds)

        self.recordUndo = recordUndo
        self.duringLoad = duringLoad

    @property
    def isCosmetic(self):
        return self.type in COSMETIC_EVENTS

    def __repr__(self):
        return f'<StructuralEvent {self.type} block={self.blockId} source={self.source}>'


class ChangeFeed:
    def __init__(self):
        self._listeners = []
        self._queue: list[StructuralEvent] = []
        self._dispatching = False

    def subscribe(self, listener):
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener):
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def pending(self):
        return len(self._queue)

    def emit(self, event: StructuralEvent):
        self._queue.append(event)

        if self._dispatching:
            return

        self._dispatching = True
        try:
            while self._queue:
                nextEvent = self._queue.pop(0)
                for listener in list(self._listeners):
                    listener(nextEvent)
        finally:
            self._dispatching = False
            self._queue.clear()


class LoadingSession:
    """ Marks a graph as bulk-loading for the duration of a `with` block.

    Every event emitted while the session is open is stamped `duringLoad`, which incremental
    listeners skip. The session is handed to the loader explicitly and is always closed,
    whether the load succeeds or not:

        with LoadingSession(graph) as loading:
            xmlio.loadProgram(text, graph, loading)
    """

    def __init__(self, graph):
        self.graph = graph
        self.active = False
        self.blocksLoaded = 0

    def __enter__(self):
        if self.graph.loadingSession is not None:
            raise RuntimeError("Graph is already loading")
        self.active = True
        self.graph.loadingSession = self
        return self

    def __exit__(self, *args):
        self.active = False
        if self.graph.loadingSession is self:
            self.graph.loadingSession = None
        logger.debug("Loading session closed after %d blocks", self.blocksLoaded)

    def __repr__(self):
        return f'<LoadingSession active={self.active} blocks={self.blocksLoaded}>'
