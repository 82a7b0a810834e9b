"""
Worlds that generated programs act on

The execution engine only talks to a Simulation: it awaits performAction() for every primitive
action and condition block, and reads getWorldState() for graph queries. getWorldState() returns a
plain dict with at least the keys "currentNode" and "neighbors" (node -> list of adjacent nodes).
"""

import asyncio
import logging

import networkx as nx

logger = logging.getLogger(__name__)


class ActionRejected(Exception): pass


class Simulation:
    async def performAction(self, kind: str, args: list):
        """ Carry out one primitive action and return its outcome. Raise ActionRejected if the world
        does not allow it. Must never hang """
        raise NotImplementedError

    def getWorldState(self) -> dict:
        raise NotImplementedError


# clockwise, starting north; y grows downwards as on screen
DIRECTIONS = [(0, -1), (1, 0), (0, 1), (-1, 0)]
DIRECTION_NAMES = ["north", "east", "south", "west"]


def asNode(value):
    """ Nodes of grid worlds are (x, y) tuples, generated code may hand them over as lists """
    if isinstance(value, list):
        return tuple(value)
    return value


class GraphWorld(Simulation):
    """
    A hero walking the nodes of a networkx graph. Some nodes hold monsters, which block the way
    until they are hit, and one node may be the goal.

    On grid worlds (nodes are (x, y) tuples) the hero also has a facing direction, which
    move_forward, turn_left, turn_right, hit and the condition queries work relative to.
    """

    def __init__(self, graph: nx.Graph, start, goal=None, monsters=(), facing="east", stepDelay: float = 0):
        if start not in graph:
            raise ValueError(f"Start node {start} is not part of the world")

        self.graph = graph
        self.hero = start
        self.goal = goal
        self.monsters = [asNode(m) for m in monsters]
        self.facing = DIRECTION_NAMES.index(facing)
        self.stepDelay = stepDelay

        # (kind, args, outcome) of every action that was carried out
        self.log = []

        self.actions = {
            "move_forward": self.moveForward,
            "turn_left": self.turnLeft,
            "turn_right": self.turnRight,
            "hit": self.hit,
            "move_to_node": self.moveToNode,
            "move_along_path": self.moveAlongPath,
            "found_monster": self.foundMonster,
            "can_move_forward": self.canMoveForward,
            "at_goal": self.atGoal,
        }

    @classmethod
    def grid(cls, width, height, walls=(), **kwargs):
        """ A width x height grid world. [walls] are removed from the grid """
        graph = nx.grid_2d_graph(width, height)
        graph.remove_nodes_from([asNode(wall) for wall in walls])
        return cls(graph, **kwargs)

    async def performAction(self, kind, args):
        if kind not in self.actions:
            raise ActionRejected(f'Unknown action "{kind}"')

        if self.stepDelay:
            await asyncio.sleep(self.stepDelay)

        outcome = self.actions[kind](*args)
        self.log.append((kind, tuple(args), outcome))
        logger.debug("%s%s -> %s", kind, tuple(args), outcome)
        return outcome

    def getWorldState(self):
        return {
            "currentNode": self.hero,
            "facing": DIRECTION_NAMES[self.facing],
            "goal": self.goal,
            "monsters": list(self.monsters),
            "neighbors": {node: list(self.graph.neighbors(node)) for node in self.graph.nodes},
        }

    """ Helpers """

    def nodeAhead(self):
        if not isinstance(self.hero, tuple) or len(self.hero) != 2:
            return None
        dx, dy = DIRECTIONS[self.facing]
        return (self.hero[0] + dx, self.hero[1] + dy)

    def _enter(self, node):
        if not self.graph.has_edge(self.hero, node):
            raise ActionRejected(f"Cannot move from {self.hero} to {node}")
        if node in self.monsters:
            raise ActionRejected(f"A monster blocks {node}")
        self.hero = node
        return node

    """ Actions """

    def moveForward(self):
        ahead = self.nodeAhead()
        if ahead is None:
            raise ActionRejected("This world has no directions")
        return self._enter(ahead)

    def turnLeft(self):
        self.facing = (self.facing - 1) % 4
        return DIRECTION_NAMES[self.facing]

    def turnRight(self):
        self.facing = (self.facing + 1) % 4
        return DIRECTION_NAMES[self.facing]

    def hit(self):
        """ Defeat the monster in front of the hero, or next to it in worlds without directions """
        ahead = self.nodeAhead()
        targets = [ahead] if ahead is not None else list(self.graph.neighbors(self.hero))
        for target in targets:
            if target in self.monsters:
                self.monsters.remove(target)
                return True
        return False

    def moveToNode(self, node):
        return self._enter(asNode(node))

    def moveAlongPath(self, path):
        nodes = [asNode(node) for node in path]
        if nodes and nodes[0] == self.hero:
            nodes = nodes[1:]
        for node in nodes:
            self._enter(node)
        return self.hero

    """ Conditions """

    def foundMonster(self):
        ahead = self.nodeAhead()
        if ahead is not None:
            return ahead in self.monsters
        return any(node in self.monsters for node in self.graph.neighbors(self.hero))

    def canMoveForward(self):
        ahead = self.nodeAhead()
        return ahead is not None and self.graph.has_edge(self.hero, ahead) and ahead not in self.monsters

    def atGoal(self):
        return self.goal is not None and self.hero == asNode(self.goal)
