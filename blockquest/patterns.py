"""
Comparing learner programs with reference solutions

A program is reduced to its shape: the blocks of every root in document order. Reference patterns
carry the shape of a known solution, a tier ("good", "medium" or none) and optionally a sequence of
steps, each with a hint text and the shape the program has once the step is done.
"""

import logging
import time

from .events import LoadingSession
from .program import STATEMENT, VALUE, ProgramGraph
from .xmlio import ProgramParseError, loadProgram

logger = logging.getLogger(__name__)

TIER_GOOD = "good"
TIER_MEDIUM = "medium"

# the pattern type ids scores are computed from; lower is better
PATTERN_TYPE_IDS = {TIER_GOOD: 1, TIER_MEDIUM: 2}

# block types that count as the same block when comparing shapes
EQUIVALENT_TYPES = [
    {"lists_create_empty", "lists_create_with"},
]


def typesEquivalent(a, b):
    if a == b:
        return True
    return any(a in group and b in group for group in EQUIVALENT_TYPES)


class ShapeEntry:
    def __init__(self, type, procedureName=None, varName=None, hasStatement=False, hasValue=False):
        self.type = type
        self.procedureName = procedureName
        self.varName = varName
        self.hasStatement = hasStatement
        self.hasValue = hasValue

    @staticmethod
    def fromDict(data):
        if isinstance(data, str):
            return ShapeEntry(data)
        return ShapeEntry(
            data["type"],
            procedureName=data.get("procedureName"),
            varName=data.get("varName"),
            hasStatement=data.get("hasStatement", False),
            hasValue=data.get("hasValue", False)
        )

    def matches(self, target: "ShapeEntry", strict=False):
        """ Whether this (program) entry satisfies [target] (pattern) entry. Procedure names always have to
        agree when the target names one. Variable names and structure only count when [strict] """
        if not typesEquivalent(self.type, target.type):
            return False
        if target.procedureName is not None and self.procedureName != target.procedureName:
            return False
        if strict:
            if target.varName is not None and self.varName != target.varName:
                return False
            if target.hasStatement and not self.hasStatement:
                return False
            if target.hasValue and not self.hasValue:
                return False
        return True

    def __repr__(self):
        return f"<ShapeEntry {self.type}>"


def analyzeProgramShape(graph: ProgramGraph):
    shape = []
    for root in graph.getTopBlocks(ordered=True):
        for block in root.getDescendants():
            shape.append(ShapeEntry(
                block.type,
                procedureName=block.name if block.isProcedureDefinition or block.isProcedureCall else None,
                varName=block.getFieldValue("VAR"),
                hasStatement=any(slot.kind == STATEMENT and slot.blockId for slot in block.slots),
                hasValue=any(slot.kind == VALUE and slot.blockId for slot in block.slots)
            ))
    return shape


def shapeFromDefinition(value, onWarning=None):
    """ A shape given either as a list of block types / entry dicts, or as Blockly XML. XML that does not
    parse is reported through [onWarning] and gives an empty shape """
    if value is None:
        return []
    if isinstance(value, str):
        graph = ProgramGraph()
        try:
            with LoadingSession(graph) as loading:
                loadProgram(value, graph, loading)
        except ProgramParseError as e:
            message = f"Pattern shape could not be parsed: {e}"
            logger.warning(message)
            if onWarning:
                onWarning(message)
            return []
        return analyzeProgramShape(graph)
    return [ShapeEntry.fromDict(entry) for entry in value]


class PatternStep:
    def __init__(self, hint, shape, highlightedBlockTypes=None):
        self.hint = hint
        self.shape: list[ShapeEntry] = shape
        if highlightedBlockTypes is None:
            highlightedBlockTypes = list(dict.fromkeys(entry.type for entry in shape))
        self.highlightedBlockTypes = highlightedBlockTypes

    @staticmethod
    def fromDict(data, onWarning=None):
        return PatternStep(data.get("hint", ""), shapeFromDefinition(data.get("blockShape"), onWarning),
                           data.get("highlightedBlockTypes"))


class ReferencePattern:
    def __init__(self, patternId, tier=None, blockShape=None, name=None, steps=(), bigO=None, hint=None):
        self.patternId = patternId
        self.tier = tier
        self.name = name or str(patternId)
        self.steps: list[PatternStep] = list(steps)
        self.bigO = bigO
        self.hint = hint

        # without an explicit shape, the last step describes the finished solution
        if not blockShape and self.steps:
            blockShape = self.steps[-1].shape
        self.blockShape: list[ShapeEntry] = list(blockShape or [])

    @property
    def patternTypeId(self):
        return PATTERN_TYPE_IDS.get(self.tier)

    @property
    def rank(self):
        return self.patternTypeId or len(PATTERN_TYPE_IDS) + 1

    @staticmethod
    def fromDict(data, onWarning=None):
        return ReferencePattern(
            data.get("patternId", data.get("id")),
            tier=data.get("tier"),
            blockShape=shapeFromDefinition(data.get("blockShape"), onWarning),
            name=data.get("name"),
            steps=[PatternStep.fromDict(step, onWarning) for step in data.get("steps", [])],
            bigO=data.get("bigO"),
            hint=data.get("hint")
        )

    def __repr__(self):
        return f"<ReferencePattern {self.name} tier={self.tier}>"


""" Similarity """


class SimilarityStrategy:
    def matchedEntries(self, programShape, patternShape) -> int:
        """ How many entries of [patternShape] count as present in [programShape] """
        raise NotImplementedError


class SequentialSubsequenceStrategy(SimilarityStrategy):
    """ Counts the pattern entries found in order in the program. Other blocks may sit in between,
    but counting stops at the first pattern entry that can't be found """

    def __init__(self, strict=False):
        self.strict = strict

    def matchedEntries(self, programShape, patternShape):
        matched = 0
        position = 0
        for target in patternShape:
            for i in range(position, len(programShape)):
                if programShape[i].matches(target, self.strict):
                    matched += 1
                    position = i + 1
                    break
            else:
                break
        return matched


class MatchScore:
    def __init__(self, pattern: ReferencePattern, matched, total):
        self.pattern = pattern
        self.matched = min(matched, total)
        self.total = total

    @property
    def percentage(self):
        if self.total == 0:
            return 0
        return min(100, round(self.matched / self.total * 100))

    @property
    def isComplete(self):
        return self.total > 0 and self.matched == self.total

    def __repr__(self):
        return f"<MatchScore {self.pattern.name}: {self.percentage}%>"


class PatternMatcher:
    def __init__(self, patterns, strategy: SimilarityStrategy = None):
        # better tiers first; sorted() keeps the given order within a tier
        self.patterns: list[ReferencePattern] = sorted(patterns, key=lambda p: p.rank)
        self.strategy = strategy or SequentialSubsequenceStrategy()
        self.stepStrategy = SequentialSubsequenceStrategy(strict=True)

    def scores(self, shape):
        return [
            MatchScore(pattern, self.strategy.matchedEntries(shape, pattern.blockShape), len(pattern.blockShape))
            for pattern in self.patterns if pattern.blockShape
        ]

    def bestMatch(self, shape):
        """ The pattern the program resembles most. On equal percentages the better tier wins, since
        patterns are visited best tier first """
        best = None
        for score in self.scores(shape):
            if score.percentage > 0 and (best is None or score.percentage > best.percentage):
                best = score
        return best

    def findExactMatch(self, shape):
        """ The best-tier pattern whose shape is exactly the program's, block for block """
        for pattern in self.patterns:
            if not pattern.blockShape or len(pattern.blockShape) != len(shape):
                continue
            if all(entry.matches(target) for entry, target in zip(shape, pattern.blockShape)):
                return pattern
        return None

    def stepCompleted(self, shape, step: PatternStep):
        return bool(step.shape) and self.stepStrategy.matchedEntries(shape, step.shape) == len(step.shape)

    def currentStep(self, shape, pattern: ReferencePattern):
        """ Index of the first step of [pattern] the program has not completed yet. Steps are taken in
        order: a later step does not count while an earlier one is incomplete """
        index = 0
        for step in pattern.steps:
            if not self.stepCompleted(shape, step):
                break
            index += 1
        return index

    def nextHint(self, shape):
        """ (hint text, highlighted block types) for the program, or None when there is nothing to say """
        best = self.bestMatch(shape)
        if best is None:
            # nothing matches yet: start from the first step of the best pattern
            candidates = [p for p in self.patterns if p.steps]
            if not candidates:
                return None
            first = candidates[0].steps[0]
            return (first.hint, tuple(first.highlightedBlockTypes))

        pattern = best.pattern
        index = self.currentStep(shape, pattern)
        if index < len(pattern.steps):
            step = pattern.steps[index]
            return (step.hint, tuple(step.highlightedBlockTypes))

        if best.isComplete:
            return None

        missing = list(dict.fromkeys(entry.type for entry in pattern.blockShape[best.matched:]))
        text = pattern.hint or f"Keep building towards {pattern.name}"
        return (text, tuple(missing))


class HintAdvisor:
    """ Re-evaluates the hint after the program changes, at most once per [debounce] seconds of quiet,
    and reports it through onHint(text, highlightedBlockTypes) only when it differs from the last one """

    def __init__(self, matcher: PatternMatcher, shapeSource, onHint=None, debounce: float = 0.3, clock=time.monotonic):
        self.matcher = matcher
        self.shapeSource = shapeSource
        self.onHint = onHint
        self.debounce = debounce
        self.clock = clock

        self.lastHint = None
        self._dueAt = None

    @property
    def pending(self):
        return self._dueAt is not None

    def notifyChanged(self):
        self._dueAt = self.clock() + self.debounce

    def poll(self):
        """ Evaluate if a change is pending and the program has been quiet long enough """
        if self._dueAt is not None and self.clock() >= self._dueAt:
            self.flush()
            return True
        return False

    def flush(self):
        self._dueAt = None
        hint = self.matcher.nextHint(self.shapeSource())
        if hint == self.lastHint:
            return hint

        self.lastHint = hint
        if hint is not None:
            logger.debug("Hint: %s", hint[0])
            if self.onHint:
                self.onHint(hint[0], list(hint[1]))
        return hint
