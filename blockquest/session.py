"""
One learner's editing session

EditorSession ties the pieces together the way the game uses them: a level's starter program is
repaired and loaded, edits go through the guard, procedure resolution and hint evaluation are
pumped by settle(), and the program can be compiled, run against a simulation and scored.

    session = EditorSession(LevelContent.fromFile("level.json"), simulation=world, onHint=showHint)
    session.loadProgram(session.level.starterProgram)
    ...
    result = await session.runProgram()
    session.scoreRun(result, userBigO="O(n)")
"""

import json
import logging
import time

from .codegen import GenerationResult, generateCode
from .config import SessionParameters
from .engine import ExecutionEngine, RunResult
from .events import BLOCK_MOVE, LoadingSession
from .guard import EditTimeGuard
from .patterns import HintAdvisor, PatternMatcher, ReferencePattern, analyzeProgramShape
from .program import ProgramGraph
from .resolver import ProcedureResolver
from .scoring import ScoreResult, calculateLevelScore
from .xmlio import ProgramParseError, loadProgram, serializeProgram
from .xmlrepair import hasBlocks, repairProgramText

logger = logging.getLogger(__name__)

LOAD_FAILED_HINT = "The starting program could not be loaded, build your solution from scratch."


class LevelContent:
    def __init__(self, patterns=(), starterProgram=None, targetBigO=None, warnings=()):
        self.patterns: list[ReferencePattern] = list(patterns)
        self.starterProgram = starterProgram
        self.targetBigO = targetBigO

        # problems found while reading the level, reported once a session opens it
        self.warnings: list[str] = list(warnings)

    @staticmethod
    def fromDict(data):
        warnings = []
        return LevelContent(
            patterns=[ReferencePattern.fromDict(p, warnings.append) for p in data.get("patterns", [])],
            starterProgram=data.get("starterProgram"),
            targetBigO=data.get("targetBigO"),
            warnings=warnings
        )

    @staticmethod
    def fromFile(path):
        with open(path) as fl:
            return LevelContent.fromDict(json.load(fl))


class EditorSession:
    def __init__(self, level: LevelContent = None, params: SessionParameters = None, simulation=None,
                 onHint=None, onScore=None, onRunTrace=None, onStructuralWarning=None, clock=time.monotonic):
        self.level = level or LevelContent()
        self.params = params or SessionParameters()

        self.onHint = onHint
        self.onScore = onScore
        self.onRunTrace = onRunTrace
        self.onStructuralWarning = onStructuralWarning

        self.graph = ProgramGraph()
        self.resolver = ProcedureResolver(self.graph, self.params.resolver, onWarning=self.warn)
        self.guard = EditTimeGuard(self.graph, self.params.guard, clock=clock, onStructuralEdit=self._structuralEdit)
        self.guard.attach()
        self.graph.subscribe(self._graphChanged)

        self.matcher = PatternMatcher(self.level.patterns)
        self.hints = HintAdvisor(self.matcher, self.programShape, onHint, self.params.hintDebounce, clock)

        self.engine = ExecutionEngine(simulation, self.params.engine) if simulation is not None else None

        self.needsResolution = False
        self.hintOpens = 0
        self.lastRun: RunResult = None

        for message in self.level.warnings:
            self.warn(message)

    def warn(self, message):
        if self.onStructuralWarning:
            self.onStructuralWarning(message)

    def showHint(self, text, highlightedBlockTypes=()):
        if self.onHint:
            self.onHint(text, list(highlightedBlockTypes))

    def programShape(self):
        return analyzeProgramShape(self.graph)

    def _structuralEdit(self, event):
        self.needsResolution = True
        self.hints.notifyChanged()

    def _graphChanged(self, event):
        # moves only change the shape, the guard reports everything that needs resolution
        if event.type == BLOCK_MOVE and not event.duringLoad:
            self.hints.notifyChanged()

    """ Loading and saving """

    def loadProgram(self, text):
        """ Replace the program with [text], repairing it first. If neither the repaired nor the original
        text can be loaded, the current program stays and the learner gets a hint. Returns whether a
        program was loaded """
        if not hasBlocks(text):
            logger.info("Program text has no blocks, nothing to load")
            return False

        repaired = repairProgramText(text)

        # dict.fromkeys drops the second attempt when repair changed nothing
        for candidate in dict.fromkeys([repaired, text]):
            try:
                with LoadingSession(self.graph) as loading:
                    loadProgram(candidate, self.graph, loading)
                break
            except ProgramParseError as e:
                logger.warning("Could not load %s program text: %s", "repaired" if candidate is repaired else "original", e)
        else:
            self.showHint(LOAD_FAILED_HINT)
            return False

        self.needsResolution = False
        self.resolver.resolveToFixpoint()
        self.resolver.checkConsistency()
        self.hints.notifyChanged()
        return True

    def saveProgram(self):
        return serializeProgram(self.graph)

    """ Pumping """

    def settle(self):
        """ Catch up on resolution and hint evaluation after edits. Call regularly from the host loop """
        if self.needsResolution:
            self.needsResolution = False
            self.resolver.resolveToFixpoint()
        self.hints.poll()

    async def settleAsync(self):
        if self.needsResolution:
            self.needsResolution = False
            await self.resolver.resolveUntilStable()
        self.hints.poll()

    """ Hints """

    def revealHint(self):
        """ Show the hint for the current program on request. Every reveal costs points """
        self.hintOpens += 1
        hint = self.matcher.nextHint(self.programShape())
        if hint is not None:
            self.showHint(*hint)
        return hint

    """ Compiling and running """

    def generateCode(self, clean=False) -> GenerationResult:
        if self.needsResolution:
            self.settle()

        result = generateCode(self.graph, clean)
        for warning in result.warnings:
            self.warn(warning)
        return result

    async def runProgram(self) -> RunResult:
        if self.engine is None:
            raise RuntimeError("Session has no simulation to run programs against")

        source = self.generateCode().source
        result = await self.engine.run(source)
        self.lastRun = result

        if self.onRunTrace:
            self.onRunTrace(list(result.trace))
        return result

    def stopRun(self):
        if self.engine is not None:
            self.engine.cancel()

    def scoreRun(self, runResult: RunResult = None, userBigO=None, testResults=None, isGameOver=None) -> ScoreResult:
        run = runResult or self.lastRun
        if isGameOver is None:
            isGameOver = run is None or not run.succeeded

        score = calculateLevelScore(
            isGameOver,
            hintOpens=self.hintOpens,
            userBigO=userBigO,
            testResults=testResults,
            matchedPattern=self.matcher.findExactMatch(self.programShape()),
            patterns=self.matcher.patterns,
            levelBigO=self.level.targetBigO
        )

        if self.onScore:
            self.onScore(score.toDict())
        return score

    def close(self):
        self.guard.detach()
        self.graph.unsubscribe(self._graphChanged)
        self.stopRun()
