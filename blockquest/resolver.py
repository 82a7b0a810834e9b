"""
Procedure identity resolution

Editors tend to fork one logical procedure into numbered copies ("solve", "solve1", "solve2")
when blocks are duplicated or dragged out of the palette. The resolver collapses each such family
back into one definition named after the family's base name and points every call at it.

A resolution pass is planned over an immutable ProgramSnapshot and then applied to the live graph,
so planning can be tested without a graph:

    plan = planResolution(graph.snapshot())
    applyPlan(graph, plan)
"""

import asyncio
import logging

from .config import ResolverParameters
from .events import SOURCE_RESOLVER
from .program import ProcedureParameter, ProgramSnapshot, baseName, isPlaceholderName

logger = logging.getLogger(__name__)


class VariantGroup:
    """ Definitions that share a base name, in discovery order """

    def __init__(self, base):
        self.base = base
        self.members = []

    @property
    def memberNames(self):
        return {member.name for member in self.members}

    def ranked(self):
        """ Members by descending body size. sorted() is stable, so equal sizes keep discovery order """
        return sorted(self.members, key=lambda member: -member.descendantCount)

    def __repr__(self):
        return f"<VariantGroup \"{self.base}\": {[m.name for m in self.members]}>"


def groupVariants(snapshot: ProgramSnapshot):
    """ Group the named definitions of [snapshot] by base name. Definitions with a placeholder name
    belong to no group """
    groups: dict[str, VariantGroup] = {}
    for definition in snapshot.definitions:
        if isPlaceholderName(definition.name):
            continue
        base = baseName(definition.name)
        if base not in groups:
            groups[base] = VariantGroup(base)
        groups[base].members.append(definition)
    return list(groups.values())


class ResolutionPlan:
    def __init__(self):
        self.loserRenames: list[tuple] = []     # (blockId, temporary name)
        self.signatureSyncs: list[tuple] = []   # (blockId, ((paramName, varId), ...))
        self.winnerRenames: list[tuple] = []    # (blockId, base name)
        self.callRepoints: list[tuple] = []     # (blockId, procedure name, argument names)
        self.disposals: list[str] = []

    @property
    def renames(self):
        return self.loserRenames + self.winnerRenames

    @property
    def didRename(self):
        return len(self.renames) > 0

    @property
    def isEmpty(self):
        return not (self.renames or self.signatureSyncs or self.callRepoints or self.disposals)

    def __repr__(self):
        return (f"<ResolutionPlan renames={len(self.renames)} syncs={len(self.signatureSyncs)} "
                f"repoints={len(self.callRepoints)} disposals={len(self.disposals)}>")


def planResolution(snapshot: ProgramSnapshot) -> ResolutionPlan:
    plan = ResolutionPlan()

    # name and parameters every surviving definition will have once the plan is applied
    finalNames = {d.blockId: d.name for d in snapshot.definitions}
    finalParams = {d.blockId: d.parameters for d in snapshot.definitions}

    # original member name -> blockId of the winner that absorbs it
    absorbedBy = {}

    for group in groupVariants(snapshot):
        if len(group.members) < 2:
            continue

        winner, *losers = group.ranked()

        for loser in losers:
            plan.loserRenames.append((loser.blockId, f"__resolving_{loser.blockId}"))
            plan.disposals.append(loser.blockId)
            del finalNames[loser.blockId]

        # the winner takes the longest signature any variant declared
        widest = max(losers, key=lambda loser: len(loser.parameters))
        if len(widest.parameters) > len(winner.parameters):
            plan.signatureSyncs.append((winner.blockId, widest.parameters))
            finalParams[winner.blockId] = widest.parameters

        if winner.name != group.base:
            plan.winnerRenames.append((winner.blockId, group.base))
            finalNames[winner.blockId] = group.base

        for name in group.memberNames:
            absorbedBy[name] = winner.blockId

    liveByName = {}
    for blockId, name in finalNames.items():
        liveByName.setdefault(name, blockId)

    for call in snapshot.calls:
        callName = call.name if not isPlaceholderName(call.name) else call.mutationName
        if isPlaceholderName(callName):
            continue

        if callName in absorbedBy:
            targetId = absorbedBy[callName]
        elif callName in liveByName:
            targetId = liveByName[callName]
        else:
            # dangling: repoint only when exactly one live definition shares the base name
            candidates = [blockId for blockId, name in finalNames.items() if baseName(name) == baseName(callName)]
            if len(candidates) != 1:
                continue
            targetId = candidates[0]

        targetName = finalNames[targetId]
        argumentNames = tuple(name for name, varId in finalParams[targetId])

        if call.name != targetName or call.mutationName != targetName or call.argumentNames != argumentNames:
            plan.callRepoints.append((call.blockId, targetName, argumentNames))

    return plan


def applyPlan(graph, plan: ResolutionPlan):
    """ Carry out [plan] on [graph]. Steps that refer to blocks which no longer exist are skipped """
    with graph.mutationSource(SOURCE_RESOLVER):
        for blockId, tempName in plan.loserRenames:
            if definition := graph.getBlock(blockId):
                definition.rename(tempName)

        for blockId, parameters in plan.signatureSyncs:
            if definition := graph.getBlock(blockId):
                definition.setParameters([ProcedureParameter(name, varId) for name, varId in parameters])

        for blockId, newName in plan.winnerRenames:
            if definition := graph.getBlock(blockId):
                logger.info('Renaming procedure "%s" to "%s"', definition.name, newName)
                definition.rename(newName)

        for blockId, targetName, argumentNames in plan.callRepoints:
            if call := graph.getBlock(blockId):
                logger.debug('Pointing call %s ("%s") at "%s"', blockId, call.name, targetName)
                call.rename(targetName)
                call.setArgumentNames(argumentNames)

        for blockId in plan.disposals:
            if definition := graph.getBlock(blockId):
                logger.info("Disposing duplicate procedure definition %s", blockId)
                graph.disposeBlock(definition, recordUndo=False)


class ProcedureResolver:
    def __init__(self, graph, params: ResolverParameters = None, onWarning=None):
        self.graph = graph
        self.params = params or ResolverParameters()
        self.onWarning = onWarning

    def warn(self, message):
        logger.warning(message)
        if self.onWarning:
            self.onWarning(message)

    def resolveOnce(self) -> ResolutionPlan:
        plan = planResolution(self.graph.snapshot())
        if not plan.isEmpty:
            logger.debug("Applying %s", plan)
            applyPlan(self.graph, plan)
        return plan

    def resolveToFixpoint(self):
        """ Resolve until a pass has nothing left to do, without waiting between passes.
        Returns whether the graph converged within maxAttempts """
        for attempt in range(self.params.maxAttempts):
            if self.resolveOnce().isEmpty:
                return True

        return self._reportUnconverged()

    async def resolveUntilStable(self, sleep=asyncio.sleep):
        """ Like resolveToFixpoint, but gives the host time to settle before every retry:
        attempt n is preceded by a delay of baseDelay * (n - 1) """
        for attempt in range(1, self.params.maxAttempts + 1):
            if attempt > 1 and self.params.baseDelay > 0:
                await sleep(self.params.baseDelay * (attempt - 1))

            if self.resolveOnce().isEmpty:
                return True

        return self._reportUnconverged()

    def _reportUnconverged(self):
        if planResolution(self.graph.snapshot()).isEmpty:
            return True
        self.warn(f"Procedure resolution did not converge after {self.params.maxAttempts} attempts")
        return False

    def checkConsistency(self):
        """ Report (never raise) every structural problem resolution leaves behind """
        problems = []
        snapshot = self.graph.snapshot()

        for definition in snapshot.definitions:
            if isPlaceholderName(definition.name):
                problems.append(f"Procedure definition {definition.blockId} has no usable name")

        for group in groupVariants(snapshot):
            if len(group.members) > 1:
                problems.append(f'Procedure "{group.base}" has {len(group.members)} definitions')

        definedNames = set(snapshot.definitionNames())
        for call in snapshot.calls:
            if call.name not in definedNames:
                problems.append(f'Call {call.blockId} targets undefined procedure "{call.name}"')

        for message in problems:
            self.warn(message)
        return problems
