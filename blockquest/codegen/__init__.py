"""
Block program to Python compiler

A converged ProgramGraph is translated into Python source in one of two modes:

normal  Executable by the ExecutionEngine. Procedures become coroutines, every world action is
        awaited through the runtime's `_action`, and procedure entries and loop bodies call
        `await _tick()` so the engine can count steps and cancel the run. The top-level statements
        end up in the `_run_program` coroutine.

clean   What the learner sees. No instrumentation, plain functions, and actions written as ordinary
        calls like `move_forward()`.

Generation never mutates the graph. Problems (calls to undefined procedures, unsupported blocks,
`break` outside of a loop) become `pass`/`None` in the output plus a warning in the result.
"""

import builtins
import keyword
import logging
import re

from ..program import ProcedureDefinitionBlock, isPlaceholderName
from .generators import FRIENDLY_NAMES, RUNTIME_NAMES, GeneratorRegistry, defaultRegistry

logger = logging.getLogger(__name__)


class NameDatabase:
    """ Hands out valid, distinct Python identifiers for the names used in a program """

    def __init__(self, reserved=()):
        self.reserved = set(reserved) | set(keyword.kwlist) | set(dir(builtins))
        self.names: dict[tuple, str] = {}
        self.used = set()

    def safeName(self, rawName, kind):
        name = re.sub(r"\W", "_", str(rawName).strip())
        if not name:
            name = kind
        if name[0].isdigit():
            name = f"{kind}_{name}"
        if name in self.reserved:
            name += "_"
        return name if name.isidentifier() else kind

    def _claim(self, base):
        candidate = base
        n = 2
        while candidate in self.used or candidate in self.reserved:
            candidate = f"{base}{n}"
            n += 1
        self.used.add(candidate)
        return candidate

    def getName(self, kind, rawName):
        """ The identifier for [rawName] of [kind] ("procedure" or "variable"), the same one every time """
        key = (kind, rawName)
        if key not in self.names:
            self.names[key] = self._claim(self.safeName(rawName, kind))
        return self.names[key]

    def getDistinctName(self, base):
        """ A fresh identifier nothing else uses, for generated helpers such as loop counters """
        return self._claim(self.safeName(base, "tmp"))


class GenerationResult:
    def __init__(self, source: str, clean: bool, warnings: list):
        self.source = source
        self.clean = clean
        self.warnings = warnings

    def __repr__(self):
        return f"<GenerationResult clean={self.clean} warnings={len(self.warnings)}>"


class CodegenContext:
    INDENT = "    "

    def __init__(self, graph, clean: bool, registry: GeneratorRegistry, names: NameDatabase):
        self.graph = graph
        self.clean = clean
        self.registry = registry
        self.names = names

        self.warnings = []
        self.loopDepth = 0
        self.enclosingProcedure: ProcedureDefinitionBlock = None

    def warn(self, message):
        if message not in self.warnings:
            logger.warning(message)
            self.warnings.append(message)

    def indent(self, lines):
        return [self.INDENT + line for line in lines]

    def variableName(self, rawName):
        if rawName is None or not str(rawName).strip():
            self.warn("Variable block without a variable")
            rawName = "unnamed_variable"
        return self.names.getName("variable", rawName)

    def procedureName(self, rawName):
        return self.names.getName("procedure", rawName)

    def generateValue(self, block):
        generator = self.registry.get(block.type)
        if generator is None:
            self.warn(f'Unsupported block "{block.type}"')
            return "None"
        if generator.isStatement:
            self.warn(f'Statement block "{block.type}" used as a value')
            return "None"
        return generator.generate(block, self)

    def valueToCode(self, block, slotName, default="None"):
        child = block.getSlotBlock(slotName)
        if child is None:
            return default
        return self.generateValue(child)

    def generateStatements(self, firstBlock):
        lines = []
        block = firstBlock
        while block:
            generator = self.registry.get(block.type)
            if generator is None:
                self.warn(f'Unsupported block "{block.type}"')
                lines.append("pass")
            elif generator.isStatement:
                lines.extend(generator.generate(block, self))
            else:
                # a loose value block still runs, for its side effects
                lines.append(generator.generate(block, self))
            block = block.getNextBlock()
        return lines

    def statementLines(self, block, slotName):
        return self.generateStatements(block.getSlotBlock(slotName)) or ["pass"]

    def loopBody(self, block, slotName):
        self.loopDepth += 1
        try:
            lines = self.statementLines(block, slotName)
        finally:
            self.loopDepth -= 1

        if not self.clean:
            lines = ["await _tick()"] + lines
        return lines


class PythonGenerator:
    def __init__(self, graph, clean=False, registry: GeneratorRegistry = None):
        self.graph = graph
        self.clean = clean
        self.names = NameDatabase(reserved=RUNTIME_NAMES + FRIENDLY_NAMES)
        self.ctx = CodegenContext(graph, clean, registry or defaultRegistry(), self.names)

    def programVariables(self):
        """ Identifiers of every variable the program declares or references, in a stable order """
        rawNames = [var.name for var in self.graph.getVariables()]
        for block in self.graph.getBlocks():
            if (name := block.getFieldValue("VAR")) is not None:
                rawNames.append(name)

        identifiers = []
        for rawName in rawNames:
            if not str(rawName).strip():
                continue
            identifier = self.ctx.variableName(rawName)
            if identifier not in identifiers:
                identifiers.append(identifier)
        return identifiers

    def globalDeclaration(self, identifiers):
        return [f"global {', '.join(identifiers)}"] if identifiers else []

    def generateProcedure(self, definition: ProcedureDefinitionBlock, variables):
        ctx = self.ctx
        if isPlaceholderName(definition.name):
            ctx.warn(f"Skipping procedure definition {definition.id} without a name")
            return []

        ctx.enclosingProcedure = definition
        ctx.loopDepth = 0

        name = ctx.procedureName(definition.name)
        params = [ctx.variableName(param) for param in definition.parameterNames]
        header = f"{'def' if self.clean else 'async def'} {name}({', '.join(params)}):"

        body = self.globalDeclaration([var for var in variables if var not in params])
        if not self.clean:
            body.append("await _tick()")
        body.extend(ctx.generateStatements(definition.getSlotBlock("STACK")))
        if definition.hasReturn:
            body.append(f"return {ctx.valueToCode(definition, 'RETURN')}")

        ctx.enclosingProcedure = None
        return [header] + ctx.indent(body or ["pass"])

    def generate(self) -> GenerationResult:
        ctx = self.ctx
        roots = self.graph.getTopBlocks(ordered=True)
        definitions = [root for root in roots if isinstance(root, ProcedureDefinitionBlock)]

        # procedures claim their identifiers first so a variable never pushes a procedure to "solve2"
        for definition in definitions:
            if not isPlaceholderName(definition.name):
                ctx.procedureName(definition.name)
        variables = self.programVariables()

        sections = []
        if not self.clean and variables:
            sections.append([f"{var} = None" for var in variables])

        for definition in definitions:
            if lines := self.generateProcedure(definition, variables):
                sections.append(lines)

        ctx.loopDepth = 0
        topLevel = []
        for root in roots:
            if not isinstance(root, ProcedureDefinitionBlock):
                topLevel.extend(ctx.generateStatements(root))

        if self.clean:
            if topLevel:
                sections.append(topLevel)
        else:
            body = self.globalDeclaration(variables) + topLevel
            sections.append(["async def _run_program():"] + ctx.indent(body or ["pass"]))

        source = "\n\n\n".join("\n".join(section) for section in sections)
        return GenerationResult(source + "\n" if source else "", self.clean, list(ctx.warnings))


def generateCode(graph, clean=False, registry: GeneratorRegistry = None) -> GenerationResult:
    return PythonGenerator(graph, clean, registry).generate()
