""" Loading and saving ProgramGraphs as Blockly XML """

import logging

from lxml import etree

from .events import SOURCE_LOADER, LoadingSession
from .program import STATEMENT, VALUE, BlockField, ProcedureCallBlock, ProcedureDefinitionBlock, ProcedureParameter

logger = logging.getLogger(__name__)

XML_NAMESPACE = "https://developers.google.com/blockly/xml"


class ProgramParseError(Exception): pass


def _localName(element):
    if not isinstance(element.tag, str):
        return None  # comments, processing instructions
    return etree.QName(element).localname


def _children(element, name=None):
    for child in element:
        childName = _localName(child)
        if childName is None:
            continue
        if name is None or childName == name:
            yield child


def _firstChild(element, name):
    return next(_children(element, name), None)


def _number(text):
    if text is None:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def parseProgram(text):
    """ Parse Blockly XML text. Raises ProgramParseError if the text is not well-formed """
    if not text or not text.strip():
        raise ProgramParseError("Empty program text")

    try:
        root = etree.fromstring(text.strip().encode("utf-8"))
    except etree.XMLSyntaxError as e:
        raise ProgramParseError(str(e)) from e

    if _localName(root) not in ("xml", "block", "shadow"):
        raise ProgramParseError(f'Unexpected root element <{_localName(root)}>')

    for element in root.iter():
        if _localName(element) in ("block", "shadow") and not element.get("type"):
            raise ProgramParseError(f"Block without a type on line {element.sourceline}")
    return root


class _ProgramBuilder:
    """ Walks a parsed document and recreates its blocks inside a graph """

    def __init__(self, graph, loading: LoadingSession):
        self.graph = graph
        self.loading = loading

    def build(self, root):
        if _localName(root) != "xml":
            self.buildBlock(root)
            return

        if (variables := _firstChild(root, "variables")) is not None:
            for var in _children(variables, "variable"):
                name = (var.text or "").strip()
                if name and not self.graph.findVariableByName(name):
                    self.graph.addVariable(name, var.get("id"))

        for element in _children(root):
            if _localName(element) in ("block", "shadow"):
                self.buildBlock(element)

    def useVariable(self, name, varId=None):
        """ Return the variable a loaded reference points at, declaring it if the program did not """
        var = self.graph.resolveVariable(name, varId)
        if var is None:
            var = self.graph.addVariable(name, varId)
        return var

    def buildBlock(self, element):
        blockType = element.get("type")
        if not blockType:
            raise ProgramParseError("Block without a type")

        block = self.graph.createBlock(blockType, id=element.get("id"), pos=(_number(element.get("x")), _number(element.get("y"))))
        block.shadow = _localName(element) == "shadow"

        if (mutation := _firstChild(element, "mutation")) is not None:
            self.loadMutation(block, mutation)

        for field in _children(element, "field"):
            name = field.get("name")
            value = field.text or ""
            varId = None
            if name == "VAR":
                var = self.useVariable(value.strip(), field.get("id"))
                value = var.name
                varId = var.id
            block.fields.append(BlockField(name, value, varId))

        if isinstance(block, ProcedureCallBlock):
            if block.mutationName is None:
                block.mutationName = block.name
            elif block.name is None:
                block.fields.append(BlockField("NAME", block.mutationName))

        for slotElement in _children(element):
            kind = _localName(slotElement)
            if kind not in ("value", "statement"):
                continue
            slot = block.ensureSlot(slotElement.get("name"), VALUE if kind == "value" else STATEMENT)

            # a real block takes precedence over the shadow it obscures
            childElement = _firstChild(slotElement, "block")
            if childElement is None:
                childElement = _firstChild(slotElement, "shadow")
            if childElement is None:
                continue

            child = self.buildBlock(childElement)
            slot.blockId = child.id
            child.parentId = block.id

        if (nextElement := _firstChild(element, "next")) is not None:
            if (nextBlockElement := _firstChild(nextElement, "block")) is not None:
                nextBlock = self.buildBlock(nextBlockElement)
                block.nextId = nextBlock.id
                nextBlock.parentId = block.id

        return block

    def loadMutation(self, block, mutation):
        args = list(_children(mutation, "arg"))

        if isinstance(block, ProcedureDefinitionBlock):
            parameters = []
            for arg in args:
                name = arg.get("name")
                if not name:
                    continue
                var = self.useVariable(name, arg.get("varid"))
                parameters.append(ProcedureParameter(name, var.id))
            block.parameters = parameters

        elif isinstance(block, ProcedureCallBlock):
            block.mutationName = mutation.get("name")
            block.setArgumentNames([arg.get("name") for arg in args if arg.get("name")])


def loadProgram(text, graph, loading: LoadingSession):
    """ Replace the contents of [graph] with the program in [text].

    The text is parsed before anything is touched, so a ProgramParseError leaves the graph as it was.
    [loading] must be the open LoadingSession of [graph].
    """
    if not loading.active or graph.loadingSession is not loading:
        raise ValueError("loadProgram needs the graph's open LoadingSession")

    root = parseProgram(text)

    with graph.mutationSource(SOURCE_LOADER):
        graph.clear()
        _ProgramBuilder(graph, loading).build(root)

    logger.debug("Loaded %d blocks, %d variables", len(graph.getBlocks()), len(graph.getVariables()))
    return graph


""" Serialization """


def _blockElement(block, tag="block"):
    element = etree.Element(tag if not block.shadow else "shadow", type=block.type, id=block.id)
    if block.parentId is None and block.x is not None and block.y is not None:
        element.set("x", f"{block.x:g}")
        element.set("y", f"{block.y:g}")

    if isinstance(block, ProcedureDefinitionBlock) and block.parameters:
        mutation = etree.SubElement(element, "mutation")
        for param in block.parameters:
            arg = etree.SubElement(mutation, "arg", name=param.name)
            if param.varId:
                arg.set("varid", param.varId)

    if isinstance(block, ProcedureCallBlock):
        mutation = etree.SubElement(element, "mutation", name=block.mutationName or block.name or "")
        for argName in block.argumentNames:
            etree.SubElement(mutation, "arg", name=argName)

    for field in block.fields:
        fieldElement = etree.SubElement(element, "field", name=field.fieldName)
        if field.varId:
            fieldElement.set("id", field.varId)
        fieldElement.text = "" if field.value is None else str(field.value)

    for slot in block.slots:
        child = block.program.getBlock(slot.blockId)
        if child is None:
            continue
        slotElement = etree.SubElement(element, slot.kind, name=slot.slotName)
        slotElement.append(_blockElement(child))

    if nextBlock := block.getNextBlock():
        nextElement = etree.SubElement(element, "next")
        nextElement.append(_blockElement(nextBlock))

    return element


def serializeProgram(graph, pretty=False):
    """ Render [graph] as Blockly XML text """
    root = etree.Element("xml", nsmap={None: XML_NAMESPACE})

    variables = graph.getVariables()
    if variables:
        variablesElement = etree.SubElement(root, "variables")
        for var in variables:
            etree.SubElement(variablesElement, "variable", id=var.id).text = var.name

    for block in graph.getTopBlocks(ordered=True):
        root.append(_blockElement(block))

    return etree.tostring(root, pretty_print=pretty, encoding="unicode")
