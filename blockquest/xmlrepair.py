""" Text-level repairs for serialized (Blockly XML) programs

Starter programs are often written by hand and come without the identifiers and parameter metadata
the editor would have produced. These helpers patch the text before it is parsed. They work on the
raw string rather than on a parsed tree, so that text which does not parse yet can still be
repaired, and so that everything they don't touch stays byte-for-byte identical.
"""

import logging
import re

logger = logging.getLogger(__name__)

_BLOCK_OPEN = re.compile(r'<(?:block|shadow)\b[^>]*?\btype="(procedures_(?:def|call)(?:return|noreturn))"[^>]*?(/?)>')
_HEAD_END = re.compile(r'<(?:block|shadow|value|statement|next)\b|</(?:block|shadow)>')
_MUTATION = re.compile(r'<mutation\b([^>]*?)(?:/>|>([\s\S]*?)</mutation>)')
_MUTATION_NAME = re.compile(r'\bname="([^"]*)"')
_ARG_NAME = re.compile(r'<arg\b[^>]*?\bname="([^"]+)"')
_NAME_FIELD = re.compile(r'<field\s+name="NAME"\s*>([^<]*)</field>')

_VARIABLE_DECL = re.compile(r'<variable\b([^>]*)>([^<]+)</variable>')
_IDENTIFIABLE = re.compile(
    r'<variable\b(?![^>]*\sid=")([^>]*)>([^<]+)</variable>'      # declaration without id
    r'|<field\s+name="VAR"(?![^>]*\sid=")([^>]*)>([^<]+)</field>'  # variable reference without id
    r'|<arg\s+name="([^"]+)"(?![^>]*\svarid=")([^>]*?)(/?)>'       # parameter without varid
)


def _attrEscape(text):
    return text.replace('"', "&quot;")


def hasBlocks(text):
    """ True if [text] contains at least one typed block """
    return bool(text) and re.search(r'<(?:block|shadow)\b[^>]*\btype="', text) is not None


class ProcedureHead:
    """ The part of a procedure block that comes before its first child block: where the mutation and
    NAME field live. Offsets index into the source text """

    def __init__(self, text, openMatch):
        self.blockType = openMatch.group(1)
        self.openStart = openMatch.start()
        self.openEnd = openMatch.end()
        self.selfClosing = openMatch.group(2) == "/"

        if self.selfClosing:
            self.end = self.openEnd
        else:
            endMatch = _HEAD_END.search(text, self.openEnd)
            self.end = endMatch.start() if endMatch else len(text)

        self.content = text[self.openEnd:self.end]
        self.mutation = _MUTATION.search(self.content)
        self.nameField = _NAME_FIELD.search(self.content)

    @property
    def isDefinition(self):
        return "_def" in self.blockType

    @property
    def fieldName(self):
        return self.nameField.group(1).strip() if self.nameField else None

    @property
    def mutationName(self):
        if self.mutation:
            if nameMatch := _MUTATION_NAME.search(self.mutation.group(1)):
                return nameMatch.group(1).strip()

    @property
    def argNames(self):
        if self.mutation and self.mutation.group(2):
            return _ARG_NAME.findall(self.mutation.group(2))
        return []

    @property
    def procedureName(self):
        return self.fieldName or self.mutationName


def _procedureHeads(text):
    return [ProcedureHead(text, match) for match in _BLOCK_OPEN.finditer(text)]


def _applyEdits(text, edits):
    """ Apply (start, end, replacement) edits; edits must not overlap """
    for start, end, replacement in sorted(edits, key=lambda e: e[0], reverse=True):
        text = text[:start] + replacement + text[end:]
    return text


def ensureIdentifiers(text):
    """ Give every variable declaration, variable reference and procedure parameter that lacks one a
    synthetic id, numbered in order of first occurrence. References reuse the id of the declared
    variable with the same name. Applying this twice changes nothing the second time """
    if not text or not isinstance(text, str):
        return text

    declaredIds = {}
    for attrs, name in _VARIABLE_DECL.findall(text):
        if idMatch := re.search(r'\sid="([^"]*)"', attrs):
            declaredIds.setdefault(name.strip(), idMatch.group(1))

    counter = 0

    def freshId(prefix, suffix=""):
        nonlocal counter
        while True:
            newId = f"{prefix}_{counter}{suffix}"
            counter += 1
            if f'"{newId}"' not in text:
                return newId

    def replace(match):
        if match.group(2) is not None:
            attrs, name = match.group(1), match.group(2)
            newId = declaredIds.get(name.strip()) or freshId("auto_var")
            declaredIds.setdefault(name.strip(), newId)
            return f'<variable id="{newId}"{attrs}>{name}</variable>'

        if match.group(4) is not None:
            attrs, name = match.group(3), match.group(4)
            newId = declaredIds.get(name.strip()) or freshId("auto_var")
            declaredIds.setdefault(name.strip(), newId)
            return f'<field name="VAR" id="{newId}"{attrs}>{name}</field>'

        name, attrs, selfClosing = match.group(5), match.group(6), match.group(7)
        newId = freshId("auto_arg", "_" + name)
        extra = " " + attrs.strip() if attrs and attrs.strip() else ""
        if selfClosing:
            return f'<arg name="{name}" varid="{newId}"{extra}></arg>'
        return f'<arg name="{name}" varid="{newId}"{extra}>'

    return _IDENTIFIABLE.sub(replace, text)


def inferParameterMetadata(text):
    """ Give procedure definitions that were written without a signature the parameter list of a call
    to them. Definitions that already declare parameters are left alone """
    if not text:
        return text

    heads = _procedureHeads(text)

    procedureParams = {}
    for head in heads:
        if head.isDefinition:
            continue
        name = head.procedureName
        args = head.argNames
        if name and args and name not in procedureParams:
            procedureParams[name] = args

    if not procedureParams:
        return text

    edits = []
    for head in heads:
        if not head.isDefinition or head.selfClosing:
            continue

        name = head.fieldName
        if not name or name not in procedureParams:
            continue

        if head.argNames:
            continue

        argXml = "".join(f'<arg name="{arg}"></arg>' for arg in procedureParams[name])
        mutationXml = f'<mutation name="{_attrEscape(name)}">{argXml}</mutation>'

        if head.mutation:
            # an empty mutation: replace it in place
            start = head.openEnd + head.mutation.start()
            end = head.openEnd + head.mutation.end()
            edits.append((start, end, mutationXml))
        else:
            edits.append((head.openEnd, head.openEnd, mutationXml))

        logger.info('Inferred parameters %s for procedure "%s"', procedureParams[name], name)

    return _applyEdits(text, edits)


def syncCallNames(text):
    """ Make the NAME field of every call agree with the procedure named in its mutation """
    if not text:
        return text

    edits = []
    for head in _procedureHeads(text):
        if head.isDefinition or head.selfClosing:
            continue

        mutationName = head.mutationName
        if not mutationName:
            continue

        if head.nameField is None:
            fieldXml = f'<field name="NAME">{mutationName}</field>'
            position = head.openEnd + head.mutation.end()
            edits.append((position, position, fieldXml))
        elif head.fieldName != mutationName:
            start = head.openEnd + head.nameField.start()
            end = head.openEnd + head.nameField.end()
            edits.append((start, end, f'<field name="NAME">{mutationName}</field>'))

    return _applyEdits(text, edits)


def repairProgramText(text):
    """ Run every repair in order. A repair that fails unexpectedly leaves its input untouched """
    if not text or not isinstance(text, str):
        return text

    repaired = text
    for repair in (syncCallNames, inferParameterMetadata, ensureIdentifiers):
        try:
            repaired = repair(repaired)
        except Exception:
            logger.exception("Repair step %s failed, keeping its input", repair.__name__)
    return repaired
