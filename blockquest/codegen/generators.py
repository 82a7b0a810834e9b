""" Python generators for the block vocabulary, one class per family of blocks """

import math

from ..program import isPlaceholderName

""" Base Classes """


class BlockGenerator:
    blockTypes = ()
    isStatement = True

    def generate(self, block, ctx):
        """ Statement generators return a list of source lines, value generators a single expression """
        raise Exception("Cannot generate code from base BlockGenerator class")


class ValueGenerator(BlockGenerator):
    isStatement = False


class GeneratorRegistry:
    def __init__(self, generators: list):
        self.generators: dict[str, BlockGenerator] = {}
        for generator in generators:
            for blockType in generator.blockTypes:
                self.generators[blockType] = generator

    def get(self, blockType):
        return self.generators.get(blockType)

    def supports(self, blockType):
        return blockType in self.generators


""" Procedures """


def _targetDefinition(call, ctx):
    """ The definition [call] runs, or None when the call dangles. Definitions without a usable name are
    never generated, so calls to them dangle too """
    definition = ctx.graph.findProcedureDefinition(call.name)
    if definition is None or isPlaceholderName(definition.name):
        ctx.warn(f'Call to undefined procedure "{call.name}"')
        return None
    return definition


def _callArguments(call, definition, ctx):
    return ", ".join(ctx.valueToCode(call, f"ARG{i}") for i in range(len(definition.parameters)))


class ProcedureCall(BlockGenerator):
    blockTypes = ("procedures_callnoreturn",)

    def generate(self, block, ctx):
        definition = _targetDefinition(block, ctx)
        if definition is None:
            return ["pass"]

        call = f"{ctx.procedureName(definition.name)}({_callArguments(block, definition, ctx)})"
        return [call if ctx.clean else f"await {call}"]


class ProcedureCallReturn(ValueGenerator):
    blockTypes = ("procedures_callreturn",)

    def generate(self, block, ctx):
        definition = _targetDefinition(block, ctx)
        if definition is None:
            return "None"

        call = f"{ctx.procedureName(definition.name)}({_callArguments(block, definition, ctx)})"
        return call if ctx.clean else f"(await {call})"


class Return(BlockGenerator):
    blockTypes = ("procedures_return",)

    def generate(self, block, ctx):
        if ctx.enclosingProcedure is None:
            ctx.warn("return outside of a procedure")
            return ["pass"]
        if block.getSlotBlock("VALUE") is None:
            return ["return"]
        return [f"return {ctx.valueToCode(block, 'VALUE')}"]


class IfReturn(BlockGenerator):
    blockTypes = ("if_return",)

    def generate(self, block, ctx):
        if ctx.enclosingProcedure is None:
            ctx.warn("return outside of a procedure")
            return ["pass"]
        return [f"if {ctx.valueToCode(block, 'CONDITION', 'False')}:", ctx.INDENT + "return"]


""" Control Flow """


class If(BlockGenerator):
    blockTypes = ("controls_if",)

    def generate(self, block, ctx):
        lines = []
        i = 0
        while block.slotByName(f"IF{i}") or block.slotByName(f"DO{i}"):
            keyword = "if" if i == 0 else "elif"
            lines.append(f"{keyword} {ctx.valueToCode(block, f'IF{i}', 'False')}:")
            lines.extend(ctx.indent(ctx.statementLines(block, f"DO{i}")))
            i += 1

        if i == 0:
            lines.append("if False:")
            lines.append(ctx.INDENT + "pass")

        if block.slotByName("ELSE"):
            lines.append("else:")
            lines.extend(ctx.indent(ctx.statementLines(block, "ELSE")))
        return lines


class Repeat(BlockGenerator):
    blockTypes = ("controls_repeat_ext",)

    def generate(self, block, ctx):
        counter = ctx.names.getDistinctName("count")
        times = ctx.valueToCode(block, "TIMES", "0")
        return [f"for {counter} in range(int({times})):"] + ctx.indent(ctx.loopBody(block, "DO"))


class WhileUntil(BlockGenerator):
    blockTypes = ("controls_whileUntil",)

    def generate(self, block, ctx):
        condition = ctx.valueToCode(block, "BOOL", "False")
        if block.getFieldValue("MODE") == "UNTIL":
            condition = f"not {condition}"
        return [f"while {condition}:"] + ctx.indent(ctx.loopBody(block, "DO"))


class For(BlockGenerator):
    blockTypes = ("controls_for",)

    def generate(self, block, ctx):
        var = ctx.variableName(block.getFieldValue("VAR"))
        start = ctx.valueToCode(block, "FROM", "0")
        end = ctx.valueToCode(block, "TO", "0")
        step = ctx.valueToCode(block, "BY", "1")
        return [f"for {var} in range({start}, {end} + 1, {step}):"] + ctx.indent(ctx.loopBody(block, "DO"))


class ForEach(BlockGenerator):
    blockTypes = ("controls_forEach",)

    def generate(self, block, ctx):
        var = ctx.variableName(block.getFieldValue("VAR"))
        items = ctx.valueToCode(block, "LIST", "[]")
        return [f"for {var} in {items}:"] + ctx.indent(ctx.loopBody(block, "DO"))


class FlowStatement(BlockGenerator):
    blockTypes = ("controls_flow_statements",)

    def generate(self, block, ctx):
        flow = block.getFieldValue("FLOW", "BREAK")
        if ctx.loopDepth == 0:
            ctx.warn(f"{flow.lower()} outside of a loop")
            return ["pass"]
        return ["continue" if flow == "CONTINUE" else "break"]


""" Logic """


class Compare(ValueGenerator):
    blockTypes = ("logic_compare", "math_compare")
    operators = {"EQ": "==", "NEQ": "!=", "LT": "<", "LTE": "<=", "GT": ">", "GTE": ">="}

    def generate(self, block, ctx):
        op = self.operators.get(block.getFieldValue("OP"), "==")
        return f"({ctx.valueToCode(block, 'A')} {op} {ctx.valueToCode(block, 'B')})"


class Operation(ValueGenerator):
    blockTypes = ("logic_operation",)

    def generate(self, block, ctx):
        op = "or" if block.getFieldValue("OP") == "OR" else "and"
        return f"({ctx.valueToCode(block, 'A', 'False')} {op} {ctx.valueToCode(block, 'B', 'False')})"


class Negate(ValueGenerator):
    blockTypes = ("logic_negate",)

    def generate(self, block, ctx):
        return f"(not {ctx.valueToCode(block, 'BOOL', 'True')})"


class Boolean(ValueGenerator):
    blockTypes = ("logic_boolean",)

    def generate(self, block, ctx):
        return "True" if block.getFieldValue("BOOL") == "TRUE" else "False"


class Null(ValueGenerator):
    blockTypes = ("logic_null",)

    def generate(self, block, ctx):
        return "None"


""" Math and Text """


class Number(ValueGenerator):
    blockTypes = ("math_number",)

    def generate(self, block, ctx):
        text = str(block.getFieldValue("NUM", "0")).strip()
        for parse in (int, float):
            try:
                value = parse(text)
            except ValueError:
                continue
            if math.isfinite(value):
                return repr(value)
        ctx.warn(f'Invalid number "{text}"')
        return "0"


class Arithmetic(ValueGenerator):
    blockTypes = ("math_arithmetic",)
    operators = {"ADD": "+", "MINUS": "-", "MULTIPLY": "*", "DIVIDE": "/", "POWER": "**"}

    def generate(self, block, ctx):
        op = self.operators.get(block.getFieldValue("OP"), "+")
        return f"({ctx.valueToCode(block, 'A', '0')} {op} {ctx.valueToCode(block, 'B', '0')})"


class Modulo(ValueGenerator):
    blockTypes = ("math_modulo",)

    def generate(self, block, ctx):
        return f"({ctx.valueToCode(block, 'DIVIDEND', '0')} % {ctx.valueToCode(block, 'DIVISOR', '1')})"


class MinMax(ValueGenerator):
    blockTypes = ("math_min_max",)

    def generate(self, block, ctx):
        function = "max" if block.getFieldValue("OP") == "MAX" else "min"
        return f"{function}({ctx.valueToCode(block, 'A', '0')}, {ctx.valueToCode(block, 'B', '0')})"


class Single(ValueGenerator):
    blockTypes = ("math_single",)
    functions = {"ROOT": "math.sqrt", "ABS": "abs", "CEIL": "math.ceil", "FLOOR": "math.floor", "ROUND": "round"}

    def generate(self, block, ctx):
        op = block.getFieldValue("OP")
        num = ctx.valueToCode(block, "NUM", "0")
        if op == "NEG":
            return f"(-{num})"
        if op not in self.functions:
            ctx.warn(f'Unsupported math function "{op}"')
            return num
        return f"{self.functions[op]}({num})"


class Change(BlockGenerator):
    blockTypes = ("math_change",)

    def generate(self, block, ctx):
        var = ctx.variableName(block.getFieldValue("VAR"))
        return [f"{var} += {ctx.valueToCode(block, 'DELTA', '1')}"]


class Text(ValueGenerator):
    blockTypes = ("text",)

    def generate(self, block, ctx):
        return repr(str(block.getFieldValue("TEXT", "")))


""" Variables """


class GetVariable(ValueGenerator):
    blockTypes = ("variables_get",)

    def generate(self, block, ctx):
        return ctx.variableName(block.getFieldValue("VAR"))


class SetVariable(BlockGenerator):
    blockTypes = ("variables_set",)

    def generate(self, block, ctx):
        return [f"{ctx.variableName(block.getFieldValue('VAR'))} = {ctx.valueToCode(block, 'VALUE')}"]


""" Lists """


def _listCode(block, ctx, slotName="LIST"):
    code = ctx.valueToCode(block, slotName, "[]")
    if code.isidentifier() or code[0] in "([{" or code.endswith(")"):
        return code
    return f"({code})"


def _listIndex(block, ctx):
    """ Python index for the WHERE field of list blocks. Positions count from 0, FROM_END counts back from the
    last item """
    where = block.getFieldValue("WHERE", "FROM_START")
    if where == "FIRST":
        return "0"
    if where == "LAST":
        return "-1"

    at = ctx.valueToCode(block, "AT", "0")
    if where == "FROM_END":
        return f"-1 - {at}"
    if where != "FROM_START":
        ctx.warn(f'Unsupported list position "{where}"')
    return at


class CreateEmptyList(ValueGenerator):
    blockTypes = ("lists_create_empty",)

    def generate(self, block, ctx):
        return "[]"


class CreateList(ValueGenerator):
    blockTypes = ("lists_create_with",)

    def generate(self, block, ctx):
        slots = [slot.slotName for slot in block.slots if slot.slotName.startswith("ADD") and slot.slotName[3:].isdigit()]
        slots.sort(key=lambda name: int(name[3:]))
        return "[" + ", ".join(ctx.valueToCode(block, name) for name in slots) + "]"


class AddItem(BlockGenerator):
    blockTypes = ("lists_add_item",)

    def generate(self, block, ctx):
        return [f"{_listCode(block, ctx)}.append({ctx.valueToCode(block, 'ITEM')})"]


class RemoveFirst(ValueGenerator):
    blockTypes = ("lists_remove_first_return",)

    def generate(self, block, ctx):
        return f"{_listCode(block, ctx)}.pop(0)"


class RemoveLast(ValueGenerator):
    blockTypes = ("lists_remove_last_return",)

    def generate(self, block, ctx):
        return f"{_listCode(block, ctx)}.pop()"


class RemoveAtIndex(BlockGenerator):
    blockTypes = ("lists_remove_at_index",)

    def generate(self, block, ctx):
        return [f"{_listCode(block, ctx)}.pop({ctx.valueToCode(block, 'INDEX', '0')})"]


class GetFirst(ValueGenerator):
    blockTypes = ("lists_get_first",)

    def generate(self, block, ctx):
        return f"{_listCode(block, ctx)}[0]"


class GetLast(ValueGenerator):
    blockTypes = ("lists_get_last",)

    def generate(self, block, ctx):
        return f"{_listCode(block, ctx)}[-1]"


class GetIndex(ValueGenerator):
    """ MODE GET reads the item, GET_REMOVE and REMOVE take it out of the list. REMOVE blocks sit in a
    sequence, where the expression runs as a statement """
    blockTypes = ("lists_getIndex",)

    def generate(self, block, ctx):
        items = _listCode(block, ctx, "VALUE")
        index = _listIndex(block, ctx)
        if block.getFieldValue("MODE", "GET") == "GET":
            return f"{items}[{index}]"
        return f"{items}.pop({index})"


class SetIndex(BlockGenerator):
    blockTypes = ("lists_setIndex",)

    def generate(self, block, ctx):
        items = _listCode(block, ctx)
        index = _listIndex(block, ctx)
        mode = block.getFieldValue("MODE", "SET")
        value = ctx.valueToCode(block, "TO")

        if mode == "REMOVE":
            return [f"{items}.pop({index})"]
        if mode == "INSERT":
            if block.getFieldValue("WHERE") == "LAST":
                return [f"{items}.append({value})"]
            return [f"{items}.insert({index}, {value})"]
        return [f"{items}[{index}] = {value}"]


class Concat(ValueGenerator):
    blockTypes = ("lists_concat",)

    def generate(self, block, ctx):
        return f"({ctx.valueToCode(block, 'LIST1', '[]')} + {ctx.valueToCode(block, 'LIST2', '[]')})"


class Length(ValueGenerator):
    blockTypes = ("lists_length",)

    def generate(self, block, ctx):
        return f"len({_listCode(block, ctx, 'VALUE')})"


class IsEmpty(ValueGenerator):
    blockTypes = ("lists_isEmpty",)

    def generate(self, block, ctx):
        return f"(len({_listCode(block, ctx, 'VALUE')}) == 0)"


class Contains(ValueGenerator):
    blockTypes = ("lists_contains",)

    def generate(self, block, ctx):
        return f"({ctx.valueToCode(block, 'ITEM')} in {_listCode(block, ctx)})"


""" Dictionaries """


def _dictCode(block, ctx):
    code = ctx.valueToCode(block, "DICT", "{}")
    if code.isidentifier() or code[0] in "([{" or code.endswith(")"):
        return code
    return f"({code})"


class CreateDict(ValueGenerator):
    blockTypes = ("dict_create",)

    def generate(self, block, ctx):
        return "{}"


class DictGet(ValueGenerator):
    blockTypes = ("dict_get",)

    def generate(self, block, ctx):
        return f"{_dictCode(block, ctx)}[{ctx.valueToCode(block, 'KEY')}]"


class DictSet(BlockGenerator):
    blockTypes = ("dict_set",)

    def generate(self, block, ctx):
        return [f"{_dictCode(block, ctx)}[{ctx.valueToCode(block, 'KEY')}] = {ctx.valueToCode(block, 'VALUE')}"]


class DictHasKey(ValueGenerator):
    blockTypes = ("dict_has_key",)

    def generate(self, block, ctx):
        return f"({ctx.valueToCode(block, 'KEY')} in {_dictCode(block, ctx)})"


""" World """


class GetNeighbors(ValueGenerator):
    blockTypes = ("graph_get_neighbors",)

    def generate(self, block, ctx):
        function = "get_neighbors" if ctx.clean else "_neighbors"
        return f"{function}({ctx.valueToCode(block, 'NODE')})"


class GetCurrentNode(ValueGenerator):
    blockTypes = ("graph_get_current_node",)

    def generate(self, block, ctx):
        return "get_current_node()" if ctx.clean else "_current_node()"


class Action(BlockGenerator):
    """ A primitive that acts on the world. Each one is a suspension point of the running program """
    arguments = {
        "move_forward": (),
        "turn_left": (),
        "turn_right": (),
        "hit": (),
        "move_to_node": ("NODE",),
        "move_along_path": ("PATH",),
    }
    blockTypes = tuple(arguments)

    def generate(self, block, ctx):
        args = [ctx.valueToCode(block, name) for name in self.arguments[block.type]]
        if ctx.clean:
            return [f"{block.type}({', '.join(args)})"]
        return [f'await _action("{block.type}", [{", ".join(args)}])']


class Condition(ValueGenerator):
    """ A yes/no question about the world, asked through the simulation like an action """
    blockTypes = ("found_monster", "can_move_forward", "at_goal")

    def generate(self, block, ctx):
        if ctx.clean:
            return f"{block.type}()"
        return f'(await _action("{block.type}", []))'


RUNTIME_NAMES = ("_tick", "_action", "_neighbors", "_current_node", "_run_program", "math")
FRIENDLY_NAMES = Action.blockTypes + Condition.blockTypes + ("get_neighbors", "get_current_node")


def defaultRegistry():
    return GeneratorRegistry([
        ProcedureCall(), ProcedureCallReturn(), Return(), IfReturn(),
        If(), Repeat(), WhileUntil(), For(), ForEach(), FlowStatement(),
        Compare(), Operation(), Negate(), Boolean(), Null(),
        Number(), Arithmetic(), Modulo(), MinMax(), Single(), Change(), Text(),
        GetVariable(), SetVariable(),
        CreateEmptyList(), CreateList(), AddItem(), RemoveFirst(), RemoveLast(), RemoveAtIndex(), GetFirst(), GetLast(),
        GetIndex(), SetIndex(), Concat(), Length(), IsEmpty(), Contains(),
        CreateDict(), DictGet(), DictSet(), DictHasKey(),
        GetNeighbors(), GetCurrentNode(), Action(), Condition(),
    ])
