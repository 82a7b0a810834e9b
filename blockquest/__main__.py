import argparse
import json
import logging
import sys

from .config import SessionParameters
from .scoring import calculateFinalScore
from .session import EditorSession
from .xmlrepair import repairProgramText


def readText(path):
    if path == "-":
        return sys.stdin.read()
    with open(path) as fl:
        return fl.read()


def repairCommand(args):
    print(repairProgramText(readText(args.file)))
    return 0


def compileCommand(args):
    params = SessionParameters.fromFile(args.config) if args.config else None
    warnings = []
    hints = []
    session = EditorSession(params=params, onStructuralWarning=warnings.append, onHint=lambda text, types: hints.append(text))

    if not session.loadProgram(readText(args.file)):
        for hint in hints:
            print(hint, file=sys.stderr)
        print(f"Could not load a program from {args.file}", file=sys.stderr)
        return 1

    result = session.generateCode(clean=args.clean)
    print(result.source, end="")
    for warning in dict.fromkeys(warnings):
        print(f"warning: {warning}", file=sys.stderr)
    return 0


def scoreCommand(args):
    score = calculateFinalScore(
        args.game_over,
        args.pattern_type,
        hintOpens=args.hints,
        userBigO=args.user_big_o,
        targetBigO=args.target_big_o,
        testCaseBonus=args.test_bonus
    )
    print(json.dumps(score.toDict()))
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(prog="blockquest", description="Repair, compile and score block programs")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log resolver and guard activity")
    commands = parser.add_subparsers(dest="command", required=True)

    repair = commands.add_parser("repair", help="Print the repaired Blockly XML of a program")
    repair.add_argument("file", help="Blockly XML file, - for stdin")
    repair.set_defaults(handler=repairCommand)

    compileParser = commands.add_parser("compile", help="Load, resolve and compile a program to Python")
    compileParser.add_argument("file", help="Blockly XML file, - for stdin")
    compileParser.add_argument("--clean", action="store_true", help="Learner-facing output without runtime scaffolding")
    compileParser.add_argument("--config", help="JSON file with session parameters")
    compileParser.set_defaults(handler=compileCommand)

    score = commands.add_parser("score", help="Compute a level score")
    score.add_argument("--game-over", action="store_true", help="The run failed")
    score.add_argument("--pattern-type", type=int, default=0, help="1 for a good pattern, 2 for a medium one")
    score.add_argument("--hints", type=int, default=0, help="Number of hints revealed")
    score.add_argument("--user-big-o", help="Complexity the learner declared")
    score.add_argument("--target-big-o", help="Complexity the level expects")
    score.add_argument("--test-bonus", type=float, default=0, help="Test case bonus points")
    score.set_defaults(handler=scoreCommand)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s"
    )
    return args.handler(args)


if __name__ == "__main__":
    sys.exit(main())
