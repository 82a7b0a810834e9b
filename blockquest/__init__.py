"""
blockquest

The program pipeline behind a block-based puzzle game. Learners snap visual blocks together into
procedures, loops and world actions; this package keeps that block program consistent while it is
being edited, compiles it to Python, runs it against a simulated world and grades it against
reference solutions.

    program.py      blocks, procedures, variables and the ProgramGraph holding them
    events.py       the change feed every graph mutation is announced on
    xmlrepair.py    text-level repairs for hand-written Blockly XML
    xmlio.py        loading and saving Blockly XML
    resolver.py     collapsing numbered copies of a procedure ("solve", "solve1") into one
    guard.py        immediate fixes while the learner edits
    codegen/        Python code generation
    engine.py       running generated code step by step, with cancellation and budgets
    simulation.py   the world interface and a networkx reference world
    patterns.py     similarity to reference solutions, hints
    scoring.py      the level score
    session.py      everything above wired into one editing session
"""

from .program import ProgramGraph
from .session import EditorSession, LevelContent
