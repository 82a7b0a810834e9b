"""
Execution engine for generated programs

Programs run as a single asyncio task. Every world action is awaited through the simulation, and
every procedure entry and loop iteration passes through `_tick`, so a run can be cancelled at any
of those points and runaway loops hit the step budget:

    engine = ExecutionEngine(GraphWorld.grid(5, 5, start=(0, 0)))
    result = await engine.run(generateCode(graph).source)
    print(result.status, [step.name for step in result.trace])
"""

import asyncio
import builtins
import logging
import math

from .config import EngineParameters
from .simulation import Simulation, asNode

logger = logging.getLogger(__name__)


class ExecutionBudgetExceeded(Exception): pass


class RunCancelled(Exception): pass


class RunStatus:
    SUCCESS = "success"
    FAILED = "failed"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class TraceStep:
    def __init__(self, index, name, args, outcome):
        self.index = index
        self.name = name
        self.args = args
        self.outcome = outcome

    def toDict(self):
        return {"index": self.index, "name": self.name, "args": list(self.args), "outcome": self.outcome}

    def __repr__(self):
        return f"<TraceStep {self.index}: {self.name}{tuple(self.args)} -> {self.outcome}>"


class RunResult:
    def __init__(self, status, trace: list, error=None, steps=0):
        self.status = status
        self.trace: list[TraceStep] = trace
        self.error = error
        self.steps = steps

    @property
    def succeeded(self):
        return self.status == RunStatus.SUCCESS

    def __repr__(self):
        return f"<RunResult {self.status} actions={len(self.trace)} steps={self.steps}>"


class CancellationToken:
    def __init__(self):
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def raiseIfCancelled(self):
        if self.cancelled:
            raise RunCancelled("Run was cancelled")


SAFE_BUILTINS = {
    name: getattr(builtins, name)
    for name in (
        "abs", "all", "any", "bool", "dict", "enumerate", "float", "int", "isinstance", "len", "list",
        "max", "min", "print", "range", "reversed", "round", "set", "sorted", "str", "sum", "tuple", "zip",
        "Exception", "IndexError", "KeyError", "TypeError", "ValueError", "ZeroDivisionError",
    )
}


class _ProgramRuntime:
    """ The functions generated code calls into, bound to one run """

    def __init__(self, simulation: Simulation, params: EngineParameters, token: CancellationToken, onTrace=None):
        self.simulation = simulation
        self.params = params
        self.token = token
        self.onTrace = onTrace
        self.trace: list[TraceStep] = []
        self.steps = 0

    def countStep(self):
        self.steps += 1
        if self.steps > self.params.maxSteps:
            raise ExecutionBudgetExceeded(f"Step limit of {self.params.maxSteps} exceeded")

    async def tick(self):
        self.token.raiseIfCancelled()
        self.countStep()
        await asyncio.sleep(0)
        self.token.raiseIfCancelled()

    async def action(self, kind, args):
        self.token.raiseIfCancelled()
        self.countStep()
        outcome = await self.simulation.performAction(kind, list(args))
        self.token.raiseIfCancelled()

        step = TraceStep(len(self.trace), kind, list(args), outcome)
        self.trace.append(step)
        if self.onTrace:
            self.onTrace(step)
        return outcome

    def neighbors(self, node):
        return list(self.simulation.getWorldState().get("neighbors", {}).get(asNode(node), []))

    def currentNode(self):
        return self.simulation.getWorldState().get("currentNode")

    def namespace(self):
        return {
            "__builtins__": dict(SAFE_BUILTINS),
            "_tick": self.tick,
            "_action": self.action,
            "_neighbors": self.neighbors,
            "_current_node": self.currentNode,
            "math": math,
        }


class ExecutionEngine:
    def __init__(self, simulation: Simulation, params: EngineParameters = None, onTrace=None):
        self.simulation = simulation
        self.params = params or EngineParameters()
        self.onTrace = onTrace

        self._task: asyncio.Task = None
        self._token: CancellationToken = None

    @property
    def running(self):
        return self._task is not None and not self._task.done()

    def cancel(self):
        """ Stop the current run at its next suspension point """
        if self._token:
            self._token.cancel()
        if self._task and not self._task.done() and self._task is not asyncio.current_task():
            self._task.cancel()

    async def stop(self):
        """ Cancel the current run and wait until it has wound down """
        task = self._task
        self.cancel()
        if task is not None and task is not asyncio.current_task():
            await asyncio.wait([task])

    async def run(self, source: str) -> RunResult:
        # the world belongs to one run at a time
        await self.stop()

        token = CancellationToken()
        self._token = token
        runtime = _ProgramRuntime(self.simulation, self.params, token, self.onTrace)

        namespace = runtime.namespace()
        try:
            exec(compile(source, "<program>", "exec"), namespace)
        except Exception as e:
            logger.info("Program failed to load: %s", e)
            return RunResult(RunStatus.FAILED, [], f"{type(e).__name__}: {e}")

        entry = namespace.get("_run_program")
        if entry is None:
            return RunResult(RunStatus.FAILED, [], "Program has no _run_program entry point")

        task = asyncio.ensure_future(asyncio.wait_for(entry(), self.params.timeLimit))
        self._task = task

        status = RunStatus.SUCCESS
        error = None
        try:
            await task
        except asyncio.CancelledError:
            if not token.cancelled:
                raise
            status = RunStatus.CANCELLED
        except asyncio.TimeoutError:
            status = RunStatus.TIMEOUT
            error = f"Time limit of {self.params.timeLimit}s exceeded"
        except ExecutionBudgetExceeded as e:
            status = RunStatus.TIMEOUT
            error = str(e)
        except RunCancelled:
            status = RunStatus.CANCELLED
        except Exception as e:
            status = RunStatus.FAILED
            error = f"{type(e).__name__}: {e}"
        finally:
            if self._task is task:
                self._task = None

        result = RunResult(status, runtime.trace, error, runtime.steps)
        logger.info("Run finished: %s", result)
        return result
