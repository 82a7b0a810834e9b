""" Tunable parameters for the editor pipeline """

import json


class ResolverParameters:
    """ Parameters for procedure identity resolution """
    def __init__(self, maxAttempts: int = 5, baseDelay: float = 0.15):
        self.maxAttempts = maxAttempts
        self.baseDelay = baseDelay

    @staticmethod
    def immediate(maxAttempts: int = 5):
        """ Preset without delays between attempts, for batch use and tests """
        return ResolverParameters(maxAttempts, baseDelay=0)


class GuardParameters:
    """ Parameters for the edit-time guard """
    def __init__(self, creatingCallWindow: float = 0.05):
        # seconds after a call is created during which a new definition counts as accidental
        self.creatingCallWindow = creatingCallWindow


class EngineParameters:
    """ Parameters for the execution engine """
    def __init__(self, maxSteps: int = 10000, timeLimit: float = 10.0):
        self.maxSteps = maxSteps
        self.timeLimit = timeLimit

    @staticmethod
    def quick(maxSteps: int = 500):
        """ Preset with a small budget, for checking learner programs without waiting on runaway loops """
        return EngineParameters(maxSteps, timeLimit=1.0)


class SessionParameters:
    def __init__(self, resolver: ResolverParameters = None, guard: GuardParameters = None,
                 engine: EngineParameters = None, hintDebounce: float = 0.3):
        self.resolver = resolver or ResolverParameters()
        self.guard = guard or GuardParameters()
        self.engine = engine or EngineParameters()
        self.hintDebounce = hintDebounce

    @staticmethod
    def fromDict(data: dict):
        """ Build parameters from a dict shaped like
            {"resolver": {"maxAttempts": 5}, "engine": {"timeLimit": 2}, "hintDebounce": 0.3}
        Missing keys keep their defaults """
        return SessionParameters(
            resolver=ResolverParameters(**data.get("resolver", {})),
            guard=GuardParameters(**data.get("guard", {})),
            engine=EngineParameters(**data.get("engine", {})),
            hintDebounce=data.get("hintDebounce", 0.3)
        )

    @staticmethod
    def fromFile(path):
        with open(path) as fl:
            return SessionParameters.fromDict(json.load(fl))
