""" Level scoring """

import logging
import re

logger = logging.getLogger(__name__)

BASE_SCORE = 60
PATTERN_BONUS = {1: 40, 2: 20}  # good, medium
COMPLEXITY_PENALTY = 20
HINT_PENALTY = 5
TEST_CASE_BONUS = 20


class ScoreResult:
    def __init__(self, totalScore, stars, patternBonus=0, complexityPenalty=0, testCaseBonus=0, hintPenalty=0):
        self.totalScore = totalScore
        self.stars = stars
        self.patternBonus = patternBonus
        self.complexityPenalty = complexityPenalty
        self.testCaseBonus = testCaseBonus
        self.hintPenalty = hintPenalty

    def toDict(self):
        return {
            "totalScore": self.totalScore,
            "stars": self.stars,
            "patternBonus": self.patternBonus,
            "complexityPenalty": self.complexityPenalty,
            "testCaseBonus": self.testCaseBonus,
        }

    def __repr__(self):
        return f"<ScoreResult {self.totalScore} ({self.stars} stars)>"


def normalizeBigO(value):
    """ "O(N log N)" and "o(nlogn)" name the same class """
    if value is None:
        return None
    return re.sub(r"\s+", "", str(value)).lower() or None


def starsFor(totalScore):
    if totalScore > 80:
        return 3
    if totalScore > 60:
        return 2
    if totalScore >= 1:
        return 1
    return 0


def calculateFinalScore(isGameOver, patternTypeId, hintOpens=0, userBigO=None, targetBigO=None, testCaseBonus=0) -> ScoreResult:
    if isGameOver:
        return ScoreResult(0, 0)

    patternBonus = PATTERN_BONUS.get(patternTypeId, 0)

    complexityPenalty = 0
    if normalizeBigO(targetBigO) and normalizeBigO(userBigO) != normalizeBigO(targetBigO):
        complexityPenalty = COMPLEXITY_PENALTY

    hintPenalty = max(0, hintOpens or 0) * HINT_PENALTY

    # a pattern match already implies a passing solution, the two bonuses don't stack
    testCaseBonus = max(0, testCaseBonus or 0)
    if patternBonus > 0:
        testCaseBonus = 0

    total = BASE_SCORE + patternBonus + testCaseBonus - complexityPenalty - hintPenalty
    total = min(100, max(0, total))

    logger.debug("Score %s = %d + %d + %s - %d - %d", total, BASE_SCORE, patternBonus, testCaseBonus, complexityPenalty, hintPenalty)
    return ScoreResult(total, starsFor(total), patternBonus, complexityPenalty, testCaseBonus, hintPenalty)


def calculateTestCaseBonus(testResults):
    """ Up to TEST_CASE_BONUS points for the share of secondary test cases that passed.

    [testResults] is a list of dicts with the keys "passed" and "isPrimary". Primary test cases
    decide whether the level is solved at all and don't count towards the bonus """
    secondary = [result for result in testResults or [] if not result.get("isPrimary", False)]
    if not secondary:
        return 0
    passed = len([result for result in secondary if result.get("passed")])
    return passed / len(secondary) * TEST_CASE_BONUS


def resolveTargetBigO(matchedPattern=None, patterns=(), patternTypeId=None, levelBigO=None):
    """ The complexity the learner is measured against: the matched pattern's, else that of a
    pattern of the same type, else the level's """
    if matchedPattern is not None and matchedPattern.bigO:
        return matchedPattern.bigO

    if patternTypeId:
        for pattern in patterns:
            if pattern.patternTypeId == patternTypeId and pattern.bigO:
                return pattern.bigO

    return levelBigO or None


def calculateLevelScore(isGameOver, patternTypeId=None, hintOpens=0, userBigO=None, testResults=None,
                        matchedPattern=None, patterns=(), levelBigO=None) -> ScoreResult:
    if patternTypeId is None and matchedPattern is not None:
        patternTypeId = matchedPattern.patternTypeId

    targetBigO = resolveTargetBigO(matchedPattern, patterns, patternTypeId, levelBigO)
    return calculateFinalScore(
        isGameOver,
        patternTypeId or 0,
        hintOpens,
        userBigO,
        targetBigO,
        calculateTestCaseBonus(testResults)
    )
