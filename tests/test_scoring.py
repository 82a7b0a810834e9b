import pytest

from blockquest.patterns import ReferencePattern
from blockquest.scoring import (calculateFinalScore, calculateLevelScore, calculateTestCaseBonus, normalizeBigO,
                                resolveTargetBigO, starsFor)


def test_good_pattern_with_hints():
    result = calculateFinalScore(isGameOver=False, patternTypeId=1, hintOpens=2)

    assert result.totalScore == 90
    assert result.stars == 3
    assert result.patternBonus == 40
    assert result.testCaseBonus == 0
    assert result.hintPenalty == 10


def test_game_over_scores_nothing():
    result = calculateFinalScore(isGameOver=True, patternTypeId=1, hintOpens=0, userBigO="O(1)", targetBigO="O(1)", testCaseBonus=20)
    assert result.toDict() == {"totalScore": 0, "stars": 0, "patternBonus": 0, "complexityPenalty": 0, "testCaseBonus": 0}


@pytest.mark.parametrize("patternTypeId, hintOpens, userBigO, targetBigO, testCaseBonus, total", [
    (1, 0, "O(n)", "O(1)", 20, 80),
    (1, 0, "O(1)", "O(1)", 20, 100),
    (0, 0, None, None, 20, 80),
    (2, 0, "O(n)", "O(1)", 20, 60),
    (2, 0, "O(1)", "O(1)", 0, 80),
    (0, 0, None, None, 0, 60),
    (0, 20, None, None, 0, 0),
    (None, 1, "o( N )", "O(n)", 10, 65),
])
def test_score_table(patternTypeId, hintOpens, userBigO, targetBigO, testCaseBonus, total):
    result = calculateFinalScore(False, patternTypeId, hintOpens, userBigO, targetBigO, testCaseBonus)
    assert result.totalScore == total


def test_complexity_is_only_checked_against_a_target():
    assert calculateFinalScore(False, 0, userBigO="O(n^2)").complexityPenalty == 0
    assert calculateFinalScore(False, 0, userBigO=None, targetBigO="O(n)").complexityPenalty == 20


@pytest.mark.parametrize("patternTypeId, userBigO", [(1, "O(1)"), (1, "O(n)"), (2, "O(1)"), (0, None)])
def test_more_hints_never_score_higher(patternTypeId, userBigO):
    totals = [calculateFinalScore(False, patternTypeId, hints, userBigO, "O(1)", 10).totalScore for hints in range(25)]
    assert all(later <= earlier for earlier, later in zip(totals, totals[1:]))


@pytest.mark.parametrize("hintOpens", [0, 1, 3, 8])
def test_good_pattern_beats_medium_despite_complexity(hintOpens):
    good = calculateFinalScore(False, 1, hintOpens, "O(n)", "O(1)")
    medium = calculateFinalScore(False, 2, hintOpens, "O(1)", "O(1)")
    assert good.totalScore >= medium.totalScore


@pytest.mark.parametrize("total, stars", [(100, 3), (81, 3), (80, 2), (61, 2), (60, 1), (1, 1), (0, 0)])
def test_stars(total, stars):
    assert starsFor(total) == stars


def test_normalize_big_o():
    assert normalizeBigO(" O(N log N) ") == normalizeBigO("o(nlogn)")
    assert normalizeBigO("  ") is None
    assert normalizeBigO(None) is None


def test_test_case_bonus():
    results = [
        {"passed": True, "isPrimary": True},
        {"passed": True, "isPrimary": False},
        {"passed": False, "isPrimary": False},
        {"passed": True},
        {"passed": False},
    ]
    assert calculateTestCaseBonus(results) == pytest.approx(10)
    assert calculateTestCaseBonus([{"passed": True, "isPrimary": True}]) == 0
    assert calculateTestCaseBonus(None) == 0


def test_target_big_o_fallbacks():
    good = ReferencePattern("bfs", tier="good", blockShape=["move_forward"], bigO="O(n)")
    medium = ReferencePattern("dfs", tier="medium", blockShape=["move_forward"], bigO="O(n^2)")
    untyped = ReferencePattern("walk", blockShape=["move_forward"])

    assert resolveTargetBigO(medium, [good, medium], 1, "O(1)") == "O(n^2)"
    assert resolveTargetBigO(untyped, [good, medium], 1, "O(1)") == "O(n)"
    assert resolveTargetBigO(None, [good, medium], 2) == "O(n^2)"
    assert resolveTargetBigO(None, [good, medium], None, "O(1)") == "O(1)"
    assert resolveTargetBigO(None, [], None) is None


def test_level_score_uses_matched_pattern():
    good = ReferencePattern("bfs", tier="good", blockShape=["move_forward"], bigO="O(n)")
    tests = [{"passed": True, "isPrimary": True}, {"passed": True, "isPrimary": False}]

    result = calculateLevelScore(False, hintOpens=1, userBigO="O(n)", testResults=tests, matchedPattern=good, patterns=[good])

    assert result.patternBonus == 40
    assert result.complexityPenalty == 0
    assert result.testCaseBonus == 0
    assert result.totalScore == 95


def test_level_score_without_pattern():
    tests = [{"passed": True, "isPrimary": False}, {"passed": False, "isPrimary": False}]

    result = calculateLevelScore(False, userBigO="O(n)", testResults=tests, levelBigO="O(n)")

    assert result.totalScore == 70
    assert result.stars == 2
