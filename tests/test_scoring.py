import pytest

from app.core.constants import QuestionTypeEnum
from app.core.exceptions import ScoringError
from app.services.scoring import (
    FillInGapKey,
    MultipleChoiceKey,
    SubjectiveKey,
    TrueFalseKey,
    build_key,
    score_attempt,
)


def key(question_id, question_type, correct_answer, points=1, options=None):
    return build_key(
        question_id=question_id,
        question_type=question_type,
        correct_answer=correct_answer,
        points=points,
        options=options,
    )


def test_build_key_dispatches_on_question_type():
    assert isinstance(key(1, QuestionTypeEnum.MULTIPLE_CHOICE, "B", options={"A": "x", "B": "y"}), MultipleChoiceKey)
    assert isinstance(key(2, "true_false", "True"), TrueFalseKey)
    assert isinstance(key(3, QuestionTypeEnum.FILL_IN_GAP, "colour|color"), FillInGapKey)
    assert isinstance(key(4, QuestionTypeEnum.SUBJECTIVE, None), SubjectiveKey)


@pytest.mark.parametrize("question_type,correct_answer,options", [
    (QuestionTypeEnum.MULTIPLE_CHOICE, None, None),
    (QuestionTypeEnum.MULTIPLE_CHOICE, "E", {"A": "1", "B": "2"}),
    (QuestionTypeEnum.TRUE_FALSE, "maybe", None),
    (QuestionTypeEnum.SHORT_ANSWER, None, None),
    (QuestionTypeEnum.FILL_IN_GAP, " | ", None),
    ("essay", "anything", None),
])
def test_malformed_keys_raise_scoring_error(question_type, correct_answer, options):
    with pytest.raises(ScoringError):
        key(7, question_type, correct_answer, options=options)


def test_choice_answers_compare_case_insensitively():
    mc = key(1, QuestionTypeEnum.MULTIPLE_CHOICE, "b", options={"A": "x", "B": "y"})
    tf = key(2, QuestionTypeEnum.TRUE_FALSE, "FALSE")
    assert mc.grade(" B ") is True
    assert mc.grade("A") is False
    assert tf.grade("false") is True
    assert tf.grade("true") is False


def test_text_answers_ignore_case_and_extra_whitespace():
    short = key(1, QuestionTypeEnum.SHORT_ANSWER, "Abuja")
    gap = key(2, QuestionTypeEnum.FILL_IN_GAP, "photosynthesis|photo synthesis")
    assert short.grade("  abuja ") is True
    assert short.grade("") is False
    assert gap.grade("Photo   Synthesis") is True
    assert gap.grade("respiration") is False


def test_denominator_comes_from_every_question_on_the_exam():
    keys = [key(i, QuestionTypeEnum.SHORT_ANSWER, str(i), points=2) for i in range(1, 11)]
    answers = {1: "1", 2: "2", 3: "3", 4: "4", 5: "5", 6: "wrong"}

    summary = score_attempt(keys, answers, passing_score=50)

    assert summary.total_questions == 10
    assert summary.total_points == 20
    assert summary.points_earned == 10
    assert summary.correct_answers == 5
    assert summary.percentage_score == 50.0
    assert summary.passed is True
    assert summary.grades[6].is_correct is False
    assert 7 not in summary.grades


def test_subjective_questions_are_never_auto_awarded():
    keys = [
        key(1, QuestionTypeEnum.SHORT_ANSWER, "yes", points=1),
        key(2, QuestionTypeEnum.SUBJECTIVE, None, points=4),
    ]
    summary = score_attempt(keys, {1: "yes", 2: "A long essay"}, passing_score=50)

    assert summary.points_earned == 1
    assert summary.total_points == 5
    assert summary.percentage_score == 20.0
    assert summary.passed is False
    assert summary.manual_review_required is True
    assert summary.grades[2].is_correct is None


def test_answers_for_unknown_questions_earn_nothing():
    keys = [key(1, QuestionTypeEnum.SHORT_ANSWER, "a")]
    summary = score_attempt(keys, {1: "a", 99: "a"}, passing_score=100)
    assert summary.points_earned == 1
    assert summary.grades[99].points_earned == 0
    assert summary.passed is True


def test_exam_without_points_scores_zero():
    summary = score_attempt([key(1, QuestionTypeEnum.SHORT_ANSWER, "a", points=0)], {1: "a"}, passing_score=50)
    assert summary.percentage_score == 0.0
    assert summary.passed is False


def test_scoring_is_repeatable():
    keys = [key(i, QuestionTypeEnum.TRUE_FALSE, "true" if i % 2 else "false") for i in range(1, 6)]
    answers = {1: "true", 2: "true", 4: "false"}
    assert score_attempt(keys, answers, 60) == score_attempt(keys, answers, 60)
