"""Answer keys and attempt scoring.

Each question type carries its own key shape, validated once when the key is
built. Scoring is a pure function of (keys, answers, passing score): running
it twice over the same inputs always yields the same summary, which is what
lets the finalizer overwrite a result safely.
"""
import re
from dataclasses import dataclass, field
from typing import Annotated, Dict, List, Literal, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator, model_validator

from app.core.constants import QuestionTypeEnum
from app.core.exceptions import ScoringError

_WHITESPACE = re.compile(r"\s+")


def _normalize_choice(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _normalize_text(value: Optional[str]) -> str:
    return _WHITESPACE.sub(" ", (value or "").strip()).lower()


class _KeyBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    question_id: int
    points: int = Field(ge=0)

    @property
    def auto_scored(self) -> bool:
        return True

    def grade(self, answer: Optional[str]) -> Optional[bool]:
        raise NotImplementedError


class MultipleChoiceKey(_KeyBase):
    question_type: Literal["multiple_choice"] = "multiple_choice"
    correct_option: str = Field(min_length=1)
    options: Optional[List[str]] = None

    @field_validator("correct_option")
    @classmethod
    def _strip(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("correct option is blank")
        return value

    @model_validator(mode="after")
    def _option_exists(self):
        if self.options and _normalize_choice(self.correct_option) not in {_normalize_choice(o) for o in self.options}:
            raise ValueError(f"correct option '{self.correct_option}' is not one of the question's options")
        return self

    def grade(self, answer: Optional[str]) -> Optional[bool]:
        return _normalize_choice(answer) == _normalize_choice(self.correct_option)


class TrueFalseKey(_KeyBase):
    question_type: Literal["true_false"] = "true_false"
    correct_value: Literal["true", "false"]

    @field_validator("correct_value", mode="before")
    @classmethod
    def _normalize(cls, value):
        return _normalize_choice(value) if isinstance(value, str) else value

    def grade(self, answer: Optional[str]) -> Optional[bool]:
        return _normalize_choice(answer) == self.correct_value


class ShortAnswerKey(_KeyBase):
    question_type: Literal["short_answer"] = "short_answer"
    expected: str = Field(min_length=1)

    def grade(self, answer: Optional[str]) -> Optional[bool]:
        return bool(_normalize_text(answer)) and _normalize_text(answer) == _normalize_text(self.expected)


class FillInGapKey(_KeyBase):
    question_type: Literal["fill_in_gap"] = "fill_in_gap"
    alternatives: List[str] = Field(min_length=1)

    def grade(self, answer: Optional[str]) -> Optional[bool]:
        normalized = _normalize_text(answer)
        return bool(normalized) and normalized in {_normalize_text(a) for a in self.alternatives}


class SubjectiveKey(_KeyBase):
    question_type: Literal["subjective"] = "subjective"

    @property
    def auto_scored(self) -> bool:
        return False

    def grade(self, answer: Optional[str]) -> Optional[bool]:
        # Marked by a person; never auto-awarded.
        return None


QuestionKey = Annotated[
    Union[MultipleChoiceKey, TrueFalseKey, ShortAnswerKey, FillInGapKey, SubjectiveKey],
    Field(discriminator="question_type"),
]

_key_adapter = TypeAdapter(QuestionKey)


def build_key(
    *,
    question_id: int,
    question_type: Union[QuestionTypeEnum, str],
    correct_answer: Optional[str],
    points: int,
    options: Optional[Mapping[str, str]] = None,
) -> QuestionKey:
    """Turn stored question fields into a typed key, or raise ScoringError if they are malformed."""
    try:
        qtype = QuestionTypeEnum(question_type).value
    except ValueError:
        raise ScoringError(f"Question {question_id} has unknown type '{question_type}'.")

    payload: Dict[str, object] = {"question_id": question_id, "question_type": qtype, "points": points}
    if qtype == QuestionTypeEnum.MULTIPLE_CHOICE.value:
        payload["correct_option"] = correct_answer
        payload["options"] = list(options.keys()) if options else None
    elif qtype == QuestionTypeEnum.TRUE_FALSE.value:
        payload["correct_value"] = correct_answer
    elif qtype == QuestionTypeEnum.SHORT_ANSWER.value:
        payload["expected"] = correct_answer
    elif qtype == QuestionTypeEnum.FILL_IN_GAP.value:
        payload["alternatives"] = [a for a in (correct_answer or "").split("|") if a.strip()]

    try:
        return _key_adapter.validate_python(payload)
    except ValidationError as exc:
        first = exc.errors()[0]
        raise ScoringError(f"Question {question_id} has a malformed answer key: {first['msg']}") from exc


def key_for_question(question) -> QuestionKey:
    return build_key(
        question_id=question.id,
        question_type=question.question_type,
        correct_answer=question.correct_answer,
        points=question.points,
        options=question.options,
    )


@dataclass(frozen=True)
class AnswerGrade:
    question_id: int
    is_correct: Optional[bool]
    points_earned: int


@dataclass(frozen=True)
class ScoreSummary:
    total_questions: int
    correct_answers: int
    total_points: int
    points_earned: int
    percentage_score: float
    passed: bool
    manual_review_required: bool
    grades: Dict[int, AnswerGrade] = field(default_factory=dict)

    def as_result_values(self) -> Dict[str, object]:
        return {
            "total_questions": self.total_questions,
            "correct_answers": self.correct_answers,
            "total_points": self.total_points,
            "points_earned": self.points_earned,
            "percentage_score": self.percentage_score,
            "passed": self.passed,
            "manual_review_required": self.manual_review_required,
        }


def score_attempt(
    keys: Sequence[QuestionKey],
    answers: Mapping[int, Optional[str]],
    passing_score: float,
) -> ScoreSummary:
    """
    Score an attempt against the exam's full key set.

    The denominator is the points of every question on the exam, so questions
    left unanswered count as zero instead of shrinking the total. Answers to
    questions that are not in `keys` earn nothing.
    """
    total_points = sum(key.points for key in keys)
    points_earned = 0
    correct_answers = 0
    manual_review_required = False
    grades: Dict[int, AnswerGrade] = {}

    for key in keys:
        if not key.auto_scored:
            manual_review_required = True
        if key.question_id not in answers:
            continue

        is_correct = key.grade(answers[key.question_id])
        earned = key.points if is_correct else 0
        if is_correct:
            correct_answers += 1
        points_earned += earned
        grades[key.question_id] = AnswerGrade(key.question_id, is_correct, earned)

    for question_id in answers:
        if question_id not in grades:
            grades[question_id] = AnswerGrade(question_id, False, 0)

    percentage = round(points_earned / total_points * 100, 2) if total_points > 0 else 0.0
    return ScoreSummary(
        total_questions=len(keys),
        correct_answers=correct_answers,
        total_points=total_points,
        points_earned=points_earned,
        percentage_score=percentage,
        passed=percentage >= passing_score,
        manual_review_required=manual_review_required,
        grades=grades,
    )
