from uuid_extensions import uuid7str
from enum import Enum
from datetime import datetime, timezone
from typing import ClassVar

import pydantic
from pydantic import ConfigDict, field_validator, model_serializer, model_validator
from sqlmodel import Field, SQLModel
from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB


# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONList = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserScopedModel(SQLModel):
    """Read model whose per-user fields are left out for anonymous callers.

    The fields named in ``user_fields`` are None exactly when no user is known.
    """

    user_fields: ClassVar[tuple[str, ...]] = ()

    @model_serializer(mode="wrap")
    def omit_anonymous_fields(self, handler):
        data = handler(self)
        for name in self.user_fields:
            if name in data and data[name] is None:
                del data[name]
        return data


class DifficultyLevel(str, Enum):
    """Difficulty of a topic or a lesson."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


class ProgressStatus(str, Enum):
    """Status of a user on a lesson. A missing progress row means not_started."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class QuestionType(str, Enum):
    """Kind of quiz question, selects the grader used on submission."""

    MULTIPLE_CHOICE = "multiple_choice"
    TRUE_FALSE = "true_false"
    SHORT_ANSWER = "short_answer"


class QuestionDifficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


def _in_clause(column: str, enum: type[Enum]) -> str:
    values = ", ".join(f"'{member.value}'" for member in enum)
    return f"{column} IN ({values})"


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserBase(SQLModel):
    """Base model for user entities containing common attributes.

    Attributes:
        username: Unique login name, 3 to 100 characters.
        email: Unique email address with maximum length 255 characters.
    """

    username: str = Field(unique=True, index=True, min_length=3, max_length=100)
    email: str = Field(unique=True, index=True, max_length=255)


class UserRegister(UserBase):
    """Model for user registration requests.

    Attributes:
        username: Unique login name.
        email: Unique email address, must contain an ``@``.
        password: Plain password, hashed before storage.
    """

    password: str = Field(min_length=6, max_length=128)

    @field_validator("email")
    @classmethod
    def email_has_at_sign(cls, value: str) -> str:
        value = value.strip()
        local, _, domain = value.partition("@")
        if not local or not domain:
            raise ValueError("email must look like name@domain")
        return value.lower()

    @field_validator("username")
    @classmethod
    def strip_username(cls, value: str) -> str:
        return value.strip()


class UserLogin(SQLModel):
    """Credentials for the login endpoint. Either email or username identifies the user.

    Attributes:
        email: Optional email address.
        username: Optional username.
        password: Plain password.
    """

    email: str | None = None
    username: str | None = None
    password: str = Field(min_length=1)

    @model_validator(mode="after")
    def email_or_username(self) -> "UserLogin":
        if not self.email and not self.username:
            raise ValueError("email or username is required")
        return self


class User(UserBase, table=True):
    """Database representation of a user.

    Attributes:
        id: Unique identifier for the user.
        hashed_password: Hashed password for secure storage.
        created_at: Registration time.
    """

    __tablename__ = "user"
    id: str = Field(default_factory=uuid7str, primary_key=True)
    hashed_password: str
    created_at: datetime = Field(
        default_factory=utcnow, sa_type=DateTime(timezone=True)
    )


class UserPublic(UserBase):
    """Public user data, never carries the password hash."""

    id: str
    created_at: datetime


class UserEnvelope(SQLModel):
    user: UserPublic


class AuthResponse(SQLModel):
    """Response of register and login.

    Attributes:
        user: The authenticated user.
        token: Bearer token to send in the Authorization header.
        token_type: Always 'bearer'.
    """

    user: UserPublic
    token: str
    token_type: str = "bearer"


# Contents of JWT token
class TokenPayload(SQLModel):
    sub: str | None = None


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class CategoryBase(SQLModel):
    """Base model for categories (Architecture, Backend, Frontend...).

    Attributes:
        name: Display name.
        description: Optional description.
        icon: Optional icon (emoji or icon name).
    """

    name: str = Field(min_length=1, max_length=100)
    description: str | None = None
    icon: str | None = Field(default=None, max_length=100)


class CategoryCreate(CategoryBase):
    """Model for creating a category. Slug and order index are derived when omitted."""

    slug: str | None = Field(default=None, max_length=100)
    order_index: int | None = None


class Category(CategoryBase, table=True):
    """Database model for a category.

    Attributes:
        id: Unique identifier.
        slug: Unique URL identifier.
        order_index: Position among categories.
    """

    __tablename__ = "category"
    id: str = Field(default_factory=uuid7str, primary_key=True)
    slug: str = Field(unique=True, index=True, max_length=100)
    order_index: int = 0
    created_at: datetime = Field(
        default_factory=utcnow, sa_type=DateTime(timezone=True)
    )


class CategoryPublic(UserScopedModel, CategoryBase):
    """Category with counts over its topics and lessons.

    Attributes:
        topic_count: Number of topics in the category.
        lesson_count: Number of lessons under those topics.
        progress_percentage: Completed lessons over all lessons, only when a user is known.
    """

    user_fields: ClassVar[tuple[str, ...]] = ("progress_percentage",)

    id: str
    slug: str
    order_index: int
    topic_count: int = 0
    lesson_count: int = 0
    progress_percentage: float | None = None


class CategoriesPublic(SQLModel):
    categories: list[CategoryPublic]


# ---------------------------------------------------------------------------
# Topics
# ---------------------------------------------------------------------------


class TopicBase(SQLModel):
    """Base model for topics.

    Attributes:
        name: Display name.
        description: Optional description.
        estimated_time: Estimated minutes to go through the topic.
        icon: Optional icon.
    """

    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    estimated_time: int | None = None
    icon: str | None = Field(default=None, max_length=100)


class TopicCreate(TopicBase):
    """Model for creating a topic.

    Attributes:
        category_id: Owning category.
        slug: Optional slug, derived from the name when omitted.
        difficulty_level: beginner/intermediate/advanced/expert, checked by the service.
        order_index: Optional position, defaults to after the last sibling.
    """

    category_id: str
    slug: str | None = Field(default=None, max_length=200)
    difficulty_level: str = DifficultyLevel.BEGINNER.value
    order_index: int | None = None


class Topic(TopicBase, table=True):
    """Database model for a topic. Belongs to a category."""

    __tablename__ = "topic"
    __table_args__ = (
        CheckConstraint(
            _in_clause("difficulty_level", DifficultyLevel),
            name="valid_topic_difficulty",
        ),
    )
    id: str = Field(default_factory=uuid7str, primary_key=True)
    category_id: str = Field(
        foreign_key="category.id", nullable=False, ondelete="CASCADE", index=True
    )
    slug: str = Field(unique=True, index=True, max_length=200)
    difficulty_level: str = Field(default=DifficultyLevel.BEGINNER.value, max_length=20)
    order_index: int = 0
    created_at: datetime = Field(
        default_factory=utcnow, sa_type=DateTime(timezone=True)
    )


class TopicPublic(UserScopedModel, TopicBase):
    """Topic as listed, with its lesson count and the user's progress when known."""

    user_fields: ClassVar[tuple[str, ...]] = ("progress_percentage",)

    id: str
    slug: str
    category_id: str
    category_name: str | None = None
    category_slug: str | None = None
    difficulty_level: str
    order_index: int
    lesson_count: int = 0
    progress_percentage: float | None = None


class TopicsPublic(SQLModel):
    topics: list[TopicPublic]


class CategoryDetail(CategoryPublic):
    topics: list[TopicPublic] = Field(default_factory=list)


class CategoryEnvelope(SQLModel):
    category: CategoryDetail


# ---------------------------------------------------------------------------
# Lessons, code examples, quiz questions
# ---------------------------------------------------------------------------


class CodeExampleBase(SQLModel):
    """Base model for a code example of a lesson.

    Attributes:
        title: Short title.
        description: Optional description shown above the code.
        language: Language tag used for highlighting.
        code: The code body.
        explanation: Optional explanation shown below the code.
        is_interactive: Whether the client may offer to run it.
    """

    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    language: str = Field(min_length=1, max_length=50)
    code: str
    explanation: str | None = None
    is_interactive: bool = False


class CodeExampleCreate(CodeExampleBase):
    order_index: int | None = None


class CodeExample(CodeExampleBase, table=True):
    __tablename__ = "codeexample"
    id: str = Field(default_factory=uuid7str, primary_key=True)
    lesson_id: str = Field(
        foreign_key="lesson.id", nullable=False, ondelete="CASCADE", index=True
    )
    order_index: int = 0


class CodeExamplePublic(CodeExampleBase):
    id: str
    lesson_id: str
    order_index: int


class QuizQuestionBase(SQLModel):
    """Fields of a quiz question that are safe to show before answering.

    Attributes:
        question_text: The prompt.
        question_type: multiple_choice, true_false or short_answer.
        options: Ordered choices for multiple choice questions.
        difficulty: easy/medium/hard.
        points: Points earned by a correct answer.
    """

    question_text: str = Field(min_length=1)
    question_type: str = QuestionType.MULTIPLE_CHOICE.value
    options: list[str] = Field(default_factory=list)
    difficulty: str = QuestionDifficulty.MEDIUM.value
    points: int = Field(default=10, ge=0)


class QuizQuestionCreate(QuizQuestionBase):
    """Model for creating a quiz question together with its lesson.

    Attributes:
        correct_answer: The accepted answer, one of the options for multiple choice.
        explanation: Shown after answering.
    """

    correct_answer: str = Field(min_length=1)
    explanation: str | None = None
    order_index: int | None = None


class QuizQuestion(QuizQuestionBase, table=True):
    """Database model for a quiz question."""

    __tablename__ = "quizquestion"
    __table_args__ = (
        CheckConstraint(
            _in_clause("question_type", QuestionType), name="valid_question_type"
        ),
        CheckConstraint(
            _in_clause("difficulty", QuestionDifficulty),
            name="valid_question_difficulty",
        ),
    )
    id: str = Field(default_factory=uuid7str, primary_key=True)
    lesson_id: str = Field(
        foreign_key="lesson.id", nullable=False, ondelete="CASCADE", index=True
    )
    options: list[str] = Field(default_factory=list, sa_column=Column(JSONList))
    correct_answer: str
    explanation: str | None = None
    order_index: int = 0


class QuizQuestionPublic(QuizQuestionBase):
    """Question as shown inside a lesson. Has no correct_answer and no explanation."""

    id: str
    lesson_id: str
    order_index: int


class LessonBase(SQLModel):
    """Base model for lessons.

    Attributes:
        title: Display title.
        summary: Short summary shown in lists.
        estimated_time: Estimated minutes.
    """

    title: str = Field(min_length=1, max_length=300)
    summary: str | None = None
    estimated_time: int | None = None


class LessonCreate(LessonBase):
    """Model for creating a lesson, optionally with its code examples and questions.

    Attributes:
        topic_id: Owning topic.
        content: Markdown body.
        key_points: Ordered key takeaways.
        difficulty_level: Checked by the service.
        code_examples: Initial code examples, inserted in the same transaction.
        quiz_questions: Initial quiz questions, inserted in the same transaction.
    """

    topic_id: str
    slug: str | None = Field(default=None, max_length=300)
    content: str = Field(min_length=1)
    difficulty_level: str = DifficultyLevel.BEGINNER.value
    order_index: int | None = None
    key_points: list[str] = Field(default_factory=list)
    code_examples: list[CodeExampleCreate] = Field(default_factory=list)
    quiz_questions: list[QuizQuestionCreate] = Field(default_factory=list)


class Lesson(LessonBase, table=True):
    """Database model for a lesson. Belongs to a topic."""

    __tablename__ = "lesson"
    __table_args__ = (
        CheckConstraint(
            _in_clause("difficulty_level", DifficultyLevel),
            name="valid_lesson_difficulty",
        ),
    )
    id: str = Field(default_factory=uuid7str, primary_key=True)
    topic_id: str = Field(
        foreign_key="topic.id", nullable=False, ondelete="CASCADE", index=True
    )
    slug: str = Field(unique=True, index=True, max_length=300)
    content: str
    difficulty_level: str = Field(default=DifficultyLevel.BEGINNER.value, max_length=20)
    order_index: int = 0
    key_points: list[str] = Field(default_factory=list, sa_column=Column(JSONList))
    created_at: datetime = Field(
        default_factory=utcnow, sa_type=DateTime(timezone=True)
    )
    updated_at: datetime = Field(
        default_factory=utcnow, sa_type=DateTime(timezone=True)
    )


class LessonSummary(UserScopedModel, LessonBase):
    """Lesson without its content, as listed inside a topic.

    Attributes:
        code_example_count: Number of code examples.
        quiz_count: Number of quiz questions.
        user_status: The user's status, only when a user is known.
        progress_percentage: The user's percentage, only when a user is known.
    """

    user_fields: ClassVar[tuple[str, ...]] = ("user_status", "progress_percentage")

    id: str
    topic_id: str
    slug: str
    difficulty_level: str
    order_index: int
    code_example_count: int = 0
    quiz_count: int = 0
    user_status: str | None = None
    progress_percentage: int | None = None


class TopicDetail(TopicPublic):
    lessons: list[LessonSummary] = Field(default_factory=list)


class TopicEnvelope(SQLModel):
    topic: TopicDetail


class TopicCreated(SQLModel):
    topic: TopicPublic


class CategoryCreated(SQLModel):
    category: CategoryPublic


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------


class LessonProgress(SQLModel, table=True):
    """Progress of one user on one lesson. Keyed by (user_id, lesson_id).

    Attributes:
        status: not_started/in_progress/completed.
        progress_percentage: 0..100, consistent with the status.
        time_spent: Accumulated minutes.
        notes: Free text notes of the user.
        started_at: Time of the first write.
        completed_at: Time of the last transition to completed.
        last_updated: Time of the last write.
    """

    __tablename__ = "lessonprogress"
    __table_args__ = (
        CheckConstraint(
            _in_clause("status", ProgressStatus), name="valid_progress_status"
        ),
        CheckConstraint(
            "progress_percentage >= 0 AND progress_percentage <= 100",
            name="valid_progress_percentage",
        ),
    )
    user_id: str = Field(foreign_key="user.id", primary_key=True, ondelete="CASCADE")
    lesson_id: str = Field(
        foreign_key="lesson.id", primary_key=True, ondelete="CASCADE"
    )
    status: str = Field(default=ProgressStatus.NOT_STARTED.value, max_length=20)
    progress_percentage: int = 0
    time_spent: int = 0
    notes: str | None = None
    started_at: datetime | None = Field(default=None, sa_type=DateTime(timezone=True))
    completed_at: datetime | None = Field(
        default=None, sa_type=DateTime(timezone=True)
    )
    last_updated: datetime = Field(
        default_factory=utcnow, sa_type=DateTime(timezone=True)
    )


# serves the recent activity query
Index(
    "ix_lessonprogress_user_recent",
    LessonProgress.user_id,
    LessonProgress.last_updated.desc(),
)


class LessonProgressPublic(SQLModel):
    """A stored progress row, or the synthetic not-started row when none exists."""

    user_id: str
    lesson_id: str
    status: str = ProgressStatus.NOT_STARTED.value
    progress_percentage: int = 0
    time_spent: int = 0
    notes: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    last_updated: datetime | None = None


class ProgressEnvelope(SQLModel):
    progress: LessonProgressPublic


class ProgressUpdate(pydantic.BaseModel):
    """Body of the progress upsert endpoint.

    Attributes:
        status: not_started/in_progress/completed, checked by the service.
        progress_percentage: Optional percentage (``progressPercentage`` on the wire).
        time_spent: Minutes to add (``timeSpent`` on the wire).
        notes: Optional notes, kept when omitted.
    """

    model_config = ConfigDict(populate_by_name=True)

    status: str
    progress_percentage: int | None = pydantic.Field(
        default=None, alias="progressPercentage"
    )
    time_spent: int = pydantic.Field(default=0, alias="timeSpent")
    notes: str | None = None


class CategoryProgress(SQLModel):
    """Roll-up of one category for one user."""

    category_id: str
    category_name: str
    category_slug: str
    total_lessons: int
    completed_lessons: int
    progress_percentage: float


class RecentActivity(LessonProgressPublic):
    lesson_title: str
    lesson_slug: str
    topic_name: str
    category_name: str


class ProgressOverview(pydantic.BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    category_progress: list[CategoryProgress] = pydantic.Field(
        alias="categoryProgress"
    )
    recent_activity: list[RecentActivity] = pydantic.Field(alias="recentActivity")


# ---------------------------------------------------------------------------
# Lesson read
# ---------------------------------------------------------------------------


class LessonPublic(UserScopedModel, LessonBase):
    """Full lesson with its place in the hierarchy and the user's progress."""

    user_fields: ClassVar[tuple[str, ...]] = ("user_progress",)

    id: str
    topic_id: str
    slug: str
    content: str
    difficulty_level: str
    order_index: int
    key_points: list[str] = Field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    topic_name: str | None = None
    topic_slug: str | None = None
    category_name: str | None = None
    category_slug: str | None = None
    user_progress: LessonProgressPublic | None = None


class LessonNavItem(SQLModel):
    id: str
    title: str
    slug: str
    order_index: int


class LessonNavigation(SQLModel):
    previous: LessonNavItem | None = None
    next: LessonNavItem | None = None


class LessonDetail(pydantic.BaseModel):
    """Response of the lesson read endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    lesson: LessonPublic
    code_examples: list[CodeExamplePublic] = pydantic.Field(alias="codeExamples")
    quiz_questions: list[QuizQuestionPublic] = pydantic.Field(alias="quizQuestions")
    navigation: LessonNavigation


class LessonCreated(SQLModel):
    lesson: LessonPublic


class LessonSearchResult(LessonBase):
    id: str
    topic_id: str
    slug: str
    difficulty_level: str
    order_index: int
    topic_name: str
    topic_slug: str
    category_name: str
    category_slug: str


class LessonsPublic(SQLModel):
    lessons: list[LessonSearchResult]


# ---------------------------------------------------------------------------
# Quiz attempts
# ---------------------------------------------------------------------------


class QuizAttempt(SQLModel, table=True):
    """Append-only record of one answer submission.

    Attributes:
        user_answer: The submitted answer as sent.
        is_correct: Result of grading.
        points_earned: Question points when correct, else 0.
        attempt_number: 1 for the first attempt of the user on the question.
        attempted_at: Submission time; the latest attempt is the canonical score.
    """

    __tablename__ = "quizattempt"
    __table_args__ = (
        Index("ix_quizattempt_user_question", "user_id", "question_id"),
    )
    id: str = Field(default_factory=uuid7str, primary_key=True)
    user_id: str = Field(foreign_key="user.id", nullable=False, ondelete="CASCADE")
    question_id: str = Field(
        foreign_key="quizquestion.id", nullable=False, ondelete="CASCADE"
    )
    user_answer: str
    is_correct: bool
    points_earned: int = 0
    attempt_number: int = 1
    attempted_at: datetime = Field(
        default_factory=utcnow, sa_type=DateTime(timezone=True)
    )


class QuizAttemptPublic(SQLModel):
    id: str
    question_id: str
    user_answer: str
    is_correct: bool
    points_earned: int
    attempt_number: int
    attempted_at: datetime


class QuizAttemptDetail(QuizAttemptPublic):
    question_text: str
    question_type: str


class QuizAttemptsPublic(SQLModel):
    attempts: list[QuizAttemptDetail]


class QuizSubmission(pydantic.BaseModel):
    """Body of the quiz submit endpoint (``questionId``, ``userAnswer``)."""

    model_config = ConfigDict(populate_by_name=True)

    question_id: str = pydantic.Field(alias="questionId", min_length=1)
    user_answer: str = pydantic.Field(alias="userAnswer", min_length=1)


class QuizFeedback(pydantic.BaseModel):
    """Grading result. Always reveals the correct answer and the explanation."""

    model_config = ConfigDict(populate_by_name=True)

    correct: bool
    correct_answer: str = pydantic.Field(alias="correctAnswer")
    explanation: str | None
    points_earned: int = pydantic.Field(alias="pointsEarned")
    attempt: QuizAttemptPublic


class QuizStats(SQLModel):
    """Quiz statistics of a user.

    ``total_attempts`` counts every attempt ever made. The other figures only
    use the latest attempt on each question, i.e. the canonical score.

    Attributes:
        total_attempts: Lifetime number of attempts.
        questions_answered: Distinct questions attempted.
        correct_answers: Questions whose latest attempt is correct.
        total_points: Sum of points of the latest attempts.
        accuracy_percentage: correct_answers / questions_answered * 100, 2 decimals.
    """

    total_attempts: int = 0
    questions_answered: int = 0
    correct_answers: int = 0
    total_points: int = 0
    accuracy_percentage: float = 0.0


class QuizStatsEnvelope(SQLModel):
    stats: QuizStats


# Generic message
class Message(SQLModel):
    message: str
