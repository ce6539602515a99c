"""Question model definitions."""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship

from backend.core.timeutil import utc_now
from backend.database import Base


class Question(Base):
    """Represents a submitted interview question."""
    __tablename__ = "questions"
    __table_args__ = (
        CheckConstraint("upvotes >= 0", name="ck_questions_upvotes_non_negative"),
        Index("idx_questions_company_topic", "company", "topic"),
        Index("idx_questions_upvotes_created", "upvotes", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    question_text = Column(Text, nullable=False)
    company = Column(String(120), nullable=False, index=True)
    topic = Column(String(120), nullable=False, index=True)
    role = Column(String(120), nullable=False, index=True)
    difficulty = Column(String(10), nullable=False, index=True)
    # Nullable: anonymous submissions have no owner.
    submitted_by = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    upvotes = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utc_now, index=True)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    submitter = relationship("User", lazy="joined")
    upvote_rows = relationship(
        "QuestionUpvote",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )


class QuestionUpvote(Base):
    """One user's vote on one question; the rows form the upvoter set."""
    __tablename__ = "question_upvotes"

    question_id = Column(Integer, ForeignKey("questions.id", ondelete="CASCADE"), primary_key=True)
    # Vote rows only change through the upvote toggle, which keeps questions.upvotes in step.
    user_id = Column(Integer, ForeignKey("users.id", ondelete="RESTRICT"), primary_key=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
