"""User feedback persistence and background learning."""

from finquery.feedback.learning import FeedbackLearningTask, FeedbackLearningWorker
from finquery.feedback.store import FeedbackStore

__all__ = ["FeedbackLearningTask", "FeedbackLearningWorker", "FeedbackStore"]
