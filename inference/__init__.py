"""External severity inference (OpenAI) and the hybrid pipeline."""

from inference.openai_classifier import classify_with_openai
from inference.hybrid import hybrid_classify, openai_inference

__all__ = ["classify_with_openai", "hybrid_classify", "openai_inference"]
