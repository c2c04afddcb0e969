"""LLM judges used by the memory classifier."""
from .judge import BaseJudge, MockJudge, OllamaJudge, OpenAIJudge, create_judge

__all__ = ['BaseJudge', 'MockJudge', 'OllamaJudge', 'OpenAIJudge', 'create_judge']
