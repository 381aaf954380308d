from .base import ImageAdapter
from .doubao import DoubaoAdapter
from .openai import OpenAIAdapter

__all__ = ["ImageAdapter", "OpenAIAdapter", "DoubaoAdapter"]
