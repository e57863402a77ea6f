# cre/intake/__init__.py
from .schema import ChatMessage, HistoryOfPresentIllness, StructuredIntakeData

__all__ = ["ChatMessage", "HistoryOfPresentIllness", "StructuredIntakeData"]
