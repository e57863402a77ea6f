# cre/reasoning/__init__.py
from .schema import ClinicalReasoningPack, Differential, OpenQuestion, RiskEstimation

__all__ = ["ClinicalReasoningPack", "Differential", "OpenQuestion", "RiskEstimation"]
