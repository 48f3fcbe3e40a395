# -*- coding: utf-8 -*-
"""
Result persistence.
"""

from tradeval.storage.evaluation_store import EvaluationStore

__all__ = ['EvaluationStore']
