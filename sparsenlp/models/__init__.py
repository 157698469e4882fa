"""Concrete problem models."""

from sparsenlp.models.hs071 import HS071
from sparsenlp.models.functional import FunctionModel

__all__ = [
    "HS071",
    "FunctionModel",
]
