"""
Form binding adapters.

MutationForm validates field values against a contract and submits them as
a mutation; QueryForm turns filter values into debounced query runs.
"""

from .mutation_form import MutationForm
from .query_form import DEFAULT_DEBOUNCE_MS, QueryForm

__all__ = ["DEFAULT_DEBOUNCE_MS", "MutationForm", "QueryForm"]
