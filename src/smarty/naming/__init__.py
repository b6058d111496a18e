"""Branch naming for change requests.

Derives a branch identifier from free text, either deterministically
(slug) or with a fast model's help, falling back to the slug whenever
the model cannot produce a usable name.
"""

from src.smarty.naming.branch import (
    AssistedNamer,
    BranchNamer,
    NamingResult,
    slugify,
)

__all__ = [
    "AssistedNamer",
    "BranchNamer",
    "NamingResult",
    "slugify",
]
