"""
Physics callback set for a finite volume system.

Four optional callbacks describe the PDE system. Each fills a residual
buffer of length num_species that arrives zeroed:

    flux(f, u)      - u = [u at node 1, u at node 2] (2 * num_species,)
    reaction(f, u)  - u at one node (num_species,)
    source(f)       - right hand side
    storage(f, u)   - accumulated quantity whose time derivative is taken

A missing callback contributes zero. Callbacks must not keep references to
the arrays they receive.
"""

import numpy as np
from dataclasses import dataclass
from typing import Callable, Optional


def _nofunc(f: np.ndarray, *args) -> None:
    """Callback slot without physics: leaves the zero residual untouched."""


@dataclass
class Physics:
    """User supplied physics of a finite volume system."""
    flux: Optional[Callable] = None
    reaction: Optional[Callable] = None
    source: Optional[Callable] = None
    storage: Optional[Callable] = None

    def __post_init__(self):
        for name in ('flux', 'reaction', 'source', 'storage'):
            func = getattr(self, name)
            if func is None:
                setattr(self, name, _nofunc)
            elif not callable(func):
                raise TypeError(f"Physics callback '{name}' must be callable, got {type(func).__name__}")

    def has(self, name: str) -> bool:
        """True if the callback slot holds user physics."""
        return getattr(self, name) is not _nofunc
