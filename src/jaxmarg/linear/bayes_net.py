"""Gaussian Bayes net: conditionals in elimination order."""

from __future__ import annotations

from typing import Dict, Iterable, Iterator, List

from jaxmarg.core.jax_init import jnp
from jaxmarg.core.types import Key, KeyFormatter, default_key_formatter
from .conditional import GaussianConditional


class GaussianBayesNet:
    """Ordered conditionals from sequential elimination, first eliminated first."""

    def __init__(self, conditionals: Iterable[GaussianConditional] = ()) -> None:
        self._conditionals: List[GaussianConditional] = list(conditionals)

    def push_back(self, conditional: GaussianConditional) -> None:
        self._conditionals.append(conditional)

    def __len__(self) -> int:
        return len(self._conditionals)

    def __iter__(self) -> Iterator[GaussianConditional]:
        return iter(self._conditionals)

    def __getitem__(self, i: int) -> GaussianConditional:
        return self._conditionals[i]

    def keys(self) -> List[Key]:
        return [k for c in self._conditionals for k in c.frontal_keys]

    def optimize(self) -> Dict[Key, jnp.ndarray]:
        """Back-substitution, last eliminated first."""
        solution: Dict[Key, jnp.ndarray] = {}
        for conditional in reversed(self._conditionals):
            solution.update(conditional.solve(solution))
        return solution

    def format(self, prefix: str = "", key_formatter: KeyFormatter = default_key_formatter) -> str:
        lines = [f"{prefix}GaussianBayesNet with {len(self)} conditionals"]
        lines.extend(c.format("  ", key_formatter) for c in self._conditionals)
        return "\n".join(lines)

    def __str__(self) -> str:
        return self.format()
