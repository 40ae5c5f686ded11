"""
Embedding Function Contract

An embedding function is any async callable

    (text: str | Sequence[str], dim: Optional[int] = None) -> vector | [vector]

with an optional ``supports_batch`` attribute. When ``supports_batch`` is
True the callable accepts a list of texts and returns one vector per text;
otherwise the stores call it once per text. The flag is read once and never
probed at runtime.
"""

from __future__ import annotations

from typing import Any, List, Optional, Protocol, Sequence, Union, runtime_checkable

import numpy as np

from ..core.errors import EmbeddingError

Vector = List[float]


@runtime_checkable
class EmbeddingFunction(Protocol):
    supports_batch: bool

    async def __call__(
        self,
        text: Union[str, Sequence[str]],
        dim: Optional[int] = None,
    ) -> Union[Vector, List[Vector]]:
        ...


def supports_batch(fn: Any) -> bool:
    """Return the capability flag of an embedding function (False if absent)."""
    return bool(getattr(fn, "supports_batch", False))


def as_vector(raw: Any) -> Vector:
    """
    Validate and convert a single embedding into a list of floats.

    Raises
    ------
    EmbeddingError
        If the value is not a non-empty flat numeric sequence.
    """
    try:
        arr = np.asarray(raw, dtype="float64")
    except (TypeError, ValueError) as exc:
        raise EmbeddingError.malformed_response(
            f"embedding is not numeric ({type(exc).__name__})"
        ) from exc

    if arr.ndim != 1 or arr.size == 0:
        raise EmbeddingError.malformed_response(
            f"expected a non-empty flat vector, got shape {arr.shape}"
        )
    return arr.tolist()


def l2_normalize(vec: np.ndarray) -> np.ndarray:
    norm = float(np.linalg.norm(vec))
    if norm == 0.0:
        return vec
    return vec / norm
