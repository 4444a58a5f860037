"""
_subsplit.py
============
Subsplits: ordered bipartitions of a clade, stored as boolean taxon masks.

A subsplit is a pair of disjoint clades (LEFT, RIGHT) over a fixed taxon
universe of size ``n_taxa``.  Three shapes occur in a subsplit DAG:

  rootsplit / internal   both clades nonempty
  leaf                   ``{taxon} | {}``
  universal ancestor     ``{all taxa} | {}``  (optional DAG root)

The masks live in a single read-only ``(2, n_taxa)`` numpy bool array, row 0
for LEFT and row 1 for RIGHT, so a subsplit can be hashed and compared by
content and shared freely between DAG nodes and sampled vertices.
"""

from enum import IntEnum
from typing import Iterable, Tuple

import numpy as np


class Clade(IntEnum):
    """One side of a subsplit's bipartition."""

    LEFT = 0
    RIGHT = 1

    def opposite(self) -> "Clade":
        return Clade.RIGHT if self is Clade.LEFT else Clade.LEFT


class Subsplit:
    """
    An ordered bipartition of a clade into LEFT and RIGHT child clades.

    Parameters
    ----------
    left, right : array-like of bool, shape (n_taxa,)
        Membership masks of the two clades.  Must be disjoint, of equal
        length, and ``left`` must be nonempty.

    Raises
    ------
    ValueError
        If the masks differ in length, overlap, or ``left`` is empty.
    """

    __slots__ = ("_bits", "_hash")

    def __init__(self, left, right) -> None:
        left = np.asarray(left, dtype=bool)
        right = np.asarray(right, dtype=bool)
        if left.ndim != 1 or left.shape != right.shape:
            raise ValueError(
                f"Clade masks must be 1-D and equal length; got shapes "
                f"{left.shape} and {right.shape}."
            )
        if np.any(left & right):
            raise ValueError("Clade masks of a subsplit must be disjoint.")
        if not np.any(left):
            raise ValueError("The LEFT clade of a subsplit must be nonempty.")

        bits = np.vstack([left, right])
        bits.flags.writeable = False
        self._bits = bits
        self._hash = hash(bits.tobytes())

    # ------------------------------------------------------------------ #
    # Constructors                                                         #
    # ------------------------------------------------------------------ #

    @classmethod
    def from_taxa(
        cls, left: Iterable[int], right: Iterable[int], n_taxa: int
    ) -> "Subsplit":
        """Build a subsplit from two collections of taxon indices."""
        left_mask = np.zeros(n_taxa, dtype=bool)
        right_mask = np.zeros(n_taxa, dtype=bool)
        left_mask[list(left)] = True
        right_mask[list(right)] = True
        return cls(left_mask, right_mask)

    @classmethod
    def leaf(cls, taxon: int, n_taxa: int) -> "Subsplit":
        """The leaf subsplit ``{taxon} | {}``."""
        return cls.from_taxa([taxon], [], n_taxa)

    @classmethod
    def root(cls, n_taxa: int) -> "Subsplit":
        """The universal-ancestor subsplit ``{all taxa} | {}``."""
        return cls(np.ones(n_taxa, dtype=bool), np.zeros(n_taxa, dtype=bool))

    # ------------------------------------------------------------------ #
    # Queries                                                              #
    # ------------------------------------------------------------------ #

    @property
    def n_taxa(self) -> int:
        return int(self._bits.shape[1])

    @property
    def bits(self) -> np.ndarray:
        """Read-only ``(2, n_taxa)`` bool array; row 0 LEFT, row 1 RIGHT."""
        return self._bits

    def clade(self, side: Clade) -> np.ndarray:
        return self._bits[int(side)]

    def clade_taxa(self, side: Clade) -> Tuple[int, ...]:
        return tuple(int(t) for t in np.flatnonzero(self._bits[int(side)]))

    @property
    def union(self) -> np.ndarray:
        return self._bits[0] | self._bits[1]

    @property
    def union_taxa(self) -> Tuple[int, ...]:
        return tuple(int(t) for t in np.flatnonzero(self.union))

    @property
    def covers_all(self) -> bool:
        """True if the union of both clades is the whole taxon universe."""
        return bool(np.all(self.union))

    @property
    def is_leaf(self) -> bool:
        """True for a ``{taxon} | {}`` subsplit."""
        return int(np.count_nonzero(self._bits[0])) == 1 and not np.any(self._bits[1])

    @property
    def is_rootsplit(self) -> bool:
        """True if both clades are nonempty and together cover every taxon."""
        return bool(np.any(self._bits[1])) and self.covers_all

    @property
    def taxon(self) -> int:
        """
        The single taxon of a singleton subsplit.

        Raises
        ------
        ValueError
            If the union does not hold exactly one taxon.
        """
        members = np.flatnonzero(self.union)
        if members.shape[0] != 1:
            raise ValueError(
                f"Subsplit {self} does not encode a single taxon "
                f"({members.shape[0]} taxa in its union)."
            )
        return int(members[0])

    # ------------------------------------------------------------------ #
    # Dunder                                                               #
    # ------------------------------------------------------------------ #

    def __eq__(self, other) -> bool:
        if not isinstance(other, Subsplit):
            return NotImplemented
        return self._bits.shape == other._bits.shape and bool(
            np.array_equal(self._bits, other._bits)
        )

    def __hash__(self) -> int:
        return self._hash

    def __str__(self) -> str:
        left = "".join("1" if b else "0" for b in self._bits[0])
        right = "".join("1" if b else "0" for b in self._bits[1])
        return f"{left}|{right}"

    def __repr__(self) -> str:
        return f"Subsplit('{self}')"
