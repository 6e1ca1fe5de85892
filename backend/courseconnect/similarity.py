from __future__ import annotations


def edit_distance(a: str, b: str) -> int:
	"""Levenshtein distance with unit cost for insert, delete and substitute.

	Keeps two rows of the DP table, iterating over the longer string so the
	row length is bounded by the shorter one.
	"""
	if len(a) < len(b):
		a, b = b, a
	if not b:
		return len(a)
	previous = list(range(len(b) + 1))
	for i, ca in enumerate(a, start=1):
		current = [i] + [0] * len(b)
		for j, cb in enumerate(b, start=1):
			cost = 0 if ca == cb else 1
			current[j] = min(
				previous[j] + 1,
				current[j - 1] + 1,
				previous[j - 1] + cost,
			)
		previous = current
	return previous[-1]


def similarity(a: str, b: str) -> float:
	"""Normalized similarity in [0, 1]; callers normalize case beforehand."""
	longest = max(len(a), len(b))
	if longest == 0:
		return 1.0
	return (longest - edit_distance(a, b)) / longest
