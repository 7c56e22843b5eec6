DEFAULT_SEED = 42

_MASK = 0xFFFFFFFF


class LcgRandom:
    """
    32-bit linear congruential generator (Numerical Recipes constants).

    Carries its own state so a run can be replayed from its seed.
    A seed that reduces to 0 falls back to the default.
    """

    def __init__(self, seed: int = DEFAULT_SEED):
        self.state = (seed & _MASK) or DEFAULT_SEED

    def next(self) -> int:
        self.state = (1664525 * self.state + 1013904223) & _MASK
        return self.state

    def next_float(self) -> float:
        return self.next() / _MASK

    def randrange(self, n: int) -> int:
        """Index in [0, n)."""
        return min(int(self.next_float() * n), n - 1)
