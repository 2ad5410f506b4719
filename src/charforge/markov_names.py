from __future__ import annotations

import random
from typing import Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple, Union

END = None
FALLBACK_NAME = "Unknown"
MAX_ATTEMPTS = 50
MAX_EXTENSION = 50
LENGTH_SLACK = 5

FANTASY_SEEDS = [
    "Aldric", "Brienne", "Cassandra", "Delia", "Eonwe", "Fenrir", "Gwyneth",
    "Halvard", "Isolde", "Jorah", "Kaelen", "Lyanna", "Maelis", "Nerys",
    "Orrin", "Perrin", "Quillon", "Rhaenys", "Seraphine", "Thalindra",
    "Ulric", "Vaelin", "Wynona", "Xanthe", "Yrsa", "Zephyrine",
]

Symbol = Optional[str]


def capitalize(text: str) -> str:
    return text[:1].upper() + text[1:]


class MarkovNameGenerator:
    """Order-k character chain trained on seed names.

    Every window of ``order`` characters in a (trimmed) seed records the
    character that follows it, or ``END`` after the last window. Seeds
    shorter than ``order`` are skipped. The generator is immutable once
    built and ``generate`` never raises: an untrained generator answers
    ``"Unknown"``.
    """

    def __init__(
        self,
        seeds: Sequence[str],
        order: int = 2,
        rng: Union[random.Random, int, None] = None,
    ) -> None:
        self._order = order
        self._random = rng if isinstance(rng, random.Random) else random.Random(rng)
        self._seeds = frozenset(seed.strip().lower() for seed in seeds)
        self._starts: List[str] = []
        self._chain: Dict[str, List[Symbol]] = {}
        self._train(seeds)

    @property
    def order(self) -> int:
        return self._order

    @property
    def starts(self) -> Tuple[str, ...]:
        return tuple(self._starts)

    @property
    def transitions(self) -> Mapping[str, Tuple[Symbol, ...]]:
        return {key: tuple(symbols) for key, symbols in self._chain.items()}

    @property
    def seeds(self) -> FrozenSet[str]:
        return self._seeds

    def _train(self, seeds: Sequence[str]) -> None:
        k = self._order
        if k < 1:
            return
        for seed in seeds:
            name = seed.strip()
            if len(name) < k:
                continue
            self._starts.append(name[:k])
            for i in range(len(name) - k + 1):
                key = name[i : i + k]
                next_symbol = name[i + k] if i + k < len(name) else END
                self._chain.setdefault(key, []).append(next_symbol)

    def _walk(self, max_length: int) -> str:
        k = self._order
        result = self._random.choice(self._starts)
        appended = 0
        while len(result) < max_length + LENGTH_SLACK and appended < MAX_EXTENSION:
            options = self._chain.get(result[-k:])
            if not options:
                break
            symbol = self._random.choice(options)
            if symbol is END:
                break
            result += symbol
            appended += 1
        return result

    def generate(self, min_length: int = 4, max_length: int = 12) -> str:
        if not self._starts:
            return FALLBACK_NAME
        fallback: Optional[str] = None
        for _ in range(MAX_ATTEMPTS):
            candidate = self._walk(max_length)
            if not min_length <= len(candidate) <= max_length:
                continue
            if candidate.lower() not in self._seeds:
                return capitalize(candidate)
            # Seed echo: keep it only if nothing novel turns up.
            fallback = candidate
        return capitalize(fallback if fallback is not None else FALLBACK_NAME)


def generate_batch(
    seeds: Sequence[str],
    order: int = 2,
    min_length: int = 4,
    max_length: int = 12,
    count: int = 12,
    rng: Union[random.Random, int, None] = None,
) -> List[str]:
    generator = MarkovNameGenerator(seeds, order=order, rng=rng)
    return [generator.generate(min_length, max_length) for _ in range(max(count, 0))]
