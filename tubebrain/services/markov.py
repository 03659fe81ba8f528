"""
Markov chain comment generator (CPU-only).
Fixed chain length, duplicate-preserving successor lists, START/END padding.
Training: from raw comment text; persistence: JSON-friendly, collision-free keys.
"""
from __future__ import annotations

import json
import random
import re
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

# Both contain whitespace, so no whitespace-split corpus token can equal them.
START = "< START >"
END = "< END >"
CONTROL_TOKENS = frozenset((START, END))

# Control tokens as written by the legacy single-document store.
LEGACY_CONTROL_TOKENS = {"<START>": START, "<END>": END}

DEFAULT_MAX_STEPS = 200

ChainKey = Tuple[str, ...]

_SENTENCE_BREAK = re.compile(r"(?<=[.!?])\s+")


class ChainLengthError(ValueError):
    """Raised when a key or update does not match the map's chain length."""


class TokenStream:
    """
    Lazy, restartable stream of padded token sequences.

    Every iteration re-reads the text, so the same stream can be walked
    more than once (e.g. to count and then to train).
    """

    def __init__(self, text: str, chain_length: int):
        if chain_length < 1:
            raise ChainLengthError(f"chain length must be >= 1, got {chain_length}")
        self.text = text or ""
        self.chain_length = chain_length

    def __iter__(self) -> Iterator[List[str]]:
        for unit in self._units():
            tokens = unit.split()
            if not tokens:
                continue
            yield [START] * self.chain_length + tokens + [END]

    def _units(self) -> Iterator[str]:
        for line in self.text.splitlines():
            for sentence in _SENTENCE_BREAK.split(line):
                yield sentence


class TransitionMap:
    """
    Chain key -> observed successor tokens.

    Successors are kept with repetition, so list length and duplicate
    count carry the observed frequency used at generation time.
    """

    def __init__(self, chain_length: int):
        if chain_length < 1:
            raise ChainLengthError(f"chain length must be >= 1, got {chain_length}")
        self.chain_length = chain_length
        self.transitions: Dict[ChainKey, List[str]] = {}

    def add(self, key: Iterable[str], successor: str):
        key = tuple(key)
        if len(key) != self.chain_length:
            raise ChainLengthError(
                f"key {key!r} has {len(key)} tokens, map expects {self.chain_length}"
            )
        self.transitions.setdefault(key, []).append(successor)

    def successors(self, key: ChainKey) -> List[str]:
        return self.transitions.get(tuple(key), [])

    def __len__(self) -> int:
        return len(self.transitions)

    def __contains__(self, key) -> bool:
        return tuple(key) in self.transitions

    def __iter__(self) -> Iterator[ChainKey]:
        return iter(self.transitions)

    def items(self):
        return self.transitions.items()

    # --- metrics ---
    def successor_count(self) -> int:
        return sum(len(v) for v in self.transitions.values())

    def branching_factor(self) -> float:
        """Average successor-list length; 0.0 for an empty map."""
        if not self.transitions:
            return 0.0
        return self.successor_count() / len(self.transitions)

    def completed_sequences(self) -> int:
        """Number of END tokens recorded, i.e. sequences that were learned to completion."""
        return sum(v.count(END) for v in self.transitions.values())

    def same_as(self, other: "TransitionMap") -> bool:
        """True when both maps hold the same keys with the same successor multisets."""
        if self.chain_length != other.chain_length:
            return False
        if self.transitions.keys() != other.transitions.keys():
            return False
        return all(
            sorted(v) == sorted(other.transitions[k]) for k, v in self.transitions.items()
        )

    # --- persistence ---
    def to_dict(self) -> Dict[str, List[str]]:
        return {encode_key(k): list(v) for k, v in self.transitions.items()}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, ensure_ascii=False)

    @classmethod
    def from_dict(
        cls,
        raw: Dict[str, List[str]],
        chain_length: Optional[int] = None,
        legacy: bool = False,
    ) -> "TransitionMap":
        """
        Load a serialized map.

        Args:
            raw: Encoded key -> successor list
            chain_length: Expected K. Inferred from the first key when omitted;
                required for an empty map.
            legacy: Translate the legacy store's "<START>"/"<END>" strings
                into control tokens

        Raises:
            ChainLengthError: a key length disagrees with K
            ValueError: the document is not a key -> list mapping
        """
        if not isinstance(raw, dict):
            raise ValueError("transition map must be a JSON object")
        decoded = [(decode_key(k, legacy), v) for k, v in raw.items()]
        if chain_length is None:
            if not decoded:
                raise ChainLengthError("cannot infer chain length from an empty map")
            chain_length = len(decoded[0][0])

        tmap = cls(chain_length)
        for key, successors in decoded:
            if not isinstance(successors, list) or not successors:
                raise ValueError(f"key {key!r} has no successors")
            for token in successors:
                token = str(token)
                if legacy:
                    token = LEGACY_CONTROL_TOKENS.get(token, token)
                tmap.add(key, token)
        return tmap

    @classmethod
    def from_json(cls, s: str, chain_length: Optional[int] = None) -> "TransitionMap":
        return cls.from_dict(json.loads(s), chain_length)


def encode_key(key: ChainKey) -> str:
    return json.dumps(list(key), ensure_ascii=False)


def decode_key(raw: str, legacy: bool = False) -> ChainKey:
    if raw.startswith("[") and not legacy:
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            value = None
        if isinstance(value, list):
            return tuple(str(t) for t in value)
    # Legacy files joined tokens with a bare comma.
    return tuple(LEGACY_CONTROL_TOKENS.get(t, t) for t in raw.split(","))


def update_map(text: str, tmap: TransitionMap, chain_length: int) -> TransitionMap:
    """
    Record every window of ``text`` into ``tmap`` in place.

    Args:
        text: Newline-joined comments
        tmap: Map to grow
        chain_length: Must equal ``tmap.chain_length``

    Returns:
        The same map, for chaining
    """
    if chain_length != tmap.chain_length:
        raise ChainLengthError(
            f"update with chain length {chain_length} on a map of chain length {tmap.chain_length}"
        )
    for tokens in TokenStream(text, chain_length):
        for i in range(len(tokens) - chain_length):
            tmap.add(tokens[i : i + chain_length], tokens[i + chain_length])
    return tmap


def build_map(text: str, chain_length: int) -> TransitionMap:
    return update_map(text, TransitionMap(chain_length), chain_length)


def generate_message(
    tmap: TransitionMap,
    rng: Optional[random.Random] = None,
    max_steps: int = DEFAULT_MAX_STEPS,
) -> str:
    """
    Random walk from the all-START key until END, a dead end, or ``max_steps``.

    Args:
        tmap: Populated transition map
        rng: Randomness source (seed it for reproducible output)
        max_steps: Hard cap on emitted tokens

    Returns:
        Space-joined generated tokens, "" when nothing could be produced
    """
    rng = rng or random.Random()
    key: ChainKey = (START,) * tmap.chain_length
    output: List[str] = []

    for _ in range(max_steps):
        choices = tmap.successors(key)
        if not choices:
            break
        token = rng.choice(choices)
        if token == END:
            break
        if token not in CONTROL_TOKENS:
            output.append(token)
        key = key[1:] + (token,)

    return " ".join(output)
