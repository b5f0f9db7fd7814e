"""
Stemming Module.

Maps inflected surface forms to canonical stems so that label matching
survives Hungarian declension ("számla", "számlát", "számlák" all count
as the stem "szamla").

The reverse map is built once per language and never changes
afterwards; lookups are safe from any number of threads.

Author: ML Engineering Team
"""

import re
from functools import lru_cache
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Iterable, Pattern

from bill_extraction.utils.helpers import fold_accents

TOKEN_SEPARATORS = re.compile(r'[.,;:!?()\[\]{}"\'*]')

# Minimum length for prefix matching in either direction
MIN_FORM_PREFIX = 3
MIN_TOKEN_PREFIX = 4

NEVER_MATCHES = re.compile(r"(?!)")


def tokenize(text: str) -> List[str]:
    """
    Split text into lowercase tokens on whitespace and punctuation.

    Example:
        >>> tokenize("Fizetési határidő: 2025.05.05")
        ['fizetési', 'határidő', '2025', '05', '05']
    """
    if not text:
        return []
    return TOKEN_SEPARATORS.sub(' ', text.lower()).split()


@lru_cache(maxsize=256)
def _compile_alternation(forms: Tuple[str, ...]) -> Pattern:
    body = '|'.join(re.escape(form) for form in forms)
    return re.compile(rf'(?<!\w)(?:{body})\w*', re.IGNORECASE)


class StemIndex:
    """
    Immutable stem dictionary with a precomputed reverse map.

    Attributes:
        forms: Stem to accepted surface forms (read-only)

    Example:
        >>> index = StemIndex({"szamla": ["számla", "számlát"]})
        >>> index.find_stem("Számlát")
        'szamla'
        >>> index.find_stem("számlázás")
        'szamla'
    """

    def __init__(self, stems: Mapping[str, Sequence[str]]) -> None:
        reverse: Dict[str, List[str]] = {}
        forms: Dict[str, Tuple[str, ...]] = {}

        for stem, surface_forms in stems.items():
            forms[stem] = tuple(surface_forms)
            for form in (stem, *surface_forms):
                key = fold_accents(form)
                owners = reverse.setdefault(key, [])
                if stem not in owners:
                    owners.append(stem)

        self.forms: Mapping[str, Tuple[str, ...]] = MappingProxyType(forms)
        self._reverse: Mapping[str, Tuple[str, ...]] = MappingProxyType(
            {key: tuple(owners) for key, owners in reverse.items()}
        )
        # Longest first so prefix matching prefers the most specific form
        self._prefix_keys: Tuple[str, ...] = tuple(
            sorted(self._reverse, key=len, reverse=True)
        )

    def __len__(self) -> int:
        return len(self.forms)

    def __contains__(self, stem: str) -> bool:
        return stem in self.forms

    def stems_for(self, token: str) -> Tuple[str, ...]:
        """
        All stems a token belongs to.

        Exact (accent-folded) lookup first, then prefix matching: the
        token extends a known form, or a token of 4+ characters is a
        truncation of one.
        """
        key = fold_accents(token)
        if not key:
            return ()

        exact = self._reverse.get(key)
        if exact:
            return exact

        for form in self._prefix_keys:
            if len(form) >= MIN_FORM_PREFIX and key.startswith(form):
                return self._reverse[form]
            if len(key) >= MIN_TOKEN_PREFIX and form.startswith(key):
                return self._reverse[form]
        return ()

    def find_stem(self, token: str) -> Optional[str]:
        """Primary stem of a token, or None."""
        stems = self.stems_for(token)
        return stems[0] if stems else None

    def variations(self, stem: str) -> Tuple[str, ...]:
        """Surface forms registered for a stem (empty for unknown stems)."""
        return self.forms.get(stem, ())

    def stems_in(self, tokens: Iterable[str]) -> set:
        """Set of stems present among tokens."""
        found = set()
        for token in tokens:
            found.update(self.stems_for(token))
        return found

    def match_ratio(self, text: str, stems: Sequence[str]) -> float:
        """
        Fraction of the given stems present in the text.

        Returns:
            0.0 when stems is empty or none are found, 1.0 when all are.
        """
        targets = set(stems)
        if not targets:
            return 0.0
        found = self.stems_in(tokenize(text)) & targets
        return len(found) / len(targets)

    def pattern(self, stems: Sequence[str]) -> Pattern:
        """
        Regex matching any surface form (accented or folded) of the stems.

        The match extends over the rest of the word so that unlisted
        suffixes are covered as well.
        """
        forms = set()
        for stem in stems:
            for form in (stem, *self.variations(stem)):
                forms.add(form.lower())
                forms.add(fold_accents(form))
        if not forms:
            return NEVER_MATCHES
        ordered = tuple(sorted(forms, key=lambda f: (-len(f), f)))
        return _compile_alternation(ordered)
