"""
Pattern Registry Module.

Holds the BillPatterns of every language in registration order. The
registry is built once at startup and handed to the orchestrator; it is
only read afterwards, so concurrent extractions share it without locks.

Author: ML Engineering Team
"""

from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple, Union

from bill_extraction.utils.logger import get_logger
from bill_extraction.utils.exceptions import DuplicatePatternError
from .bill_pattern import BillPattern

# Initialize module logger
logger = get_logger(__name__)


class PatternRegistry:
    """
    Ordered per-language collection of bill patterns.

    Registration order is the tie-break between equally confident
    matches: earlier patterns win.

    Example:
        >>> registry = PatternRegistry()
        >>> registry.register(pattern)
        >>> registry.get_by_language("hu")
        (BillPattern(id='mvm-bill-hu', language='hu'),)
    """

    def __init__(self, patterns: Optional[Iterable[BillPattern]] = None) -> None:
        self._by_language: Dict[str, List[BillPattern]] = {}
        self._index: Dict[Tuple[str, str], BillPattern] = {}
        self._order: List[BillPattern] = []

        for pattern in patterns or ():
            self.register(pattern)

    def register(self, pattern: BillPattern) -> None:
        """
        Add a pattern.

        Raises:
            DuplicatePatternError: If the id is already registered for
                the pattern's language.
        """
        key = (pattern.language, pattern.id)
        if key in self._index:
            raise DuplicatePatternError(pattern.id, pattern.language)

        self._index[key] = pattern
        self._by_language.setdefault(pattern.language, []).append(pattern)
        self._order.append(pattern)
        logger.debug(f"Registered pattern {pattern.id} ({pattern.language})")

    def register_all(self, patterns: Iterable[BillPattern]) -> int:
        """Register several patterns; returns how many were added."""
        count = 0
        for pattern in patterns:
            self.register(pattern)
            count += 1
        return count

    def get_by_language(self, language: str) -> Tuple[BillPattern, ...]:
        """Patterns of a language in registration order (empty if none)."""
        return tuple(self._by_language.get(language, ()))

    def get_all(self) -> Tuple[BillPattern, ...]:
        """Every pattern in registration order."""
        return tuple(self._order)

    def get(self, language: str, pattern_id: str) -> Optional[BillPattern]:
        return self._index.get((language, pattern_id))

    def languages(self) -> Tuple[str, ...]:
        """Languages with at least one pattern, in first-registration order."""
        return tuple(self._by_language)

    def order_of(self, pattern: BillPattern) -> int:
        """Registration position of a pattern within its language."""
        patterns = self._by_language.get(pattern.language, [])
        for position, candidate in enumerate(patterns):
            if candidate.id == pattern.id:
                return position
        return len(patterns)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, key: Tuple[str, str]) -> bool:
        return key in self._index

    def __iter__(self):
        return iter(self._order)

    def __repr__(self) -> str:
        counts = ", ".join(f"{lang}={len(p)}" for lang, p in self._by_language.items())
        return f"PatternRegistry({counts})"

    @classmethod
    def from_directory(
        cls,
        directory: Union[str, Path],
        shapes_by_language: Optional[Mapping[str, Mapping[str, str]]] = None,
        registry: Optional['PatternRegistry'] = None
    ) -> 'PatternRegistry':
        """
        Build (or extend) a registry from every *.yaml file in a directory.

        Files are loaded in name order so registration order is stable.

        Args:
            directory: Directory containing pattern files.
            shapes_by_language: Value shapes per language used to expand
                                ${shape} references.
            registry: Registry to extend; a new one is created if None.

        Raises:
            PatternDefinitionError: If a file holds an invalid pattern.
            DuplicatePatternError: If an id repeats within a language.
        """
        from .loader import load_pattern_file

        registry = registry if registry is not None else cls()
        directory = Path(directory)

        if not directory.is_dir():
            logger.warning(f"Pattern directory not found: {directory}")
            return registry

        for path in sorted(directory.glob("*.yaml")):
            added = registry.register_all(load_pattern_file(path, shapes_by_language))
            logger.info(f"Loaded {added} patterns from {path.name}")

        return registry
