"""
Shared fixtures for the bill extraction test suite.

Language processors, the bundled pattern registry and the orchestrator
are built once per session; they are read-only after construction.
"""

import pytest

from bill_extraction.language import load_processors
from bill_extraction.patterns.loader import load_default_registry
from bill_extraction.extraction import ExtractionOrchestrator


MVM_TEXT = """MVM Next Energiakereskedelmi Zrt.
Elszámoló számla
Szolgáltató neve: MVM Next Energiakereskedelmi Zrt. Címe: 1081 Budapest, II. János Pál pápa tér 20.
Számla sorszáma: 845602160521
Számla kelte: 2025.04.15.
Elszámolt időszak: 2025.03.01 - 2025.03.31
Felhasználó azonosító: 3000123456
Fizetendő összeg: 6.364 Ft
Fizetési határidő: 2025.05.05.
Villamos energia fogyasztás"""

TWO_BILLS_TEXT = """Fizetendő összeg: 12.500 Ft
Fizetési határidő: 2025.06.10.

Fizetendő összeg: 8.200 Ft
Fizetési határidő: 2025.07.10."""

UNRELATED_TEXT = "Hello world, nothing to see here."


@pytest.fixture(scope="session")
def processors():
    return load_processors(["en", "hu"])


@pytest.fixture(scope="session")
def hu(processors):
    return processors["hu"]


@pytest.fixture(scope="session")
def en(processors):
    return processors["en"]


@pytest.fixture(scope="session")
def registry(processors):
    shapes = {code: p.resources.shapes for code, p in processors.items()}
    return load_default_registry(shapes, extra_directories=[])


@pytest.fixture(scope="session")
def orchestrator(registry, processors):
    orchestrator = ExtractionOrchestrator(registry, processors)
    yield orchestrator
    orchestrator.close()


@pytest.fixture
def mvm_text():
    return MVM_TEXT


@pytest.fixture
def two_bills_text():
    return TWO_BILLS_TEXT


@pytest.fixture
def unrelated_text():
    return UNRELATED_TEXT
