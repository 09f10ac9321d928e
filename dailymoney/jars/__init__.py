"""Jar catalog and allocation arithmetic."""

from dailymoney.jars.allocation import (
    AllocationCalculator,
    InvalidAmountError,
    allocate,
    to_amount,
)
from dailymoney.jars.catalog import (
    DEFAULT_CATALOG,
    JAR_DEFINITIONS,
    JarCatalog,
    JarDefinition,
    UnknownJarError,
    get_catalog,
)

__all__ = [
    "AllocationCalculator",
    "DEFAULT_CATALOG",
    "InvalidAmountError",
    "JAR_DEFINITIONS",
    "JarCatalog",
    "JarDefinition",
    "UnknownJarError",
    "allocate",
    "get_catalog",
    "to_amount",
]
