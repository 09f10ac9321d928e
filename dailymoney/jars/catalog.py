"""
Jar Catalog

The six jars of the 6 Jars method, with the fixed share of every income
each one receives. The catalog is compiled in: it is not user-editable and
its percentages must add up to exactly 100.

Jar codes are the only identifiers the rest of the system stores. Every
write that references a jar validates the code here first.
"""

from pydantic import BaseModel, ConfigDict, Field


class UnknownJarError(KeyError):
    """A jar code that is not one of the six catalog jars."""

    def __init__(self, code: object):
        self.code = code
        super().__init__(code)

    def __str__(self) -> str:
        return f"Unknown jar code: {self.code!r}"


class JarDefinition(BaseModel):
    """Static definition of one jar."""

    model_config = ConfigDict(frozen=True)

    code: str = Field(..., min_length=1, max_length=10)
    percentage: int = Field(..., ge=0, le=100)
    name: str = Field(..., description="Display name (Vietnamese)")
    name_en: str = Field(..., description="Display name (English)")
    icon: str = ""
    description: str = ""
    examples: tuple[str, ...] = ()


JAR_DEFINITIONS: tuple[JarDefinition, ...] = (
    JarDefinition(
        code="NEC",
        percentage=55,
        name="Thiết yếu",
        name_en="Necessities",
        icon="🏠",
        description="Daily living essentials",
        examples=("Rent", "Food", "Transport", "Utilities", "Phone", "Internet"),
    ),
    JarDefinition(
        code="FFA",
        percentage=10,
        name="Tự do tài chính",
        name_en="Financial Freedom",
        icon="💰",
        description="Investments that build passive income",
        examples=("Stocks", "Funds", "Real estate", "Crypto", "Business"),
    ),
    JarDefinition(
        code="LTSS",
        percentage=10,
        name="Tiết kiệm dài hạn",
        name_en="Long-term Savings",
        icon="🏦",
        description="Savings for large goals",
        examples=("House", "Car", "Study abroad", "Emergency fund", "Retirement"),
    ),
    JarDefinition(
        code="EDU",
        percentage=10,
        name="Giáo dục",
        name_en="Education",
        icon="📚",
        description="Investing in yourself",
        examples=("Books", "Online courses", "Workshops", "Certificates", "Coaching"),
    ),
    JarDefinition(
        code="PLAY",
        percentage=10,
        name="Giải trí",
        name_en="Play",
        icon="🎮",
        description="Rewarding yourself",
        examples=("Travel", "Shopping", "Restaurants", "Movies", "Spa", "Hobbies"),
    ),
    JarDefinition(
        code="GIVE",
        percentage=5,
        name="Từ thiện",
        name_en="Give",
        icon="❤️",
        description="Helping others",
        examples=("Donations", "Gifts", "Charity", "Family support", "Volunteering"),
    ),
)


class JarCatalog:
    """
    Read-only view over a set of jar definitions.

    The default instance wraps JAR_DEFINITIONS. Tests and alternative
    budgeting schemes may build their own, but the percentages must
    still total 100.
    """

    def __init__(self, definitions: tuple[JarDefinition, ...] = JAR_DEFINITIONS):
        codes = [d.code for d in definitions]
        if len(set(codes)) != len(codes):
            raise ValueError(f"Duplicate jar codes in catalog: {codes}")
        total = sum(d.percentage for d in definitions)
        if total != 100:
            raise ValueError(f"Jar percentages must total 100, got {total}")
        self._definitions = tuple(definitions)
        self._by_code = {d.code: d for d in self._definitions}

    def definitions(self) -> tuple[JarDefinition, ...]:
        """All jars in catalog order."""
        return self._definitions

    def codes(self) -> tuple[str, ...]:
        return tuple(d.code for d in self._definitions)

    def by_code(self, code: str) -> JarDefinition:
        try:
            return self._by_code[code]
        except (KeyError, TypeError):
            raise UnknownJarError(code) from None

    def is_valid_code(self, code: object) -> bool:
        return isinstance(code, str) and code in self._by_code

    def require(self, code: object) -> str:
        """Return `code` if it is a catalog member, else raise UnknownJarError."""
        if not self.is_valid_code(code):
            raise UnknownJarError(code)
        return code

    def total_percentage(self) -> int:
        return sum(d.percentage for d in self._definitions)

    def __iter__(self):
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, code: object) -> bool:
        return self.is_valid_code(code)


DEFAULT_CATALOG = JarCatalog()


def get_catalog() -> JarCatalog:
    """The compiled-in six jar catalog."""
    return DEFAULT_CATALOG
