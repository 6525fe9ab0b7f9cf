"""
Terminology Systems

Alias registry mapping short system names (namaste, unani, icd11-tm2,
icd11) to canonical CodeSystem URLs, plus the dual-coding families.
"""

from tmbridge.config import (
    ICD11_BROWSER_URL,
    ICD11_TM2_URL,
    NAMASTE_URL,
    UNANI_URL,
    TerminologySettings,
)


TERMINOLOGY_LABELS = {
    NAMASTE_URL: "NAMASTE",
    UNANI_URL: "Unani",
    ICD11_TM2_URL: "ICD-11 TM2",
    ICD11_BROWSER_URL: "ICD-11",
}


class SystemRegistry:
    """
    Resolves system aliases to canonical URLs.

    Aliases are case-insensitive. A value that is already one of the known
    canonical URLs resolves to itself.
    """

    def __init__(
        self,
        aliases: dict[str, str],
        source_systems: list[str] | None = None,
        target_systems: list[str] | None = None,
    ):
        self.aliases = {alias.lower(): url for alias, url in aliases.items()}
        self._urls = set(self.aliases.values())
        self.source_systems = list(source_systems or [NAMASTE_URL, UNANI_URL])
        self.target_systems = list(target_systems or [ICD11_TM2_URL, ICD11_BROWSER_URL])

    @classmethod
    def from_settings(cls, settings: TerminologySettings) -> "SystemRegistry":
        return cls(
            settings.system_aliases,
            source_systems=settings.source_systems,
            target_systems=settings.target_systems,
        )

    def resolve(self, alias: str) -> str | None:
        """Canonical URL for an alias or known URL; None if unknown."""
        if not alias:
            return None
        value = alias.strip()
        if value in self._urls:
            return value
        return self.aliases.get(value.lower())

    def resolve_all(self, aliases: list[str]) -> list[str]:
        """Resolve in order, dropping unknown aliases and repeated URLs."""
        urls: list[str] = []
        for alias in aliases:
            url = self.resolve(alias)
            if url and url not in urls:
                urls.append(url)
        return urls


def terminology_label(url: str) -> str | None:
    """Human label of a domain system ("NAMASTE", "ICD-11 TM2", ...)."""
    return TERMINOLOGY_LABELS.get(url)
