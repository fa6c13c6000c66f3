"""
Language registry used to turn a kernel's language into file extensions.

The registry is loaded from the pygments lexer table, which is the same
language database Jupyter uses for syntax highlighting.
"""
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Iterable, Optional, Tuple

from pygments.lexers import get_all_lexers

_GLOB_CHARS = set("*?[]{}")

logger = logging.getLogger("kernelmenu.languages")


@dataclass(frozen=True)
class LanguageSpec:
    """One language known to the host, with its file extensions (no leading dot)."""

    name: str
    aliases: Tuple[str, ...] = ()
    extensions: Tuple[str, ...] = ()


def _extension_from_pattern(pattern: str) -> Optional[str]:
    # Only plain "*.ext" patterns name an extension; "SConstruct" or "*.[ch]" don't.
    if not pattern.startswith("*."):
        return None
    extension = pattern[2:]
    if not extension or _GLOB_CHARS.intersection(extension):
        return None
    return extension


class LanguageRegistry:
    """
    A case-insensitive lookup from language name to file extensions.
    """

    def __init__(self, languages: Iterable[LanguageSpec] = ()):
        self.languages: Tuple[LanguageSpec, ...] = tuple(languages)

    @classmethod
    def from_pygments(cls) -> "LanguageRegistry":
        """
        Build a registry from every lexer pygments knows about.

        Returns:
            LanguageRegistry: A registry with one entry per lexer.
        """
        languages = []
        for name, aliases, filenames, _mimetypes in get_all_lexers():
            extensions = []
            for pattern in filenames:
                extension = _extension_from_pattern(pattern)
                if extension is not None:
                    extensions.append(extension)
            languages.append(LanguageSpec(name=name, aliases=tuple(aliases), extensions=tuple(extensions)))

        logger.debug(f"Loaded {len(languages)} languages from pygments")
        return cls(languages)

    def find(self, language: Optional[str]) -> Optional[LanguageSpec]:
        """
        Find the registry entry for a language tag.

        Names are matched case-insensitively and the last matching entry wins.
        Aliases are only consulted when no name matches.

        Args:
            language: Free-form language tag reported by a kernelspec

        Returns:
            LanguageSpec or None: The matching entry, if any
        """
        if not language:
            return None

        wanted = language.lower()
        match = None
        for spec in self.languages:
            if spec.name.lower() == wanted:
                match = spec
        if match is not None:
            return match

        for spec in self.languages:
            if wanted in (alias.lower() for alias in spec.aliases):
                return spec
        return None

    def resolve(self, language: Optional[str]) -> Tuple[str, ...]:
        """
        Resolve a language tag to its ordered, de-duplicated file extensions.

        Args:
            language: Free-form language tag reported by a kernelspec

        Returns:
            tuple: Extensions in registry order, empty if the language is unknown
        """
        spec = self.find(language)
        if spec is None:
            return ()
        return tuple(dict.fromkeys(spec.extensions))


@lru_cache(maxsize=1)
def default_registry() -> LanguageRegistry:
    """Process-wide registry loaded from pygments on first use."""
    return LanguageRegistry.from_pygments()


def resolve_extensions(language: Optional[str], registry: Optional[LanguageRegistry] = None) -> Tuple[str, ...]:
    """Resolve a language tag against the given registry or the default one."""
    return (registry or default_registry()).resolve(language)
