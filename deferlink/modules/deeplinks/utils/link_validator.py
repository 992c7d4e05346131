"""
Deep link validation and parsing.

Three tiers, first match wins:
- custom scheme links (myapp://content?id=123)
- web links on a configured domain and path (https://myapp.com/app/content?id=123)
- regex fallback that finds either kind of link inside free text; the
  matched text alone must then pass the checks above
"""
from __future__ import annotations

import re
from collections.abc import Iterator
from typing import Optional
from urllib.parse import SplitResult, parse_qsl, urlsplit

from ..domain.models import DeepLinkConfig, ValidatedLink
from ...shared.utils.logger import ConditionalLogger


WEB_SCHEMES = frozenset({"http", "https"})
ID_PARAMETER = "id"
WHITESPACE = re.compile(r"\s")


class LinkValidator:
    def __init__(self, config: DeepLinkConfig, logger: Optional[ConditionalLogger] = None) -> None:
        self._config = config
        self._logger = (logger or ConditionalLogger(enabled=config.enable_logging, external=config.logger)).child(
            "LinkValidator"
        )
        self._scheme = config.app_scheme.lower()
        self._domains = frozenset(domain.lower() for domain in config.valid_domains)
        self._route_keys = tuple(path.strip("/").lower() for path in config.valid_paths)
        self._patterns = self._build_patterns()

    def is_valid_deep_link(self, link: str) -> bool:
        """
        Check whether ``link`` is an in-scope deep link for this app.

        Never raises: unparsable input falls through to the regex tier.
        """
        return self._resolve(link) is not None

    def validate(self, link: str) -> Optional[ValidatedLink]:
        """
        Validate ``link`` and parse the accepted link text.

        When the link was found inside surrounding text, ``raw`` is the
        matched link alone.
        """
        resolved = self._resolve(link)
        if resolved is None:
            return None
        parameters = self.extract_parameters(resolved)
        return ValidatedLink(raw=resolved, id=parameters.get(ID_PARAMETER), parameters=parameters)

    def extract_id(self, link: str) -> Optional[str]:
        """
        Return the ``id`` query parameter, or None when absent or unparsable.

        Examples:
            >>> validator.extract_id("myapp://content?id=123&other=value")
            '123'
        """
        return self.extract_parameters(link).get(ID_PARAMETER)

    def extract_parameters(self, link: str) -> dict[str, str]:
        """
        Return all query parameters of ``link``; the last value of a repeated
        key wins. Returns an empty dict when the link cannot be parsed.
        """
        try:
            query = urlsplit(link.strip()).query
            return dict(parse_qsl(query, keep_blank_values=True))
        except ValueError as exc:
            self._logger.debug(f"Could not extract parameters from {link!r}: {exc}")
            return {}

    def validation_summary(self) -> dict[str, object]:
        return {
            "app_scheme": self._config.app_scheme,
            "valid_domains": list(self._config.valid_domains),
            "valid_paths": list(self._config.valid_paths),
            "custom_scheme_pattern": f"{self._config.app_scheme}://host?id=value",
            "web_link_patterns": [
                f"https://{domain}{path}?id=value"
                for domain in self._config.valid_domains
                for path in self._config.valid_paths
            ],
        }

    def _resolve(self, link: str) -> Optional[str]:
        """Return the link text that passed validation, or None."""
        if not link:
            return None
        candidate = link.strip()
        # Links never contain whitespace; anything else is free text
        if candidate and not WHITESPACE.search(candidate):
            try:
                parts = urlsplit(candidate)
            except ValueError as exc:
                self._logger.debug(f"Could not parse {link!r} ({exc}), trying patterns")
            else:
                if parts.scheme == self._scheme or parts.scheme in WEB_SCHEMES:
                    return candidate if self._validate_parts(parts) else None

        # The matched text alone must pass the structural checks, id included
        for matched in self._pattern_matches(link):
            try:
                parts = urlsplit(matched)
            except ValueError:
                continue
            if self._validate_parts(parts):
                self._logger.debug(f"Valid pattern-based deep link: {matched}")
                return matched
        self._logger.debug(f"No matching patterns for link: {link}")
        return None

    def _validate_parts(self, parts: SplitResult) -> bool:
        if parts.scheme == self._scheme:
            return self._validate_custom_scheme(parts)
        if parts.scheme in WEB_SCHEMES:
            return self._validate_web_link(parts)
        return False

    def _validate_custom_scheme(self, parts: SplitResult) -> bool:
        if not self._has_id(parts):
            self._logger.debug(f"Custom scheme link missing id parameter: {parts.geturl()}")
            return False

        host = (parts.hostname or "").lower()
        # Hosts double as route keys; a root path ("/") accepts any host.
        if host and not any(key == "" or key == host for key in self._route_keys):
            self._logger.debug(f"Custom scheme host {host!r} not in valid paths {list(self._config.valid_paths)}")
            return False

        self._logger.debug(f"Valid custom scheme deep link: {parts.geturl()}")
        return True

    def _validate_web_link(self, parts: SplitResult) -> bool:
        host = (parts.hostname or "").lower()
        if host not in self._domains:
            self._logger.debug(f"Domain {host!r} not in valid domains {list(self._config.valid_domains)}")
            return False

        if not any(path in parts.path for path in self._config.valid_paths):
            self._logger.debug(f"Path {parts.path!r} does not match valid paths {list(self._config.valid_paths)}")
            return False

        if not self._has_id(parts):
            self._logger.debug(f"Web link missing id parameter: {parts.geturl()}")
            return False

        self._logger.debug(f"Valid web deep link: {parts.geturl()}")
        return True

    def _pattern_matches(self, link: str) -> Iterator[str]:
        for pattern in self._patterns:
            for match in pattern.finditer(link):
                yield match.group(0)

    def _build_patterns(self) -> tuple[re.Pattern[str], ...]:
        patterns = [re.compile(rf"{re.escape(self._config.app_scheme)}://\w+\?id=\w+", re.IGNORECASE)]
        for domain in self._config.valid_domains:
            for path in self._config.valid_paths:
                patterns.append(
                    re.compile(
                        rf"https?://{re.escape(domain)}{re.escape(path)}\S*[?&]id=\w+",
                        re.IGNORECASE,
                    )
                )
        return tuple(patterns)

    @staticmethod
    def _has_id(parts: SplitResult) -> bool:
        params = dict(parse_qsl(parts.query, keep_blank_values=True))
        return bool(params.get(ID_PARAMETER))
