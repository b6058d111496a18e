"""Branch name derivation.

Two strategies produce the slug part of a branch name:

- Deterministic: normalize the request text into a lowercase,
  hyphen-separated token of bounded length.
- Assisted: ask a fast model for a 2-4 word name. Any failure (non-zero
  exit, spawn error, timeout, empty answer) falls back to the
  deterministic slug of the same text; the outcome records which
  strategy produced the name and why a fallback happened.

Both strategies append ``-<epoch millis>``. The ``claude/`` prefix is
added by the caller.
"""

import logging
import re
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from src.smarty.config import NamingStrategy
from src.smarty.runner.claude import ClaudeRunner

logger = logging.getLogger(__name__)

SLUG_MAX_LENGTH = 50
ASSISTED_SLUG_MAX_LENGTH = 40
EMPTY_SLUG = "change"

_NON_SLUG_CHARS = re.compile(r"[^\w\s-]", re.ASCII)
_SEPARATORS = re.compile(r"[\s_-]+", re.ASCII)

NAMING_PROMPT = """Generate a short git branch name for the following change request.
Use 2-4 lowercase words separated by hyphens. Respond with the branch name only, no prefix, quotes or explanation.

Request: {request}"""


def slugify(text: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """Normalize free text into a branch-safe slug.

    Lower-cases, strips characters other than ASCII word characters,
    whitespace and hyphens, collapses runs of whitespace, underscores and
    hyphens into one hyphen, trims hyphens from both ends, and truncates.

    Args:
        text: Arbitrary request text.
        max_length: Upper bound on the slug length.

    Returns:
        Slug matching ``[a-z0-9-]{0,max_length}``; may be empty.
    """
    slug = text.lower().strip()
    slug = _NON_SLUG_CHARS.sub("", slug)
    slug = _SEPARATORS.sub("-", slug)
    slug = slug.strip("-")
    return slug[:max_length].rstrip("-")


@dataclass(frozen=True)
class NamingResult:
    """Outcome of naming one request.

    Attributes:
        slug: The descriptive part of the name.
        timestamp_ms: Millisecond stamp that makes the name unique.
        strategy: Strategy that actually produced the slug.
        fallback_reason: Why assisted naming fell back, if it did.
    """

    slug: str
    timestamp_ms: int
    strategy: NamingStrategy
    fallback_reason: Optional[str] = None

    @property
    def identifier(self) -> str:
        """Branch identifier without the ``claude/`` prefix."""
        return f"{self.slug}-{self.timestamp_ms}"


class AssistedNamer:
    """Asks a fast model for a short branch name.

    Attributes:
        runner: Claude runner used for the one-shot naming call.
        working_directory: Directory the naming call runs in.
        model: Model alias for naming (e.g. "haiku").
        timeout_seconds: Bound on the naming call.
    """

    def __init__(
        self,
        runner: ClaudeRunner,
        working_directory: Path,
        model: str = "haiku",
        timeout_seconds: float = 30,
    ):
        self.runner = runner
        self.working_directory = Path(working_directory)
        self.model = model
        self.timeout_seconds = timeout_seconds

    async def suggest(self, text: str) -> tuple[Optional[str], Optional[str]]:
        """Ask the model for a slug.

        Returns:
            ``(slug, None)`` on success or ``(None, reason)`` on failure.
        """
        result = await self.runner.run(
            NAMING_PROMPT.format(request=text),
            self.working_directory,
            allowed_tools=(),
            model=self.model,
            timeout_seconds=self.timeout_seconds,
        )

        if not result.success:
            return None, f"naming model exited with code {result.exit_code}"

        slug = self._parse_answer(result.stdout)
        if not slug:
            return None, "naming model returned no usable name"
        return slug, None

    def _parse_answer(self, output: str) -> str:
        """Take the first non-empty line and normalize it into a slug."""
        for line in output.splitlines():
            candidate = line.strip().strip("`'\"")
            if candidate.startswith("claude/"):
                candidate = candidate[len("claude/"):]
            if candidate:
                return slugify(candidate, ASSISTED_SLUG_MAX_LENGTH)
        return ""


class BranchNamer:
    """Derives unique branch identifiers from request text.

    Timestamps issued by one namer strictly increase, so two requests
    named within the same millisecond still get distinct names.

    Attributes:
        strategy: Configured naming strategy.
        assisted: Assisted namer; required for the assisted strategy.
    """

    def __init__(
        self,
        strategy: NamingStrategy = NamingStrategy.DETERMINISTIC,
        assisted: Optional[AssistedNamer] = None,
        clock: Callable[[], float] = time.time,
    ):
        if strategy == NamingStrategy.ASSISTED and assisted is None:
            raise ValueError("assisted naming requires an AssistedNamer")
        self.strategy = strategy
        self.assisted = assisted
        self._clock = clock
        self._last_timestamp_ms = 0

    async def generate(self, text: str) -> NamingResult:
        """Name a request using the configured strategy.

        Never raises for model failures; the assisted strategy degrades
        to the deterministic slug.
        """
        if self.strategy == NamingStrategy.ASSISTED:
            slug, reason = await self.assisted.suggest(text)
            if slug:
                return self._result(slug, NamingStrategy.ASSISTED)

            logger.warning(
                "Assisted branch naming failed, using deterministic name",
                extra={"reason": reason},
            )
            return self._result(
                self._deterministic_slug(text),
                NamingStrategy.DETERMINISTIC,
                fallback_reason=reason,
            )

        return self._result(
            self._deterministic_slug(text), NamingStrategy.DETERMINISTIC
        )

    def _deterministic_slug(self, text: str) -> str:
        return slugify(text) or EMPTY_SLUG

    def _result(
        self,
        slug: str,
        strategy: NamingStrategy,
        fallback_reason: Optional[str] = None,
    ) -> NamingResult:
        return NamingResult(
            slug=slug,
            timestamp_ms=self._next_timestamp_ms(),
            strategy=strategy,
            fallback_reason=fallback_reason,
        )

    def _next_timestamp_ms(self) -> int:
        now_ms = int(self._clock() * 1000)
        if now_ms <= self._last_timestamp_ms:
            now_ms = self._last_timestamp_ms + 1
        self._last_timestamp_ms = now_ms
        return now_ms
