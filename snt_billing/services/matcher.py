"""Payment-to-plot matcher.

Resolution order for an incoming statement row:

1. Exact label lookup against the plot directory → matched, confidence 1.0.
2. Fuzzy label lookup: same plot number, street name similar enough
   (Jaro-Winkler over normalized street names).
3. Signals from the purpose and payer text: plot numbers ("участок 12",
   "уч. 12", "№12", "У-12", "Берёзовая 12"), owner name mentioned in the
   purpose or contained in (or containing) the payer name, phone last 4 digits.
   One candidate, or one candidate backed by more signals than the rest,
   is a match; several equal candidates are ambiguous.
4. Payer name close to an owner name (Jaro-Winkler) → weak match.

Anything else is unmatched. Automatic matches carry match_reason "auto";
manual overrides always win and carry "manual" with confidence 1.0.
"""

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field

from rapidfuzz.distance import JaroWinkler

from snt_billing.models.payment import MatchStatus
from snt_billing.services.parsers import normalize_text
from snt_billing.services.plot_directory import (
    MIN_NAME_LENGTH,
    PlotDirectory,
    PlotEntry,
    normalize_label,
    normalize_phone,
    split_street_number,
)

logger = logging.getLogger(__name__)

REASON_AUTO = "auto"
REASON_MANUAL = "manual"
REASON_AMBIGUOUS = "ambiguous"

SIGNAL_LABEL_EXACT = "label_exact"
SIGNAL_LABEL_FUZZY = "label_fuzzy"
SIGNAL_PLOT_NUMBER = "plot_number"
SIGNAL_OWNER_NAME = "owner_name"
SIGNAL_PHONE = "phone_last4"
SIGNAL_PAYER_ONLY = "payer_only"

SIGNAL_CONFIDENCE = {
    SIGNAL_PLOT_NUMBER: 0.9,
    SIGNAL_OWNER_NAME: 0.7,
    SIGNAL_PHONE: 0.6,
    SIGNAL_PAYER_ONLY: 0.5,
}
MULTI_SIGNAL_CONFIDENCE = 0.8
AMBIGUOUS_CONFIDENCE = 0.4
STREET_SIMILARITY_THRESHOLD = 0.85
OWNER_SIMILARITY_THRESHOLD = 0.9

_PLOT_NUMBER_PATTERNS = [
    re.compile(r"(?:\bучасток|\bуч\.?|\bу)\s*[-#№]?\s*(\d{1,4})\b", re.IGNORECASE),
    re.compile(r"[№#]\s*(\d{1,4})\b"),
    re.compile(r"\bу-?(\d{1,4})\b", re.IGNORECASE),
]
_PHONE_RE = re.compile(r"\+?\d[\d\s\-()]{8,}\d")
_STREET_NUMBER_RE = re.compile(r"([а-яa-z]{3,})\s+(\d{1,4}[а-я]?)\b")


@dataclass
class MatchResult:
    """Outcome of resolving one payment row to a plot."""

    status: MatchStatus
    plot_id: int | None = None
    candidates: list[int] = field(default_factory=list)
    reason: str | None = None
    confidence: float | None = None
    signals: list[str] = field(default_factory=list)

    @property
    def is_matched(self) -> bool:
        return self.status == MatchStatus.MATCHED and self.plot_id is not None


def unmatched(candidates: list[int] | None = None, reason: str | None = None) -> MatchResult:
    return MatchResult(
        status=MatchStatus.UNMATCHED,
        candidates=sorted(candidates or []),
        reason=reason,
        confidence=AMBIGUOUS_CONFIDENCE if candidates else None,
    )


def manual_match(plot_id: int) -> MatchResult:
    """Result of an operator choosing the plot by hand."""
    return MatchResult(
        status=MatchStatus.MATCHED,
        plot_id=plot_id,
        candidates=[plot_id],
        reason=REASON_MANUAL,
        confidence=1.0,
        signals=[REASON_MANUAL],
    )


def extract_plot_numbers(text: str) -> list[str]:
    """Plot numbers mentioned in payment text, in order of appearance."""
    found: list[str] = []
    for pattern in _PLOT_NUMBER_PATTERNS:
        for match in pattern.finditer(text):
            number = match.group(1).lstrip("0") or "0"
            if number not in found:
                found.append(number)
    return found


def extract_street_numbers(text: str) -> list[tuple[str, str]]:
    """(street word, number) pairs such as "березовая 12" found in free text."""
    return [
        (match.group(1), match.group(2))
        for match in _STREET_NUMBER_RE.finditer(normalize_label(text))
    ]


def extract_phone_suffixes(text: str) -> list[str]:
    """Last four digits of every phone-like sequence in the text."""
    suffixes = []
    for match in _PHONE_RE.finditer(text):
        digits = normalize_phone(match.group(0))
        if len(digits) >= 10 and digits[-4:] not in suffixes:
            suffixes.append(digits[-4:])
    return suffixes


class PaymentMatcher:
    """Resolve statement rows to plots using a directory snapshot."""

    def __init__(self, directory: PlotDirectory):
        self.directory = directory

    def match(
        self,
        label: str | None = None,
        purpose: str | None = None,
        payer_name: str | None = None,
    ) -> MatchResult:
        """Match one row.

        Args:
            label: Plot label column from the statement, if any
            purpose: Payment purpose text
            payer_name: Payer name as printed by the bank

        Returns:
            MatchResult; unmatched results may carry best-guess candidates
        """
        if label:
            plot_id = self.directory.resolve_label(label)
            if plot_id is not None:
                return MatchResult(
                    status=MatchStatus.MATCHED,
                    plot_id=plot_id,
                    candidates=[plot_id],
                    reason=REASON_AUTO,
                    confidence=1.0,
                    signals=[SIGNAL_LABEL_EXACT],
                )
            fuzzy = self._match_label_fuzzy(label)
            if fuzzy is not None:
                return fuzzy

        signals: dict[int, set[str]] = defaultdict(set)
        text = normalize_text(" ".join(part for part in (label, purpose, payer_name) if part))

        for number in extract_plot_numbers(text):
            for entry in self.directory.find_by_number(number):
                signals[entry.plot_id].add(SIGNAL_PLOT_NUMBER)

        for street_word, number in extract_street_numbers(text):
            for entry in self.directory.find_by_number(number):
                street = entry.normalized_street.split()
                if street and JaroWinkler.normalized_similarity(street[-1], street_word) >= (
                    STREET_SIMILARITY_THRESHOLD
                ):
                    signals[entry.plot_id].add(SIGNAL_PLOT_NUMBER)

        for entry in self.directory.find_owner_mentions(purpose):
            signals[entry.plot_id].add(SIGNAL_OWNER_NAME)
        for entry in self.directory.find_owner_by_payer(payer_name):
            signals[entry.plot_id].add(SIGNAL_OWNER_NAME)

        for suffix in extract_phone_suffixes(text):
            for entry in self.directory.find_by_phone_suffix(suffix):
                signals[entry.plot_id].add(SIGNAL_PHONE)

        if signals:
            return self._pick(signals, text)

        by_payer = self._similar_owners(payer_name)
        if len(by_payer) == 1:
            plot_id = by_payer[0].plot_id
            return MatchResult(
                status=MatchStatus.MATCHED,
                plot_id=plot_id,
                candidates=[plot_id],
                reason=REASON_AUTO,
                confidence=SIGNAL_CONFIDENCE[SIGNAL_PAYER_ONLY],
                signals=[SIGNAL_PAYER_ONLY],
            )
        if len(by_payer) > 1:
            return unmatched([entry.plot_id for entry in by_payer], REASON_AMBIGUOUS)

        return unmatched()

    def _similar_owners(self, payer_name: str | None) -> list[PlotEntry]:
        """Owners whose name is close to the payer name, e.g. a misspelt patronymic."""
        needle = normalize_text(payer_name)
        if len(needle) < MIN_NAME_LENGTH:
            return []
        size = len(needle.split())
        found = []
        for entry in self.directory.entries:
            owner = normalize_text(entry.owner_name)
            if len(owner) < MIN_NAME_LENGTH:
                continue
            head = " ".join(owner.split()[:size])
            if JaroWinkler.normalized_similarity(needle, head) >= OWNER_SIMILARITY_THRESHOLD:
                found.append(entry)
        return found

    def _match_label_fuzzy(self, label: str) -> MatchResult | None:
        parts = split_street_number(label)
        if not parts:
            return None
        street, number = parts
        scored = sorted(
            (
                (JaroWinkler.normalized_similarity(street, entry.normalized_street), entry.plot_id)
                for entry in self.directory.find_by_number(number)
            ),
            reverse=True,
        )
        scored = [(score, plot_id) for score, plot_id in scored if score >= STREET_SIMILARITY_THRESHOLD]
        if not scored:
            return None
        if len(scored) > 1 and scored[0][0] == scored[1][0]:
            return unmatched([plot_id for _, plot_id in scored], REASON_AMBIGUOUS)
        best_score, plot_id = scored[0]
        return MatchResult(
            status=MatchStatus.MATCHED,
            plot_id=plot_id,
            candidates=[plot_id],
            reason=REASON_AUTO,
            confidence=round(min(best_score, 0.95), 2),
            signals=[SIGNAL_LABEL_FUZZY],
        )

    def _pick(self, signals: dict[int, set[str]], text: str) -> MatchResult:
        candidates = list(signals)
        if len(candidates) > 1:
            candidates = self._narrow_by_street(candidates, text)

        if len(candidates) > 1:
            ranked = sorted(candidates, key=lambda pid: len(signals[pid]), reverse=True)
            if len(signals[ranked[0]]) > len(signals[ranked[1]]):
                candidates = [ranked[0]]

        if len(candidates) == 1:
            plot_id = candidates[0]
            found = sorted(signals[plot_id])
            if len(found) > 1:
                confidence = MULTI_SIGNAL_CONFIDENCE
            else:
                confidence = SIGNAL_CONFIDENCE[found[0]]
            return MatchResult(
                status=MatchStatus.MATCHED,
                plot_id=plot_id,
                candidates=[plot_id],
                reason=REASON_AUTO,
                confidence=confidence,
                signals=found,
            )

        logger.debug("Ambiguous match: candidates=%s", sorted(candidates))
        return unmatched(candidates, REASON_AMBIGUOUS)

    def _narrow_by_street(self, candidates: list[int], text: str) -> list[int]:
        """Keep candidates whose street is mentioned in the text, if any is."""
        words = text.split()
        kept = []
        for plot_id in candidates:
            entry = self.directory.get(plot_id)
            if entry is None or not entry.normalized_street:
                continue
            size = len(entry.normalized_street.split())
            windows = [" ".join(words[i : i + size]) for i in range(max(len(words) - size + 1, 0))]
            if any(
                JaroWinkler.normalized_similarity(entry.normalized_street, window)
                >= STREET_SIMILARITY_THRESHOLD
                for window in windows
            ):
                kept.append(plot_id)
        return kept or candidates


__all__ = [
    "MatchResult",
    "PaymentMatcher",
    "REASON_AMBIGUOUS",
    "REASON_AUTO",
    "REASON_MANUAL",
    "extract_phone_suffixes",
    "extract_plot_numbers",
    "extract_street_numbers",
    "manual_match",
    "unmatched",
]
