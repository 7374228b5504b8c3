"""Unit tests for payment-to-plot matching."""

import pytest

from snt_billing.models.payment import MatchStatus
from snt_billing.services.matcher import (
    PaymentMatcher,
    extract_phone_suffixes,
    extract_plot_numbers,
    manual_match,
)
from snt_billing.services.plot_directory import PlotDirectory, PlotEntry


@pytest.fixture
def matcher():
    directory = PlotDirectory(
        [
            PlotEntry(1, "Берёзовая", "12", "Иванов Иван Иванович", "+7 (916) 123-45-67"),
            PlotEntry(2, "Берёзовая", "14", "Петрова Анна Сергеевна", "8 903 555-12-34"),
            PlotEntry(3, "Сосновая", "12", "Сидоров Пётр", None),
        ]
    )
    return PaymentMatcher(directory)


class TestExtractors:
    def test_plot_number_forms(self):
        assert extract_plot_numbers("участок 12") == ["12"]
        assert extract_plot_numbers("уч.7") == ["7"]
        assert extract_plot_numbers("за №015") == ["15"]
        assert extract_plot_numbers("у-3") == ["3"]

    def test_no_numbers(self):
        assert extract_plot_numbers("членский взнос 2025") == []

    def test_phone_suffixes(self):
        assert extract_phone_suffixes("тел. +7 903 555-12-34") == ["1234"]
        assert extract_phone_suffixes("сумма 1500") == []


class TestLabelMatching:
    def test_exact_label(self, matcher):
        result = matcher.match(label="ул. Берёзовая, д. 12")
        assert result.status == MatchStatus.MATCHED
        assert result.plot_id == 1
        assert result.confidence == 1.0
        assert result.reason == "auto"
        assert result.signals == ["label_exact"]

    def test_fuzzy_label(self, matcher):
        result = matcher.match(label="Березавая 14")
        assert result.plot_id == 2
        assert result.signals == ["label_fuzzy"]
        assert 0.85 <= result.confidence <= 0.95


class TestSignalMatching:
    def test_plot_number_in_purpose(self, matcher):
        result = matcher.match(purpose="Оплата за участок 14")
        assert result.plot_id == 2
        assert result.confidence == 0.9
        assert result.signals == ["plot_number"]

    def test_shared_number_is_ambiguous(self, matcher):
        result = matcher.match(purpose="членские уч. 12")
        assert result.status == MatchStatus.UNMATCHED
        assert result.plot_id is None
        assert result.reason == "ambiguous"
        assert result.candidates == [1, 3]
        assert result.confidence == 0.4

    def test_street_narrows_shared_number(self, matcher):
        result = matcher.match(purpose="уч. 12, Сосновая")
        assert result.plot_id == 3
        assert result.confidence == 0.9

    def test_owner_breaks_tie(self, matcher):
        result = matcher.match(purpose="членские уч. 12 Иванов Иван Иванович")
        assert result.plot_id == 1
        assert result.confidence == 0.8
        assert result.signals == ["owner_name", "plot_number"]

    def test_owner_in_purpose(self, matcher):
        result = matcher.match(purpose="членский взнос Петрова Анна Сергеевна")
        assert result.plot_id == 2
        assert result.confidence == 0.7

    def test_phone_suffix(self, matcher):
        result = matcher.match(purpose="тел. +7 903 555-12-34")
        assert result.plot_id == 2
        assert result.signals == ["phone_last4"]
        assert result.confidence == 0.6


class TestFallbacks:
    def test_payer_contains_owner_name(self, matcher):
        result = matcher.match(label=None, purpose="Членский взнос", payer_name="ИВАНОВ ИВАН")
        assert result.status == MatchStatus.MATCHED
        assert result.plot_id == 1
        assert result.signals == ["owner_name"]
        assert result.confidence == 0.7

    def test_payer_name_with_extra_words(self, matcher):
        result = matcher.match(purpose="Целевой взнос", payer_name="ИП Петрова Анна Сергеевна")
        assert result.plot_id == 2
        assert result.signals == ["owner_name"]

    def test_payer_and_plot_number_agree(self, matcher):
        result = matcher.match(purpose="участок 12", payer_name="Сидоров Пётр")
        assert result.plot_id == 3
        assert result.confidence == 0.8

    def test_payer_only(self, matcher):
        result = matcher.match(payer_name="Петрова Анна Сергевна")
        assert result.plot_id == 2
        assert result.signals == ["payer_only"]
        assert result.confidence == 0.5

    def test_payer_unlike_any_owner(self, matcher):
        result = matcher.match(purpose="Взнос", payer_name="Кузнецова Ольга")
        assert result.status == MatchStatus.UNMATCHED

    def test_nothing_found(self, matcher):
        result = matcher.match(purpose="Возврат")
        assert result.status == MatchStatus.UNMATCHED
        assert result.candidates == []
        assert result.reason is None
        assert result.confidence is None

    def test_manual_match(self):
        result = manual_match(5)
        assert result.is_matched
        assert result.reason == "manual"
        assert result.confidence == 1.0
