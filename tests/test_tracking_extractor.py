"""
Tests for the generic tracking-number extractor.
"""

import pytest
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from domain.models import Candidate, TrackingResult
from domain.tracking_extractor import (
    extract_all,
    extract_all_sorted,
    find_candidates,
    is_fallback_carrier_sender,
    normalize_tracking_number,
    resolve_candidates,
)


class TestExtractAllScenarios:
    """End-to-end extraction over realistic email text."""

    def test_ups_number_from_ups_sender(self):
        """Test a UPS 1Z number is attributed to UPS."""
        result = extract_all("Your UPS shipment 1Z999AA10123456784 is on its way", "ups.com")

        assert result == {TrackingResult("1Z999AA10123456784", "ups")}

    def test_fedex_sender_waives_context_check(self):
        """Test a 12-digit number from fedex.com is accepted without context."""
        result = extract_all("Tracking: 123456789012", "fedex.com")

        assert result == {TrackingResult("123456789012", "fedex")}

    def test_fedex_sender_full_address(self):
        """Test the sender waiver also applies to full fedex.com addresses."""
        result = extract_all("Tracking: 123456789012", "trackingupdates@fedex.com")

        assert result == {TrackingResult("123456789012", "fedex")}

    def test_numeric_without_context_from_other_sender(self):
        """Test the same number from a shop without FedEx context is dropped."""
        result = extract_all("Tracking: 123456789012", "randomshop.com")

        assert result == set()

    def test_numeric_without_any_keywords(self):
        """Test order numbers in a shop email are not reported."""
        text = "Thanks for your purchase! Order 123456789012 total $54.20"

        assert extract_all(text, "orders@randomshop.com") == set()

    def test_twenty_digit_fedex_with_context(self):
        """Test a 20-digit FedEx number with FedEx context from a merchant."""
        text = "Your order shipped with FedEx. Tracking number: 61299998820821171811"

        result = extract_all(text, "orders@shop.com")

        assert result == {TrackingResult("61299998820821171811", "fedex")}

    def test_federal_express_name_alone_is_enough(self):
        """Test the unabbreviated carrier name reaches the context threshold."""
        text = "Sent via Federal Express: 61299998820821171811"

        result = extract_all(text, "orders@shop.com")

        assert result == {TrackingResult("61299998820821171811", "fedex")}

    def test_tracking_keyword_alone_is_not_enough(self):
        """Test a shipping keyword without the carrier name is rejected."""
        text = "Shipment tracking number: 61299998820821171811"

        assert extract_all(text, "orders@shop.com") == set()

    def test_twelve_digit_from_merchant_rejected_by_fallback_filters(self):
        """Test short numeric fallback numbers from merchants are rejected."""
        text = "Your FedEx tracking number is 987654321098"

        assert extract_all(text, "orders@shop.com") == set()

    def test_usps_22_digit(self):
        """Test a 22-digit USPS number."""
        text = "USPS tracking: 9400111899223197428490"

        result = extract_all(text, "orders@shop.com")

        assert result == {TrackingResult("9400111899223197428490", "usps")}

    def test_usps_with_routing_prefix(self):
        """Test a USPS number preceded by the 420+ZIP routing prefix."""
        text = "Label 420902109400111899223197428490 printed"

        result = extract_all(text, "")

        assert result == {TrackingResult("420902109400111899223197428490", "usps")}

    def test_usps_international(self):
        """Test the 2-letter + 9-digit + US form."""
        result = extract_all("Priority Mail Express International EA123456789US", None)

        assert result == {TrackingResult("EA123456789US", "usps")}

    def test_ontrac(self):
        """Test the OnTrac C-prefixed form."""
        result = extract_all("OnTrac number C11234567890123", "ontrac.com")

        assert result == {TrackingResult("C11234567890123", "ontrac")}

    def test_lowercase_ups_number(self):
        """Test UPS numbers are matched case-insensitively as found."""
        result = extract_all("tracking 1z999aa10123456784", "ups.com")

        assert result == {TrackingResult("1z999aa10123456784", "ups")}

    def test_multiple_carriers_in_one_message(self):
        """Test several numbers from different carriers in one message."""
        text = (
            "Package 1: 1Z999AA10123456784\n"
            "Package 2: 9400111899223197428490\n"
        )

        result = extract_all(text, "orders@shop.com")

        assert result == {
            TrackingResult("1Z999AA10123456784", "ups"),
            TrackingResult("9400111899223197428490", "usps"),
        }

    def test_duplicate_number_reported_once(self):
        """Test a number repeated in subject and body yields one result."""
        text = "Shipped 1Z999AA10123456784\nTrack 1Z999AA10123456784\n<b>1Z999AA10123456784</b>"

        result = extract_all(text, "ups.com")

        assert len(result) == 1


class TestExtractAllGuards:
    """Test false-positive guards."""

    def test_phone_number_never_returned(self):
        """Test a toll-free number is not reported."""
        text = "FedEx tracking questions? Call 18005551234"

        assert extract_all(text, "fedex.com") == set()

    def test_repeated_digits_never_returned(self):
        """Test 20 repeated digits are rejected even from the carrier."""
        text = "FedEx tracking 11111111111111111111"

        assert extract_all(text, "fedex.com") == set()
        assert extract_all(text, "orders@shop.com") == set()

    def test_sequential_placeholder_from_merchant(self):
        """Test placeholder runs are rejected from non-carrier senders."""
        text = "FedEx tracking 12345678901234567890"

        assert extract_all(text, "orders@shop.com") == set()

    def test_ups_tail_not_reported_as_fedex(self):
        """Test a number that also appears after 1Z is not a fallback result."""
        text = "Ref 1Z384756192038 and FedEx tracking 384756192038"

        assert extract_all(text, "fedex.com") == set()

    def test_ups_tail_guard_control(self):
        """Test the same number is accepted without the 1Z occurrence."""
        text = "Ref 999 and FedEx tracking 384756192038"

        assert extract_all(text, "fedex.com") == {TrackingResult("384756192038", "fedex")}

    def test_ups_xh_tail_not_reported(self):
        """Test the 1ZXH sub-prefix also triggers the tail guard."""
        text = "Ref 1ZXH384756192038 and FedEx tracking 384756192038"

        assert extract_all(text, "fedex.com") == set()

    def test_short_numbers_never_returned(self):
        """Test numbers shorter than 10 characters are never reported."""
        text = "FedEx tracking 123456789 and 98765"

        assert extract_all(text, "fedex.com") == set()

    @pytest.mark.parametrize("text,sender", [
        ("FedEx tracking ３８４７５６１９２０３８", "fedex.com"),
        ("USPS tracking ９４００１１１８９９２２３１９７４２８４９０", "usps.com"),
        ("UPS 1Z999K\u017f10123456784", "ups.com"),
        ("UPS 1Z999AA1012345678\u212a", "ups.com"),
        ("OnTrac C1234567890123\u0663", "ontrac.com"),
    ])
    def test_non_ascii_digits_and_letters_never_returned(self, text, sender):
        """Test Unicode look-alike digits and letters do not form numbers."""
        assert extract_all(text, sender) == set()

    @pytest.mark.parametrize("text", ["", None])
    def test_empty_text(self, text):
        """Test empty input yields an empty set."""
        assert extract_all(text, "fedex.com") == set()


class TestExtractAllProperties:
    """Test properties of the extractor."""

    def test_idempotent(self):
        """Test identical input gives identical output."""
        text = "UPS 1Z999AA10123456784, USPS 9400111899223197428490, FedEx 61299998820821171811"

        first = extract_all(text, "orders@shop.com")
        second = extract_all(text, "orders@shop.com")

        assert first == second
        assert len(first) == 3

    def test_results_have_no_description(self):
        """Test generic results leave description to the caller."""
        result = extract_all("UPS 1Z999AA10123456784", "ups.com")

        assert all(r.description is None for r in result)

    def test_all_numbers_at_least_ten_characters(self):
        """Test every reported number has at least 10 characters."""
        text = "1Z999AA10123456784 EA123456789US C11234567890123 9400111899223197428490"

        result = extract_all(text, "fedex.com")

        assert result
        assert all(len(r.tracking_number) >= 10 for r in result)

    def test_usps_number_matching_two_rules_keeps_priority_one(self):
        """Test a number matched by the priority-1 and priority-2 USPS rules."""
        candidates = list(find_candidates("USPS 9400111899223197428490", ""))

        assert [c.priority for c in candidates] == [1, 2]
        assert extract_all("USPS 9400111899223197428490", "") == {
            TrackingResult("9400111899223197428490", "usps")
        }

    def test_sorted_variant(self):
        """Test extract_all_sorted orders by carrier then number."""
        text = "9400111899223197428490 then 1Z999AA10123456784"

        result = extract_all_sorted(text, "")

        assert [r.carrier for r in result] == ["ups", "usps"]


class TestResolveCandidates:
    """Test the priority reduction."""

    def test_lower_priority_value_wins(self):
        """Test a more specific later candidate replaces a fallback one."""
        resolved = resolve_candidates([
            Candidate("92612345678901234567", "fedex", 5),
            Candidate("92612345678901234567", "usps", 1),
        ])

        assert resolved["92612345678901234567"].carrier == "usps"

    def test_higher_priority_value_never_overwrites(self):
        """Test a less specific later candidate keeps the earlier result."""
        resolved = resolve_candidates([
            Candidate("92612345678901234567", "usps", 2),
            Candidate("92612345678901234567", "fedex", 5),
        ])

        assert resolved["92612345678901234567"].carrier == "usps"

    def test_equal_priority_keeps_first_seen(self):
        """Test ties are broken by declaration order."""
        resolved = resolve_candidates([
            Candidate("1234567890AB", "ups", 1),
            Candidate("1234567890AB", "usps", 1),
        ])

        assert resolved["1234567890AB"].carrier == "ups"

    def test_distinct_numbers_kept(self):
        """Test unrelated numbers are all kept."""
        resolved = resolve_candidates([
            Candidate("A234567890", "ups", 1),
            Candidate("B234567890", "usps", 1),
        ])

        assert set(resolved) == {"A234567890", "B234567890"}


class TestHelpers:
    """Test small helpers."""

    def test_normalize_strips_whitespace(self):
        """Test internal whitespace is removed."""
        assert normalize_tracking_number(" 1Z 999 AA1\n0123456784 ") == "1Z999AA10123456784"

    @pytest.mark.parametrize("sender,expected", [
        ("fedex.com", True),
        ("TrackingUpdates@FedEx.com", True),
        ("orders@shop.com", False),
        ("", False),
        (None, False),
    ])
    def test_is_fallback_carrier_sender(self, sender, expected):
        """Test fallback courier domain detection."""
        assert is_fallback_carrier_sender(sender) is expected
