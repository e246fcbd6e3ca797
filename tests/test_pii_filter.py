"""consent-gate – PII Filter Tests."""

from consent_gate.integrations.pii_filter import DEFAULT_PII_KEYS, PIIFilter, filter_log_record


class TestScrub:
    def test_default_keys(self) -> None:
        assert DEFAULT_PII_KEYS == {"email", "phone", "user_id", "customer_id"}

    def test_scrub_reports_removed_keys(self) -> None:
        pii = PIIFilter()
        safe, removed = pii.scrub({"EMAIL": "x@y.de", "value": 3})
        assert safe == {"value": 3}
        assert removed == ["EMAIL"]

    def test_scrub_keeps_non_pii_keys(self) -> None:
        safe, removed = PIIFilter().scrub({"email_opt_in": True, "item_id": "sku"})
        assert safe == {"email_opt_in": True, "item_id": "sku"}
        assert removed == []

    def test_is_pii_key_case_insensitive(self) -> None:
        pii = PIIFilter(["Customer_ID"])
        assert pii.is_pii_key("customer_id")
        assert pii.is_pii_key("CUSTOMER_ID")
        assert not pii.is_pii_key("item_id")

    def test_configured_keys_extend_defaults(self) -> None:
        pii = PIIFilter(["Session_Token"])
        assert pii.deny_keys == DEFAULT_PII_KEYS | {"session_token"}
        safe, removed = pii.scrub({"EMAIL": "a@b.com", "Phone": "+1", "session_token": "t", "value": 2})
        assert safe == {"value": 2}
        assert sorted(removed) == ["EMAIL", "Phone", "session_token"]


class TestMask:
    def test_mask_email(self) -> None:
        masked = PIIFilter().mask("mail user@example.com now")
        assert "user@example.com" not in masked
        assert "u****@e****.com" in masked

    def test_mask_credit_card(self) -> None:
        masked = PIIFilter().mask("card 4111 1111 1111 1111")
        assert masked == "card 4111 **** **** 1111"

    def test_mask_phone(self) -> None:
        masked = PIIFilter().mask("call +4917012345678")
        assert "+4917012345678" not in masked


class TestLogProcessor:
    def test_masks_values_and_pii_keys(self) -> None:
        event = {"event": "bridge.invoke_failed", "error": "bad user@example.com", "user_id": "u-1", "count": 2}
        result = filter_log_record(None, "info", event)
        assert result["user_id"] == "****"
        assert "user@example.com" not in result["error"]
        assert result["count"] == 2
        assert result["event"] == "bridge.invoke_failed"
