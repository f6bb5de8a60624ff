from __future__ import annotations

from ledgersync._redact import redact_for_log


def test_redact_for_log_redacts_sensitive_keys() -> None:
    payload = {
        "eventType": "UPDATE",
        "new": {
            "id": "u1",
            "password": "pw",
            "pin": "1234",
            "idCardNumber": "CI-0099",
            "nested": [{"full_card_number": "5399000011112222", "status": "active"}],
        },
        "apikey": "anon",
    }

    redacted = redact_for_log(payload)
    assert redacted["apikey"] == "<redacted>"
    assert redacted["new"]["password"] == "<redacted>"
    assert redacted["new"]["pin"] == "<redacted>"
    assert redacted["new"]["idCardNumber"] == "<redacted>"
    assert redacted["new"]["nested"][0]["full_card_number"] == "************2222"
    assert redacted["new"]["nested"][0]["status"] == "active"
    assert payload["new"]["password"] == "pw"


def test_redact_for_log_truncates_long_strings() -> None:
    long_value = "x" * 600
    redacted = redact_for_log({"value": long_value}, max_string=10)
    assert redacted["value"].startswith("x" * 10)
    assert "<truncated>" in redacted["value"]


def test_account_identifiers_keep_their_last_digits() -> None:
    redacted = redact_for_log(
        {
            "cardNumber": "5399 0000 1111 2222",
            "beneficiary_phone": "+2250701020304",
            "phone": "123",
            "PIN": "0000",
            "phoneNumber": None,
        }
    )

    assert redacted["cardNumber"] == "************2222"
    assert redacted["beneficiary_phone"] == "**********0304"
    assert redacted["phone"] == "<redacted>"
    assert redacted["PIN"] == "<redacted>"
    assert redacted["phoneNumber"] is None
