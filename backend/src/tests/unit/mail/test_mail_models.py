"""Tests for Graph message normalization."""
from outlook_sync.mail.models import InboundMessage, flatten_recipients


def test_from_graph_flattens_recipients(graph_message):
    message = InboundMessage.from_graph(graph_message("m1", to=("a@x.com",), cc=("b@x.com", "c@x.com"), is_read=True))

    assert message.id == "m1"
    assert message.sender == "sender@example.com"
    assert message.to == ["a@x.com"]
    assert message.cc == ["b@x.com", "c@x.com"]
    assert message.bcc == []
    assert message.is_read is True


def test_from_graph_tolerates_missing_fields():
    message = InboundMessage.from_graph({"id": "m1"})

    assert message.subject is None
    assert message.sender is None
    assert message.to == []
    assert message.body == ""
    assert message.is_read is False


def test_flatten_skips_entries_without_address():
    entries = [{"emailAddress": {"name": "No Address"}}, {"emailAddress": {"address": "a@x.com"}}, "garbage"]
    assert flatten_recipients(entries) == ["a@x.com"]


def test_non_list_recipient_fields_are_ignored():
    message = InboundMessage.from_graph({"id": "m1", "toRecipients": 7, "ccRecipients": None})
    assert message.to == []
    assert message.cc == []
