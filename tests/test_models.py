"""
tests/test_models.py
Unit tests for contacts, messages and the conversation index.
"""

import pytest

from smsbr.models.conversations import ConversationIndex, Order
from smsbr.models.record import (
    UNKNOWN_CONTACT,
    Contact,
    FileMetadata,
    ImageAttachment,
    Message,
)


def _msg(ts, contact, body='', from_me=False):
    return Message(timestamp_ms=ts, is_from_me=from_me, is_draft=False, body=body, contact=contact)


@pytest.fixture
def john():
    return Contact('+33695142235', 'John')


@pytest.fixture
def debbie():
    return Contact('+33632145147', 'Debbie')


# ── CONTACT ──────────────────────────────────────────────────

class TestContact:

    def test_equality_by_phone_only(self):
        assert Contact('+33684552136', 'Alex') == Contact('+33684552136', 'Alexandre')
        assert Contact('+33684552136', 'Alex') != Contact('+33695142235', 'Alex')

    def test_hash_by_phone_only(self):
        assert len({Contact('+1', 'a'), Contact('+1', 'b')}) == 1

    def test_str_with_name(self, john):
        assert str(john) == 'John (+33695142235)'

    def test_str_unknown_placeholder(self):
        assert str(Contact('+33695142235', UNKNOWN_CONTACT)) == '+33695142235'

    def test_blank_numbers_share_identity(self):
        assert Contact('', '') == Contact('', 'Someone')


# ── MESSAGE ──────────────────────────────────────────────────

class TestMessage:

    def test_self_recipient_excluded(self, john):
        m = _msg(1, john)
        m.add_recipient('+33684552136', 137)
        m.add_recipient('+33695142235', 151)
        assert m.recipients == ['+33695142235']

    def test_add_image_ignores_none(self, john):
        m = _msg(1, john)
        m.add_image(None)
        assert m.images == []

    def test_image_uids_unique_and_increasing(self):
        a = ImageAttachment('image/png', 'a.png', '')
        b = ImageAttachment('image/png', 'b.png', '')
        assert b.uid > a.uid


class TestFileMetadata:

    def test_add_contact_keeps_duplicates(self, john):
        meta = FileMetadata(size_in_bytes=10, message_count=3)
        meta.add_contact(john)
        meta.add_contact(john)
        assert len(meta.contacts) == 2
        assert meta.message_count == 3


# ── CONVERSATION INDEX ───────────────────────────────────────

class TestConversationIndex:

    def _index(self, john, debbie):
        idx = ConversationIndex()
        idx.add(_msg(1000, john, 'Hey John!', from_me=True))
        idx.add(_msg(20000, john, 'Hello Alex'))
        idx.add(_msg(21000, john, "What's up?"))
        idx.add(_msg(2000, debbie, 'What are you doing Alex?'))
        return idx

    def test_counts(self, john, debbie):
        idx = self._index(john, debbie)
        assert idx.message_count == 4
        assert len(idx) == 2

    def test_bucket_sorted_after_out_of_order_insert(self, john):
        idx = ConversationIndex()
        for ts in (300, 100, 200):
            idx.add(_msg(ts, john))
        assert [m.timestamp_ms for m in idx.conversation(john)] == [100, 200, 300]

    def test_equal_timestamps_keep_arrival_order(self, john):
        idx = ConversationIndex()
        idx.add(_msg(100, john, 'first'))
        idx.add(_msg(50, john, 'earlier'))
        idx.add(_msg(100, john, 'second'))
        assert [m.body for m in idx.conversation(john)] == ['earlier', 'first', 'second']

    def test_same_number_different_name_one_bucket(self):
        idx = ConversationIndex()
        idx.add(_msg(1, Contact('+33684552136', 'Alex')))
        idx.add(_msg(2, Contact('+33684552136', 'Alexandre')))
        assert len(idx) == 1
        assert idx.message_count == 2

    def test_contacts_by_date(self, john, debbie):
        idx = self._index(john, debbie)
        assert idx.contacts_by_date(Order.ASC) == [debbie, john]
        assert idx.contacts_by_date(Order.DESC) == [john, debbie]

    def test_contacts_by_name(self, john, debbie):
        idx = self._index(john, debbie)
        assert idx.contacts_by_name(Order.ASC) == [debbie, john]
        assert idx.contacts_by_name(Order.DESC) == [john, debbie]

    def test_conversation_desc_is_copy(self, john, debbie):
        idx = self._index(john, debbie)
        convo = idx.conversation(john, Order.DESC)
        assert [m.timestamp_ms for m in convo] == [21000, 20000, 1000]
        convo.clear()
        assert len(idx.conversation(john)) == 3

    def test_conversation_unknown_contact(self, john):
        with pytest.raises(KeyError):
            ConversationIndex().conversation(john)

    def test_remove_conversations(self, john, debbie):
        idx = self._index(john, debbie)
        idx.remove_conversations([john])
        assert john not in idx
        assert debbie in idx
        assert idx.message_count == 1

    def test_remove_unknown_contact_is_noop(self, john, debbie):
        idx = self._index(john, debbie)
        idx.remove_conversations([Contact('+10000000000')])
        assert idx.message_count == 4

    def test_find_contact_returns_bucket_key(self, john, debbie):
        idx = self._index(john, debbie)
        found = idx.find_contact('+33695142235')
        assert found.complete_name == 'John'
        assert idx.find_contact('+19999999999') is None

    def test_messages_with_images(self, john, debbie):
        idx = self._index(john, debbie)
        m = _msg(5000, debbie)
        m.add_image(ImageAttachment('image/jpeg', 'x.jpg', ''))
        idx.add(m)
        assert idx.messages_with_images() == [m]
        assert idx.messages_with_images(john) == []

    def test_listeners_notified(self, john):
        events = []

        class Recorder:
            def message_added(self, message):
                events.append(('added', message.timestamp_ms))

            def contact_removed(self, contact):
                events.append(('removed', contact.phone_number))

        idx = ConversationIndex()
        listener = Recorder()
        idx.add_listener(listener)
        idx.add(_msg(1, john))
        idx.remove_conversations([john])
        idx.remove_listener(listener)
        idx.add(_msg(2, john))
        assert events == [('added', 1), ('removed', john.phone_number)]
