"""
tests/test_loader.py
End-to-end tests for BackupFileLoader: both passes, progress, cancellation.
"""

import pytest

from smsbr.exceptions import FormatError
from smsbr.loader import BackupFileLoader, LoadState, load_backup
from smsbr.models.record import Contact

TWO_MESSAGES = """<?xml version='1.0' encoding='UTF-8' standalone='yes' ?>
<?xml-stylesheet type="text/xsl" href="sms.xsl"?>
<smses count="2">
  <sms address="0684552136" date="1704067200000" type="1" body="Salut &#55357;&#56832;"
       service_center="null" contact_name="Alex" />
  <mms date="1704067260000" address="0695142235" m_type="128" contact_name="John" snippet="null">
    <parts><part ct="text/plain" text="On arrive" /></parts>
  </mms>
</smses>
"""


IMAGE_MMS = """<smses count="1">
  <mms date="1704067440000" address="0695142235" m_type="132" contact_name="John" snippet="null">
    <parts><part ct="image/png" cl="photo.png" data="{data}" text="x" /></parts>
  </mms>
</smses>
"""


@pytest.fixture
def backup(write_backup):
    return write_backup(TWO_MESSAGES)


def _crashing_decode(mime_type, payload):
    raise ValueError("codec blew up")


class TestSynchronousLoad:

    def test_two_contacts_two_messages(self, backup):
        conversations = load_backup(backup, region='FR')
        assert conversations.message_count == 2
        assert set(conversations.contacts) == {Contact('+33684552136'), Contact('+33695142235')}

    def test_metadata_published_once_before_messages(self, backup):
        events = []
        loader = BackupFileLoader(
            backup,
            region            = 'FR',
            on_metadata_ready = lambda meta: events.append(('meta', meta.message_count)),
            on_message_ready  = lambda m: events.append(('msg', m.timestamp_ms)),
        )
        loader.load()
        assert events == [('meta', 2), ('msg', 1704067200000), ('msg', 1704067260000)]

    def test_metadata_size_and_state(self, backup):
        loader = BackupFileLoader(backup, region='FR')
        loader.load()
        assert loader.state is LoadState.SUCCEEDED
        assert loader.metadata.size_in_bytes == backup.stat().st_size
        assert loader.metadata.message_count == 2
        # one entry per message from each pass
        assert len(loader.metadata.contacts) == 4

    def test_surrogate_references_survive(self, backup):
        conversations = load_backup(backup, region='FR')
        alex = conversations.find_contact('+33684552136')
        assert conversations.conversation(alex)[0].body == 'Salut emoji://55357;emoji://56832;'

    def test_progress_reported(self, backup):
        seen = []
        loader = BackupFileLoader(backup, region='FR', progress_cb=lambda c, t, msg: seen.append((c, t, msg)))
        loader.load()
        assert seen == [
            (1, 2, 'Loading message 1/2'),
            (2, 2, 'Loading message 2/2'),
        ]
        assert loader.progress == 1.0

    def test_progress_not_clamped(self, write_backup):
        path = write_backup(TWO_MESSAGES.replace('count="2"', 'count="1"'))
        loader = BackupFileLoader(path, region='FR')
        loader.load()
        assert loader.progress == 2.0

    def test_progress_zero_without_count(self, write_backup):
        path = write_backup(TWO_MESSAGES.replace(' count="2"', ''))
        loader = BackupFileLoader(path, region='FR')
        assert loader.load().message_count == 2
        assert loader.progress == 0.0


class TestFailures:

    def test_malformed_file_fails(self, write_backup):
        loader = BackupFileLoader(write_backup('<smses count="1"><sms date="1"'), region='FR')
        with pytest.raises(FormatError):
            loader.load()
        assert loader.state is LoadState.FAILED
        assert loader.conversations is None
        assert isinstance(loader.error, FormatError)

    def test_bad_date_fails(self, write_backup):
        path = write_backup('<smses count="1"><sms address="0684552136" date="soon" type="1"/></smses>')
        with pytest.raises(FormatError):
            load_backup(path, region='FR')

    def test_missing_file_raises_oserror(self, tmp_path):
        loader = BackupFileLoader(tmp_path / 'nope.xml', region='FR')
        with pytest.raises(OSError):
            loader.load()
        assert loader.state is LoadState.FAILED

    def test_unexpected_error_fails_load(self, backup):
        def on_message(message):
            raise ValueError("consumer broke")

        loader = BackupFileLoader(backup, region='FR', on_message_ready=on_message)
        with pytest.raises(ValueError):
            loader.load()
        assert loader.state is LoadState.FAILED
        assert isinstance(loader.error, ValueError)
        assert loader.conversations is None

    def test_decoder_error_does_not_fail_load(self, write_backup, png_b64):
        path = write_backup(IMAGE_MMS.format(data=png_b64(4, 3)))
        loader = BackupFileLoader(path, region='FR', decode_image=_crashing_decode)
        conversations = loader.load()
        assert loader.state is LoadState.SUCCEEDED
        assert conversations.message_count == 1


class TestCancellation:

    def test_cancel_after_first_message(self, backup):
        delivered = []
        loader = BackupFileLoader(backup, region='FR')

        def on_message(message):
            delivered.append(message)
            loader.cancel()

        loader.on_message_ready = on_message
        assert loader.load() is None
        assert loader.state is LoadState.CANCELLED
        assert len(delivered) == 1
        assert loader.conversations is None
        assert loader.metadata is None

    def test_cancel_before_start_of_content(self, backup):
        loader = BackupFileLoader(backup, region='FR')
        loader.on_metadata_ready = lambda meta: loader.cancel()
        assert loader.load() is None
        assert loader.state is LoadState.CANCELLED


class TestBackgroundLoad:

    def test_start_and_wait(self, backup):
        loader = BackupFileLoader(backup, region='FR')
        loader.start()
        conversations = loader.wait(timeout=10)
        assert loader.done
        assert loader.state is LoadState.SUCCEEDED
        assert conversations.message_count == 2

    def test_background_failure_kept(self, write_backup):
        loader = BackupFileLoader(write_backup('<smses><sms'), region='FR')
        loader.start()
        assert loader.wait(timeout=10) is None
        assert loader.state is LoadState.FAILED
        assert isinstance(loader.error, FormatError)

    def test_background_unexpected_error_kept(self, backup):
        def on_message(message):
            raise ValueError("consumer broke")

        loader = BackupFileLoader(backup, region='FR', on_message_ready=on_message)
        loader.start()
        assert loader.wait(timeout=10) is None
        assert loader.done
        assert loader.state is LoadState.FAILED
        assert isinstance(loader.error, ValueError)

    def test_background_decoder_error_succeeds(self, write_backup, png_b64):
        path = write_backup(IMAGE_MMS.format(data=png_b64(4, 3)))
        loader = BackupFileLoader(path, region='FR', decode_image=_crashing_decode)
        loader.start()
        conversations = loader.wait(timeout=10)
        assert loader.state is LoadState.SUCCEEDED
        assert conversations.message_count == 1

    def test_done_false_before_start(self, backup):
        assert not BackupFileLoader(backup, region='FR').done
