"""
Tests for the transfer worker: fan-out, failure isolation and shutdown ordering.
"""
import io
import logging
import threading

import pytest
from botocore.stub import ANY, Stubber

from hstransfer.backends.base import BaseBackend
from hstransfer.backends.local import CopyBackend
from hstransfer.backends.s3 import S3Backend
from hstransfer.commands import BuildMultiVariantIndex, ShipSegment
from hstransfer.config import EncodingProfile, TransferConfig
from hstransfer.errors import SourceReadError, TransferError
from hstransfer.worker import TransferWorker


class RecordingBackend(BaseBackend):
    """Backend double that records the full bytes it receives."""

    transfer_type = "memory"

    def __init__(self, name, url_prefix="", invalidates=False, fail_on=()):
        super().__init__(name, {"url_prefix": url_prefix})
        self.supports_invalidate = invalidates
        self.fail_on = set(fail_on)
        self.files = {}
        self.uploads = []
        self.deleted = []
        self.invalidated = []

    def create_file(self, destination_name, content):
        if destination_name in self.fail_on or "*" in self.fail_on:
            raise TransferError("boom", backend=self.name, name=destination_name)
        data = content.read()
        self.files[destination_name] = data
        self.uploads.append(destination_name)

    def try_delete_file(self, name):
        self.deleted.append(name)

    def invalidate(self, name):
        self.invalidated.append(name)


@pytest.fixture
def transfer_config(tmp_path):
    return TransferConfig(
        temp_dir=str(tmp_path),
        segment_prefix="stream",
        index_prefix="live",
        segment_length=10,
        index_segment_count=3,
        delete_nth_segment_back=5,
        encoding_profiles=[EncodingProfile("hi", 800000), EncodingProfile("lo", 128000)],
    )


def _write_segment(tmp_path, profile, index, data=b"\x47" * 188 * 4):
    path = tmp_path / f"stream_{profile}-{index:05d}.ts"
    path.write_bytes(data)
    return path, data


class TestShipSegment:
    def test_fans_out_full_content_to_every_backend(self, tmp_path, transfer_config):
        path, data = _write_segment(tmp_path, "hi", 7)
        first = RecordingBackend("a", url_prefix="http://a/")
        second = RecordingBackend("b", url_prefix="http://b/")
        worker = TransferWorker(transfer_config, [first, second])

        worker.process(ShipSegment(1, 7, False, "hi"))

        for backend in (first, second):
            assert backend.uploads.count("stream_hi-00007.ts") == 1
            assert backend.uploads.count("live_hi.m3u8") == 1
            assert backend.files["stream_hi-00007.ts"] == data
        assert not path.exists()

    def test_playlist_uses_each_backend_url_prefix(self, tmp_path, transfer_config):
        _write_segment(tmp_path, "hi", 5)
        first = RecordingBackend("a", url_prefix="http://a/")
        second = RecordingBackend("b", url_prefix="http://b/")

        TransferWorker(transfer_config, [first, second]).process(ShipSegment(1, 5, True, "hi"))

        assert first.files["live_hi.m3u8"].decode().splitlines() == [
            "#EXTM3U",
            "#EXT-X-TARGETDURATION:10",
            "#EXT-X-MEDIA-SEQUENCE:3",
            "#EXTINF:10,",
            "http://a/stream_hi-00003.ts",
            "#EXTINF:10,",
            "http://a/stream_hi-00004.ts",
            "#EXTINF:10,",
            "http://a/stream_hi-00005.ts",
            "#EXT-X-ENDLIST",
        ]
        assert b"http://b/stream_hi-00005.ts" in second.files["live_hi.m3u8"]

    def test_failing_backend_does_not_block_others(self, tmp_path, transfer_config, caplog):
        _, data = _write_segment(tmp_path, "hi", 3)
        broken = RecordingBackend("broken", fail_on={"*"})
        healthy = RecordingBackend("healthy")

        with caplog.at_level(logging.ERROR):
            TransferWorker(transfer_config, [broken, healthy]).process(ShipSegment(1, 3, False, "hi"))

        assert healthy.files["stream_hi-00003.ts"] == data
        assert "live_hi.m3u8" in healthy.files
        assert "broken" in caplog.text
        assert "stream_hi-00003.ts" in caplog.text

    def test_invalidates_only_capable_backends(self, tmp_path, transfer_config):
        _write_segment(tmp_path, "hi", 3)
        cdn = RecordingBackend("cdn", invalidates=True)
        plain = RecordingBackend("plain")

        TransferWorker(transfer_config, [cdn, plain]).process(ShipSegment(1, 3, False, "hi"))

        assert cdn.invalidated == ["live_hi.m3u8"]
        assert plain.invalidated == []

    def test_retention_deletes_on_every_backend(self, tmp_path, transfer_config):
        _write_segment(tmp_path, "hi", 20)
        first, second = RecordingBackend("a"), RecordingBackend("b")

        TransferWorker(transfer_config, [first, second]).process(ShipSegment(1, 20, False, "hi"))

        assert first.deleted == ["stream_hi-00015.ts"]
        assert second.deleted == ["stream_hi-00015.ts"]

    def test_no_retention_when_not_configured(self, tmp_path, transfer_config):
        transfer_config.delete_nth_segment_back = None
        _write_segment(tmp_path, "hi", 20)
        backend = RecordingBackend("a")

        TransferWorker(transfer_config, [backend]).process(ShipSegment(1, 20, False, "hi"))

        assert backend.deleted == []

    def test_temp_file_removed_even_when_all_uploads_fail(self, tmp_path, transfer_config):
        path, _ = _write_segment(tmp_path, "hi", 2)

        TransferWorker(transfer_config, [RecordingBackend("broken", fail_on={"*"})]).process(
            ShipSegment(1, 2, False, "hi")
        )

        assert not path.exists()

    def test_missing_source_raises(self, transfer_config):
        backend = RecordingBackend("a")
        worker = TransferWorker(transfer_config, [backend])

        with pytest.raises(SourceReadError):
            worker.process(ShipSegment(1, 9, False, "hi"))
        assert backend.uploads == []


class ClosingBackend(RecordingBackend):
    """Backend double that closes the stream it was handed, as some SDK uploaders do."""

    def create_file(self, destination_name, content):
        super().create_file(destination_name, content)
        content.close()


class TestStreamIsolation:
    def test_closed_source_only_fails_later_backends(self, tmp_path, transfer_config, caplog):
        path, data = _write_segment(tmp_path, "hi", 7)
        closer = ClosingBackend("closer")
        after = RecordingBackend("after")

        with caplog.at_level(logging.ERROR):
            TransferWorker(transfer_config, [closer, after]).process(ShipSegment(1, 7, False, "hi"))

        assert closer.files["stream_hi-00007.ts"] == data
        assert "stream_hi-00007.ts" not in after.files
        assert "after" in caplog.text
        # the rest of the command still runs
        assert not path.exists()
        assert "live_hi.m3u8" in closer.files
        assert "live_hi.m3u8" in after.files
        assert after.deleted == ["stream_hi-00002.ts"]

    def test_s3_ahead_of_copy_delivers_segment_to_both(self, tmp_path, transfer_config):
        transfer_config.delete_nth_segment_back = None
        _, data = _write_segment(tmp_path, "hi", 7)
        s3 = S3Backend(
            "s3",
            {
                "aws_api_key": "key",
                "aws_api_secret": "secret",
                "bucket_name": "bucket",
                "key_prefix": "live",
                "region": "us-east-1",
            },
        )
        local = CopyBackend("local", {"directory": str(tmp_path / "www")})

        with Stubber(s3._s3) as stubber:
            stubber.add_response(
                "put_object",
                {},
                {
                    "Bucket": "bucket",
                    "Key": "live/stream_hi-00007.ts",
                    "Body": data,
                    "ContentType": "video/MP2T",
                    "ACL": "public-read",
                },
            )
            stubber.add_response(
                "put_object",
                {},
                {
                    "Bucket": "bucket",
                    "Key": "live/live_hi.m3u8",
                    "Body": ANY,
                    "ContentType": "application/vnd.apple.mpegurl",
                    "ACL": "public-read",
                },
            )
            TransferWorker(transfer_config, [s3, local]).process(ShipSegment(1, 7, False, "hi"))
            stubber.assert_no_pending_responses()

        assert (tmp_path / "www" / "stream_hi-00007.ts").read_bytes() == data
        assert (tmp_path / "www" / "live_hi.m3u8").exists()


class TestMultiVariantIndex:
    def test_uploads_master_playlist_per_backend(self, transfer_config):
        first = RecordingBackend("a", url_prefix="http://a/")
        second = RecordingBackend("b", url_prefix="http://b/")
        second.url_prefix_for_playlists = "http://playlists/"

        TransferWorker(transfer_config, [first, second]).process(BuildMultiVariantIndex())

        assert first.files["live_multi.m3u8"].decode().splitlines() == [
            "#EXTM3U",
            "#EXT-X-STREAM-INF:PROGRAM-ID=1,BANDWIDTH=800000",
            "http://a/live_hi.m3u8",
            "#EXT-X-STREAM-INF:PROGRAM-ID=1,BANDWIDTH=128000",
            "http://a/live_lo.m3u8",
        ]
        assert b"http://playlists/live_lo.m3u8" in second.files["live_multi.m3u8"]


class TestWorkerThread:
    def test_quit_processes_all_previous_commands(self, tmp_path, transfer_config):
        backend = RecordingBackend("a")
        worker = TransferWorker(transfer_config, [backend])
        for index in range(1, 6):
            _write_segment(tmp_path, "lo", index)
            worker.submit(ShipSegment(1, index, index == 5, "lo"))
        worker.submit("mr_index")

        worker.start()
        worker.stop(timeout=10)

        assert not worker.is_alive
        segments = [name for name in backend.uploads if name.endswith(".ts")]
        assert segments == [f"stream_lo-{i:05d}.ts" for i in range(1, 6)]
        assert backend.uploads[-1] == "live_multi.m3u8"

    def test_bad_command_does_not_stop_loop(self, tmp_path, transfer_config, caplog):
        _write_segment(tmp_path, "hi", 1)
        backend = RecordingBackend("a")
        worker = TransferWorker(transfer_config, [backend])

        worker.start()
        worker << "not,a,command" << ShipSegment(1, 4, False, "hi") << "1,1,0,hi"
        worker.stop(timeout=10)

        assert "stream_hi-00001.ts" in backend.files
        assert "Error running transfer" in caplog.text

    def test_concurrent_producers(self, tmp_path, transfer_config):
        backend = RecordingBackend("a")
        worker = TransferWorker(transfer_config, [backend])
        worker.start()

        def produce():
            for _ in range(20):
                worker.submit(BuildMultiVariantIndex())

        producers = [threading.Thread(target=produce) for _ in range(4)]
        for producer in producers:
            producer.start()
        for producer in producers:
            producer.join()
        worker.stop(timeout=10)

        assert backend.uploads.count("live_multi.m3u8") == 80

    def test_start_is_idempotent(self, transfer_config):
        worker = TransferWorker(transfer_config, [RecordingBackend("a")])
        worker.start()
        thread = worker._thread
        worker.start()

        assert worker._thread is thread
        worker.stop(timeout=10)


def test_from_config_builds_backends(tmp_path):
    app_config = {
        "temp_dir": str(tmp_path),
        "segment_prefix": "stream",
        "index_prefix": "live",
        "segment_length": 10,
        "index_segment_count": 3,
        "url_prefix": "http://default/",
        "encoding_profile": "hi",
        "hi": {"bandwidth": 800000},
        "transfer_profile": ["local"],
        "local": {"transfer_type": "copy", "directory": str(tmp_path / "www")},
    }
    worker = TransferWorker.from_config(app_config)

    assert [b.name for b in worker.backends] == ["local"]
    assert worker.backends[0].url_prefix == "http://default/"

    _write_segment(tmp_path, "hi", 1, b"payload")
    worker.process(ShipSegment(1, 1, False, "hi"))

    assert (tmp_path / "www" / "stream_hi-00001.ts").read_bytes() == b"payload"
    assert (tmp_path / "www" / "live_hi.m3u8").read_bytes().startswith(b"#EXTM3U\n")
