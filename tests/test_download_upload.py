"""Tests for the download and upload testers against a local server."""

import asyncio
import math
import time
import unittest

from probe.cancel import CancelToken
from probe.download import DownloadResult, DownloadTester
from probe.endpoints import Endpoints
from probe.upload import UploadResult, UploadTester
from tests.helpers import FakeClock, LocalServerTestCase

KIB = 1024


class TestDownloadResult(unittest.TestCase):
    def test_basic_speed(self):
        r = DownloadResult(bytes_total=125_000_000, duration_ms=10_000)
        r.calculate()
        self.assertAlmostEqual(r.speed_mbps, 100.0)

    def test_cancelled(self):
        r = DownloadResult(bytes_total=125_000_000, duration_ms=10_000, cancelled=True)
        r.calculate()
        self.assertEqual(r.speed_mbps, 0.0)


class TestUploadResult(unittest.TestCase):
    def test_dict_includes_requests(self):
        r = UploadResult(bytes_total=2 * KIB, duration_ms=1000, requests=2)
        r.calculate()
        self.assertEqual(r.to_dict()["requests"], 2)


# ---------------------------------------------------------------------------
# Download
# ---------------------------------------------------------------------------

class TestDownloadTester(LocalServerTestCase):
    async def test_reads_whole_body(self):
        tester = DownloadTester(duration_seconds=5.0, request_bytes=256 * KIB)
        result = await tester.test(self.server.endpoints())

        self.assertEqual(result.bytes_total, 256 * KIB)
        self.assertGreater(result.speed_mbps, 0)
        self.assertFalse(result.cancelled)
        self.assertIsNone(result.error)
        self.assertTrue(result.samples)
        self.assertEqual(result.samples[-1].cumulative_bytes, 256 * KIB)

    async def test_request_parameters(self):
        tester = DownloadTester(duration_seconds=5.0, request_bytes=64 * KIB)
        await tester.test(self.server.endpoints())
        query = self.server.download_queries[0]
        self.assertEqual(query["bytes"], str(64 * KIB))
        self.assertTrue(query["cachebust"].isdigit())

    async def test_samples_are_monotonic(self):
        tester = DownloadTester(duration_seconds=5.0, request_bytes=512 * KIB)
        result = await tester.test(self.server.endpoints())
        previous = None
        for sample in result.samples:
            self.assertGreaterEqual(sample.rate_mbps, 0)
            self.assertGreaterEqual(sample.progress_percent, 0)
            self.assertLessEqual(sample.progress_percent, 100)
            if previous is not None:
                self.assertGreaterEqual(sample.cumulative_bytes, previous.cumulative_bytes)
                self.assertGreaterEqual(sample.progress_percent, previous.progress_percent)
            previous = sample

    async def test_progress_callback(self):
        seen = []
        tester = DownloadTester(duration_seconds=5.0, request_bytes=128 * KIB)
        tester.on_progress = seen.append
        result = await tester.test(self.server.endpoints())
        self.assertEqual(seen, result.samples)

    async def test_budget_stops_endless_stream(self):
        tester = DownloadTester(duration_seconds=0.3)
        started = time.perf_counter()
        result = await asyncio.wait_for(
            tester.test(self.server.endpoints(download="/down-forever")), 5
        )
        elapsed = time.perf_counter() - started

        self.assertLess(elapsed, 3.0)
        self.assertGreaterEqual(result.duration_ms, 300)
        self.assertGreater(result.bytes_total, 0)
        self.assertGreater(result.speed_mbps, 0)
        self.assertIsNone(result.error)

    async def test_cancel_mid_stream(self):
        token = CancelToken()
        tester = DownloadTester(duration_seconds=30.0)
        task = asyncio.ensure_future(
            tester.test(self.server.endpoints(download="/down-forever"), token)
        )
        await asyncio.sleep(0.3)
        token.cancel()
        result = await asyncio.wait_for(task, 3)

        self.assertTrue(result.cancelled)
        self.assertEqual(result.speed_mbps, 0.0)

    async def test_server_error(self):
        tester = DownloadTester(duration_seconds=2.0)
        result = await tester.test(self.server.endpoints(download="/down-500"))
        self.assertEqual(result.speed_mbps, 0.0)
        self.assertEqual(result.bytes_total, 0)
        self.assertIsNotNone(result.error)
        self.assertFalse(result.cancelled)

    async def test_malformed_url(self):
        tester = DownloadTester(duration_seconds=2.0)
        result = await tester.test(Endpoints(download_url="ftp://example.com/file"))
        self.assertEqual(result.speed_mbps, 0.0)
        self.assertTrue(result.error.startswith("Invalid download URL"))

    async def test_unreachable_host(self):
        tester = DownloadTester(duration_seconds=2.0)
        result = await tester.test(Endpoints(download_url="http://127.0.0.1:1/"))
        self.assertEqual(result.speed_mbps, 0.0)
        self.assertIsNotNone(result.error)


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------

class TestUploadTester(LocalServerTestCase):
    async def test_iteration_cap(self):
        tester = UploadTester(duration_seconds=30.0, payload_size=64 * KIB, max_iterations=10)
        result = await tester.test(self.server.endpoints())

        self.assertEqual(result.requests, 10)
        self.assertEqual(len(self.server.uploads), 10)
        self.assertEqual(result.bytes_total, 10 * 64 * KIB)
        self.assertTrue(all(size == 64 * KIB for size, _ in self.server.uploads))
        self.assertGreater(result.speed_mbps, 0)
        self.assertIsNone(result.error)

    async def test_cache_buster_per_request(self):
        tester = UploadTester(payload_size=KIB, max_iterations=3)
        await tester.test(self.server.endpoints())
        busters = [bust for _, bust in self.server.uploads]
        self.assertEqual(len(set(busters)), 3)
        self.assertEqual([b.rsplit("-", 1)[1] for b in busters], ["0", "1", "2"])

    async def test_budget_stops_loop(self):
        tester = UploadTester(duration_seconds=0.2, payload_size=16 * KIB, max_iterations=10)
        result = await tester.test(self.server.endpoints(upload="/up-slow"))
        self.assertGreaterEqual(result.requests, 1)
        self.assertLess(result.requests, 10)
        self.assertLess(result.duration_ms, 1500)

    async def test_frozen_clock_still_finite(self):
        tester = UploadTester(payload_size=16 * KIB, max_iterations=3, clock=FakeClock())
        result = await tester.test(self.server.endpoints())
        self.assertEqual(result.requests, 3)
        for sample in result.samples:
            self.assertTrue(math.isfinite(sample.rate_mbps))
        self.assertTrue(math.isfinite(result.speed_mbps))
        self.assertGreater(result.speed_mbps, 0)

    async def test_cancel_during_post(self):
        token = CancelToken()
        tester = UploadTester(duration_seconds=30.0, payload_size=16 * KIB)
        task = asyncio.ensure_future(
            tester.test(self.server.endpoints(upload="/up-stall"), token)
        )
        await asyncio.sleep(0.3)
        token.cancel()
        result = await asyncio.wait_for(task, 3)

        self.assertTrue(result.cancelled)
        self.assertEqual(result.requests, 0)
        self.assertEqual(result.speed_mbps, 0.0)

    async def test_server_error_ends_phase(self):
        tester = UploadTester(payload_size=KIB, max_iterations=5)
        result = await tester.test(self.server.endpoints(upload="/up-500"))
        self.assertEqual(result.requests, 0)
        self.assertEqual(result.speed_mbps, 0.0)
        self.assertIsNotNone(result.error)

    async def test_malformed_url(self):
        tester = UploadTester(payload_size=KIB)
        result = await tester.test(Endpoints(upload_url="/relative/path"))
        self.assertEqual(result.speed_mbps, 0.0)
        self.assertTrue(result.error.startswith("Invalid upload URL"))


if __name__ == "__main__":
    unittest.main()
