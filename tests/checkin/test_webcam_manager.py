"""Tests for the shared webcam manager lifecycle."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

from django.test import SimpleTestCase, override_settings

import numpy as np

from checkin import monitoring
from checkin.webcam_manager import _FrameConsumer, get_webcam_manager, reset_webcam_manager


@override_settings(CHECKIN_CAMERA_WARMUP_SECONDS=0.0)
class WebcamManagerLifecycleTests(SimpleTestCase):
    """Ensure the shared webcam manager releases resources cleanly."""

    def setUp(self) -> None:
        reset_webcam_manager()
        monitoring.reset_for_tests()
        return super().setUp()

    def tearDown(self) -> None:
        reset_webcam_manager()
        return super().tearDown()

    @patch("checkin.webcam_manager.VideoStream")
    def test_shutdown_stops_underlying_stream(self, mock_videostream):
        frame = np.zeros((1, 1, 3), dtype=np.uint8)

        stream = MagicMock()
        stream.start.return_value = stream
        stream.read.side_effect = lambda: frame
        mock_videostream.return_value = stream

        manager = get_webcam_manager()
        with manager.frame_consumer() as consumer:
            self.assertIsNotNone(consumer.read(timeout=0.5))
            self.assertEqual(monitoring.get_health_snapshot()["camera"]["consumers"], 1)

        self.assertEqual(monitoring.get_health_snapshot()["camera"]["consumers"], 0)
        manager.shutdown()
        stream.stop.assert_called_once()
        self.assertFalse(manager.running)

    @patch("checkin.webcam_manager.VideoStream")
    def test_reset_disposes_existing_instance(self, mock_videostream):
        frame = np.zeros((1, 1, 3), dtype=np.uint8)

        stream_one = MagicMock()
        stream_one.start.return_value = stream_one
        stream_one.read.side_effect = lambda: frame

        stream_two = MagicMock()
        stream_two.start.return_value = stream_two
        stream_two.read.side_effect = lambda: frame

        mock_videostream.side_effect = [stream_one, stream_two]

        manager_first = get_webcam_manager()
        with manager_first.frame_consumer() as consumer:
            self.assertIsNotNone(consumer.read(timeout=0.5))

        reset_webcam_manager()
        stream_one.stop.assert_called_once()

        manager_second = get_webcam_manager()
        self.assertIsNot(manager_first, manager_second)
        with manager_second.frame_consumer() as consumer:
            self.assertIsNotNone(consumer.read(timeout=0.5))

    @patch("checkin.webcam_manager.VideoStream")
    def test_start_failure_is_recorded_and_raised(self, mock_videostream):
        mock_videostream.side_effect = RuntimeError("camera busy")

        manager = get_webcam_manager()
        with self.assertRaises(RuntimeError):
            manager.frame_consumer()

        snapshot = monitoring.get_health_snapshot()
        self.assertEqual(snapshot["camera"]["last_error"], "camera busy")
        self.assertFalse(manager.running)


class FrameConsumerCoalescingTests(SimpleTestCase):
    def setUp(self) -> None:
        monitoring.reset_for_tests()
        return super().setUp()

    def test_skipped_frames_are_counted_not_queued(self):
        frame = np.zeros((2, 2, 3), dtype=np.uint8)
        manager = MagicMock()
        manager._wait_for_frame.side_effect = [(frame, 1), (frame, 2), (frame, 6), (None, 6)]

        with _FrameConsumer(manager) as consumer:
            self.assertIsNotNone(consumer.read())
            self.assertIsNotNone(consumer.read())
            self.assertIsNotNone(consumer.read())
            self.assertIsNone(consumer.read())

        self.assertEqual(consumer.coalesced, 3)
        self.assertEqual(manager._wait_for_frame.call_args_list[-1].args[0], 6)
        manager._register_consumer.assert_called_once()
        manager._release_consumer.assert_called_once()
        self.assertEqual(
            monitoring.get_health_snapshot()["metrics"]["frame_coalesced_total"], 3.0
        )

    def test_closed_consumer_returns_nothing(self):
        manager = MagicMock()
        consumer = _FrameConsumer(manager)
        self.assertIsNone(consumer.read())
        manager._wait_for_frame.assert_not_called()
