"""Tests for the monitoring instrumentation utilities."""

from __future__ import annotations

import time

from django.test import TestCase, override_settings

from checkin import monitoring


class MonitoringInstrumentationTests(TestCase):
    """Ensure monitoring helpers capture health signals as expected."""

    def setUp(self) -> None:
        monitoring.reset_for_tests()
        return super().setUp()

    def test_camera_start_and_stop_state(self) -> None:
        monitoring.record_camera_start(success=True, latency=0.25)
        snapshot = monitoring.get_health_snapshot()
        self.assertTrue(snapshot["camera"]["running"])
        self.assertEqual(snapshot["camera"]["last_start"]["status"], "success")
        self.assertEqual(snapshot["metrics"]["camera_start"]["success"], 1.0)

        monitoring.record_camera_stop(success=True, latency=0.15)
        snapshot = monitoring.get_health_snapshot()
        self.assertFalse(snapshot["camera"]["running"])
        self.assertEqual(snapshot["camera"]["last_stop"]["status"], "success")

    def test_camera_start_failure_raises_alert(self) -> None:
        monitoring.record_camera_start(success=False, latency=0.5, error="no device")
        snapshot = monitoring.get_health_snapshot()
        self.assertEqual(snapshot["camera"]["last_error"], "no device")
        self.assertIn("camera_start_failure", {alert["type"] for alert in snapshot["alerts"]})

    @override_settings(CHECKIN_FRAME_DELAY_ALERT_SECONDS=0.01)
    def test_frame_delay_alert_when_threshold_exceeded(self) -> None:
        monitoring.record_frame_delay(0.05, capture_time=time.time())
        snapshot = monitoring.get_health_snapshot()
        alert_types = {alert["type"] for alert in snapshot["alerts"]}
        self.assertIn("frame_delay", alert_types)
        self.assertIsNotNone(snapshot["frames"]["last_frame_timestamp"])

    @override_settings(CHECKIN_FRAME_PROCESSING_ALERT_SECONDS=0.01)
    def test_stage_duration_alert_when_frame_slow(self) -> None:
        monitoring.observe_stage_duration("frame_processing", 0.05, threshold_key="frame_processing")
        snapshot = monitoring.get_health_snapshot()
        stages = [alert["data"].get("stage") for alert in snapshot["alerts"]]
        self.assertIn("frame_processing", stages)
        self.assertEqual(snapshot["stages"]["frame_processing"]["last_duration"], 0.05)

    @override_settings(CHECKIN_HEALTH_ALERT_HISTORY=2)
    def test_alert_history_is_bounded(self) -> None:
        for _ in range(5):
            monitoring.session_started()
            monitoring.session_finished("timeout")
        snapshot = monitoring.get_health_snapshot()
        self.assertEqual(len(snapshot["alerts"]), 2)
        self.assertEqual(snapshot["verifier"]["active_sessions"], 0)

    def test_frame_outcomes_and_coalescing_are_counted(self) -> None:
        monitoring.record_frame_outcome("no_face")
        monitoring.record_frame_outcome("no_face")
        monitoring.record_frame_outcome("captured")
        monitoring.record_frames_coalesced(3)
        monitoring.record_frames_coalesced(0)
        monitoring.record_frame_drop()

        metrics = monitoring.get_health_snapshot()["metrics"]
        self.assertEqual(metrics["frames"]["no_face"], 2.0)
        self.assertEqual(metrics["frames"]["captured"], 1.0)
        self.assertEqual(metrics["frames"]["tracking"], 0)
        self.assertEqual(metrics["frame_coalesced_total"], 3.0)
        self.assertEqual(metrics["frame_drop_total"], 1.0)

    def test_capture_is_recorded(self) -> None:
        monitoring.record_capture(False, 42.0, 10.0)
        snapshot = monitoring.get_health_snapshot()
        self.assertEqual(snapshot["metrics"]["captures"]["failure"], 1.0)
        self.assertEqual(snapshot["verifier"]["last_capture"]["result"], "failure")

    def test_export_metrics_uses_checkin_namespace(self) -> None:
        monitoring.record_frame_outcome("tracking")
        payload = monitoring.export_metrics().decode()
        self.assertIn("checkin_frames_processed_total", payload)
        self.assertTrue(monitoring.prometheus_content_type().startswith("text/plain"))

    def test_thresholds_follow_settings(self) -> None:
        with self.settings(CHECKIN_CAMERA_START_ALERT_SECONDS=9.0):
            self.assertEqual(monitoring.get_threshold("camera_start"), 9.0)
        with self.assertRaises(KeyError):
            monitoring.get_threshold("unknown")
