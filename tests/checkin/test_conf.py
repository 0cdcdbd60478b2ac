"""Tests for settings-backed verifier configuration."""

from __future__ import annotations

from django.test import SimpleTestCase, override_settings

from checkin.conf import VerifierConfig


class VerifierConfigTests(SimpleTestCase):
    def test_defaults_match_tuned_constants(self):
        config = VerifierConfig()
        self.assertEqual(config.quality_floor, 75.0)
        self.assertEqual(config.stability_floor, 50.0)
        self.assertEqual(config.capture_hold_seconds, 2.0)
        self.assertEqual(config.ear_threshold, 0.3)
        self.assertEqual(config.glasses_eye_ratio, 0.18)
        self.assertEqual(config.quality_size_multiplier, 800.0)
        self.assertFalse(config.require_liveness)

    @override_settings(CHECKIN_QUALITY_FLOOR=60.0, CHECKIN_REQUIRE_LIVENESS=True)
    def test_from_settings_reads_checkin_prefix(self):
        config = VerifierConfig.from_settings()
        self.assertEqual(config.quality_floor, 60.0)
        self.assertTrue(config.require_liveness)

    @override_settings(CHECKIN_SESSION_TIMEOUT_SECONDS=30.0)
    def test_overrides_win_over_settings(self):
        config = VerifierConfig.from_settings(session_timeout_seconds=5.0)
        self.assertEqual(config.session_timeout_seconds, 5.0)
