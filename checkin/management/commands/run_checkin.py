"""Management command running a live check-in verification on the local camera."""

from __future__ import annotations

from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

from checkin.conf import VerifierConfig
from checkin.models import VerificationOutcome
from checkin.observer import FaceObserver
from checkin.reference_store import DatabaseReferenceStore
from checkin.session import VerificationSession
from checkin.webcam_manager import get_webcam_manager, reset_webcam_manager


class Command(BaseCommand):
    help = "Verify a live face against an enrolled identity and record the attempt"

    def add_arguments(self, parser):
        parser.add_argument("identity", type=str, help="Enrolled identity to verify")
        parser.add_argument(
            "--timeout",
            type=float,
            default=None,
            help="Abandon the session after this many seconds (default: CHECKIN_SESSION_TIMEOUT_SECONDS)",
        )
        parser.add_argument(
            "--evidence",
            type=Path,
            default=None,
            help="Write the frozen capture frame to this JPEG path",
        )
        parser.add_argument(
            "--no-persist",
            action="store_true",
            help="Do not store the verification outcome in the database",
        )

    def handle(self, *args, **options):
        identity = options["identity"]
        overrides = {}
        if options["timeout"] is not None:
            if options["timeout"] <= 0:
                raise CommandError("--timeout must be positive.")
            overrides["session_timeout_seconds"] = options["timeout"]
        config = VerifierConfig.from_settings(**overrides)

        reference = DatabaseReferenceStore().get_reference_descriptor(identity)
        if reference is None:
            self.stderr.write(
                self.style.WARNING(f"No enrolment for {identity}; the attempt cannot succeed.")
            )

        observer = FaceObserver.from_settings()
        session = VerificationSession(observer, reference=reference, identity=identity, config=config)

        evidence = None
        last_instruction = None
        try:
            manager = get_webcam_manager()
            with manager.frame_consumer() as consumer:
                for outcome in session.iter_outcomes(consumer):
                    instruction = outcome.snapshot.instruction_text
                    if instruction != last_instruction:
                        self.stdout.write(instruction)
                        last_instruction = instruction
                    if outcome.evidence is not None:
                        evidence = outcome.evidence
        except KeyboardInterrupt:
            session.stop()
            raise CommandError("Interrupted.")
        finally:
            observer.close()
            reset_webcam_manager()

        if evidence is None:
            raise CommandError("No capture before the session ended.")

        attempt = evidence.attempt
        if not options["no_persist"]:
            VerificationOutcome.from_attempt(
                attempt,
                identity=identity,
                source="camera",
                had_reference=reference is not None,
            )
            VerificationOutcome.prune_expired()

        if options["evidence"] is not None:
            options["evidence"].write_bytes(evidence.to_jpeg())
            self.stdout.write(f"Evidence written to {options['evidence']}")

        summary = (
            f"match={attempt.match_score:.1f} liveness={attempt.liveness_score:.1f} "
            f"quality={attempt.quality_score:.0f} stability={attempt.stability_score:.0f}"
        )
        if attempt.success:
            self.stdout.write(self.style.SUCCESS(f"Identity verified ({summary})"))
        else:
            self.stdout.write(self.style.ERROR(f"Face not recognised ({summary})"))
