"""Management command to enrol a reference descriptor from an image file."""

from __future__ import annotations

from pathlib import Path

from django.core.management.base import BaseCommand, CommandError

import cv2

from checkin.models import FaceEnrollment
from checkin.observer import FaceObserver


class Command(BaseCommand):
    help = "Detect the face in an image and store its encrypted descriptor for an identity"

    def add_arguments(self, parser):
        parser.add_argument("identity", type=str, help="Identity (e.g. badge number) to enrol")
        parser.add_argument("image", type=Path, help="Path to a well-lit frontal photo")
        parser.add_argument(
            "--source",
            type=str,
            default="image",
            help="Free-form provenance label stored with the enrolment (default: image)",
        )

    def handle(self, *args, **options):
        identity = options["identity"].strip()
        image_path: Path = options["image"]
        if not identity:
            raise CommandError("Identity must not be empty.")
        if not image_path.is_file():
            raise CommandError(f"Image not found: {image_path}")

        frame = cv2.imread(str(image_path))
        if frame is None:
            raise CommandError(f"Unable to decode image: {image_path}")

        observer = FaceObserver.from_settings()
        try:
            observation = observer.detect(frame)
        finally:
            observer.close()

        if observation is None:
            raise CommandError("No face detected in the supplied image.")
        if observation.descriptor is None:
            raise CommandError("A face was detected but no descriptor could be computed.")

        enrollment = FaceEnrollment.enroll(
            identity, observation.descriptor, source=options["source"]
        )
        self.stdout.write(
            self.style.SUCCESS(
                f"Enrolled {enrollment.identity} "
                f"({enrollment.descriptor_length}-d, confidence {observation.detector_confidence:.2f})"
            )
        )
