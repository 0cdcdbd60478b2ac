"""Create enrolment and verification outcome tables."""

import django.core.validators
from django.db import migrations, models


def _score_validators():
    return [
        django.core.validators.MinValueValidator(0.0),
        django.core.validators.MaxValueValidator(100.0),
    ]


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="FaceEnrollment",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("identity", models.CharField(max_length=150, unique=True)),
                ("encrypted_descriptor", models.BinaryField()),
                ("descriptor_length", models.PositiveIntegerField(default=128)),
                ("source", models.CharField(blank=True, max_length=32)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Face Enrollment",
                "verbose_name_plural": "Face Enrollments",
                "ordering": ["identity"],
            },
        ),
        migrations.CreateModel(
            name="VerificationOutcome",
            fields=[
                (
                    "id",
                    models.BigAutoField(
                        auto_created=True, primary_key=True, serialize=False, verbose_name="ID"
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("identity", models.CharField(blank=True, max_length=150)),
                ("source", models.CharField(blank=True, max_length=32)),
                ("success", models.BooleanField()),
                ("match_score", models.FloatField(validators=_score_validators())),
                ("liveness_score", models.FloatField(validators=_score_validators())),
                ("quality_score", models.FloatField(validators=_score_validators())),
                ("stability_score", models.FloatField(validators=_score_validators())),
                ("is_real_person", models.BooleanField(default=False)),
                ("had_reference", models.BooleanField(default=True)),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["identity", "created_at"], name="checkin_ver_identit_6a1f2e_idx"
                    ),
                    models.Index(
                        fields=["success", "created_at"], name="checkin_ver_success_3b9c4d_idx"
                    ),
                ],
            },
        ),
    ]
