"""Create the Episode model."""

import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Episode',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('patient_id', models.CharField(db_index=True, help_text='Patient that owns the episode (immutable)', max_length=255)),
                ('state', models.CharField(
                    choices=[
                        ('CAPTACION', 'Captación'),
                        ('TRIAJE', 'Triaje'),
                        ('CITACION', 'Citación'),
                        ('RECIBIMIENTO', 'Recibimiento'),
                        ('EXPLORACION', 'Exploración'),
                        ('DIAGNOSTICO', 'Diagnóstico'),
                        ('PLAN', 'Plan'),
                        ('PRESUPUESTO', 'Presupuesto'),
                        ('TRATAMIENTO', 'Tratamiento'),
                        ('SEGUIMIENTO', 'Seguimiento'),
                        ('ALTA', 'Alta'),
                        ('MANTENIMIENTO', 'Mantenimiento'),
                    ],
                    default='CAPTACION',
                    help_text='Current clinical state',
                    max_length=20,
                )),
                ('owner_user_id', models.CharField(blank=True, help_text='Clinician responsible for the episode', max_length=255)),
                ('reason', models.TextField(blank=True, help_text='Reason for consultation')),
                ('risk_flags', models.JSONField(blank=True, default=list, help_text='Free-form clinical risk flags')),
                ('tags', models.JSONField(blank=True, default=list)),
                ('started_at', models.DateTimeField(auto_now_add=True, help_text='When the episode was opened')),
                ('closed_at', models.DateTimeField(blank=True, help_text='When the episode was discharged (set once)', null=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
            ],
            options={
                'ordering': ['-updated_at'],
                'indexes': [
                    models.Index(fields=['state', '-updated_at'], name='episodes_state_updated_idx'),
                ],
            },
        ),
    ]
