"""Create the canonical event store and the document store."""

import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name='Event',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('type', models.CharField(db_index=True, help_text="Namespaced type tag, e.g. 'Quote.Accepted'", max_length=100)),
                ('subject_kind', models.CharField(
                    choices=[
                        ('patient', 'Patient'),
                        ('episode', 'Episode'),
                        ('plan', 'Plan'),
                        ('procedure', 'Procedure'),
                        ('appointment', 'Appointment'),
                        ('quote', 'Quote'),
                    ],
                    help_text='Kind of entity the event is about',
                    max_length=20,
                )),
                ('subject_id', models.CharField(help_text='ID of the subject (CharField for UUID support)', max_length=255)),
                ('actor_user_id', models.CharField(blank=True, help_text='User or system that caused the event', max_length=255)),
                ('timestamp', models.BigIntegerField(db_index=True, help_text='Logical event time in epoch milliseconds, assigned at emission')),
                ('meta', models.JSONField(blank=True, default=dict, help_text='Event-specific payload')),
                ('recorded_at', models.DateTimeField(auto_now_add=True, db_index=True, help_text='When the event store received the event')),
            ],
            options={
                'ordering': ['timestamp', 'recorded_at'],
                'indexes': [
                    models.Index(fields=['subject_kind', 'subject_id', 'timestamp'], name='eventbus_event_subject_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='StoredDocument',
            fields=[
                ('id', models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name='ID')),
                ('collection', models.CharField(help_text="Collection name, e.g. 'tasks', 'kpi-events'", max_length=100)),
                ('doc_id', models.CharField(help_text='Document id, unique within its collection', max_length=255)),
                ('data', models.JSONField(blank=True, default=dict, help_text='Document fields')),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('expires_at', models.DateTimeField(blank=True, help_text='When this document can be cleaned up', null=True)),
            ],
            options={
                'indexes': [
                    models.Index(fields=['collection', 'expires_at'], name='eventbus_doc_expiry_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('collection', 'doc_id'), name='eventbus_unique_document_per_collection'),
                ],
            },
        ),
    ]
