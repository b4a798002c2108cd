"""Management command that feeds newly emitted events to the processor."""

from datetime import timedelta

from django.core.management.base import BaseCommand
from django.utils import timezone

from django_eventbus.listener import EventListener, ModelEventSource
from django_eventbus.processor import get_default_processor


class Command(BaseCommand):
    help = 'Poll the event store and run automation handlers for new events'

    def add_arguments(self, parser):
        parser.add_argument(
            '--since-minutes',
            type=int,
            default=5,
            help='Start with events emitted this many minutes ago (default: 5)'
        )
        parser.add_argument(
            '--interval',
            type=float,
            default=2.0,
            help='Seconds to wait between empty polls (default: 2.0)'
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=100,
            help='Maximum events fetched per poll (default: 100)'
        )
        parser.add_argument(
            '--once',
            action='store_true',
            help='Drain pending events and exit instead of polling forever'
        )
        parser.add_argument(
            '--grace-seconds',
            type=float,
            default=60.0,
            help='Re-read this many seconds behind the cursor to catch late commits (default: 60)'
        )

    def handle(self, *args, **options):
        since = timezone.now() - timedelta(minutes=options['since_minutes'])
        source = ModelEventSource(
            since=since,
            batch_size=options['batch_size'],
            interval=options['interval'],
            once=options['once'],
            grace=timedelta(seconds=options['grace_seconds']),
        )
        listener = EventListener(source, get_default_processor())

        self.stdout.write(f'Listening for events recorded since {since.isoformat()}...')
        try:
            stats = listener.run()
        except KeyboardInterrupt:
            source.stop()
            stats = listener.stats

        self.stdout.write(
            self.style.SUCCESS(
                f'Delivered {stats.delivered}: {stats.processed} processed, '
                f'{stats.duplicates} duplicates, {stats.unhandled} unhandled, '
                f'{stats.failed} failed'
            )
        )
