"""Management command to clean up expired dedupe records."""

from datetime import timedelta

from django.core.management.base import BaseCommand
from django.db.models import Q
from django.utils import timezone

from django_eventbus.conf import get_setting
from django_eventbus.models import StoredDocument


class Command(BaseCommand):
    help = 'Delete expired dedupe records to prevent unbounded ledger growth'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=None,
            help='Delete records older than this many days (default: EVENTBUS_DEDUPE_TTL_DAYS)'
        )
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show count of records that would be deleted without actually deleting'
        )

    def handle(self, *args, **options):
        days = options['days'] if options['days'] is not None else get_setting('DEDUPE_TTL_DAYS')
        dry_run = options['dry_run']
        collection = get_setting('DEDUPE_COLLECTION')
        now = timezone.now()
        cutoff = now - timedelta(days=days)

        # Records older than cutoff OR past their expires_at
        qs = StoredDocument.objects.filter(collection=collection).filter(
            Q(created_at__lt=cutoff) | Q(expires_at__lt=now)
        )

        count = qs.count()

        if dry_run:
            self.stdout.write(
                f'Would delete {count} dedupe records from "{collection}" '
                f'(older than {days} days or past expires_at)'
            )
        else:
            deleted, _ = qs.delete()
            self.stdout.write(
                self.style.SUCCESS(f'Deleted {deleted} expired dedupe records')
            )
