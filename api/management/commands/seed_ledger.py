from pathlib import Path

import yaml
from django.core.management.base import BaseCommand, CommandError
from django.db import transaction

from backend.ledger.models import Account, Category, SubCategory, STATUS_ACTIVE

DEFAULT_SEED = Path(__file__).resolve().parents[3] / "backend" / "ledger" / "fixtures" / "seed.yaml"


def load_seed(path) -> dict:
    with open(path, encoding="utf-8") as fh:
        parsed = yaml.safe_load(fh)
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise CommandError(f"{path}: expected a mapping with 'accounts' and 'categories'")
    return parsed


class Command(BaseCommand):
    help = 'Create the default cash / bank accounts and categories (idempotent)'

    def add_arguments(self, parser):
        parser.add_argument('--file', default=str(DEFAULT_SEED), help='YAML seed file')

    def handle(self, *args, **options):
        path = options['file']
        if not Path(path).is_file():
            raise CommandError(f'Seed file not found: {path}')
        seed = load_seed(path)

        created_accounts = []
        created_categories = []
        created_sub_categories = 0

        with transaction.atomic():
            for fixture in seed.get('accounts', []):
                kind = fixture['kind']
                # a single cash register is assumed everywhere
                if kind == Account.CASH and Account.objects.filter(kind=Account.CASH).exclude(name=fixture['name']).exists():
                    self.stdout.write(self.style.WARNING(f"Skipping {fixture['name']}: a cash account already exists"))
                    continue
                account, created = Account.objects.get_or_create(name=fixture['name'], defaults={'kind': kind})
                if created:
                    created_accounts.append(account.name)

            for fixture in seed.get('categories', []):
                category, created = Category.objects.get_or_create(
                    budget_code=fixture['budget_code'],
                    defaults={
                        'name': fixture['name'],
                        'kind': fixture['kind'],
                        'is_mixed': bool(fixture.get('is_mixed', False)),
                        'status': fixture.get('status', STATUS_ACTIVE),
                    },
                )
                if created:
                    created_categories.append(category.name)
                for name in fixture.get('sub_categories', []):
                    _, created = SubCategory.objects.get_or_create(category=category, name=name)
                    created_sub_categories += int(created)

        self.stdout.write(
            self.style.SUCCESS(
                f'Created {len(created_accounts)} accounts, {len(created_categories)} categories '
                f'and {created_sub_categories} sub-categories'
            )
        )
        if created_accounts:
            self.stdout.write(f'Accounts: {", ".join(created_accounts)}')
