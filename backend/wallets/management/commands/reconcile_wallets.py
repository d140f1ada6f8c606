import logging

from django.core.management.base import BaseCommand
from django.db import transaction

from services.finance import ledger_balance
from wallets.models import Transaction, Wallet

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Compare every wallet balance with the sum of its successful transactions."

    def add_arguments(self, parser):
        parser.add_argument(
            "--fix",
            action="store_true",
            help="Overwrite mismatched balances with the ledger total.",
        )

    def handle(self, *args, **options):
        fix = options["fix"]

        pairs = set(Wallet.objects.values_list("user_id", "role"))
        pairs.update(
            Transaction.objects.filter(status=Transaction.STATUS_SUCCESS)
            .values_list("user_id", "role")
            .distinct()
        )

        mismatched = 0
        for user_id, role in sorted(pairs):
            expected = ledger_balance(user_id, role)
            wallet = Wallet.objects.filter(user_id=user_id, role=role).first()
            actual = wallet.balance if wallet else None
            if actual == expected:
                continue

            mismatched += 1
            self.stdout.write(
                self.style.WARNING(
                    f"user={user_id} role={role}: balance {actual} != ledger {expected}"
                )
            )
            if fix:
                with transaction.atomic():
                    if wallet is None:
                        wallet, _ = Wallet.objects.get_or_create(user_id=user_id, role=role)
                    Wallet.objects.filter(pk=wallet.pk).update(balance=expected)
                logger.warning("Reconciled wallet user=%s role=%s from %s to %s", user_id, role, actual, expected)

        if not mismatched:
            self.stdout.write(self.style.SUCCESS(f"Checked {len(pairs)} wallet(s); all balances match."))
        elif fix:
            self.stdout.write(self.style.SUCCESS(f"Fixed {mismatched} of {len(pairs)} wallet(s)."))
        else:
            self.stdout.write(
                self.style.ERROR(f"{mismatched} of {len(pairs)} wallet(s) disagree with the ledger. Re-run with --fix.")
            )
