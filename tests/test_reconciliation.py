"""Tests for statement reconciliation."""

import pytest
from datetime import date
from decimal import Decimal

from zerobudget.errors import BusinessRuleViolation, NotFoundError
from zerobudget.models import ActivityEventType, ReconciliationStatus, TransactionStatus


@pytest.fixture
async def spending(transactions, checking):
    """Three outflows on the checking account."""
    return [
        await transactions.create_transaction(checking.key, "-100", date(2024, 1, 2), payee="Rent"),
        await transactions.create_transaction(checking.key, "-40", date(2024, 1, 3), payee="Food"),
        await transactions.create_transaction(checking.key, "-10", date(2024, 1, 4), payee="Coffee"),
    ]


class TestReconciliationLifecycle:
    """Tests for create, match, unmatch and complete."""

    async def test_create_starts_unmatched(self, matcher, checking):
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "-140")
        assert rec.status == ReconciliationStatus.IN_PROGRESS
        assert rec.cleared_balance == Decimal("0.00")
        assert rec.difference == Decimal("-140.00")

    async def test_one_in_progress_per_account(self, matcher, checking):
        await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "0")
        with pytest.raises(BusinessRuleViolation):
            await matcher.create_reconciliation(checking.key, date(2024, 2, 29), "0")

    async def test_match_recomputes_difference_and_clears(self, matcher, transactions, checking, spending):
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "-140")
        rec = await matcher.match_transactions(rec.key, [spending[0].key, spending[1].key])

        assert rec.cleared_balance == Decimal("-140.00")
        assert rec.difference == Decimal("0.00")
        matched = await transactions.get_transaction(spending[0].key)
        assert matched.is_cleared
        assert matched.reconciliation_key == rec.key
        assert (await transactions.get_account(checking.key)).cleared_balance == Decimal("860.00")

    async def test_match_is_idempotent(self, matcher, checking, spending):
        """Matching overlapping sets equals matching their union once."""
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "-140")
        await matcher.match_transactions(rec.key, [spending[0].key])
        rec = await matcher.match_transactions(rec.key, [spending[0].key, spending[1].key, spending[1].key])
        assert rec.matched_transaction_keys == [spending[0].key, spending[1].key]
        assert rec.cleared_balance == Decimal("-140.00")

    async def test_match_other_account_rejected(self, matcher, transactions, checking):
        savings = await transactions.create_account("Savings")
        foreign = await transactions.create_transaction(savings.key, "5", date(2024, 1, 2))
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "0")
        with pytest.raises(BusinessRuleViolation):
            await matcher.match_transactions(rec.key, [foreign.key])

    async def test_match_missing_transaction_writes_nothing(self, matcher, transactions, checking, spending):
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "0")
        with pytest.raises(NotFoundError):
            await matcher.match_transactions(rec.key, [spending[0].key, "ghost"])
        assert not (await transactions.get_transaction(spending[0].key)).is_cleared

    async def test_void_cannot_be_matched(self, matcher, transactions, checking, spending):
        await transactions.void_transaction(spending[2].key)
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "0")
        with pytest.raises(BusinessRuleViolation):
            await matcher.match_transactions(rec.key, [spending[2].key])

    async def test_unmatch_unclears(self, matcher, transactions, checking, spending):
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "-140")
        await matcher.match_transactions(rec.key, [spending[0].key, spending[1].key])
        rec = await matcher.unmatch_transactions(rec.key, [spending[1].key])

        assert rec.matched_transaction_keys == [spending[0].key]
        assert rec.difference == Decimal("-40.00")
        unmatched = await transactions.get_transaction(spending[1].key)
        assert not unmatched.is_cleared
        assert unmatched.reconciliation_key is None

    async def test_complete_within_tolerance_locks_transactions(self, matcher, transactions, checking, spending):
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "-140.01")
        await matcher.match_transactions(rec.key, [spending[0].key, spending[1].key])
        rec = await matcher.complete_reconciliation(rec.key, notes="January")

        assert rec.status == ReconciliationStatus.COMPLETED
        assert rec.completed_at is not None
        assert rec.notes == "January"
        locked = await transactions.get_transaction(spending[0].key)
        assert locked.is_reconciled

        with pytest.raises(BusinessRuleViolation):
            await transactions.update_transaction(locked.key, amount="-1")
        with pytest.raises(BusinessRuleViolation):
            await transactions.delete_transaction(locked.key)

    async def test_complete_outside_tolerance_rejected(self, matcher, checking, spending, activity):
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "-150")
        await matcher.match_transactions(rec.key, [spending[0].key, spending[1].key])
        with pytest.raises(BusinessRuleViolation):
            await matcher.complete_reconciliation(rec.key)

        assert (await matcher.get_reconciliation(rec.key)).is_in_progress
        assert len(activity.of_type(ActivityEventType.RECONCILIATION_REJECTED)) == 1

    async def test_completed_is_terminal(self, matcher, checking, spending):
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "-100")
        await matcher.match_transactions(rec.key, [spending[0].key])
        await matcher.complete_reconciliation(rec.key)

        with pytest.raises(BusinessRuleViolation):
            await matcher.match_transactions(rec.key, [spending[1].key])
        with pytest.raises(BusinessRuleViolation):
            await matcher.complete_reconciliation(rec.key)

    async def test_matched_transaction_cannot_be_deleted(self, matcher, transactions, checking, spending):
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "-100")
        await matcher.match_transactions(rec.key, [spending[0].key])
        with pytest.raises(BusinessRuleViolation):
            await transactions.delete_transaction(spending[0].key)

    async def test_new_reconciliation_after_completion(self, matcher, checking):
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "0")
        await matcher.complete_reconciliation(rec.key)
        second = await matcher.create_reconciliation(checking.key, date(2024, 2, 29), "0")
        listed = await matcher.list_reconciliations(account_key=checking.key)
        assert [r.key for r in listed] == [second.key, rec.key]


class TestLedgerChangesWhileMatched:
    """Tests for ledger edits between matching and completion."""

    async def test_amount_change_blocked_while_matched(self, matcher, transactions, checking, spending):
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "-100")
        await matcher.match_transactions(rec.key, [spending[0].key])

        with pytest.raises(BusinessRuleViolation, match="unmatch it first"):
            await transactions.update_transaction(spending[0].key, amount="-500")

        assert (await transactions.get_transaction(spending[0].key)).amount == Decimal("-100.00")
        rec = await matcher.complete_reconciliation(rec.key)
        assert rec.cleared_balance == Decimal("-100.00")

    async def test_payee_edit_allowed_while_matched(self, matcher, transactions, checking, spending):
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "-100")
        await matcher.match_transactions(rec.key, [spending[0].key])
        updated = await transactions.update_transaction(spending[0].key, payee="Landlord", amount="-100")
        assert updated.payee == "Landlord"

    async def test_completion_recomputes_stale_difference(self, matcher, ledger, checking, spending, activity):
        """Completion checks the matched amounts as they are now."""
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "-100")
        await matcher.match_transactions(rec.key, [spending[0].key])
        stored = await ledger.transactions.get(spending[0].key)
        await ledger.transactions.save(stored.with_changes(amount="-500"))

        with pytest.raises(BusinessRuleViolation, match="400"):
            await matcher.complete_reconciliation(rec.key)

        rec = await matcher.get_reconciliation(rec.key)
        assert rec.is_in_progress
        assert rec.cleared_balance == Decimal("-500.00")
        assert rec.difference == Decimal("400.00")
        assert not (await ledger.transactions.get(spending[0].key)).is_reconciled
        assert activity.of_type(ActivityEventType.RECONCILIATION_REJECTED)

    async def test_void_blocked_while_matched(self, matcher, transactions, checking, spending):
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "-100")
        await matcher.match_transactions(rec.key, [spending[0].key])

        with pytest.raises(BusinessRuleViolation, match="unmatch it first"):
            await transactions.void_transaction(spending[0].key)

        assert not (await transactions.get_transaction(spending[0].key)).is_void
        assert (await matcher.get_reconciliation(rec.key)).is_in_progress

    async def test_void_rows_do_not_count_toward_cleared(self, matcher, ledger, checking, spending):
        """A matched row voided behind the ledger's back is left out of the totals."""
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "-100")
        await matcher.match_transactions(rec.key, [spending[0].key])
        stored = await ledger.transactions.get(spending[0].key)
        await ledger.transactions.save(stored.with_changes(status=TransactionStatus.VOID))

        with pytest.raises(BusinessRuleViolation):
            await matcher.complete_reconciliation(rec.key)

        rec = await matcher.get_reconciliation(rec.key)
        assert rec.cleared_balance == Decimal("0.00")
        assert not (await ledger.transactions.get(spending[0].key)).is_reconciled

    async def test_reconciled_transaction_cannot_be_uncleared_by_update(self, matcher, transactions, checking, spending):
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "-100")
        await matcher.match_transactions(rec.key, [spending[0].key])
        await matcher.complete_reconciliation(rec.key)

        with pytest.raises(BusinessRuleViolation, match="stay cleared"):
            await transactions.update_transaction(spending[0].key, is_cleared=False)
        with pytest.raises(BusinessRuleViolation, match="stay cleared"):
            await transactions.clear_transaction(spending[0].key)

        assert (await transactions.get_transaction(spending[0].key)).is_cleared
        assert (await transactions.get_account(checking.key)).cleared_balance == Decimal("900.00")

    async def test_matched_transaction_cannot_be_uncleared(self, matcher, transactions, checking, spending):
        rec = await matcher.create_reconciliation(checking.key, date(2024, 1, 31), "-100")
        await matcher.match_transactions(rec.key, [spending[0].key])

        with pytest.raises(BusinessRuleViolation):
            await transactions.update_transaction(spending[0].key, is_cleared=False)
        with pytest.raises(BusinessRuleViolation):
            await transactions.clear_transaction(spending[0].key)

        assert (await matcher.complete_reconciliation(rec.key)).status == ReconciliationStatus.COMPLETED
