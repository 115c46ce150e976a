"""
Tests for the Ledger Service

Test strategy:
1. Queries and aggregates over a known collection
2. Mutations against a recording store (no disk)
3. Failure paths: save failures, unknown ids, load failures
"""

import asyncio
import json
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from conftest import (
    RecordingStore,
    make_product,
    make_receipt,
    run_async,
)
from expense_ledger.audit import AuditLogger
from expense_ledger.config import LedgerSettings
from expense_ledger.ledger import LedgerService, share_percentage, summarize_categories
from expense_ledger.models.audit import AuditEventType
from expense_ledger.models.receipt import (
    ReceiptCategory,
    ReceiptInput,
    ReceiptPatch,
    ReceiptStatus,
    ReceiptType,
)
from expense_ledger.services.storage import (
    InMemoryKeyValueStore,
    KeyValueRecordStore,
    NotFoundError,
    PersistenceError,
    RecordStoreInterface,
    StorageError,
)


def market_and_taxi():
    return [
        make_receipt(2, "Market", "100", ReceiptCategory.FOOD),
        make_receipt(1, "Taxi", "50", ReceiptCategory.TRANSPORT),
    ]


class FailingLoadStore(RecordStoreInterface):
    async def load(self):
        raise StorageError("storage unavailable")

    async def save(self, receipts):
        pass


class SlowStore(RecordingStore):
    """Recording store whose saves yield to the event loop first."""

    async def save(self, receipts) -> None:
        await asyncio.sleep(0.01)
        await super().save(receipts)


class TestCategorySummary:
    """Tests for the per-category aggregates."""

    def test_share_percentage_rounds_half_up(self):
        """Test that shares round half up to an integer."""
        assert share_percentage(Decimal("100"), Decimal("150")) == 67
        assert share_percentage(Decimal("50"), Decimal("150")) == 33
        assert share_percentage(Decimal("1"), Decimal("8")) == 13

    def test_share_percentage_zero_total(self):
        """Test that a zero total gives 0, not an error."""
        assert share_percentage(Decimal("0"), Decimal("0")) == 0

    def test_summary_lists_every_category_in_fixed_order(self):
        """Test the fixed category list, including empty categories."""
        summary = summarize_categories([])
        assert [c.name for c in summary] == list(ReceiptCategory)
        assert all(c.amount == 0 and c.percentage == 0 for c in summary)

    def test_category_amounts_add_up_to_total(self):
        """Test that category amounts sum exactly to the ledger total."""
        receipts = [
            make_receipt(1, "A", "10.10", ReceiptCategory.FOOD),
            make_receipt(2, "B", "20.20", ReceiptCategory.SERVICES),
            make_receipt(3, "C", "0.35", ReceiptCategory.OTHER),
            make_receipt(4, "D", "33.33", ReceiptCategory.FOOD),
        ]
        summary = summarize_categories(receipts)
        assert sum(c.amount for c in summary) == sum(r.amount for r in receipts)

    def test_percentages_may_drift_from_100(self):
        """Test that each percentage is rounded on its own."""
        receipts = [
            make_receipt(1, "A", "1", ReceiptCategory.FOOD),
            make_receipt(2, "B", "1", ReceiptCategory.TRANSPORT),
            make_receipt(3, "C", "1", ReceiptCategory.SERVICES),
        ]
        summary = summarize_categories(receipts)
        assert sum(c.percentage for c in summary) == 99


class TestLedgerQueries:
    """Tests for read-only ledger operations."""

    def test_market_and_taxi_scenario(self, ledger, store):
        """Test totals, average and categories for a two-receipt ledger."""
        store.saved = market_and_taxi()
        run_async(ledger.initialize())

        assert ledger.total_expenses() == Decimal("150")
        assert ledger.average_per_receipt() == Decimal("75")

        by_name = {c.name: c for c in ledger.categories}
        assert by_name[ReceiptCategory.FOOD].amount == 100
        assert by_name[ReceiptCategory.FOOD].percentage == 67
        assert by_name[ReceiptCategory.TRANSPORT].amount == 50
        assert by_name[ReceiptCategory.TRANSPORT].percentage == 33
        for category in (
            ReceiptCategory.OFFICE_EQUIPMENT,
            ReceiptCategory.SERVICES,
            ReceiptCategory.OTHER,
        ):
            assert by_name[category].amount == 0
            assert by_name[category].percentage == 0

    def test_average_of_empty_ledger_is_zero(self, ledger):
        """Test that an empty ledger averages to 0."""
        run_async(ledger.initialize())
        assert ledger.average_per_receipt() == 0
        assert ledger.total_expenses() == 0

    def test_by_category(self, ledger, store):
        """Test filtering by category name or enum."""
        store.saved = market_and_taxi()
        run_async(ledger.initialize())

        assert [r.name for r in ledger.by_category("Alimentos")] == ["Market"]
        assert [r.name for r in ledger.by_category(ReceiptCategory.TRANSPORT)] == ["Taxi"]
        assert ledger.by_category(ReceiptCategory.SERVICES) == []

    def test_by_date_range_is_inclusive(self, ledger, store):
        """Test that both ends of the range are included."""
        store.saved = [
            make_receipt(3, "Late", "5", date=datetime(2024, 3, 31, 23, 30)),
            make_receipt(2, "Early", "5", date=datetime(2024, 3, 1, 0, 0)),
            make_receipt(1, "Before", "5", date=datetime(2024, 2, 29, 23, 59)),
        ]
        run_async(ledger.initialize())

        found = ledger.by_date_range(date(2024, 3, 1), date(2024, 3, 31))
        assert [r.name for r in found] == ["Late", "Early"]

    def test_by_date_range_with_times(self, ledger, store):
        """Test that datetime bounds keep their time of day."""
        store.saved = [
            make_receipt(2, "Dinner", "5", date=datetime(2024, 3, 5, 20, 0)),
            make_receipt(1, "Breakfast", "5", date=datetime(2024, 3, 5, 8, 0)),
        ]
        run_async(ledger.initialize())

        found = ledger.by_date_range(datetime(2024, 3, 5, 12, 0), date(2024, 3, 5))
        assert [r.name for r in found] == ["Dinner"]

    def test_by_date_range_with_aware_bounds(self, ledger, store):
        """Test that offset-aware bounds compare against local receipt dates."""
        store.saved = market_and_taxi()
        run_async(ledger.initialize())

        start = datetime(2024, 2, 1, tzinfo=timezone.utc)
        end = datetime(2024, 4, 1, tzinfo=timezone.utc)
        assert len(ledger.by_date_range(start, end)) == 2

    def test_recent_and_dashboard_summary(self, ledger, store):
        """Test the dashboard figures."""
        store.saved = [
            make_receipt(i, f"R{i}", "10") for i in range(5, 0, -1)
        ]
        run_async(ledger.initialize())

        summary = ledger.dashboard_summary()
        assert summary.receipt_count == 5
        assert summary.total_expenses == 50
        assert [r.id for r in summary.recent_receipts] == [5, 4, 3]
        assert [r.id for r in ledger.recent(1)] == [5]

    def test_get(self, ledger, store):
        """Test lookup by id."""
        store.saved = market_and_taxi()
        run_async(ledger.initialize())

        assert ledger.get(1).name == "Taxi"
        assert ledger.get(99) is None


class TestLedgerLoading:
    """Tests for initialize/refresh."""

    def test_initialize_loads_once(self, ledger, store):
        """Test that initialize only reads the store the first time."""
        store.saved = market_and_taxi()

        async def scenario():
            assert ledger.is_loading is True
            await ledger.initialize()
            await ledger.initialize()

        run_async(scenario())
        assert store.load_calls == 1
        assert ledger.is_loading is False
        assert len(ledger) == 2

    def test_load_failure_starts_empty(self, ledger_settings, audit_storage):
        """Test that a failing store leaves an empty, loaded ledger."""
        ledger = LedgerService(
            FailingLoadStore(),
            audit_logger=AuditLogger(audit_storage),
            settings=ledger_settings,
        )
        run_async(ledger.initialize())

        assert ledger.receipts == ()
        assert ledger.is_loading is False
        assert audit_storage.events[-1].event_type == AuditEventType.LEDGER_LOAD_FAILED

    def test_unreadable_records_are_dropped_and_audited(self, ledger_settings, audit_storage, clock):
        """Test that one bad stored record doesn't wipe the rest on the next save."""
        good = {"id": 1, "name": "Market", "amount": 100,
                "date": "2024-03-01T10:00:00", "category": "Alimentos"}
        bad = {"id": 2, "name": "Ferretería", "amount": 0.5,
               "date": "2024-03-02T10:00:00", "category": "Otros",
               "products": [{"name": "Tornillos", "price": 1, "quantity": 0.5}]}
        blob = json.dumps([good, bad])
        kv = InMemoryKeyValueStore({"receipts": blob})
        ledger = LedgerService(
            KeyValueRecordStore(kv),
            audit_logger=AuditLogger(audit_storage),
            settings=ledger_settings,
            clock=clock,
        )

        async def scenario():
            await ledger.initialize()
            await ledger.create(ReceiptInput(
                name="Cine", category=ReceiptCategory.OTHER, amount=Decimal("80"),
            ))
            return await kv.get_item("receipts")

        stored = json.loads(run_async(scenario()))
        assert [r["name"] for r in stored["receipts"]] == ["Cine", "Market"]
        assert run_async(kv.get_item("receipts.unreadable")) == blob

        errors = [e for e in audit_storage.events if e.event_type == AuditEventType.SYSTEM_ERROR]
        assert len(errors) == 1
        assert errors[0].error_message == "1 stored records could not be read"
        assert len(errors[0].details["errors"]) == 1

    def test_refresh_picks_up_new_data(self, ledger, store):
        """Test that refresh rereads the store."""
        run_async(ledger.initialize())
        assert len(ledger) == 0

        store.saved = market_and_taxi()
        run_async(ledger.refresh())
        assert len(ledger) == 2


class TestLedgerCreate:
    """Tests for create."""

    def test_create_assigns_id_status_and_prepends(self, ledger, store, clock):
        """Test that new receipts get an id and go to the head."""
        async def scenario():
            await ledger.initialize()
            first = await ledger.create(ReceiptInput(
                name="Market", category=ReceiptCategory.FOOD, amount=Decimal("100"),
            ))
            second = await ledger.create(ReceiptInput(
                name="Taxi", category=ReceiptCategory.TRANSPORT, amount=Decimal("50"),
            ))
            return first, second

        first, second = run_async(scenario())

        assert first.id == int(clock.now.timestamp() * 1000)
        assert second.id > first.id
        assert first.status == ReceiptStatus.PROCESSED
        assert first.type == ReceiptType.MANUAL
        assert [r.id for r in ledger.receipts] == [second.id, first.id]
        assert store.save_calls == 2
        assert [r.id for r in store.saved] == [second.id, first.id]

    def test_ids_stay_above_loaded_ids(self, ledger, store):
        """Test that new ids never collide with stored ones."""
        store.saved = [make_receipt(10**15, "Future", "1")]

        async def scenario():
            await ledger.initialize()
            return await ledger.create(ReceiptInput(
                name="Now", category=ReceiptCategory.OTHER, amount=Decimal("1"),
            ))

        created = run_async(scenario())
        assert created.id == 10**15 + 1

    def test_products_override_supplied_amount(self, ledger):
        """Test that the amount always comes from the line items."""
        async def scenario():
            await ledger.initialize()
            return await ledger.create(ReceiptInput(
                name="Papelería",
                category=ReceiptCategory.OFFICE_EQUIPMENT,
                amount=Decimal("999"),
                products=[
                    make_product("Hojas", "10", "2"),
                    make_product("Pluma", "5", "1"),
                ],
            ))

        created = run_async(scenario())
        assert created.amount == Decimal("25")

    def test_supplied_date_is_kept(self, ledger):
        """Test that a caller-chosen purchase date survives create."""
        async def scenario():
            await ledger.initialize()
            return await ledger.create(ReceiptInput(
                name="Market",
                category=ReceiptCategory.FOOD,
                amount=Decimal("1"),
                date=datetime(2024, 1, 5),
            ))

        assert run_async(scenario()).date == datetime(2024, 1, 5)

    def test_missing_date_defaults_to_now(self, ledger, clock):
        """Test that create stamps the current time when no date is given."""
        async def scenario():
            await ledger.initialize()
            return await ledger.create(ReceiptInput(
                name="Market", category=ReceiptCategory.FOOD, amount=Decimal("1"),
            ))

        assert run_async(scenario()).date == clock.now

    def test_supplied_date_ignored_when_disabled(self, store, clock):
        """Test the setting that always stamps the current time."""
        ledger = LedgerService(
            store,
            settings=LedgerSettings(honor_supplied_date=False),
            clock=clock,
        )

        async def scenario():
            await ledger.initialize()
            return await ledger.create(ReceiptInput(
                name="Market",
                category=ReceiptCategory.FOOD,
                amount=Decimal("1"),
                date=datetime(2024, 1, 5),
            ))

        assert run_async(scenario()).date == clock.now

    def test_save_failure_leaves_state_untouched(self, ledger, store, audit_storage):
        """Test that a failed save is raised and nothing is committed."""
        store.saved = market_and_taxi()
        run_async(ledger.initialize())
        before = ledger.snapshot()
        store.fail_saves = True

        with pytest.raises(PersistenceError):
            run_async(ledger.create(ReceiptInput(
                name="Cine", category=ReceiptCategory.OTHER, amount=Decimal("80"),
            )))

        assert ledger.snapshot().model_dump() == before.model_dump()
        assert audit_storage.events[-1].event_type == AuditEventType.SAVE_FAILED

    @pytest.mark.parametrize("operation", ["update", "delete", "clear_all"])
    def test_save_failure_aborts_mutation(self, ledger, store, audit_storage, operation):
        """Test that a failed save leaves the ledger as it was for every mutation."""
        store.saved = market_and_taxi()
        run_async(ledger.initialize())
        before = ledger.snapshot()
        store.fail_saves = True

        calls = {
            "update": lambda: ledger.update(2, ReceiptPatch(name="Super")),
            "delete": lambda: ledger.delete(2),
            "clear_all": lambda: ledger.clear_all(),
        }
        with pytest.raises(PersistenceError):
            run_async(calls[operation]())

        assert ledger.snapshot().model_dump() == before.model_dump()
        assert [r.name for r in store.saved] == ["Market", "Taxi"]
        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.SAVE_FAILED
        assert event.details == {"operation": operation}

    def test_create_is_audited(self, ledger, audit_storage):
        """Test that a committed create writes an audit event."""
        async def scenario():
            await ledger.initialize()
            return await ledger.create(ReceiptInput(
                name="Market", category=ReceiptCategory.FOOD, amount=Decimal("12.50"),
            ))

        created = run_async(scenario())
        event = audit_storage.events[-1]
        assert event.event_type == AuditEventType.RECEIPT_CREATED
        assert event.entity_id == created.id
        assert event.details["amount"] == "12.50"


class TestLedgerUpdateDelete:
    """Tests for update, delete and clear_all."""

    def test_update_merges_patch_in_place(self, ledger, store):
        """Test that only the patched fields change and order is kept."""
        store.saved = market_and_taxi()

        async def scenario():
            await ledger.initialize()
            return await ledger.update(1, ReceiptPatch(name="Uber"))

        updated = run_async(scenario())

        assert updated.name == "Uber"
        assert updated.amount == Decimal("50")
        assert updated.category == ReceiptCategory.TRANSPORT
        assert [r.name for r in ledger.receipts] == ["Market", "Uber"]
        assert store.save_calls == 1

    def test_update_recomputes_categories(self, ledger, store):
        """Test that categories follow an update."""
        store.saved = market_and_taxi()

        async def scenario():
            await ledger.initialize()
            await ledger.update(1, ReceiptPatch(category=ReceiptCategory.FOOD))

        run_async(scenario())
        by_name = {c.name: c for c in ledger.categories}
        assert by_name[ReceiptCategory.FOOD].amount == 150
        assert by_name[ReceiptCategory.FOOD].percentage == 100
        assert by_name[ReceiptCategory.TRANSPORT].amount == 0

    def test_amount_patch_on_product_receipt_is_recomputed(self, ledger, store):
        """Test that line items keep deciding the amount."""
        store.saved = [make_receipt(
            1, "Papelería", "25",
            products=[make_product("Hojas", "10", "2"), make_product("Pluma", "5")],
        )]

        async def scenario():
            await ledger.initialize()
            return await ledger.update(1, ReceiptPatch(amount=Decimal("200")))

        assert run_async(scenario()).amount == Decimal("25")

    def test_update_unknown_id_is_noop(self, ledger, store):
        """Test that an unknown id changes nothing and saves nothing."""
        store.saved = market_and_taxi()

        async def scenario():
            await ledger.initialize()
            before = ledger.snapshot()
            result = await ledger.update(999, ReceiptPatch(amount=Decimal("200")))
            return before, result

        before, result = run_async(scenario())
        assert result is None
        assert store.save_calls == 0
        assert ledger.snapshot().model_dump() == before.model_dump()

    def test_update_unknown_id_strict(self, store, clock):
        """Test that strict mode raises NotFoundError and saves nothing."""
        store.saved = market_and_taxi()
        ledger = LedgerService(
            store,
            settings=LedgerSettings(strict_not_found=True),
            clock=clock,
        )

        async def scenario():
            await ledger.initialize()
            await ledger.update(999, ReceiptPatch(amount=Decimal("200")))

        with pytest.raises(NotFoundError):
            run_async(scenario())
        assert store.save_calls == 0
        assert len(ledger) == 2

    def test_delete(self, ledger, store, audit_storage):
        """Test removing a receipt by id."""
        store.saved = market_and_taxi()

        async def scenario():
            await ledger.initialize()
            removed = await ledger.delete(2)
            missing = await ledger.delete(2)
            return removed, missing

        removed, missing = run_async(scenario())
        assert removed is True
        assert missing is False
        assert [r.name for r in ledger.receipts] == ["Taxi"]
        assert store.save_calls == 1
        assert audit_storage.events[-1].event_type == AuditEventType.RECEIPT_NOT_FOUND

    def test_clear_all(self, ledger, store):
        """Test emptying the ledger."""
        store.saved = market_and_taxi()

        async def scenario():
            await ledger.initialize()
            await ledger.clear_all()

        run_async(scenario())
        assert len(ledger) == 0
        assert store.saved == []
        assert all(c.amount == 0 for c in ledger.categories)


class TestLedgerConcurrency:
    """Tests for overlapping mutations."""

    def test_concurrent_creates_keep_every_receipt(self, audit_storage, ledger_settings, clock):
        """Test that creates racing on a slow store all survive with distinct ids."""
        store = SlowStore()
        ledger = LedgerService(
            store,
            audit_logger=AuditLogger(audit_storage),
            settings=ledger_settings,
            clock=clock,
        )

        async def scenario():
            await ledger.initialize()
            return await asyncio.gather(*(
                ledger.create(ReceiptInput(
                    name=f"R{n}", category=ReceiptCategory.FOOD, amount=Decimal("10"),
                ))
                for n in range(5)
            ))

        created = run_async(scenario())

        assert len({r.id for r in created}) == 5
        assert len(ledger) == 5
        assert {r.id for r in store.saved} == {r.id for r in created}
        assert store.save_calls == 5

    def test_concurrent_create_and_delete(self, ledger_settings, clock):
        """Test that a delete racing a create loses neither change."""
        store = SlowStore(market_and_taxi())
        ledger = LedgerService(store, settings=ledger_settings, clock=clock)

        async def scenario():
            await ledger.initialize()
            await asyncio.gather(
                ledger.create(ReceiptInput(
                    name="Cine", category=ReceiptCategory.OTHER, amount=Decimal("80"),
                )),
                ledger.delete(1),
            )

        run_async(scenario())
        assert sorted(r.name for r in store.saved) == ["Cine", "Market"]
        assert sorted(r.name for r in ledger.receipts) == ["Cine", "Market"]


class TestLedgerListeners:
    """Tests for change notifications."""

    def test_listener_receives_snapshot_after_commit(self, ledger):
        """Test that subscribers see each committed state."""
        seen = []
        ledger.subscribe(lambda snapshot: seen.append(len(snapshot.receipts)))

        async def scenario():
            await ledger.initialize()
            await ledger.create(ReceiptInput(
                name="Market", category=ReceiptCategory.FOOD, amount=Decimal("1"),
            ))

        run_async(scenario())
        assert seen == [0, 1]

    def test_unsubscribe(self, ledger):
        """Test that an unsubscribed listener is not called again."""
        seen = []
        unsubscribe = ledger.subscribe(seen.append)
        unsubscribe()
        run_async(ledger.initialize())
        assert seen == []

    def test_failing_listener_does_not_block_others(self, ledger):
        """Test that one broken listener doesn't stop the rest."""
        seen = []

        def broken(snapshot):
            raise RuntimeError("boom")

        ledger.subscribe(broken)
        ledger.subscribe(seen.append)
        run_async(ledger.initialize())
        assert len(seen) == 1

    def test_no_notification_on_failed_save(self, ledger, store):
        """Test that listeners aren't told about uncommitted changes."""
        run_async(ledger.initialize())
        seen = []
        ledger.subscribe(seen.append)
        store.fail_saves = True

        with pytest.raises(PersistenceError):
            run_async(ledger.clear_all())
        assert seen == []


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
