import io
import threading
import unittest
import uuid
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import connection
from django.test import TestCase, TransactionTestCase
from django.utils import timezone
from rest_framework.test import APIClient

from core.models import AuditLog, Company
from inventory.models import Partner, Product, Warehouse
from ledger import allocator, intake, labels, store, transfers
from ledger.activity import find_quantity_drift, stock_unit_activity
from ledger.exceptions import (
    AlreadyCancelled,
    EmptyEvent,
    InsufficientQuantity,
    InvalidLabelBatch,
    InvalidQuantity,
    InvalidTransfer,
    NotFound,
    PartialBatchFailure,
)
from ledger.models import (
    GoodsInward,
    GoodsOutward,
    GoodsOutwardItem,
    LabelBatch,
    SequenceCounter,
    StockUnit,
    StockUnitStatus,
)


class LedgerFixtureMixin:
    def create_fixtures(self):
        self.user_model = get_user_model()
        self.company = Company.objects.create(slug="north-mills", name="North Mills")
        self.other_company = Company.objects.create(slug="south-mills", name="South Mills")

        self.warehouse = Warehouse.objects.create(company=self.company, name="Main Godown")
        self.second_warehouse = Warehouse.objects.create(company=self.company, name="Annex")
        self.foreign_warehouse = Warehouse.objects.create(company=self.other_company, name="South Godown")

        self.fabric = Product.objects.create(
            company=self.company,
            product_code="FAB-001",
            name="Cotton Twill",
            measuring_unit=Product.MeasuringUnit.METRE,
            stock_type=Product.StockType.ROLL,
            material="cotton",
            color="navy",
            gsm=220,
        )
        self.buttons = Product.objects.create(
            company=self.company,
            product_code="BTN-010",
            name="Horn Buttons",
            measuring_unit=Product.MeasuringUnit.UNIT,
            stock_type=Product.StockType.PIECE,
        )
        self.customer = Partner.objects.create(
            company=self.company,
            name="Metro Garments",
            partner_type=Partner.PartnerType.CUSTOMER,
        )

        self.admin = self.user_model.objects.create_user(
            username="ledger-admin",
            password="pass1234",
            company=self.company,
            role="admin",
        )
        self.staff = self.user_model.objects.create_user(
            username="ledger-staff",
            password="pass1234",
            company=self.company,
            role="staff",
        )

    def receive_rolls(self, *quantities, warehouse=None, product=None):
        warehouse = warehouse or self.warehouse
        product = product or self.fabric
        inward = intake.receive(
            warehouse.id,
            [{"quantity": quantity} for quantity in quantities],
            company_id=self.company.id,
            product_id=product.id,
        )
        return inward, list(inward.stock_units.order_by("sequence_number"))


class StockUnitStoreTests(LedgerFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def test_create_starts_full_with_next_sequence_number(self):
        first = store.create(self.fabric.id, self.warehouse.id, "100", company_id=self.company.id)
        second = store.create(self.fabric.id, self.warehouse.id, "40.5", company_id=self.company.id)

        self.assertEqual(first.sequence_number, 1)
        self.assertEqual(second.sequence_number, 2)
        self.assertEqual(second.initial_quantity, Decimal("40.50"))
        self.assertEqual(second.remaining_quantity, Decimal("40.50"))
        self.assertEqual(second.status, StockUnitStatus.FULL)

    def test_sequence_numbers_are_scoped_per_product_and_warehouse(self):
        store.create(self.fabric.id, self.warehouse.id, 10, company_id=self.company.id)
        store.create(self.fabric.id, self.warehouse.id, 10, company_id=self.company.id)

        other_product = store.create(self.buttons.id, self.warehouse.id, 10, company_id=self.company.id)
        other_warehouse = store.create(self.fabric.id, self.second_warehouse.id, 10, company_id=self.company.id)

        self.assertEqual(other_product.sequence_number, 1)
        self.assertEqual(other_warehouse.sequence_number, 1)

    def test_create_rejects_non_positive_and_junk_quantities(self):
        for quantity in (0, "-5", "abc", None, "0.001"):
            with self.subTest(quantity=quantity):
                with self.assertRaises(InvalidQuantity):
                    store.create(self.fabric.id, self.warehouse.id, quantity, company_id=self.company.id)
        self.assertFalse(StockUnit.objects.exists())

    def test_create_rejects_more_than_two_decimal_places(self):
        with self.assertRaises(InvalidQuantity) as ctx:
            store.create(self.fabric.id, self.warehouse.id, "12.345", company_id=self.company.id)
        self.assertEqual(ctx.exception.message, "Quantity supports at most two decimal places.")

        with self.assertRaises(InvalidQuantity):
            store.create(self.buttons.id, self.warehouse.id, "3.004", company_id=self.company.id)
        self.assertFalse(StockUnit.objects.exists())

        unit = store.create(self.fabric.id, self.warehouse.id, "12.340", company_id=self.company.id)
        self.assertEqual(unit.initial_quantity, Decimal("12.34"))

    def test_piece_products_require_whole_quantities(self):
        with self.assertRaises(InvalidQuantity):
            store.create(self.buttons.id, self.warehouse.id, "2.5", company_id=self.company.id)

        unit = store.create(self.buttons.id, self.warehouse.id, "12", company_id=self.company.id)
        self.assertEqual(unit.initial_quantity, Decimal("12.00"))

    def test_create_rejects_product_or_warehouse_outside_company(self):
        foreign_product = Product.objects.create(company=self.other_company, product_code="X-1", name="Foreign")

        with self.assertRaises(NotFound):
            store.create(foreign_product.id, self.warehouse.id, 5, company_id=self.company.id)
        with self.assertRaises(NotFound):
            store.create(self.fabric.id, self.foreign_warehouse.id, 5, company_id=self.company.id)

    def test_get_scopes_by_warehouse(self):
        unit = store.create(self.fabric.id, self.warehouse.id, 5, company_id=self.company.id)

        self.assertEqual(store.get(unit.id, warehouse_id=self.warehouse.id).id, unit.id)
        with self.assertRaises(NotFound):
            store.get(unit.id, warehouse_id=self.second_warehouse.id)
        with self.assertRaises(NotFound):
            store.get("not-a-uuid")

    def test_decrement_updates_remaining_and_status(self):
        unit = store.create(self.fabric.id, self.warehouse.id, 100, company_id=self.company.id)

        updated = store.decrement(unit.id, "30", warehouse_id=self.warehouse.id)
        self.assertEqual(updated.remaining_quantity, Decimal("70.00"))
        self.assertEqual(updated.status, StockUnitStatus.PARTIAL)

        updated = store.decrement(unit.id, "70", warehouse_id=self.warehouse.id)
        self.assertEqual(updated.remaining_quantity, Decimal("0.00"))
        self.assertEqual(updated.status, StockUnitStatus.DEPLETED)

    def test_decrement_never_goes_below_zero(self):
        unit = store.create(self.fabric.id, self.warehouse.id, 10, company_id=self.company.id)

        with self.assertRaises(InsufficientQuantity) as ctx:
            store.decrement(unit.id, "10.01", warehouse_id=self.warehouse.id)

        self.assertEqual(ctx.exception.remaining, Decimal("10.00"))
        unit.refresh_from_db()
        self.assertEqual(unit.remaining_quantity, Decimal("10.00"))

    def test_decrement_on_stale_read_uses_current_remaining(self):
        unit = store.create(self.fabric.id, self.warehouse.id, 100, company_id=self.company.id)
        stale = StockUnit.objects.get(pk=unit.pk)

        store.decrement(unit.id, 60, warehouse_id=self.warehouse.id)

        # The caller still believes 100 remain.
        self.assertEqual(stale.remaining_quantity, Decimal("100.00"))
        with self.assertRaises(InsufficientQuantity) as ctx:
            store.decrement(stale.id, 60, warehouse_id=self.warehouse.id)

        self.assertEqual(ctx.exception.remaining, Decimal("40.00"))
        stale.refresh_from_db()
        self.assertEqual(stale.remaining_quantity, Decimal("40.00"))

    def test_decrement_in_wrong_warehouse_is_not_found(self):
        unit = store.create(self.fabric.id, self.warehouse.id, 10, company_id=self.company.id)

        with self.assertRaises(NotFound):
            store.decrement(unit.id, 1, warehouse_id=self.second_warehouse.id)

    def test_list_eligible_hides_depleted_unless_requested(self):
        _, (full, partial, depleted) = self.receive_rolls(10, 10, 10)
        store.decrement(partial.id, 4, warehouse_id=self.warehouse.id)
        store.decrement(depleted.id, 10, warehouse_id=self.warehouse.id)

        default_ids = [unit.id for unit in store.list_eligible(self.warehouse.id)]
        self.assertEqual(default_ids, [partial.id, full.id])

        with_depleted = {unit.id for unit in store.list_eligible(self.warehouse.id, include_depleted=True)}
        self.assertEqual(with_depleted, {full.id, partial.id, depleted.id})

        only_depleted = [unit.id for unit in store.list_eligible(self.warehouse.id, statuses=["depleted"])]
        self.assertEqual(only_depleted, [depleted.id])

    def test_list_eligible_filters_by_product_labels_and_inward(self):
        inward, (roll,) = self.receive_rolls(25)
        _, (button,) = self.receive_rolls(12, product=self.buttons)
        labels.create_batch(self.warehouse.id, "Rolls", [roll.id], company_id=self.company.id)

        self.assertEqual([unit.id for unit in store.list_eligible(self.warehouse.id, product_id=self.buttons.id)], [button.id])
        self.assertEqual([unit.id for unit in store.list_eligible(self.warehouse.id, qr_generated=True)], [roll.id])
        self.assertEqual([unit.id for unit in store.list_eligible(self.warehouse.id, qr_generated=False)], [button.id])
        self.assertEqual([unit.id for unit in store.list_eligible(self.warehouse.id, inward_id=inward.id)], [roll.id])

    def test_rejected_create_does_not_consume_a_sequence_number(self):
        store.create(self.fabric.id, self.warehouse.id, 10, company_id=self.company.id)
        with self.assertRaises(InvalidQuantity):
            store.create(self.fabric.id, self.warehouse.id, 0, company_id=self.company.id)
        unit = store.create(self.fabric.id, self.warehouse.id, 10, company_id=self.company.id)

        self.assertEqual(unit.sequence_number, 2)


class InwardIntakeTests(LedgerFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def test_receive_creates_units_linked_to_inward(self):
        inward, units = self.receive_rolls(100, 100, 100)

        self.assertEqual(inward.sequence_number, 1)
        self.assertEqual([unit.sequence_number for unit in units], [1, 2, 3])
        for unit in units:
            self.assertEqual(unit.created_from_inward_id, inward.id)
            self.assertEqual(unit.remaining_quantity, Decimal("100.00"))
            self.assertEqual(unit.status, StockUnitStatus.FULL)

    def test_receive_may_span_products_and_keeps_attributes(self):
        inward = intake.receive(
            self.warehouse.id,
            [
                {"product_id": self.fabric.id, "quantity": "50.25", "attrs": {"quality_grade": "A", "warehouse_location": "R1"}},
                {"product_id": self.buttons.id, "quantity": 144},
            ],
            company_id=self.company.id,
            inward_type=GoodsInward.InwardType.PURCHASE_ORDER,
            source_ref="PO-7781",
            partner_id=self.customer.id,
            user=self.staff,
        )

        roll = inward.stock_units.get(product=self.fabric)
        self.assertEqual(roll.quality_grade, "A")
        self.assertEqual(roll.warehouse_location, "R1")
        self.assertEqual(inward.stock_units.get(product=self.buttons).initial_quantity, Decimal("144.00"))
        self.assertEqual(inward.created_by, self.staff)
        self.assertEqual(inward.source_ref, "PO-7781")

    def test_receive_with_bad_spec_writes_nothing(self):
        with self.assertRaises(PartialBatchFailure) as ctx:
            intake.receive(
                self.warehouse.id,
                [{"quantity": 10}, {"quantity": 0}, {"quantity": 5}, {"quantity": "x"}],
                company_id=self.company.id,
                product_id=self.fabric.id,
            )

        self.assertEqual([index for index, _ in ctx.exception.failures], [1, 3])
        self.assertFalse(GoodsInward.objects.exists())
        self.assertFalse(StockUnit.objects.exists())

    def test_receive_single_bad_spec_raises_its_own_error(self):
        with self.assertRaises(InvalidQuantity):
            intake.receive(self.warehouse.id, [{"quantity": "1.5"}], company_id=self.company.id, product_id=self.buttons.id)

    def test_receive_requires_at_least_one_unit(self):
        with self.assertRaises(EmptyEvent):
            intake.receive(self.warehouse.id, [], company_id=self.company.id, product_id=self.fabric.id)

    def test_inward_sequence_is_per_warehouse(self):
        self.receive_rolls(5)
        second, _ = self.receive_rolls(5)
        annex, _ = self.receive_rolls(5, warehouse=self.second_warehouse)

        self.assertEqual(second.sequence_number, 2)
        self.assertEqual(annex.sequence_number, 1)

    def test_cancel_inward_only_touches_metadata(self):
        inward, (unit,) = self.receive_rolls(80)
        allocator.allocate(self.warehouse.id, [{"stock_unit_id": unit.id, "quantity": 20}], company_id=self.company.id)

        cancelled = intake.cancel_inward(inward.id, warehouse_id=self.warehouse.id, reason="Wrong challan", user=self.admin)

        self.assertTrue(cancelled.is_cancelled)
        self.assertEqual(cancelled.cancelled_by, self.admin)
        self.assertEqual(cancelled.cancellation_reason, "Wrong challan")
        unit.refresh_from_db()
        self.assertEqual(unit.remaining_quantity, Decimal("60.00"))

        with self.assertRaises(AlreadyCancelled):
            intake.cancel_inward(inward.id, warehouse_id=self.warehouse.id, reason="again")

    def test_list_inwards_filters_by_partner(self):
        intake.receive(
            self.warehouse.id,
            [{"quantity": 5}],
            company_id=self.company.id,
            product_id=self.fabric.id,
            partner_id=self.customer.id,
        )
        self.receive_rolls(5)

        results = list(intake.list_inwards(self.warehouse.id, partner_id=self.customer.id))
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0].unit_count, 1)


class OutwardAllocatorTests(LedgerFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixtures()
        _, self.units = self.receive_rolls(100, 100, 100)

    def test_partial_dispatch_leaves_unit_partial(self):
        unit = self.units[0]

        outward = allocator.allocate(
            self.warehouse.id,
            [{"stock_unit_id": unit.id, "quantity": "30"}],
            company_id=self.company.id,
            outward_type=GoodsOutward.OutwardType.SALES_ORDER,
            partner_id=self.customer.id,
        )

        unit.refresh_from_db()
        self.assertEqual(unit.remaining_quantity, Decimal("70.00"))
        self.assertEqual(unit.status, StockUnitStatus.PARTIAL)
        self.assertEqual(outward.sequence_number, 1)
        self.assertEqual(outward.items.get().quantity_dispatched, Decimal("30.00"))

    def test_overdraw_raises_and_changes_nothing(self):
        unit = self.units[0]
        allocator.allocate(self.warehouse.id, [{"stock_unit_id": unit.id, "quantity": 30}], company_id=self.company.id)

        with self.assertLogs("ledger.allocator", level="WARNING") as cm:
            with self.assertRaises(InsufficientQuantity) as ctx:
                allocator.allocate(self.warehouse.id, [{"stock_unit_id": unit.id, "quantity": 80}], company_id=self.company.id)

        self.assertEqual(ctx.exception.remaining, Decimal("70.00"))
        self.assertTrue(any("goods_outward_rejected" in message for message in cm.output))
        unit.refresh_from_db()
        self.assertEqual(unit.remaining_quantity, Decimal("70.00"))
        self.assertEqual(GoodsOutward.objects.count(), 1)

    def test_multi_line_failure_rolls_back_every_line(self):
        first, second, third = self.units

        with self.assertRaises(PartialBatchFailure) as ctx:
            allocator.allocate(
                self.warehouse.id,
                [
                    {"stock_unit_id": first.id, "quantity": 10},
                    {"stock_unit_id": second.id, "quantity": 150},
                    {"stock_unit_id": third.id, "quantity": 10},
                ],
                company_id=self.company.id,
            )

        failures = ctx.exception.failures
        self.assertEqual(len(failures), 1)
        self.assertEqual(failures[0][0], 1)
        self.assertIsInstance(failures[0][1], InsufficientQuantity)
        for unit in self.units:
            unit.refresh_from_db()
            self.assertEqual(unit.remaining_quantity, Decimal("100.00"))
        self.assertFalse(GoodsOutward.objects.exists())
        self.assertFalse(GoodsOutwardItem.objects.exists())

    def test_repeated_unit_lines_are_checked_cumulatively(self):
        unit = self.units[0]

        with self.assertRaises(PartialBatchFailure) as ctx:
            allocator.allocate(
                self.warehouse.id,
                [{"stock_unit_id": unit.id, "quantity": 60}, {"stock_unit_id": unit.id, "quantity": 50}],
                company_id=self.company.id,
            )

        index, error = ctx.exception.failures[0]
        self.assertEqual(index, 1)
        self.assertEqual(error.remaining, Decimal("100.00"))
        self.assertEqual(error.already_claimed, Decimal("60.00"))
        self.assertEqual(error.as_dict()["already_claimed"], "60.00")

        outward = allocator.allocate(
            self.warehouse.id,
            [{"stock_unit_id": unit.id, "quantity": 60}, {"stock_unit_id": unit.id, "quantity": 40}],
            company_id=self.company.id,
        )
        unit.refresh_from_db()
        self.assertEqual(unit.status, StockUnitStatus.DEPLETED)
        self.assertEqual([item.line_number for item in outward.items.all()], [1, 2])

    def test_depleted_unit_cannot_be_dispatched_and_is_hidden(self):
        unit = self.units[0]
        allocator.allocate(self.warehouse.id, [{"stock_unit_id": unit.id, "quantity": 100}], company_id=self.company.id)

        with self.assertRaises(InsufficientQuantity):
            allocator.allocate(self.warehouse.id, [{"stock_unit_id": unit.id, "quantity": 1}], company_id=self.company.id)
        self.assertNotIn(unit.id, {eligible.id for eligible in store.list_eligible(self.warehouse.id)})

    def test_unit_from_other_warehouse_is_not_found(self):
        _, (annex_unit,) = self.receive_rolls(50, warehouse=self.second_warehouse)

        with self.assertRaises(NotFound):
            allocator.allocate(self.warehouse.id, [{"stock_unit_id": annex_unit.id, "quantity": 5}], company_id=self.company.id)

    def test_empty_and_invalid_lines(self):
        with self.assertRaises(EmptyEvent):
            allocator.allocate(self.warehouse.id, [], company_id=self.company.id)
        with self.assertRaises(InvalidQuantity):
            allocator.allocate(self.warehouse.id, [{"stock_unit_id": self.units[0].id, "quantity": 0}], company_id=self.company.id)

    def test_failures_are_reported_in_line_order(self):
        missing_id = uuid.uuid4()

        with self.assertRaises(PartialBatchFailure) as ctx:
            allocator.allocate(
                self.warehouse.id,
                [
                    {"stock_unit_id": missing_id, "quantity": 1},
                    {"stock_unit_id": self.units[0].id, "quantity": 5},
                    {"stock_unit_id": self.units[1].id, "quantity": -2},
                ],
                company_id=self.company.id,
            )

        codes = [(index, error.code) for index, error in ctx.exception.failures]
        self.assertEqual(codes, [(0, "not_found"), (2, "invalid_quantity")])

    def test_quantity_finer_than_hundredths_is_rejected(self):
        unit = self.units[0]

        with self.assertRaises(InvalidQuantity) as ctx:
            allocator.allocate(self.warehouse.id, [{"stock_unit_id": unit.id, "quantity": "0.005"}], company_id=self.company.id)

        self.assertEqual(ctx.exception.stock_unit_id, unit.id)
        unit.refresh_from_db()
        self.assertEqual(unit.remaining_quantity, Decimal("100.00"))
        self.assertFalse(GoodsOutward.objects.exists())

    def test_dispatched_total_matches_consumed_quantity(self):
        unit = self.units[0]
        allocator.allocate(self.warehouse.id, [{"stock_unit_id": unit.id, "quantity": "12.5"}], company_id=self.company.id)
        allocator.allocate(self.warehouse.id, [{"stock_unit_id": unit.id, "quantity": "7.25"}], company_id=self.company.id)

        unit.refresh_from_db()
        self.assertEqual(allocator.dispatched_total(unit.id), Decimal("19.75"))
        self.assertEqual(unit.initial_quantity - unit.remaining_quantity, Decimal("19.75"))


class TransferTests(LedgerFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixtures()
        inward = intake.receive(
            self.warehouse.id,
            [
                {"quantity": 100, "attrs": {"quality_grade": "A", "warehouse_location": "Rack 4"}},
                {"quantity": 60},
            ],
            company_id=self.company.id,
            product_id=self.fabric.id,
        )
        self.units = list(inward.stock_units.order_by("sequence_number"))

    def test_transfer_moves_quantity_into_new_units(self):
        first, second = self.units

        outward, inward = transfers.transfer(
            self.warehouse.id,
            self.second_warehouse.id,
            [{"stock_unit_id": first.id, "quantity": "40"}, {"stock_unit_id": second.id, "quantity": "60"}],
            company_id=self.company.id,
        )

        self.assertEqual(outward.outward_type, GoodsOutward.OutwardType.TRANSFER)
        self.assertEqual(outward.to_warehouse_id, self.second_warehouse.id)
        self.assertEqual(inward.inward_type, GoodsInward.InwardType.TRANSFER)
        self.assertEqual(inward.warehouse_id, self.second_warehouse.id)
        self.assertEqual(inward.from_warehouse_id, self.warehouse.id)
        self.assertEqual(inward.source_ref, f"GO-{outward.sequence_number}")

        first.refresh_from_db()
        second.refresh_from_db()
        self.assertEqual(first.remaining_quantity, Decimal("60.00"))
        self.assertEqual(second.status, StockUnitStatus.DEPLETED)

        arrived = list(inward.stock_units.order_by("sequence_number"))
        self.assertEqual([unit.sequence_number for unit in arrived], [1, 2])
        self.assertEqual([unit.initial_quantity for unit in arrived], [Decimal("40.00"), Decimal("60.00")])
        self.assertEqual(arrived[0].quality_grade, "A")
        self.assertEqual(arrived[0].warehouse_location, "")
        self.assertEqual(find_quantity_drift(), [])

    def test_source_side_failure_writes_nothing(self):
        first, _ = self.units

        with self.assertRaises(InsufficientQuantity):
            transfers.transfer(
                self.warehouse.id,
                self.second_warehouse.id,
                [{"stock_unit_id": first.id, "quantity": "150"}],
                company_id=self.company.id,
            )

        self.assertFalse(GoodsOutward.objects.exists())
        self.assertFalse(GoodsInward.objects.filter(warehouse=self.second_warehouse).exists())
        self.assertFalse(StockUnit.objects.filter(warehouse=self.second_warehouse).exists())

    def test_destination_side_failure_rolls_back_the_outward(self):
        first, _ = self.units
        Product.objects.filter(pk=self.fabric.pk).update(deleted_at=timezone.now(), is_active=False)

        with self.assertRaises(NotFound):
            transfers.transfer(
                self.warehouse.id,
                self.second_warehouse.id,
                [{"stock_unit_id": first.id, "quantity": "10"}],
                company_id=self.company.id,
            )

        first.refresh_from_db()
        self.assertEqual(first.remaining_quantity, Decimal("100.00"))
        self.assertFalse(GoodsOutward.objects.exists())
        self.assertFalse(GoodsOutwardItem.objects.exists())
        self.assertFalse(StockUnit.objects.filter(warehouse=self.second_warehouse).exists())

    def test_transfer_needs_two_warehouses_of_the_same_company(self):
        first, _ = self.units
        lines = [{"stock_unit_id": first.id, "quantity": "10"}]

        with self.assertRaises(InvalidTransfer):
            transfers.transfer(self.warehouse.id, self.warehouse.id, lines, company_id=self.company.id)
        with self.assertRaises(NotFound):
            transfers.transfer(self.warehouse.id, self.foreign_warehouse.id, lines, company_id=self.company.id)
        self.assertFalse(GoodsOutward.objects.exists())


class LabelBatchTests(LedgerFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixtures()
        _, self.units = self.receive_rolls(10, 20, 30)

    def test_duplicates_collapse_to_first_position(self):
        first, second, third = self.units

        batch = labels.create_batch(
            self.warehouse.id,
            "Morning print",
            [second.id, first.id, second.id, third.id],
            company_id=self.company.id,
        )

        self.assertEqual(labels.batch_stock_unit_ids(batch), [second.id, first.id, third.id])
        self.assertEqual(batch.fields_selected, labels.DEFAULT_TEMPLATE_FIELDS)

    def test_qr_generated_at_is_set_once(self):
        first = self.units[0]
        labels.create_batch(self.warehouse.id, "First", [first.id], company_id=self.company.id)
        first.refresh_from_db()
        stamped_at = first.qr_generated_at
        self.assertIsNotNone(stamped_at)

        labels.create_batch(self.warehouse.id, "Reprint", [first.id], company_id=self.company.id)
        first.refresh_from_db()
        self.assertEqual(first.qr_generated_at, stamped_at)
        self.assertEqual(LabelBatch.objects.count(), 2)

    def test_missing_ids_are_listed_and_nothing_is_written(self):
        missing_id = uuid.uuid4()

        with self.assertRaises(NotFound) as ctx:
            labels.create_batch(self.warehouse.id, "Bad", [self.units[0].id, missing_id], company_id=self.company.id)

        self.assertEqual(ctx.exception.ids, [str(missing_id)])
        self.assertFalse(LabelBatch.objects.exists())
        self.units[0].refresh_from_db()
        self.assertIsNone(self.units[0].qr_generated_at)

    def test_rejects_empty_batches_blank_names_and_unknown_fields(self):
        with self.assertRaises(InvalidLabelBatch):
            labels.create_batch(self.warehouse.id, "Empty", [], company_id=self.company.id)
        with self.assertRaises(InvalidLabelBatch):
            labels.create_batch(self.warehouse.id, "   ", [self.units[0].id], company_id=self.company.id)
        with self.assertRaises(InvalidLabelBatch):
            labels.create_batch(
                self.warehouse.id,
                "Fields",
                [self.units[0].id],
                ["product_name", "barcode_colour"],
                company_id=self.company.id,
            )

    def test_depleted_units_can_be_labelled(self):
        unit = self.units[0]
        allocator.allocate(self.warehouse.id, [{"stock_unit_id": unit.id, "quantity": 10}], company_id=self.company.id)

        batch = labels.create_batch(self.warehouse.id, "Archive", [unit.id], company_id=self.company.id)
        self.assertEqual(labels.batch_stock_unit_ids(batch), [unit.id])

    def test_list_batches_reports_per_product_counts(self):
        _, (button,) = self.receive_rolls(24, product=self.buttons)
        labels.create_batch(self.warehouse.id, "Mixed", [self.units[0].id, self.units[1].id, button.id], company_id=self.company.id)
        labels.create_batch(self.warehouse.id, "Rolls only", [self.units[2].id], company_id=self.company.id)

        batches = list(labels.list_batches(self.warehouse.id, product_id=self.buttons.id))
        self.assertEqual([batch.batch_name for batch in batches], ["Mixed"])
        self.assertEqual(batches[0].item_count, 3)
        counts = {row["product_id"]: row["unit_count"] for row in labels.product_counts(batches[0])}
        self.assertEqual(counts, {self.fabric.id: 2, self.buttons.id: 1})

    def test_label_payloads_follow_selected_fields(self):
        batch = labels.create_batch(
            self.warehouse.id,
            "Custom",
            [self.units[1].id],
            ["product_number", "unit_number", "initial_quantity"],
            company_id=self.company.id,
        )

        (payload,) = labels.label_payloads(batch)
        self.assertEqual(
            payload["fields"],
            {"product_number": "FAB-001", "unit_number": 2, "initial_quantity": Decimal("20.00")},
        )


class ActivityAndAuditTests(LedgerFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixtures()

    def test_activity_lists_events_newest_first(self):
        inward, (unit,) = self.receive_rolls(40)
        labels.create_batch(self.warehouse.id, "Tags", [unit.id], company_id=self.company.id)
        outward = allocator.allocate(self.warehouse.id, [{"stock_unit_id": unit.id, "quantity": 15}], company_id=self.company.id)

        events = stock_unit_activity(unit.id, warehouse_id=self.warehouse.id)

        self.assertEqual([event["event"] for event in events], ["dispatched", "labelled", "created"])
        self.assertEqual(events[0]["outward_id"], outward.id)
        self.assertEqual(events[0]["quantity"], Decimal("15.00"))
        self.assertEqual(events[2]["inward_id"], inward.id)

    def test_no_drift_after_committed_operations(self):
        _, units = self.receive_rolls(10, 20)
        allocator.allocate(
            self.warehouse.id,
            [{"stock_unit_id": units[0].id, "quantity": "3.3"}, {"stock_unit_id": units[1].id, "quantity": 20}],
            company_id=self.company.id,
        )
        with self.assertRaises(InsufficientQuantity):
            allocator.allocate(self.warehouse.id, [{"stock_unit_id": units[0].id, "quantity": 7}], company_id=self.company.id)

        self.assertEqual(find_quantity_drift(), [])
        out = io.StringIO()
        call_command("audit_stock_units", stdout=out)
        self.assertIn("No quantity drift detected.", out.getvalue())

    def test_drift_is_detected_and_command_fails(self):
        _, (unit,) = self.receive_rolls(10)
        StockUnit.objects.filter(pk=unit.pk).update(remaining_quantity=Decimal("8"))

        drift = find_quantity_drift(self.warehouse.id)
        self.assertEqual(len(drift), 1)
        self.assertEqual(drift[0]["stock_unit_id"], unit.id)
        self.assertEqual(drift[0]["consumed"], Decimal("2.00"))

        self.assertEqual(find_quantity_drift(self.second_warehouse.id), [])
        with self.assertRaises(CommandError):
            call_command("audit_stock_units", "--warehouse", str(self.warehouse.id), stdout=io.StringIO())


class LedgerApiTests(LedgerFixtureMixin, TestCase):
    def setUp(self):
        self.create_fixtures()
        self.client = APIClient()
        self.base = f"/api/v1/warehouses/{self.warehouse.id}"

    def test_inward_then_outward_round_trip(self):
        self.client.force_authenticate(user=self.staff)

        response = self.client.post(
            f"{self.base}/goods-inwards/",
            {"product_id": str(self.fabric.id), "units": [{"quantity": "100"}, {"quantity": "50", "quality_grade": "B"}]},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["unit_count"], 2)
        unit_id = payload["stock_units"][0]["id"]

        response = self.client.post(
            f"{self.base}/goods-outwards/",
            {"outward_type": "sales_order", "lines": [{"stock_unit_id": unit_id, "quantity": "25.50"}]},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["items"][0]["quantity_dispatched"], "25.50")

        response = self.client.get(f"{self.base}/stock-units/{unit_id}/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["status"], "partial")
        self.assertTrue(
            AuditLog.objects.filter(action="goods_outward.create", company=self.company, actor=self.staff).exists()
        )

    def test_insufficient_quantity_uses_error_envelope(self):
        _, (unit,) = self.receive_rolls(10)
        self.client.force_authenticate(user=self.staff)

        response = self.client.post(
            f"{self.base}/goods-outwards/",
            {"lines": [{"stock_unit_id": str(unit.id), "quantity": "11"}]},
            format="json",
        )

        self.assertEqual(response.status_code, 409)
        payload = response.json()
        self.assertEqual(payload["code"], "insufficient_quantity")
        self.assertEqual(payload["status"], 409)
        self.assertEqual(payload["errors"]["remaining"], "10.00")
        self.assertFalse(AuditLog.objects.filter(action="goods_outward.create").exists())

    def test_partial_batch_failure_lists_failing_lines(self):
        _, (first, second) = self.receive_rolls(10, 10)
        self.client.force_authenticate(user=self.staff)

        response = self.client.post(
            f"{self.base}/goods-outwards/",
            {
                "lines": [
                    {"stock_unit_id": str(first.id), "quantity": "5"},
                    {"stock_unit_id": str(second.id), "quantity": "15"},
                ]
            },
            format="json",
        )

        self.assertEqual(response.status_code, 422)
        payload = response.json()
        self.assertEqual(payload["code"], "partial_batch_failure")
        self.assertEqual([error["line"] for error in payload["errors"]], [1])
        self.assertEqual(payload["errors"][0]["code"], "insufficient_quantity")
        first.refresh_from_db()
        self.assertEqual(first.remaining_quantity, Decimal("10.00"))

    def test_stock_unit_list_filters(self):
        _, (full, depleted) = self.receive_rolls(10, 10)
        allocator.allocate(self.warehouse.id, [{"stock_unit_id": depleted.id, "quantity": 10}], company_id=self.company.id)
        self.client.force_authenticate(user=self.staff)

        response = self.client.get(f"{self.base}/stock-units/")
        self.assertEqual([item["id"] for item in response.json()["results"]], [str(full.id)])

        response = self.client.get(f"{self.base}/stock-units/", {"include_depleted": "1"})
        self.assertEqual(response.json()["count"], 2)

        response = self.client.get(f"{self.base}/stock-units/", {"status": "depleted"})
        self.assertEqual([item["id"] for item in response.json()["results"]], [str(depleted.id)])

        response = self.client.get(f"{self.base}/stock-units/", {"status": "removed"})
        self.assertEqual(response.status_code, 400)

    def test_other_company_warehouse_is_not_found(self):
        self.client.force_authenticate(user=self.staff)

        response = self.client.get(f"/api/v1/warehouses/{self.foreign_warehouse.id}/stock-units/")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")

    def test_staff_cannot_cancel_inward(self):
        inward, _ = self.receive_rolls(10)
        self.client.force_authenticate(user=self.staff)

        with self.assertLogs("security.authorization", level="WARNING"):
            response = self.client.post(f"{self.base}/goods-inwards/{inward.id}/cancel/", {"reason": "typo"}, format="json")
        self.assertEqual(response.status_code, 403)

        self.client.force_authenticate(user=self.admin)
        response = self.client.post(f"{self.base}/goods-inwards/{inward.id}/cancel/", {"reason": "typo"}, format="json")
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["is_cancelled"])

        response = self.client.post(f"{self.base}/goods-inwards/{inward.id}/cancel/", {"reason": "typo"}, format="json")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["code"], "already_cancelled")

    def test_label_batch_endpoints(self):
        _, (first, second) = self.receive_rolls(10, 10)
        self.client.force_authenticate(user=self.staff)

        response = self.client.post(
            f"{self.base}/label-batches/",
            {"batch_name": "Rack A", "stock_unit_ids": [str(first.id), str(second.id), str(first.id)]},
            format="json",
        )
        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["item_count"], 2)
        self.assertEqual(payload["stock_unit_ids"], [str(first.id), str(second.id)])

        response = self.client.get(f"{self.base}/label-batches/{payload['id']}/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()["labels"]), 2)

        response = self.client.post(
            f"{self.base}/label-batches/",
            {"batch_name": "Nothing", "stock_unit_ids": []},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "invalid_label_batch")

    def test_activity_endpoint(self):
        _, (unit,) = self.receive_rolls(10)
        self.client.force_authenticate(user=self.staff)

        response = self.client.get(f"{self.base}/stock-units/{unit.id}/activity/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([event["event"] for event in response.json()["events"]], ["created"])

    def test_goods_transfer_endpoint(self):
        _, (unit,) = self.receive_rolls(50)
        self.client.force_authenticate(user=self.staff)

        response = self.client.post(
            f"{self.base}/goods-transfers/",
            {"to_warehouse_id": str(self.second_warehouse.id), "lines": [{"stock_unit_id": str(unit.id), "quantity": "20"}]},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["outward"]["outward_type"], "transfer")
        self.assertEqual(payload["outward"]["total_quantity"], "20.00")
        self.assertEqual(payload["inward"]["warehouse"], str(self.second_warehouse.id))
        self.assertEqual(payload["inward"]["stock_units"][0]["initial_quantity"], "20.00")
        self.assertTrue(AuditLog.objects.filter(action="goods_transfer.create", company=self.company).exists())

        response = self.client.post(
            f"{self.base}/goods-transfers/",
            {"to_warehouse_id": str(self.warehouse.id), "lines": [{"stock_unit_id": str(unit.id), "quantity": "5"}]},
            format="json",
        )
        self.assertEqual(response.status_code, 400)
        self.assertIn("to_warehouse_id", response.json()["errors"])

    def test_anonymous_requests_are_rejected(self):
        response = self.client.get(f"{self.base}/stock-units/")
        self.assertEqual(response.status_code, 401)


@unittest.skipUnless(connection.vendor == "postgresql", "row locks need PostgreSQL")
class ConcurrentAllocationTests(LedgerFixtureMixin, TransactionTestCase):
    def setUp(self):
        self.create_fixtures()
        _, (self.unit,) = self.receive_rolls(100)

    def test_racing_allocations_never_overdraw(self):
        barrier = threading.Barrier(2)
        outcomes = []

        def dispatch():
            try:
                barrier.wait()
                allocator.allocate(
                    self.warehouse.id,
                    [{"stock_unit_id": self.unit.id, "quantity": 60}],
                    company_id=self.company.id,
                )
                outcomes.append("ok")
            except InsufficientQuantity:
                outcomes.append("insufficient")
            finally:
                connection.close()

        threads = [threading.Thread(target=dispatch) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(sorted(outcomes), ["insufficient", "ok"])
        self.unit.refresh_from_db()
        self.assertEqual(self.unit.remaining_quantity, Decimal("40.00"))
        self.assertEqual(find_quantity_drift(), [])


@unittest.skipUnless(connection.vendor == "postgresql", "row locks need PostgreSQL")
class ConcurrentSequenceTests(LedgerFixtureMixin, TransactionTestCase):
    workers = 6

    def setUp(self):
        self.create_fixtures()

    def create_concurrently(self, product):
        barrier = threading.Barrier(self.workers)
        numbers = []
        errors = []

        def create_unit():
            try:
                barrier.wait()
                unit = store.create(product.id, self.warehouse.id, 5, company_id=self.company.id)
                numbers.append(unit.sequence_number)
            except Exception as exc:
                errors.append(exc)
            finally:
                connection.close()

        threads = [threading.Thread(target=create_unit) for _ in range(self.workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()
        return numbers, errors

    def test_first_counter_row_is_created_once(self):
        numbers, errors = self.create_concurrently(self.buttons)

        self.assertEqual(errors, [])
        self.assertEqual(sorted(numbers), list(range(1, self.workers + 1)))
        key = f"stock_unit:{self.buttons.id}:{self.warehouse.id}"
        self.assertEqual(SequenceCounter.objects.filter(key=key).count(), 1)

    def test_existing_counter_hands_out_contiguous_numbers(self):
        store.create(self.fabric.id, self.warehouse.id, 5, company_id=self.company.id)

        numbers, errors = self.create_concurrently(self.fabric)

        self.assertEqual(errors, [])
        self.assertEqual(sorted(numbers), list(range(2, self.workers + 2)))
        self.assertEqual(
            sorted(StockUnit.objects.filter(product=self.fabric).values_list("sequence_number", flat=True)),
            list(range(1, self.workers + 2)),
        )
