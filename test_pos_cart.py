import threading
import unittest
from decimal import Decimal

from pos_cart import Cart, normalize_customer


class CountingLock:
    def __init__(self):
        self._lock = threading.Lock()
        self.entered = 0

    def __enter__(self):
        self._lock.acquire()
        self.entered += 1
        return self

    def __exit__(self, *exc):
        self._lock.release()
        return False

    def locked(self):
        return self._lock.locked()


class CartTest(unittest.TestCase):
    def setUp(self):
        self.cart = Cart(tax_rate="0.0825")

    def test_lines_keep_insertion_order(self):
        self.cart.add_item("B", "Block Ice", "4.00")
        self.cart.add_item("A", "Dry Ice", "2.50", unit_of_measure="lb")
        self.assertEqual([i["product_id"] for i in self.cart.items], ["B", "A"])

    def test_adding_same_product_bumps_quantity(self):
        self.cart.add_item("ICE-10", "Bagged Ice", "3.00")
        line = self.cart.add_item("ICE-10", "Bagged Ice", "3.00", quantity=2)
        self.assertEqual(line["quantity"], 3)
        self.assertEqual(len(self.cart.items), 1)

    def test_same_product_with_other_unit_is_a_new_line(self):
        self.cart.add_item("DRY", "Dry Ice", "2.00", unit_of_measure="lb")
        self.cart.add_item("DRY", "Dry Ice", "30.00", unit_of_measure="Block")
        self.assertEqual(len(self.cart.items), 2)

    def test_update_quantity_clamps_to_one(self):
        self.cart.add_item("ICE-10", "Bagged Ice", "3.00", quantity=5)
        for requested in (0, -1, -100):
            line = self.cart.update_quantity("ICE-10", requested)
            self.assertEqual(line["quantity"], 1)

    def test_update_missing_item(self):
        self.assertIsNone(self.cart.update_quantity("NOPE", 3))

    def test_negative_price_rejected(self):
        with self.assertRaises(ValueError):
            self.cart.add_item("BAD", "Bad", "-1")
        with self.assertRaises(ValueError):
            self.cart.add_item("", "No id", "1")

    def test_remove_and_clear(self):
        self.cart.add_item("A", "A", 1)
        self.cart.add_item("B", "B", 1)
        self.assertTrue(self.cart.remove_item("A"))
        self.assertFalse(self.cart.remove_item("A"))
        self.cart.select_customer({"id": 3, "contactName": "Acme"})
        self.cart.clear()
        self.assertTrue(self.cart.is_empty())
        self.assertIsNone(self.cart.customer)

    def test_totals_taxed_and_exempt(self):
        self.cart.add_item("A", "A", "10.00", quantity=2)
        totals = self.cart.totals()
        self.assertEqual(totals["subtotal"], Decimal("20.00"))
        self.assertEqual(totals["tax"], Decimal("1.650000"))
        self.cart.select_customer({"id": 1, "name": "School", "taxExempt": True})
        self.assertEqual(self.cart.totals()["tax"], Decimal("0"))

    def test_price_list_certificate_exempts(self):
        self.cart.add_item("A", "A", "10.00")
        self.cart.select_customer({"id": 1, "name": "Farm"}, "SALES TAX EXCEPTION CERTIFICATE")
        self.assertTrue(self.cart.tax_exempt)
        self.assertEqual(self.cart.snapshot()["tax_label"], "Tax (Exempt)")

    def test_snapshot_display(self):
        self.cart.add_item("A", "Bagged Ice", "3.333", quantity=3)
        view = self.cart.snapshot()
        self.assertEqual(view["items"][0]["amount"], "$10.00")
        self.assertEqual(view["subtotal"], "$10.00")
        self.assertEqual(view["tax_label"], "Tax (8.25%)")
        self.assertEqual(view["item_count"], 3)

    def test_sale_payload(self):
        self.cart.add_item("DRY", "Dry Ice", "2.00", quantity=5, unit_of_measure="lb")
        self.cart.select_customer({"id": 9, "name": "Lab"})
        payload = self.cart.to_sale_payload({"method": "cash"})
        self.assertEqual(payload["customerId"], 9)
        self.assertEqual(payload["items"][0]["itemName"], "Dry Ice (lb)")
        self.assertEqual(payload["subtotal"], "10.00")
        self.assertEqual(payload["taxAmount"], "0.83")
        self.assertEqual(payload["taxPercentage"], "8.25")
        self.assertEqual(payload["total"], "10.83")
        self.assertEqual(payload["paymentType"], "cash")

    def test_reads_hold_the_cart_lock(self):
        self.cart.add_item("A", "A", "1.00")
        self.cart.select_customer({"id": 1, "name": "Lab"})
        self.cart._lock = CountingLock()
        self.cart.is_empty()
        self.assertEqual(self.cart._lock.entered, 1)
        self.cart.to_sale_payload({"method": "cash"})
        self.assertEqual(self.cart._lock.entered, 2)
        self.assertFalse(self.cart._lock.locked())

    def test_sale_payload_requires_items_and_method(self):
        with self.assertRaises(ValueError):
            self.cart.to_sale_payload({"method": "cash"})
        self.cart.add_item("A", "A", 1)
        with self.assertRaises(ValueError):
            self.cart.to_sale_payload({})


class NormalizeCustomerTest(unittest.TestCase):
    def test_backend_shape(self):
        customer = normalize_customer({"id": 4, "contactName": " Acme ", "zohoId": "ZB1", "taxPreference": "STANDARD"})
        self.assertEqual(customer, {
            "id": 4,
            "name": "Acme",
            "zoho_id": "ZB1",
            "tax_exempt": False,
            "tax_preference": "STANDARD",
        })

    def test_empty(self):
        self.assertIsNone(normalize_customer(None))
        self.assertIsNone(normalize_customer({}))


if __name__ == "__main__":
    unittest.main()
