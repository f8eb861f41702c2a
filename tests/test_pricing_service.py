from __future__ import annotations

import unittest
from datetime import date
from decimal import Decimal

from reseller_orders.exceptions import MissingProductName, NoSupplierPrice, VariantNotFound
from reseller_orders.services.pricing_service import (
    CustomerTier,
    PercentConfig,
    classify_customer_tier,
    compute_expiry_date,
    compute_price,
    compute_quote,
    days_from_months,
    generate_order_code,
    promo_factor,
    resolve_order_days,
    round_to_thousands,
)
from tests.db_support import TODAY, add_order, add_supplier, add_variant, make_session

EXAMPLE_CONFIG = PercentConfig(pct_ctv=Decimal('1.1'), pct_khach=Decimal('1.3'), pct_promo=Decimal('0.1'))


def _quote(order_code: str, hint: str | None = None, import_by_source: str = '0'):
    return compute_quote(
        variant_name='X',
        base_for_pricing=Decimal('120000'),
        import_by_source=Decimal(import_by_source),
        config=EXAMPLE_CONFIG,
        tier=classify_customer_tier(order_code, hint),
        order_date=TODAY,
    )


class RoundingTests(unittest.TestCase):
    def test_round_to_nearest_thousand(self) -> None:
        self.assertEqual(round_to_thousands(1400), 1000)
        self.assertEqual(round_to_thousands(1500), 2000)
        self.assertEqual(round_to_thousands(Decimal('171600')), 172000)
        self.assertEqual(round_to_thousands(499), 0)

    def test_negative_values_collapse_to_zero(self) -> None:
        self.assertEqual(round_to_thousands(-2500), 0)
        self.assertEqual(round_to_thousands(None), 0)

    def test_promo_factor_accepts_ratio_or_percentage(self) -> None:
        self.assertEqual(promo_factor(Decimal('0.1')), Decimal('0.1'))
        self.assertEqual(promo_factor(Decimal('15')), Decimal('0.15'))


class CustomerTierTests(unittest.TestCase):
    def test_prefix_classification(self) -> None:
        cases = {
            'MAVC123': CustomerTier.CTV,
            'mavl9': CustomerTier.RETAIL,
            'MAVK1': CustomerTier.PROMO,
            'MAVT1': CustomerTier.GIFT,
            'MAVN1': CustomerTier.IMPORT_PASSTHROUGH,
            'MAVS1': CustomerTier.STUDENT,
            'ABC1': CustomerTier.UNKNOWN,
            '': CustomerTier.UNKNOWN,
        }
        for code, expected in cases.items():
            with self.subTest(code=code):
                self.assertEqual(classify_customer_tier(code), expected)

    def test_hint_matches_prefix_or_tier_key(self) -> None:
        self.assertEqual(classify_customer_tier('', 'MAVT'), CustomerTier.GIFT)
        self.assertEqual(classify_customer_tier('XYZ', 'sinhvien'), CustomerTier.STUDENT)
        self.assertEqual(classify_customer_tier('XYZ', 'nobody'), CustomerTier.UNKNOWN)

    def test_generated_code_carries_tier_prefix(self) -> None:
        code = generate_order_code(CustomerTier.RETAIL)
        self.assertTrue(code.startswith('MAVL'))
        self.assertEqual(len(code), 9)
        self.assertEqual(classify_customer_tier(code), CustomerTier.RETAIL)


class QuoteTests(unittest.TestCase):
    def test_example_reseller_quote(self) -> None:
        quote = _quote('MAVC123')
        self.assertEqual(quote.resell_price, 132000)
        self.assertEqual(quote.customer_price, 172000)
        self.assertEqual(quote.price, 132000)
        self.assertEqual(quote.cost, 120000)
        self.assertEqual(quote.promo, 17000)
        self.assertEqual(quote.promo_price, 155000)

    def test_price_branch_per_tier(self) -> None:
        expected = {
            'MAVC1': 132000,
            'MAVL1': 172000,
            'MAVK1': 154000,  # 171600 * 0.9 = 154440
            'MAVT1': 0,
            'MAVN1': 120000,
            'MAVS1': 132000,
            'ZZZ1': 172000,
        }
        for code, price in expected.items():
            with self.subTest(code=code):
                quote = _quote(code)
                self.assertEqual(quote.price, price)
                self.assertEqual(quote.price % 1000, 0)

    def test_import_passthrough_uses_selected_supplier_cost(self) -> None:
        quote = _quote('MAVN1', import_by_source='100000')
        self.assertEqual(quote.cost, 100000)
        self.assertEqual(quote.price, 100000)
        self.assertEqual(quote.resell_price, 132000)

    def test_missing_costs_raise(self) -> None:
        with self.assertRaises(NoSupplierPrice):
            compute_quote(
                variant_name='X',
                base_for_pricing=Decimal('0'),
                import_by_source=Decimal('0'),
                config=PercentConfig(),
                tier=CustomerTier.CTV,
                order_date=TODAY,
            )

    def test_previous_cost_prices_when_no_supplier_quote(self) -> None:
        quote = compute_quote(
            variant_name='X',
            base_for_pricing=Decimal('0'),
            import_by_source=Decimal('80400'),
            config=PercentConfig(),
            tier=CustomerTier.RETAIL,
            order_date=TODAY,
        )
        self.assertEqual(quote.cost, 80000)
        self.assertEqual(quote.price, 80000)

    def test_response_shape(self) -> None:
        response = _quote('MAVL1').as_response()
        self.assertEqual(
            set(response),
            {
                'cost',
                'price',
                'promoPrice',
                'pricePromo',
                'promo',
                'resellPrice',
                'customerPrice',
                'totalPrice',
                'days',
                'order_expired',
            },
        )
        self.assertEqual(response['days'], 30)
        self.assertEqual(response['order_expired'], '2024-06-30')


class DurationTests(unittest.TestCase):
    def test_days_from_months(self) -> None:
        self.assertEqual(days_from_months(1), 30)
        self.assertEqual(days_from_months(3), 90)
        self.assertEqual(days_from_months(12), 365)
        self.assertEqual(days_from_months(24), 730)
        self.assertEqual(days_from_months(0), 0)

    def test_variant_suffix_wins_over_default(self) -> None:
        self.assertEqual(resolve_order_days('Spotify--12m'), 365)
        self.assertEqual(resolve_order_days('Spotify'), 30)

    def test_expiry_counts_first_day(self) -> None:
        self.assertEqual(compute_expiry_date(date(2024, 1, 1), 30), date(2024, 1, 30))


class ComputePriceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        add_supplier(self.db, 1, 'Supplier A')
        add_supplier(self.db, 2, 'Supplier B')
        add_variant(
            self.db,
            10,
            'X',
            costs={1: Decimal('100000'), 2: Decimal('120000')},
            pct_ctv='1.1',
            pct_khach='1.3',
            pct_promo='0.1',
        )
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def test_example_scenario(self) -> None:
        quote = compute_price(self.db, variant_name='X', order_code='MAVC123', order_date=TODAY)
        self.assertEqual(quote.resell_price, 132000)
        self.assertEqual(quote.customer_price, 172000)
        self.assertEqual(quote.price, 132000)
        self.assertEqual(quote.cost, 120000)

    def test_selected_supplier_uses_latest_quote(self) -> None:
        from reseller_orders.models import SupplierCost

        self.db.add(SupplierCost(variant_id=10, source_id=1, price=Decimal('90000')))
        self.db.commit()
        quote = compute_price(self.db, variant_name='X', order_code='MAVN1', supplier_id=1, order_date=TODAY)
        self.assertEqual(quote.cost, 90000)
        self.assertEqual(quote.price, 90000)

    def test_previous_order_cost_used_without_supplier(self) -> None:
        add_variant(self.db, 11, 'Y', pct_ctv='1.2')
        add_order(self.db, 1, id_order='MAVL777', cost='50000')
        quote = compute_price(self.db, variant_name='Y', order_code='MAVL777', order_date=TODAY)
        self.assertEqual(quote.cost, 50000)
        self.assertEqual(quote.resell_price, 60000)
        self.assertEqual(quote.price, 60000)

    def test_defaults_without_price_config(self) -> None:
        add_variant(self.db, 12, 'Plain', costs={1: Decimal('45500')})
        quote = compute_price(self.db, variant_name='Plain', order_code='MAVL1', order_date=TODAY)
        self.assertEqual(quote.price, 46000)
        self.assertEqual(quote.promo, 0)
        self.assertEqual(quote.promo_price, 46000)

    def test_whitespace_insensitive_lookup(self) -> None:
        add_variant(self.db, 13, 'YouTubePremium', costs={1: Decimal('30000')})
        quote = compute_price(self.db, variant_name='YouTube Premium', order_code='MAVC1', order_date=TODAY)
        self.assertEqual(quote.price, 30000)

    def test_explicit_name_wins_over_previous_product(self) -> None:
        add_variant(self.db, 15, 'Z', costs={1: Decimal('50000')})
        order = add_order(self.db, 1, id_order='MAVL9')
        order.id_product = 'X'
        self.db.commit()

        quote = compute_price(self.db, variant_name='Z', order_code='MAVL9', order_date=TODAY)
        self.assertEqual(quote.price, 50000)

    def test_previous_product_is_last_resort(self) -> None:
        order = add_order(self.db, 1, id_order='MAVC9', cost='120000')
        order.id_product = 'X'
        self.db.commit()

        quote = compute_price(self.db, variant_name='Renamed product', order_code='MAVC9', order_date=TODAY)
        self.assertEqual(quote.price, 132000)

        with self.assertRaises(VariantNotFound):
            compute_price(
                self.db,
                variant_name='Renamed product',
                order_code='MAVC9',
                order_date=TODAY,
                use_previous_order=False,
            )

    def test_missing_name(self) -> None:
        with self.assertRaises(MissingProductName):
            compute_price(self.db, variant_name='  ', order_code='MAVC1')

    def test_unknown_variant(self) -> None:
        with self.assertRaises(VariantNotFound):
            compute_price(self.db, variant_name='Nope', order_code='MAVC1')

    def test_variant_without_costs(self) -> None:
        add_variant(self.db, 14, 'Empty')
        with self.assertRaises(NoSupplierPrice):
            compute_price(self.db, variant_name='Empty', order_code='MAVC1')


if __name__ == '__main__':
    unittest.main()
