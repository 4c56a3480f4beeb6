from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError

from core.exceptions import InsufficientStock
from products.models import Stock
from products.services import (
    AllocationLine,
    LotLedger,
    StockAllocationService,
    StockService,
)

pytestmark = pytest.mark.django_db


def quantities(*lots):
    return [Stock.objects.get(pk=lot.pk).quantity for lot in lots]


def test_oldest_lots_are_sold_first(make_stock, product):
    newest = make_stock('5', minutes=20)
    oldest = make_stock('5', minutes=0)
    middle = make_stock('5', minutes=10)

    deductions = StockAllocationService.allocate([
        AllocationLine(product=product, category='Kilo', quantity=Decimal('7')),
    ])

    assert [(d.stock_id, d.quantity) for d in deductions] == [
        (oldest.id, Decimal('5')),
        (middle.id, Decimal('2')),
    ]
    assert deductions[1].remaining == Decimal('3')
    assert quantities(oldest, middle, newest) == [Decimal('0'), Decimal('3'), Decimal('5')]


def test_lots_of_other_category_are_not_touched(make_stock, product):
    pieces = make_stock('50', category='Pc', minutes=0)
    kilos = make_stock('4', category='Kilo', minutes=5)

    with pytest.raises(InsufficientStock) as exc_info:
        StockAllocationService.allocate([
            AllocationLine(product=product, category='Kilo', quantity=Decimal('5')),
        ])

    assert exc_info.value.available == Decimal('4')
    assert exc_info.value.requested == Decimal('5')
    assert quantities(pieces, kilos) == [Decimal('50'), Decimal('4')]


def test_failure_on_any_line_rolls_back_all_lines(make_stock, product, other_product):
    tomato = make_stock('5')
    eggplant = make_stock('2', product_=other_product)

    with pytest.raises(InsufficientStock) as exc_info:
        StockAllocationService.allocate([
            AllocationLine(product=product, category='Kilo', quantity=Decimal('3')),
            AllocationLine(product=other_product, category='Kilo', quantity=Decimal('2.5')),
        ])

    assert exc_info.value.product_id == other_product.id
    assert exc_info.value.status_code == 409
    assert quantities(tomato, eggplant) == [Decimal('5'), Decimal('2')]


def test_selling_everything_leaves_empty_lots(make_stock, product):
    lots = [make_stock('1.25', minutes=i) for i in range(3)]

    StockAllocationService.allocate([
        AllocationLine(product=product, category='Kilo', quantity=Decimal('3.75')),
    ])

    assert quantities(*lots) == [Decimal('0')] * 3
    assert Stock.objects.filter(pk__in=[lot.pk for lot in lots]).count() == 3

    with pytest.raises(InsufficientStock):
        StockAllocationService.allocate([
            AllocationLine(product=product, category='Kilo', quantity=Decimal('0.01')),
        ])
    assert not Stock.objects.filter(quantity__lt=0).exists()


def test_empty_lots_are_skipped(make_stock, product):
    empty = make_stock('2', minutes=0)
    Stock.objects.filter(pk=empty.pk).update(quantity=Decimal('0'))
    full = make_stock('2', minutes=5)

    deductions = StockAllocationService.allocate([
        AllocationLine(product=product, category='Kilo', quantity=Decimal('1')),
    ])

    assert [d.stock_id for d in deductions] == [full.id]


def test_deduct_refuses_more_than_remaining(make_stock):
    lot = make_stock('1')

    with pytest.raises(ValidationError):
        LotLedger().deduct(lot, Decimal('1.5'))

    assert quantities(lot) == [Decimal('1')]


def test_restore_returns_quantity_to_lot(make_stock, product):
    lot = make_stock('3')
    StockAllocationService.allocate([
        AllocationLine(product=product, category='Kilo', quantity=Decimal('2')),
    ])

    LotLedger().restore(lot.id, Decimal('2'))

    assert quantities(lot) == [Decimal('3')]


def test_availability_only_for_priced_categories(make_stock, product):
    make_stock('2.5', minutes=0)
    make_stock('1.5', minutes=1)
    make_stock('12', category='Pc')

    assert StockService.get_availability(product) == {
        'Kilo': Decimal('4'),
        'Pc': Decimal('12'),
    }


def test_only_members_can_add_stock(product, customer):
    with pytest.raises(ValidationError):
        StockService.add_stock(product=product, member=customer, category='Kilo', quantity='1')


def test_stock_quantity_must_be_positive(product, member):
    with pytest.raises(ValidationError):
        StockService.add_stock(product=product, member=member, category='Kilo', quantity='0')
