from decimal import Decimal

import pytest
from rest_framework import status

pytestmark = pytest.mark.django_db


def test_catalog_shows_availability(api_client, make_stock, product):
    make_stock('3.5')

    response = api_client.get(f'/api/products/{product.id}/')

    assert response.status_code == status.HTTP_200_OK
    availability = response.data['availability']
    assert Decimal(availability['Kilo']) == Decimal('3.5')
    assert Decimal(availability['Pc']) == Decimal('0')
    assert 'Tali' not in availability


def test_admin_adds_stock(auth_client, admin_user, member, product):
    response = auth_client(admin_user).post('/api/stocks/', {
        'product_id': product.id,
        'member_id': member.id,
        'category': 'Kilo',
        'quantity': '25',
    }, format='json')

    assert response.status_code == status.HTTP_201_CREATED
    assert response.data['member'] == member.id


def test_customer_cannot_add_stock(auth_client, customer, member, product):
    response = auth_client(customer).post('/api/stocks/', {
        'product_id': product.id,
        'member_id': member.id,
        'category': 'Kilo',
        'quantity': '25',
    }, format='json')

    assert response.status_code == status.HTTP_403_FORBIDDEN


def test_member_sees_only_own_stocks(auth_client, member, make_stock):
    make_stock('2')

    response = auth_client(member).get('/api/stocks/')

    assert response.status_code == status.HTTP_200_OK
    assert response.data['count'] == 1
