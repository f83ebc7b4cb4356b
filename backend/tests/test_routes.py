# Overview: Pytest coverage for the JSON API: status codes, error bodies and payload handling.

"""
API Route Tests

Coverage:
- Health check
- Document creation and lifecycle actions over HTTP
- Failure kinds mapped to HTTP status codes
- Strict payload handling (unknown fields, decimal amounts)
- Tenant header handling
"""

from maroc_billing.models import Company
from maroc_billing.routes.common import HTTP_STATUS_BY_KIND
from maroc_billing.services import errors


def _create_invoice(client, headers, client_id, product_id, quantity=2):
    return client.post('/api/invoices', headers=headers, json={
        'client_id': client_id,
        'items': [{'product_id': product_id, 'quantity': quantity}],
    })


class TestHealth:

    def test_health(self, client, db_session):
        response = client.get('/api/health')

        assert response.status_code == 200
        data = response.get_json()
        assert data['status'] == 'healthy'
        assert data['currency'] == 'MAD'
        assert data['checks']['database']['status'] == 'healthy'
        assert data['timestamp'].endswith('Z')


class TestErrorMapping:

    def test_every_error_kind_has_a_status(self):
        assert set(HTTP_STATUS_BY_KIND) == set(errors.ERROR_KINDS)
        assert all(400 <= status < 500 for status in HTTP_STATUS_BY_KIND.values())


class TestInvoiceRoutes:

    def test_create_invoice(self, client, headers_a, client_a, product_a, default_tax_a):
        response = _create_invoice(client, headers_a, client_a.id, product_a.id)

        assert response.status_code == 201
        data = response.get_json()
        assert data['status'] == 'draft'
        assert data['number'].startswith('FAC-')
        assert data['total_cents'] == 24000
        assert len(data['lines']) == 1

    def test_send_then_list(self, client, headers_a, client_a, product_a, default_tax_a):
        invoice_id = _create_invoice(client, headers_a, client_a.id, product_a.id).get_json()['id']

        response = client.post(f'/api/invoices/{invoice_id}/send', headers=headers_a, json={})
        assert response.status_code == 200
        assert response.get_json()['status'] == 'sent'

        listed = client.get('/api/invoices?status=sent', headers=headers_a).get_json()
        assert [i['id'] for i in listed['items']] == [invoice_id]

    def test_send_with_insufficient_stock_is_conflict(self, client, headers_a, client_a, product_a, default_tax_a):
        invoice_id = _create_invoice(client, headers_a, client_a.id, product_a.id, quantity=11).get_json()['id']

        response = client.post(f'/api/invoices/{invoice_id}/send', headers=headers_a)

        assert response.status_code == 409
        data = response.get_json()
        assert data['kind'] == 'InsufficientStock'
        assert data['details']['items'][0]['requested'] == 11
        assert data['details']['items'][0]['available'] == 10
        assert data['error'] == data['message']

    def test_unknown_invoice_is_404(self, client, headers_a):
        response = client.get('/api/invoices/99999', headers=headers_a)

        assert response.status_code == 404
        assert response.get_json()['kind'] == 'NotFound'

    def test_cancel_paid_invoice_is_409(self, client, headers_a, sent_invoice):
        assert client.post(f'/api/invoices/{sent_invoice.id}/mark-paid', headers=headers_a).status_code == 201

        response = client.post(f'/api/invoices/{sent_invoice.id}/cancel', headers=headers_a, json={'reason': 'x'})

        assert response.status_code == 409
        assert response.get_json()['details']['current_status'] == 'paid'

    def test_missing_default_tax_is_422(self, client, headers_a, product_a):
        response = client.get(f'/api/taxes/resolve?product_id={product_a.id}', headers=headers_a)

        assert response.status_code == 422
        assert response.get_json()['kind'] == 'NoDefaultTaxConfigured'

    def test_delete_draft(self, client, headers_a, client_a, product_a, default_tax_a):
        invoice_id = _create_invoice(client, headers_a, client_a.id, product_a.id).get_json()['id']

        response = client.delete(f'/api/invoices/{invoice_id}', headers=headers_a)

        assert response.status_code == 200
        assert response.get_json() == {'deleted': True}
        assert client.get(f'/api/invoices/{invoice_id}', headers=headers_a).status_code == 404

    def test_deposit(self, client, headers_a, sent_invoice):
        response = client.post(f'/api/invoices/{sent_invoice.id}/deposit', headers=headers_a, json={})

        assert response.status_code == 201
        assert response.get_json()['deposit_amount_cents'] == 7200


class TestPayloadValidation:

    def test_unknown_field_rejected(self, client, headers_a, client_a, product_a, default_tax_a):
        response = client.post('/api/invoices', headers=headers_a, json={
            'client_id': client_a.id,
            'items': [{'product_id': product_a.id, 'quantity': 1}],
            'total_cents': 1,
        })

        assert response.status_code == 400
        assert response.get_json()['details']['field'] == 'total_cents'

    def test_missing_required_field(self, client, headers_a, client_a):
        response = client.post('/api/invoices', headers=headers_a, json={'client_id': client_a.id})

        assert response.status_code == 400
        assert response.get_json()['kind'] == 'ValidationError'

    def test_decimal_amount_rejected(self, client, headers_a, sent_invoice):
        response = client.post('/api/payments', headers=headers_a, json={
            'invoice_id': sent_invoice.id, 'amount_cents': 100.5, 'method': 'cash',
        })

        assert response.status_code == 400
        assert response.get_json()['details']['field'] == 'amount_cents'

    def test_digit_strings_accepted(self, client, headers_a, sent_invoice):
        response = client.post('/api/payments', headers=headers_a, json={
            'invoice_id': str(sent_invoice.id), 'amount_cents': '10000', 'method': 'bank',
        })

        assert response.status_code == 201
        assert response.get_json()['amount_cents'] == 10000

    def test_unknown_line_field_rejected(self, client, headers_a, client_a, product_a):
        response = client.post('/api/invoices', headers=headers_a, json={
            'client_id': client_a.id,
            'items': [{'product_id': product_a.id, 'quantity': 1, 'price': 1}],
        })

        assert response.status_code == 400
        assert response.get_json()['details']['field'] == 'items[0]'


class TestStockRoutes:

    def test_record_movement(self, client, headers_a, product_a):
        response = client.post('/api/stock/movements', headers=headers_a, json={
            'product_id': product_a.id, 'type': 'sale', 'quantity': -3,
        })

        assert response.status_code == 201
        assert response.get_json()['quantity'] == -3

    def test_service_not_stock_managed(self, client, headers_a, service_a):
        response = client.post('/api/stock/movements', headers=headers_a, json={
            'product_id': service_a.id, 'type': 'purchase', 'quantity': 1,
        })

        assert response.status_code == 422
        assert response.get_json()['kind'] == 'NotStockManaged'

    def test_check_stock(self, client, headers_a, product_a):
        response = client.post('/api/stock/check', headers=headers_a, json={
            'items': [{'product_id': product_a.id, 'quantity': 12}],
        })

        data = response.get_json()
        assert response.status_code == 200
        assert data['ok'] is False
        assert data['insufficient_items'][0]['available'] == 10

    def test_transfer(self, client, headers_a, product_a, location_a, second_location_a):
        response = client.post('/api/stock/transfers', headers=headers_a, json={
            'product_id': product_a.id,
            'quantity': 4,
            'from_location_id': location_a.id,
            'to_location_id': second_location_a.id,
        })

        assert response.status_code == 201
        assert [m['quantity'] for m in response.get_json()['movements']] == [-4, 4]


class TestQuoteRoutes:

    def test_quote_to_invoice(self, client, headers_a, client_a, product_a, default_tax_a):
        created = client.post('/api/quotes', headers=headers_a, json={
            'client_id': client_a.id, 'items': [{'product_id': product_a.id, 'quantity': 1}],
        })
        quote_id = created.get_json()['id']

        assert client.post(f'/api/quotes/{quote_id}/send', headers=headers_a, json={}).status_code == 200
        assert client.post(f'/api/quotes/{quote_id}/accept', headers=headers_a).get_json()['status'] == 'accepted'

        response = client.post(f'/api/quotes/{quote_id}/convert', headers=headers_a, json={})

        assert response.status_code == 201
        data = response.get_json()
        assert data['quote']['status'] == 'converted'
        assert data['invoice']['quote_id'] == quote_id
        assert data['invoice']['status'] == 'draft'

    def test_unknown_action_is_404(self, client, headers_a, client_a, product_a, default_tax_a):
        quote_id = client.post('/api/quotes', headers=headers_a, json={
            'client_id': client_a.id, 'items': [{'product_id': product_a.id, 'quantity': 1}],
        }).get_json()['id']

        assert client.post(f'/api/quotes/{quote_id}/archive', headers=headers_a).status_code == 404


class TestCreditNoteRoutes:

    def test_apply_more_than_remaining_is_409(self, client, headers_a, sent_invoice):
        created = client.post('/api/credit-notes', headers=headers_a, json={'invoice_id': sent_invoice.id})
        credit_note_id = created.get_json()['id']
        client.post(f'/api/credit-notes/{credit_note_id}/issue', headers=headers_a)

        response = client.post(f'/api/credit-notes/{credit_note_id}/apply', headers=headers_a, json={
            'amount_cents': 30000, 'refund_method': 'cash',
        })

        assert response.status_code == 409
        assert response.get_json()['kind'] == 'InsufficientCreditRemaining'


class TestCompanyHeader:

    def test_missing_header(self, client, db_session):
        response = client.get('/api/invoices')

        assert response.status_code == 400
        assert response.get_json() == {'error': 'X-Company-Id header required'}

    def test_non_integer_header(self, client, db_session):
        response = client.get('/api/invoices', headers={'X-Company-Id': 'atlas'})
        assert response.status_code == 400

    def test_unknown_company(self, client, db_session):
        response = client.get('/api/invoices', headers={'X-Company-Id': '424242'})
        assert response.status_code == 404

    def test_inactive_company(self, client, db_session, company_a, headers_a):
        db_session.get(Company, company_a.id).is_active = False
        db_session.commit()

        response = client.get('/api/invoices', headers=headers_a)
        assert response.status_code == 404
