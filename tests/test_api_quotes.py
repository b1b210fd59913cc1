"""HTTP surface for quotes."""
from datetime import datetime, timedelta

from conftest import login, make_approved_design
from marketplace.extensions import db
from marketplace.models import DesignApprovalContext, Quote, QuoteStatus


def _create(seller_client, conv, **extra):
    body = {'conversation_id': conv.id, 'quoted_price': '10.50',
            'quantity': 2}
    body.update(extra)
    return seller_client.post('/api/quotes', json=body)


def test_requires_login(app):
    resp = app.test_client().post('/api/quotes', json={})
    assert resp.status_code == 401
    assert resp.get_json()['login_required'] is True


def test_seller_creates_sent_quote(seller_client, quote_conversation):
    resp = _create(seller_client, quote_conversation)

    assert resp.status_code == 201
    quote = resp.get_json()['quote']
    assert quote['status'] == 'sent'
    assert quote['quoted_price'] == '10.50'
    assert quote['quantity'] == 2
    assert quote['total_amount'] == '21.00'
    assert quote['is_active'] is True


def test_zero_amount_is_validation_error(seller_client, quote_conversation):
    resp = _create(seller_client, quote_conversation, quoted_price=0)

    assert resp.status_code == 400
    assert resp.get_json()['code'] == 'validation_error'
    assert Quote.query.count() == 0


def test_buyer_cannot_create_quotes(buyer_client, quote_conversation):
    resp = buyer_client.post('/api/quotes', json={
        'conversation_id': quote_conversation.id, 'quoted_price': '5.00'})
    assert resp.status_code == 403


def test_accept_superseded_quote_conflicts(app, buyer, seller_client,
                                           quote_conversation):
    first = _create(seller_client, quote_conversation).get_json()['quote']
    second = _create(
        seller_client, quote_conversation,
        quoted_price='9.00').get_json()['quote']

    buyer_client = login(app.test_client(), buyer)
    resp = buyer_client.post(f"/api/quotes/{first['id']}/accept")
    assert resp.status_code == 409
    assert resp.get_json()['code'] == 'invalid_state'
    assert resp.get_json()['active_quote_id'] == second['id']

    resp = buyer_client.post(f"/api/quotes/{second['id']}/accept")
    assert resp.status_code == 200
    body = resp.get_json()['quote']
    assert body['status'] == 'accepted'
    assert body['purchase_path'] == 'checkout'


def test_reject_with_reason(app, buyer, seller_client, quote_conversation):
    quote = _create(seller_client, quote_conversation).get_json()['quote']
    buyer_client = login(app.test_client(), buyer)

    resp = buyer_client.post(
        f"/api/quotes/{quote['id']}/reject", json={'reason': 'Too slow'})

    assert resp.status_code == 200
    assert resp.get_json()['quote']['status'] == 'rejected'
    assert resp.get_json()['quote']['rejection_reason'] == 'Too slow'


def test_seller_cannot_accept(seller_client, quote_conversation):
    quote = _create(seller_client, quote_conversation).get_json()['quote']
    resp = seller_client.post(f"/api/quotes/{quote['id']}/accept")
    assert resp.status_code == 403


def test_missing_quote_is_404(buyer_client):
    resp = buyer_client.post('/api/quotes/999/accept')
    assert resp.status_code == 404
    assert resp.get_json()['code'] == 'not_found'


def test_expired_quote_reads_as_expired(app, buyer, seller_client,
                                        quote_conversation):
    quote_id = _create(seller_client, quote_conversation).get_json()['quote']['id']
    quote = db.session.get(Quote, quote_id)
    quote.expires_at = datetime.utcnow() - timedelta(minutes=5)
    db.session.commit()

    buyer_client = login(app.test_client(), buyer)
    resp = buyer_client.get(f'/api/quotes/{quote_id}')
    assert resp.get_json()['quote']['status'] == 'expired'

    resp = buyer_client.post(f'/api/quotes/{quote_id}/accept')
    assert resp.status_code == 409
    db.session.expire_all()
    assert db.session.get(Quote, quote_id).status == QuoteStatus.SENT


def test_list_my_quotes_filters_by_status(app, buyer, seller_client,
                                          quote_conversation):
    _create(seller_client, quote_conversation)
    resp = seller_client.get('/api/quotes?status=sent')
    assert resp.get_json()['total'] == 1
    resp = seller_client.get('/api/quotes?status=accepted')
    assert resp.get_json()['total'] == 0
    resp = seller_client.get('/api/quotes?status=bogus')
    assert resp.status_code == 400


def test_direct_purchase(app, buyer, seller_client, quote_conversation):
    quote_id = _create(seller_client, quote_conversation).get_json()['quote']['id']
    buyer_client = login(app.test_client(), buyer)
    buyer_client.post(f'/api/quotes/{quote_id}/accept')
    make_approved_design(
        quote_conversation, context=DesignApprovalContext.QUOTE,
        quote=db.session.get(Quote, quote_id))

    resp = buyer_client.post(f'/api/quotes/{quote_id}/purchase', json={
        'payment_method': 'bank_transfer',
        'shipping_address': '1 Main St',
    })

    assert resp.status_code == 201
    order = resp.get_json()['order']
    assert order['unit_price'] == '10.50'
    assert order['quantity'] == 2
    assert order['total_amount'] == '21.00'

    again = buyer_client.post(f'/api/quotes/{quote_id}/purchase', json={
        'payment_method': 'bank_transfer',
        'shipping_address': '1 Main St',
    })
    assert again.status_code == 409

    orders = buyer_client.get('/api/orders').get_json()
    assert orders['total'] == 1
