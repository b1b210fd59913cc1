"""Conversation endpoints and the workflow state they expose."""
from conftest import login
from marketplace.models import Conversation


def test_start_product_conversation(buyer_client, product):
    resp = buyer_client.post('/api/conversations', json={
        'product_id': product.id,
        'initial_message': 'Hi, can you print this on A2?',
    })

    assert resp.status_code == 201
    body = resp.get_json()
    assert body['created'] is True
    assert body['conversation']['workflow_contexts'] == ['product']

    again = buyer_client.post('/api/conversations', json={
        'product_id': product.id})
    assert again.status_code == 200
    assert again.get_json()['created'] is False
    assert Conversation.query.count() == 1


def test_start_quote_conversation_then_context_only_grows(
        buyer_client, custom_product):
    resp = buyer_client.post('/api/conversations', json={
        'product_id': custom_product.id, 'context': 'quote'})
    conv = resp.get_json()['conversation']
    assert conv['workflow_contexts'] == ['quote']

    # Contexts are fixed at start; product is not added afterwards.
    resp = buyer_client.post('/api/conversations', json={
        'product_id': custom_product.id, 'context': 'product'})
    assert resp.get_json()['conversation']['workflow_contexts'] == ['quote']


def test_start_requires_exactly_one_item(buyer_client, product, service):
    resp = buyer_client.post('/api/conversations', json={})
    assert resp.status_code == 400
    resp = buyer_client.post('/api/conversations', json={
        'product_id': product.id, 'service_id': service.id})
    assert resp.status_code == 400


def test_get_conversation_exposes_contexts(buyer_client, conversation):
    resp = buyer_client.get(f'/api/conversations/{conversation.id}')

    assert resp.status_code == 200
    body = resp.get_json()
    assert body['workflow_contexts'] == ['product']
    assert body['workflow']['show_design_panel'] is True
    assert body['workflow']['show_quote_panel'] is False


def test_quote_workflow_design_panel_follows_acceptance(
        app, buyer, seller, buyer_client, quote_conversation):
    url = f'/api/conversations/{quote_conversation.id}/workflow'

    state = buyer_client.get(url).get_json()
    assert state['show_quote_panel'] is True
    assert state['show_design_panel'] is False
    assert state['badges']['quote'] == 'No Quote'

    seller_client = login(app.test_client(), seller)
    quote = seller_client.post('/api/quotes', json={
        'conversation_id': quote_conversation.id,
        'quoted_price': '40.00',
    }).get_json()['quote']

    state = buyer_client.get(url).get_json()
    assert state['show_design_panel'] is False
    assert state['badges']['quote'] == 'Quote sent'

    buyer_client.post(f"/api/quotes/{quote['id']}/accept")

    state = buyer_client.get(url).get_json()
    assert state['show_design_panel'] is True
    assert state['panel_order'] == ['quote', 'design']
    assert state['badges']['quote'] == 'Quote Accepted'


def test_quote_request_adds_context_and_system_message(
        buyer_client, conversation):
    resp = buyer_client.post(
        f'/api/conversations/{conversation.id}/quote-request',
        json={'message': 'Need 500 units'})

    assert resp.status_code == 200
    assert resp.get_json()['conversation']['workflow_contexts'] == [
        'product', 'quote']

    messages = buyer_client.get(
        f'/api/conversations/{conversation.id}/messages').get_json()['items']
    assert messages[-1]['msg_type'] == 'SYSTEM'
    assert 'Need 500 units' in messages[-1]['content']


def test_seller_cannot_request_quote(seller_client, conversation):
    resp = seller_client.post(
        f'/api/conversations/{conversation.id}/quote-request')
    assert resp.status_code == 403


def test_messages_round_trip(seller_client, buyer_client, conversation):
    resp = buyer_client.post(
        f'/api/conversations/{conversation.id}/messages',
        json={'content': 'Hello'})
    assert resp.status_code == 201

    empty = buyer_client.post(
        f'/api/conversations/{conversation.id}/messages',
        json={'content': '   '})
    assert empty.status_code == 400

    items = seller_client.get(
        f'/api/conversations/{conversation.id}/messages').get_json()['items']
    assert [m['content'] for m in items] == ['Hello']


def test_outsider_is_forbidden(app, other_buyer, conversation):
    client = login(app.test_client(), other_buyer)
    resp = client.get(f'/api/conversations/{conversation.id}')
    assert resp.status_code == 403
    assert resp.get_json()['code'] == 'forbidden'


def test_missing_conversation_is_404(buyer_client):
    resp = buyer_client.get('/api/conversations/404')
    assert resp.status_code == 404


def test_list_only_own_conversations(app, other_buyer, buyer_client,
                                     conversation):
    assert buyer_client.get('/api/conversations').get_json()['total'] == 1
    client = login(app.test_client(), other_buyer)
    assert client.get('/api/conversations').get_json()['total'] == 0


def test_quotes_list_marks_active(app, seller, buyer_client,
                                  quote_conversation):
    seller_client = login(app.test_client(), seller)
    for price in ('30.00', '25.00'):
        seller_client.post('/api/quotes', json={
            'conversation_id': quote_conversation.id, 'quoted_price': price})

    body = buyer_client.get(
        f'/api/conversations/{quote_conversation.id}/quotes').get_json()
    assert [q['quoted_price'] for q in body['items']] == ['25.00', '30.00']
    assert [q['is_active'] for q in body['items']] == [True, False]

    active = buyer_client.get(
        f'/api/conversations/{quote_conversation.id}/active-quote').get_json()
    assert active['quote']['quoted_price'] == '25.00'
