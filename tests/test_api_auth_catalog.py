from conftest import make_approved_design, make_conversation
from marketplace.models import AuditLog, UserRole, User
from marketplace.services.cart_service import REASON_MESSAGES


def test_register_logs_in_and_me_returns_user(app):
    client = app.test_client()
    resp = client.post('/api/auth/register', json={
        'email': 'New@Example.com',
        'password': 'hunter22',
        'display_name': 'Newbie',
    })
    assert resp.status_code == 201
    assert resp.get_json()['role'] == 'BUYER'

    me = client.get('/api/auth/me').get_json()['user']
    assert me['email'] == 'new@example.com'
    assert me['display_name'] == 'Newbie'
    assert User.query.filter_by(email='new@example.com').one().role == \
        UserRole.BUYER


def test_register_refuses_admin_role(app):
    resp = app.test_client().post('/api/auth/register', json={
        'email': 'boss@example.com', 'password': 'hunter22', 'role': 'admin'})
    assert resp.status_code == 400
    assert User.query.filter_by(email='boss@example.com').first() is None


def test_register_duplicate_email(app, buyer):
    resp = app.test_client().post('/api/auth/register', json={
        'email': buyer.email, 'password': 'hunter22'})
    assert resp.status_code == 400


def test_bad_password_is_audited(app, buyer):
    resp = app.test_client().post('/api/auth/login', json={
        'email': buyer.email, 'password': 'wrong-one'})
    assert resp.status_code == 401
    entry = AuditLog.query.filter_by(action='LOGIN_FAILED').one()
    assert entry.get_payload() == {'reason': 'invalid_credentials'}


def test_logout_ends_session(buyer_client):
    assert buyer_client.post('/api/auth/logout').status_code == 200
    resp = buyer_client.get('/api/auth/me')
    assert resp.status_code == 401
    assert resp.get_json()['login_required'] is True


def test_anonymous_can_browse_catalog(app, product, service):
    client = app.test_client()

    resp = client.get(f'/api/products/{product.id}')
    assert resp.status_code == 200
    body = resp.get_json()['product']
    assert body['requires_design_approval'] is True
    assert [v['name'] for v in body['variants']] == ['A3', 'A2']
    assert body['variants'][0]['price'] == '18.00'

    resp = client.get(f'/api/services/{service.id}')
    assert resp.status_code == 200
    assert len(resp.get_json()['service']['packages']) == 2


def test_anonymous_cannot_read_buyer_views(app, product):
    resp = app.test_client().get(
        f'/api/products/{product.id}/purchase-requirements')
    assert resp.status_code == 401


def test_unknown_product_is_404(app):
    assert app.test_client().get('/api/products/999').status_code == 404


def test_purchase_requirements_reports_missing_design(buyer_client, product):
    variant = product.variants[0]
    resp = buyer_client.get(
        f'/api/products/{product.id}/purchase-requirements'
        f'?variant_id={variant.id}')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['can_purchase'] is False
    assert body['reasons'] == ['design_missing']
    assert body['messages'] == [REASON_MESSAGES['design_missing']]
    assert body['design_status'] == 'none'


def test_purchase_requirements_quote_item(buyer_client, custom_product):
    body = buyer_client.get(
        f'/api/products/{custom_product.id}/purchase-requirements'
    ).get_json()
    assert body['reasons'] == ['quote_missing', 'design_missing']


def test_purchase_requirements_service(buyer_client, service):
    body = buyer_client.get(
        f'/api/services/{service.id}/purchase-requirements'
        f'?package_id={service.packages[0].id}'
    ).get_json()
    assert body['can_purchase'] is False
    assert 'quote_missing' in body['reasons']


def test_approved_variants_binds_sole_variant(
        buyer_client, buyer, seller, single_variant_product):
    conv = make_conversation(buyer, seller, product=single_variant_product)
    design = make_approved_design(conv)
    variant_id = single_variant_product.variants[0].id

    resp = buyer_client.get(
        f'/api/products/{single_variant_product.id}/approved-variants')
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['approved_variant_ids'] == [variant_id]
    assert body['designs'][str(variant_id)]['variant_auto_bound'] is True
    assert body['designs'][str(variant_id)]['id'] == design.id
    assert AuditLog.query.filter_by(
        action='DESIGN_VARIANT_AUTO_BOUND').count() == 1


def test_approved_variants_ignores_ambiguous_design(
        buyer_client, buyer, seller, product):
    conv = make_conversation(buyer, seller, product=product)
    make_approved_design(conv)

    body = buyer_client.get(
        f'/api/products/{product.id}/approved-variants').get_json()
    assert body['approved_variant_ids'] == []


def test_seller_cannot_read_purchase_requirements(seller_client, product):
    resp = seller_client.get(
        f'/api/products/{product.id}/purchase-requirements')
    assert resp.status_code == 403
