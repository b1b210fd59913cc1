from datetime import datetime
from decimal import Decimal

import pytest
from flask import g
from sqlalchemy.orm.attributes import set_committed_value

from marketplace import create_app
from marketplace.config import Config
from marketplace.extensions import db
from marketplace.models import (
    Conversation,
    DesignApproval,
    DesignApprovalContext,
    DesignApprovalStatus,
    Product,
    ProductVariant,
    Service,
    ServicePackage,
    User,
    UserRole,
)

PASSWORD = 'secret123'


class ConfigForTests(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    DESIGN_UPLOAD_FOLDER = ''


@pytest.fixture
def app(tmp_path):
    app = create_app(ConfigForTests)
    app.config['DESIGN_UPLOAD_FOLDER'] = str(tmp_path / 'designs')

    # The test app context stays pushed across requests, so Flask-Login's
    # cached user on ``g`` must be dropped before each request.
    def _reset_login_cache():
        g.pop('_login_user', None)

    app.before_request_funcs.setdefault(None, []).insert(
        0, _reset_login_cache)

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def upload_dir(app):
    return app.config['DESIGN_UPLOAD_FOLDER']


def _make_user(email, role):
    user = User(email=email, display_name=email.split('@')[0], role=role)
    user.set_password(PASSWORD)
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def buyer(app):
    return _make_user('buyer@example.com', UserRole.BUYER)


@pytest.fixture
def other_buyer(app):
    return _make_user('other@example.com', UserRole.BUYER)


@pytest.fixture
def seller(app):
    return _make_user('seller@example.com', UserRole.SELLER)


def make_product(seller, name='Poster', requires_quote=False,
                 requires_design_approval=True, variants=None):
    product = Product(
        seller_id=seller.id,
        name=name,
        requires_quote=requires_quote,
        requires_design_approval=requires_design_approval,
    )
    for variant_name, price, inventory in variants or [('Default', '10.00', 50)]:
        product.variants.append(ProductVariant(
            name=variant_name, price=Decimal(price), inventory=inventory))
    db.session.add(product)
    db.session.commit()
    return product


@pytest.fixture
def product(seller):
    """Design-required product with two variants."""
    return make_product(seller, variants=[
        ('A3', '18.00', 100),
        ('A2', '26.00', 50),
    ])


@pytest.fixture
def single_variant_product(seller):
    return make_product(
        seller, name='Sticker Pack', variants=[('50 pcs', '24.00', 100)])


@pytest.fixture
def custom_product(seller):
    """Quote-and-design product with two variants."""
    return make_product(
        seller,
        name='Banner',
        requires_quote=True,
        variants=[('2m', '120.00', 20), ('3m', '210.00', 10)],
    )


@pytest.fixture
def service(seller):
    service = Service(
        seller_id=seller.id,
        name='Logo Design',
        requires_quote=True,
        requires_design_approval=True,
    )
    service.packages.append(ServicePackage(name='Basic', price=Decimal('300.00')))
    service.packages.append(ServicePackage(name='Premium', price=Decimal('900.00')))
    db.session.add(service)
    db.session.commit()
    return service


def make_conversation(buyer, seller, product=None, service=None,
                      contexts=None):
    conv = Conversation(
        subject='Test conversation',
        buyer_id=buyer.id,
        seller_id=seller.id,
        product_id=product.id if product else None,
        service_id=service.id if service else None,
    )
    if contexts is None:
        contexts = ['product'] if product else ['service']
    conv.set_workflow_contexts(contexts)
    db.session.add(conv)
    db.session.commit()
    return conv


@pytest.fixture
def conversation(buyer, seller, product):
    return make_conversation(buyer, seller, product=product)


@pytest.fixture
def quote_conversation(buyer, seller, custom_product):
    return make_conversation(
        buyer, seller, product=custom_product, contexts=['quote'])


def design_file(filename='art.png', size=1024, mime_type='image/png'):
    return {
        'url': f'/files/{filename}',
        'filename': filename,
        'size': size,
        'mime_type': mime_type,
    }


def make_approved_design(conv, variant=None, context=DesignApprovalContext.PRODUCT,
                         quote=None):
    """Insert an approved design directly, bypassing the review flow."""
    design = DesignApproval(
        conversation_id=conv.id,
        context=context,
        quote_id=quote.id if quote else None,
        product_id=conv.product_id,
        service_id=conv.service_id,
        variant_id=variant.id if variant else None,
        buyer_id=conv.buyer_id,
        seller_id=conv.seller_id,
        status=DesignApprovalStatus.APPROVED,
        approved_at=datetime.utcnow(),
    )
    design.set_design_files([design_file()])
    db.session.add(design)
    db.session.commit()
    return design


def login(client, user):
    resp = client.post(
        '/api/auth/login',
        json={'email': user.email, 'password': PASSWORD})
    assert resp.status_code == 200, resp.get_json()
    return client


@pytest.fixture
def buyer_client(app, buyer):
    return login(app.test_client(), buyer)


@pytest.fixture
def seller_client(app, seller):
    return login(app.test_client(), seller)


def lose_race(obj, **row_values):
    """Write ``row_values`` to the row behind ``obj`` as another request
    would, leaving the loaded object with its old values."""
    stale = {key: getattr(obj, key) for key in row_values}
    type(obj).query.filter_by(id=obj.id).update(row_values)
    db.session.commit()
    db.session.refresh(obj)
    for key, value in stale.items():
        set_committed_value(obj, key, value)
