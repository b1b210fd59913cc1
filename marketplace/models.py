from marketplace.extensions import db
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash
from datetime import datetime
from sqlalchemy import CheckConstraint
import enum
import json


class UserRole(enum.Enum):
    BUYER = 'BUYER'
    SELLER = 'SELLER'
    ADMIN = 'ADMIN'


class WorkflowContext(enum.Enum):
    PRODUCT = 'product'
    SERVICE = 'service'
    QUOTE = 'quote'


class QuoteStatus(enum.Enum):
    PENDING = 'pending'
    SENT = 'sent'
    ACCEPTED = 'accepted'
    REJECTED = 'rejected'
    EXPIRED = 'expired'


class DesignApprovalStatus(enum.Enum):
    PENDING = 'pending'
    APPROVED = 'approved'
    REJECTED = 'rejected'
    CHANGES_REQUESTED = 'changes_requested'


class DesignApprovalContext(enum.Enum):
    PRODUCT = 'product'
    QUOTE = 'quote'


class MessageType(enum.Enum):
    TEXT = 'TEXT'
    SYSTEM = 'SYSTEM'


class OrderType(enum.Enum):
    PRODUCT = 'PRODUCT'
    SERVICE = 'SERVICE'


class OrderStatus(enum.Enum):
    PENDING_PAYMENT = 'PENDING_PAYMENT'
    PAID = 'PAID'
    CANCELLED = 'CANCELLED'
    COMPLETED = 'COMPLETED'


OPEN_QUOTE_STATUSES = (QuoteStatus.PENDING, QuoteStatus.SENT)
ACTIVE_DESIGN_STATUSES = (
    DesignApprovalStatus.PENDING,
    DesignApprovalStatus.APPROVED,
)


class User(UserMixin, db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False, index=True)
    display_name = db.Column(db.String(100), nullable=True)
    password_hash = db.Column(db.String(255), nullable=False)
    role = db.Column(
        db.Enum(UserRole),
        nullable=False,
        default=UserRole.BUYER)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)
    last_login_at = db.Column(db.DateTime, nullable=True)

    cart_items = db.relationship(
        'CartItem',
        backref='buyer',
        lazy='dynamic',
        cascade='all, delete-orphan')

    def set_password(self, password):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password):
        return check_password_hash(self.password_hash, password)

    def __repr__(self):
        return f'<User {self.email}>'


class Product(db.Model):
    __tablename__ = 'products'

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    # Custom products are priced per conversation through quotes.
    requires_quote = db.Column(db.Boolean, default=False, nullable=False)
    # Print products need buyer artwork signed off by the seller.
    requires_design_approval = db.Column(
        db.Boolean, default=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)

    seller = db.relationship('User', foreign_keys=[seller_id])
    variants = db.relationship(
        'ProductVariant',
        backref='product',
        order_by='ProductVariant.id',
        cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Product {self.name}>'


class ProductVariant(db.Model):
    __tablename__ = 'product_variants'

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'products.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    # e.g. "A4 - Glossy"
    name = db.Column(db.String(255), nullable=False)
    sku = db.Column(db.String(100), nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    inventory = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)

    def __repr__(self):
        return f'<ProductVariant {self.id} product={self.product_id}>'


class Service(db.Model):
    __tablename__ = 'services'

    id = db.Column(db.Integer, primary_key=True)
    seller_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    requires_quote = db.Column(db.Boolean, default=False, nullable=False)
    requires_design_approval = db.Column(
        db.Boolean, default=True, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)

    seller = db.relationship('User', foreign_keys=[seller_id])
    packages = db.relationship(
        'ServicePackage',
        backref='service',
        order_by='ServicePackage.id',
        cascade='all, delete-orphan')

    def __repr__(self):
        return f'<Service {self.name}>'


class ServicePackage(db.Model):
    __tablename__ = 'service_packages'

    id = db.Column(db.Integer, primary_key=True)
    service_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'services.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    # e.g. "Basic", "Premium"
    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Numeric(10, 2), nullable=False)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)

    def __repr__(self):
        return f'<ServicePackage {self.id} service={self.service_id}>'


class Conversation(db.Model):
    __tablename__ = 'conversations'

    id = db.Column(db.Integer, primary_key=True)
    subject = db.Column(db.String(255), nullable=False)
    buyer_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    seller_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'products.id',
            ondelete='SET NULL'),
        nullable=True)
    service_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'services.id',
            ondelete='SET NULL'),
        nullable=True)
    # JSON list of WorkflowContext values, set semantics
    workflow_contexts_json = db.Column(db.Text, nullable=False, default='[]')

    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False)
    last_message_at = db.Column(db.DateTime, nullable=True)

    buyer = db.relationship('User', foreign_keys=[buyer_id])
    seller = db.relationship('User', foreign_keys=[seller_id])
    product = db.relationship('Product', foreign_keys=[product_id])
    service = db.relationship('Service', foreign_keys=[service_id])
    messages = db.relationship(
        'Message',
        backref='conversation',
        lazy='dynamic',
        cascade='all, delete-orphan')
    quotes = db.relationship(
        'Quote',
        backref='conversation',
        lazy='dynamic',
        cascade='all, delete-orphan')
    design_approvals = db.relationship(
        'DesignApproval',
        backref='conversation',
        lazy='dynamic',
        cascade='all, delete-orphan')

    def get_workflow_contexts(self):
        if self.workflow_contexts_json:
            return json.loads(self.workflow_contexts_json)
        return []

    def set_workflow_contexts(self, contexts):
        ordered = []
        for ctx in contexts:
            value = getattr(ctx, 'value', ctx)
            if value not in ordered:
                ordered.append(value)
        self.workflow_contexts_json = json.dumps(ordered)

    def add_workflow_context(self, context) -> bool:
        value = getattr(context, 'value', context)
        current = self.get_workflow_contexts()
        if value in current:
            return False
        self.set_workflow_contexts(current + [value])
        return True

    @property
    def item(self):
        return self.product or self.service

    def __repr__(self):
        return f'<Conversation {self.id}>'


class Message(db.Model):
    __tablename__ = 'messages'

    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'conversations.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    # NULL for SYSTEM messages
    sender_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='SET NULL'),
        nullable=True,
        index=True)
    sender_role = db.Column(db.String(20), nullable=False)
    msg_type = db.Column(
        db.Enum(MessageType),
        nullable=False,
        default=MessageType.TEXT)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False,
        index=True)

    sender = db.relationship('User', foreign_keys=[sender_id])

    def __repr__(self):
        return f'<Message {self.id} type={self.msg_type}>'


class Quote(db.Model):
    __tablename__ = 'quotes'

    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'conversations.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'products.id',
            ondelete='CASCADE'),
        nullable=True)
    service_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'services.id',
            ondelete='CASCADE'),
        nullable=True)
    product_variant_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'product_variants.id',
            ondelete='CASCADE'),
        nullable=True)
    service_package_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'service_packages.id',
            ondelete='CASCADE'),
        nullable=True)
    design_approval_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'design_approvals.id',
            ondelete='SET NULL',
            use_alter=True),
        nullable=True)
    buyer_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    seller_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    quoted_price = db.Column(db.Numeric(10, 2), nullable=False)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.Enum(QuoteStatus),
        default=QuoteStatus.SENT,
        nullable=False,
        index=True)
    expires_at = db.Column(db.DateTime, nullable=True)
    accepted_at = db.Column(db.DateTime, nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False,
        index=True)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False)

    product = db.relationship('Product', foreign_keys=[product_id])
    service = db.relationship('Service', foreign_keys=[service_id])
    product_variant = db.relationship(
        'ProductVariant', foreign_keys=[product_variant_id])
    service_package = db.relationship(
        'ServicePackage', foreign_keys=[service_package_id])
    design_approval = db.relationship(
        'DesignApproval', foreign_keys=[design_approval_id], post_update=True)

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_quote_quantity_positive'),
        CheckConstraint('quoted_price > 0', name='check_quote_price_positive'),
    )

    @property
    def effective_status(self):
        # Expiry is time based: an open quote past expires_at reads as
        # expired before the expire-quotes job persists it.
        if (
            self.status in OPEN_QUOTE_STATUSES
            and self.expires_at is not None
            and datetime.utcnow() > self.expires_at
        ):
            return QuoteStatus.EXPIRED
        return self.status

    @property
    def total_amount(self):
        return self.quoted_price * self.quantity

    def __repr__(self):
        return f'<Quote {self.id} status={self.status}>'


class DesignApproval(db.Model):
    __tablename__ = 'design_approvals'

    id = db.Column(db.Integer, primary_key=True)
    conversation_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'conversations.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    context = db.Column(
        db.Enum(DesignApprovalContext),
        default=DesignApprovalContext.PRODUCT,
        nullable=False)
    # Set when context is QUOTE
    quote_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'quotes.id',
            ondelete='SET NULL'),
        nullable=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'products.id',
            ondelete='CASCADE'),
        nullable=True)
    service_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'services.id',
            ondelete='CASCADE'),
        nullable=True)
    variant_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'product_variants.id',
            ondelete='SET NULL'),
        nullable=True)
    package_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'service_packages.id',
            ondelete='SET NULL'),
        nullable=True)
    buyer_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    seller_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    # JSON list of {url, filename, size, mime_type}
    design_files_json = db.Column(db.Text, nullable=False)
    status = db.Column(
        db.Enum(DesignApprovalStatus),
        default=DesignApprovalStatus.PENDING,
        nullable=False,
        index=True)
    # Rejection reason, change requests or approval notes
    seller_notes = db.Column(db.Text, nullable=True)
    # True when the sole-variant fallback filled variant_id
    variant_auto_bound = db.Column(db.Boolean, default=False, nullable=False)
    approved_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False,
        index=True)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False)

    quote = db.relationship('Quote', foreign_keys=[quote_id])
    product = db.relationship('Product', foreign_keys=[product_id])
    service = db.relationship('Service', foreign_keys=[service_id])
    variant = db.relationship('ProductVariant', foreign_keys=[variant_id])
    package = db.relationship('ServicePackage', foreign_keys=[package_id])

    def set_design_files(self, files):
        self.design_files_json = json.dumps(files, ensure_ascii=False)

    def get_design_files(self):
        if self.design_files_json:
            return json.loads(self.design_files_json)
        return []

    def __repr__(self):
        return f'<DesignApproval {self.id} status={self.status}>'


class CartItem(db.Model):
    __tablename__ = 'cart_items'

    id = db.Column(db.Integer, primary_key=True)
    buyer_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    product_variant_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'product_variants.id',
            ondelete='CASCADE'),
        nullable=False)
    quote_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'quotes.id',
            ondelete='SET NULL'),
        nullable=True)
    design_approval_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'design_approvals.id',
            ondelete='SET NULL'),
        nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    # Locked quote price; NULL means the live variant price applies.
    unit_price_override = db.Column(db.Numeric(10, 2), nullable=True)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)
    updated_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False)

    variant = db.relationship(
        'ProductVariant', foreign_keys=[product_variant_id])
    quote = db.relationship('Quote', foreign_keys=[quote_id])
    design_approval = db.relationship(
        'DesignApproval', foreign_keys=[design_approval_id])

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_quantity_positive'),
    )

    @property
    def effective_unit_price(self):
        if self.unit_price_override is not None:
            return self.unit_price_override
        return self.variant.price

    def __repr__(self):
        return (
            f"<CartItem {self.id} buyer={self.buyer_id} "
            f"variant={self.product_variant_id} qty={self.quantity}>"
        )


class Order(db.Model):
    __tablename__ = 'orders'

    id = db.Column(db.Integer, primary_key=True)
    order_type = db.Column(db.Enum(OrderType), nullable=False)
    buyer_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    seller_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='CASCADE'),
        nullable=False,
        index=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey('products.id', ondelete='SET NULL'),
        nullable=True)
    product_variant_id = db.Column(
        db.Integer,
        db.ForeignKey('product_variants.id', ondelete='SET NULL'),
        nullable=True)
    service_id = db.Column(
        db.Integer,
        db.ForeignKey('services.id', ondelete='SET NULL'),
        nullable=True)
    service_package_id = db.Column(
        db.Integer,
        db.ForeignKey('service_packages.id', ondelete='SET NULL'),
        nullable=True)
    quote_id = db.Column(
        db.Integer,
        db.ForeignKey('quotes.id', ondelete='SET NULL'),
        nullable=True,
        index=True)
    design_approval_id = db.Column(
        db.Integer,
        db.ForeignKey('design_approvals.id', ondelete='SET NULL'),
        nullable=True)
    # Order snapshot price.
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False)
    shipping_address = db.Column(db.Text, nullable=True)
    payment_method = db.Column(db.String(20), nullable=False)
    status = db.Column(
        db.Enum(OrderStatus),
        default=OrderStatus.PENDING_PAYMENT,
        nullable=False)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False)

    __table_args__ = (
        CheckConstraint('quantity > 0', name='check_order_quantity_positive'),
    )

    def __repr__(self):
        return f'<Order {self.id} status={self.status}>'


class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    actor_id = db.Column(
        db.Integer,
        db.ForeignKey(
            'users.id',
            ondelete='SET NULL'),
        nullable=True)
    actor_role = db.Column(db.String(20), nullable=False)
    # e.g., QUOTE_ACCEPTED, DESIGN_APPROVED
    action = db.Column(db.String(100), nullable=False)
    # QUOTE, DESIGN_APPROVAL, CART_ITEM, ORDER, etc.
    target_type = db.Column(db.String(50), nullable=True)
    target_id = db.Column(db.Integer, nullable=True)
    ip = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    # JSON format key field snapshot
    payload_json = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime,
        default=datetime.utcnow,
        nullable=False,
        index=True)

    actor = db.relationship('User', foreign_keys=[actor_id])

    def set_payload(self, data):
        self.payload_json = json.dumps(data, ensure_ascii=False)

    def get_payload(self):
        if self.payload_json:
            return json.loads(self.payload_json)
        return {}

    def __repr__(self):
        return f'<AuditLog {self.id} action={self.action}>'
