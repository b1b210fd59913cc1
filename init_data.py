from decimal import Decimal

from marketplace import create_app
from marketplace.extensions import db
from marketplace.models import (
    User,
    UserRole,
    Product,
    ProductVariant,
    Service,
    ServicePackage,
)

app = create_app()

with app.app_context():
    # Create admin account (if not exists)
    admin_email = "admin@example.com"
    admin = User.query.filter_by(email=admin_email).first()
    if not admin:
        admin = User(
            email=admin_email, display_name="Admin", role=UserRole.ADMIN)
        admin.set_password("admin123")
        db.session.add(admin)
        print(f"Created admin account: {admin_email} / admin123")

    buyer_email = "buyer@example.com"
    if not User.query.filter_by(email=buyer_email).first():
        buyer = User(
            email=buyer_email, display_name="Demo Buyer", role=UserRole.BUYER)
        buyer.set_password("buyer123")
        db.session.add(buyer)
        print(f"Created buyer account: {buyer_email} / buyer123")

    sellers_data = [
        {
            "email": "printshop@example.com",
            "display_name": "Print Shop",
            "products": [
                {
                    "name": "Custom Poster",
                    "description": "Full-color poster printed from your art",
                    "requires_quote": False,
                    "requires_design_approval": True,
                    "variants": [
                        ("A3 - Matte", "18.00", 100),
                        ("A2 - Matte", "26.00", 60),
                        ("A2 - Glossy", "29.50", 40),
                    ],
                },
                {
                    "name": "Logo Sticker Pack",
                    "description": "Die-cut vinyl stickers, one size",
                    "requires_quote": False,
                    "requires_design_approval": True,
                    "variants": [
                        ("50 pcs", "24.00", 500),
                    ],
                },
                {
                    "name": "Trade Show Banner",
                    "description": "Large-format banner priced per project",
                    "requires_quote": True,
                    "requires_design_approval": True,
                    "variants": [
                        ("2m x 1m", "120.00", 20),
                        ("3m x 1.5m", "210.00", 10),
                    ],
                },
            ],
            "services": [
                {
                    "name": "Brand Identity Design",
                    "description": "Logo and brand guide from your brief",
                    "requires_quote": True,
                    "requires_design_approval": True,
                    "packages": [
                        ("Basic", "300.00"),
                        ("Premium", "900.00"),
                    ],
                },
            ],
        },
        {
            "email": "merch@example.com",
            "display_name": "Merch Studio",
            "products": [
                {
                    "name": "Printed T-Shirt",
                    "description": "Cotton tee with your design",
                    "requires_quote": False,
                    "requires_design_approval": True,
                    "variants": [
                        ("S - White", "15.00", 80),
                        ("M - White", "15.00", 120),
                        ("L - Black", "16.50", 90),
                    ],
                },
                {
                    "name": "Plain Tote Bag",
                    "description": "Blank canvas tote",
                    "requires_quote": False,
                    "requires_design_approval": False,
                    "variants": [
                        ("Natural", "8.00", 300),
                    ],
                },
            ],
            "services": [],
        },
    ]

    for seller_data in sellers_data:
        seller = User.query.filter_by(email=seller_data["email"]).first()
        if seller:
            continue
        seller = User(
            email=seller_data["email"],
            display_name=seller_data["display_name"],
            role=UserRole.SELLER,
        )
        seller.set_password("seller123")
        db.session.add(seller)
        db.session.flush()
        print(
            "Created seller account: %s / seller123 (%s)"
            % (seller_data["email"], seller_data["display_name"])
        )

        for product_data in seller_data["products"]:
            product = Product(
                seller_id=seller.id,
                name=product_data["name"],
                description=product_data["description"],
                requires_quote=product_data["requires_quote"],
                requires_design_approval=product_data[
                    "requires_design_approval"],
            )
            for name, price, inventory in product_data["variants"]:
                product.variants.append(ProductVariant(
                    name=name, price=Decimal(price), inventory=inventory))
            db.session.add(product)
            print(f"  Created product: {product_data['name']}")

        for service_data in seller_data["services"]:
            service = Service(
                seller_id=seller.id,
                name=service_data["name"],
                description=service_data["description"],
                requires_quote=service_data["requires_quote"],
                requires_design_approval=service_data[
                    "requires_design_approval"],
            )
            for name, price in service_data["packages"]:
                service.packages.append(
                    ServicePackage(name=name, price=Decimal(price)))
            db.session.add(service)
            print(f"  Created service: {service_data['name']}")

    db.session.commit()
    print("Data initialization completed!")
