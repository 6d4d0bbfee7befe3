import pytest

from apps.orders.domain import Locker

from .support import build_harness


@pytest.fixture
def harness():
    return build_harness()


@pytest.fixture
def locker():
    return Locker("PUDO-CPT-01", "pudo")


@pytest.fixture
def seeded(db):
    """Buyer, seller, admin with saved addresses, plus one book in the stub ledger."""
    from apps.orders import providers
    from apps.orders.models import Profile, SavedAddress

    from .support import BOOK_ID, BOOK_PRICE

    buyer_addr = SavedAddress.objects.create(
        user_id="buyer-1", street_address="12 Long Street", city="Cape Town",
        province="Western Cape", postal_code="8001", local_area="City Bowl",
    )
    seller_addr = SavedAddress.objects.create(
        user_id="seller-1", street_address="5 Jan Smuts Ave", city="Johannesburg",
        province="Gauteng", postal_code="2196", local_area="Rosebank",
    )
    Profile.objects.create(
        user_id="buyer-1", full_name="Bea Buyer", email="bea@example.com",
        phone="+27820000001", shipping_address_ref=str(buyer_addr.id),
    )
    Profile.objects.create(
        user_id="seller-1", full_name="Sam Seller", email="sam@example.com",
        phone="+27820000002", pickup_address_ref=str(seller_addr.id),
    )
    Profile.objects.create(user_id="admin-1", full_name="Ada Admin", role="admin")
    Profile.objects.create(user_id="stranger-1", full_name="Stan Stranger")
    providers.STUB_INVENTORY.add(BOOK_ID, title="Calculus", price_cents=BOOK_PRICE, author="Stewart")
    return providers.STUB_INVENTORY
