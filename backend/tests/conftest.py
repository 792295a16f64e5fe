"""
Pytest fixtures for armory backend tests.

Provides test database setup, armory/officer factories, and test client.
"""

import pytest
from armory import create_app
from armory.extensions import db
from armory.services import directory_service, inventory_service


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ARMORY_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def officer(db_session):
    """Officer the distributions are issued to."""
    return directory_service.create_officer(service_no="PN-1001", rank="Sergeant", name="Ada Okafor")


@pytest.fixture(scope='function')
def armory(db_session):
    """
    Armory with one line of each type:
    - weapon RIFLE-A|B-100 x10
    - ammunition 9MM|FMJ x500
    - equipment VEST|L x20
    """
    return inventory_service.create_armory(
        reference_id="ARM-NORTH-01",
        name="North Station Armory",
        code="NS1",
        location="Block C",
        unit="Rapid Response",
        actor_id="admin-1",
        weapons=[{"weapon_type": "Rifle-A", "serial_or_batch": "B-100", "manufacturer": "Acme", "quantity": 10}],
        ammunition=[{"caliber": "9mm", "ammo_type": "FMJ", "quantity": 500}],
        equipment=[{"equipment_type": "Vest", "size": "L", "quantity": 20}],
    )


@pytest.fixture(scope='function')
def other_armory(db_session):
    return inventory_service.create_armory(
        reference_id="ARM-SOUTH-01",
        name="South Station Armory",
        code="SS1",
        location="Block F",
        unit="Traffic",
        actor_id="admin-1",
        weapons=[{"weapon_type": "Rifle-A", "serial_or_batch": "B-100", "quantity": 3}],
    )


RIFLE = {"item_type": "weapon", "item_key": "RIFLE-A|B-100"}
AMMO = {"item_type": "ammunition", "item_key": "9MM|FMJ"}
VEST = {"item_type": "equipment", "item_key": "VEST|L"}


def line_quantity(armory_id, item_type, item_key):
    return inventory_service.get_available_quantity(armory_id, item_type, item_key)


ADMIN_HEADERS = {"X-Actor-Id": "admin-1", "X-Actor-Role": "admin"}
ARMOURER_HEADERS = {"X-Actor-Id": "armourer-7", "X-Actor-Role": "armourer"}
VIEWER_HEADERS = {"X-Actor-Id": "viewer-3", "X-Actor-Role": "viewer"}
