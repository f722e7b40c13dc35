from __future__ import annotations

from datetime import date
from decimal import Decimal
import os
import sys
from pathlib import Path
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Ensure the project root (which exposes the ``backend`` package) is on ``sys.path``
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ["RUN_MIGRATIONS_ON_STARTUP"] = "0"

from backend.windpark import models  # noqa: E402
from backend.windpark.database import Base, enable_sqlite_savepoints, get_db  # noqa: E402
from backend.windpark.main import app  # noqa: E402

TENANT_ID = "6f1c2f4e-8a43-4b7f-9d7e-2b1f0c1a9e01"
OTHER_TENANT_ID = "0d4b7a52-3c11-4e0f-8a7b-5f2e9c6d1a02"
USER_ID = "sachbearbeitung@example.com"

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
enable_sqlite_savepoints(engine)
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="session", autouse=True)
def setup_database() -> Generator[None, None, None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _settlement_environment(monkeypatch) -> None:
    for name in (
        "SETTLEMENT_VAT_RATE_PERCENT",
        "SETTLEMENT_REVENUE_PHASING",
        "SETTLEMENT_DEFAULT_WEA_SHARE",
        "SETTLEMENT_DEFAULT_POOL_SHARE",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        try:
            yield db_session
        finally:
            db_session.expire_all()

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        test_client.headers.update({"X-Tenant-ID": TENANT_ID, "X-User-ID": USER_ID})
        yield test_client
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def park_factory(db_session: Session) -> Callable[..., dict]:
    """Create a two-turbine park with one lease holding all sites and pool area.

    In 2025 turbine WEA 01 is in its 11th operating year (12 % revenue share)
    and WEA 02 in its 6th (8 % revenue share).
    """

    def _create(
        *,
        tenant_id: str = TENANT_ID,
        ownership_model: models.OwnershipModel = models.OwnershipModel.DIRECT,
        name: str = "Windpark Nordfeld",
    ) -> dict:
        park = models.Park(
            tenant_id=tenant_id,
            name=name,
            minimum_rent_per_turbine=Decimal("15000"),
            wea_share_percentage=Decimal("10"),
            pool_share_percentage=Decimal("90"),
            commissioning_date=date(2015, 6, 1),
            ownership_model=ownership_model,
        )
        park.revenue_phases = [
            models.ParkRevenuePhase(
                phase_number=1,
                start_year=1,
                end_year=10,
                revenue_share_percentage=Decimal("8"),
            ),
            models.ParkRevenuePhase(
                phase_number=2,
                start_year=11,
                end_year=None,
                revenue_share_percentage=Decimal("12"),
            ),
        ]
        first = models.Turbine(designation="WEA 01", commissioning_date=date(2015, 6, 1))
        second = models.Turbine(designation="WEA 02", commissioning_date=date(2020, 3, 1))
        park.turbines = [first, second]
        db_session.add(park)
        db_session.flush()

        lease = models.Lease(
            tenant_id=tenant_id,
            park_id=park.id,
            lessor_name="Hof Jansen",
            lessor_address="Dorfstrasse 1, 25899 Nordfeld",
            pool_area_sqm=Decimal("12000"),
        )
        lease.turbine_assignments = [
            models.LeaseTurbine(turbine_id=first.id, site_share_percentage=Decimal("100")),
            models.LeaseTurbine(turbine_id=second.id, site_share_percentage=Decimal("100")),
        ]
        db_session.add(lease)

        first_fund = models.OperatorFund(
            tenant_id=tenant_id,
            name="Betreiber Nordfeld 1",
            legal_form="GmbH & Co. KG",
            address="Hafenweg 3, 25813 Husum",
        )
        second_fund = models.OperatorFund(
            tenant_id=tenant_id,
            name="Betreiber Nordfeld 2",
            legal_form="GmbH & Co. KG",
        )
        db_session.add_all([first_fund, second_fund])
        db_session.flush()
        db_session.add_all(
            [
                models.TurbineOperator(
                    turbine_id=first.id,
                    fund_id=first_fund.id,
                    ownership_percentage=Decimal("100"),
                    valid_from=date(2015, 1, 1),
                ),
                models.TurbineOperator(
                    turbine_id=second.id,
                    fund_id=second_fund.id,
                    ownership_percentage=Decimal("100"),
                    valid_from=date(2020, 1, 1),
                ),
            ]
        )
        db_session.commit()

        return {
            "park_id": park.id,
            "lease_id": lease.id,
            "turbine_ids": [first.id, second.id],
            "fund_ids": [first_fund.id, second_fund.id],
        }

    return _create


@pytest.fixture
def seed_park(park_factory) -> dict:
    return park_factory()


@pytest.fixture
def seed_network_park(park_factory) -> dict:
    return park_factory(
        ownership_model=models.OwnershipModel.NETWORK_COMPANY,
        name="Windpark Suederdeich",
    )
